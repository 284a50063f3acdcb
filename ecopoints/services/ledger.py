"""Balance ledger: a reserved ledger entry plus one conditional account write per points change.

Every change first inserts its entry as `pending` under `sequence = account.version + 1`. The
unique `(account_id, sequence)` index lets only one writer hold a sequence. The account write is
conditional on the version that was read, and the entry flips to `completed` once it lands. An
account at version N therefore always has the entry for sequence N, and a pending entry whose
sequence is at or below the account version belongs to a write that landed.
"""

import asyncio
import random
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, TypeVar

from beanie import PydanticObjectId
from pymongo.errors import DuplicateKeyError, PyMongoError

from ecopoints.core.audit import log_event
from ecopoints.core.config import get_settings
from ecopoints.core.exceptions import (
    AccountInactive,
    ConcurrencyConflict,
    InsufficientBalance,
    NotFoundError,
    StorageFailure,
    ValidationError,
)
from ecopoints.core.logging import get_logger
from ecopoints.core.pagination import Page, build_page, paginate
from ecopoints.models.account import Account
from ecopoints.models.ledger_entry import LedgerEntry, LedgerKind, WasteExchangeMeta
from ecopoints.services.points import calculate_points

log = get_logger(__name__)

T = TypeVar("T")

EXCHANGE_PLASTIC_TYPES = ("pet", "bag", "box", "all", "")
MIN_WEIGHT_KG = 0.1
MAX_WEIGHT_KG = 1000


class StaleAccountVersion(Exception):
    """The account moved on between read and conditional write."""


async def get_account(account_id: PydanticObjectId) -> Account:
    try:
        account = await Account.get(account_id)
    except PyMongoError as e:
        raise StorageFailure(details={"error": str(e)}) from e
    if not account:
        raise NotFoundError("Account not found")
    if not account.is_active:
        raise AccountInactive()
    return account


async def commit_entry(
    account: Account,
    kind: LedgerKind,
    points: int,
    description: str,
    metadata: Any,
    *,
    waste_amount: float = 0,
    location: str = "",
    voucher_code: str | None = None,
    set_fields: dict[str, Any] | None = None,
    inc_fields: dict[str, Any] | None = None,
) -> LedgerEntry:
    """
    Apply `points` to the snapshot `account` and persist the matching ledger entry.

    Raises StaleAccountVersion when another writer holds the next sequence or moved the
    account on, so the caller can re-read and re-validate. `set_fields` and `inc_fields` ride
    along in the same account update. StorageFailure means the account was left as it was,
    unless the outcome could not be read back; then the pending entry is settled later.
    """
    points_before = account.points
    points_after = points_before + points
    if points_after < 0:
        raise InsufficientBalance(required=-points, available=points_before)
    new_version = account.version + 1
    entry = LedgerEntry(
        account_id=account.id,
        sequence=new_version,
        kind=kind,
        waste_amount=waste_amount,
        points_earned=points,
        points_before=points_before,
        points_after=points_after,
        description=description,
        location=location,
        status="pending",
        voucher_code=voucher_code,
        metadata=metadata,
    )
    try:
        await entry.insert()
    except DuplicateKeyError as e:
        if voucher_code and await LedgerEntry.find_one(LedgerEntry.voucher_code == voucher_code):
            raise StorageFailure("Voucher code already recorded", details={"voucher_code": voucher_code}) from e
        raise StaleAccountVersion() from e
    except PyMongoError as e:
        raise StorageFailure("Ledger entry could not be stored", details={"error": str(e)}) from e

    update: dict[str, Any] = {
        "$set": {
            "points": points_after,
            "version": new_version,
            "updated_at": datetime.utcnow(),
            **(set_fields or {}),
        }
    }
    if inc_fields:
        update["$inc"] = inc_fields
    try:
        result = await Account.get_motor_collection().update_one(
            {"_id": account.id, "version": account.version}, update
        )
    except PyMongoError as e:
        stored = await _stored_version(account.id)
        if stored is None or stored < new_version:
            if stored is not None:
                await _discard(entry)
            raise StorageFailure(details={"error": str(e)}) from e
        log.warning("ledger_write_recovered", account_id=str(account.id), sequence=new_version, error=str(e))
    else:
        if result.modified_count != 1:
            await _discard(entry)
            raise StaleAccountVersion()

    await _mark_completed(entry)
    entry.status = "completed"
    return entry


async def _stored_version(account_id: PydanticObjectId) -> int | None:
    try:
        doc = await Account.get_motor_collection().find_one({"_id": account_id}, {"version": 1})
    except PyMongoError as e:
        log.error("ledger_version_read_failed", account_id=str(account_id), error=str(e))
        return None
    return doc.get("version", 0) if doc else None


async def _mark_completed(entry: LedgerEntry) -> None:
    try:
        await LedgerEntry.get_motor_collection().update_one(
            {"_id": entry.id, "status": "pending"}, {"$set": {"status": "completed"}}
        )
    except PyMongoError as e:
        log.error("ledger_complete_failed", entry_id=str(entry.id), sequence=entry.sequence, error=str(e))


async def _discard(entry: LedgerEntry) -> None:
    try:
        await LedgerEntry.get_motor_collection().delete_one({"_id": entry.id, "status": "pending"})
    except PyMongoError as e:
        log.error("ledger_discard_failed", entry_id=str(entry.id), sequence=entry.sequence, error=str(e))


async def settle_pending(account: Account) -> None:
    """Complete pending entries whose account write landed; drop abandoned ones whose write never did."""
    try:
        pending = await LedgerEntry.find(
            LedgerEntry.account_id == account.id, LedgerEntry.status == "pending"
        ).to_list()
    except PyMongoError as e:
        raise StorageFailure(details={"error": str(e)}) from e
    if not pending:
        return
    cutoff = datetime.utcnow() - timedelta(seconds=get_settings().ledger_pending_grace_seconds)
    for entry in pending:
        if entry.sequence <= account.version:
            await _mark_completed(entry)
            log.warning("ledger_entry_settled", account_id=str(account.id), sequence=entry.sequence)
        elif entry.created_at < cutoff:
            await _discard(entry)
            log.warning("ledger_entry_discarded", account_id=str(account.id), sequence=entry.sequence)


async def run_serialized(account_id: PydanticObjectId, step: Callable[[Account], Awaitable[T]]) -> T:
    """Run read-validate-write `step` against a fresh account snapshot until its write lands."""
    max_retries = get_settings().ledger_max_retries
    for attempt in range(1, max_retries + 1):
        account = await get_account(account_id)
        await settle_pending(account)
        try:
            return await step(account)
        except StaleAccountVersion:
            log.warning("ledger_conflict", account_id=str(account_id), attempt=attempt)
            await asyncio.sleep(random.uniform(0, 0.005 * attempt))
    raise ConcurrencyConflict()


async def apply_delta(
    account_id: PydanticObjectId,
    kind: LedgerKind,
    points: int,
    description: str,
    metadata: Any,
    **kwargs: Any,
) -> LedgerEntry:
    """Credit (points > 0) or debit (points < 0) an account, serialized per account."""

    async def step(account: Account) -> LedgerEntry:
        return await commit_entry(account, kind, points, description, metadata, **kwargs)

    return await run_serialized(account_id, step)


async def exchange_waste(
    account_id: PydanticObjectId,
    weight: float,
    location: str = "",
    plastic_type: str = "",
) -> tuple[LedgerEntry, Account]:
    """Convert recycled kilograms into points and bump total_kg / total_orders."""
    if not (MIN_WEIGHT_KG <= weight <= MAX_WEIGHT_KG):
        raise ValidationError("Waste amount must be between 0.1 and 1000 kg", details={"weight": weight})
    location = (location or "").strip()
    if len(location) > 200:
        raise ValidationError("Location must be at most 200 characters")
    if plastic_type not in EXCHANGE_PLASTIC_TYPES:
        raise ValidationError("Invalid plastic type", details={"plastic_type": plastic_type})

    quote = calculate_points(weight)
    description = f"Exchanged {weight}kg of waste for {quote.total_points} points"
    if quote.has_bonus:
        description += f" (incl. {quote.bonus_points} bonus)"
    entry = await apply_delta(
        account_id,
        "waste_exchange",
        quote.total_points,
        description,
        WasteExchangeMeta(
            plastic_type=plastic_type,
            bonus_applied=quote.has_bonus,
            bonus_amount=quote.bonus_points,
        ),
        waste_amount=weight,
        location=location,
        inc_fields={"stats.total_kg": weight, "stats.total_orders": 1},
    )
    log.info(
        "waste_exchanged",
        account_id=str(account_id),
        weight=weight,
        points=entry.points_earned,
        points_after=entry.points_after,
    )
    await log_event(
        account_id,
        "waste_exchange",
        "ledger_entry",
        entry.id,
        {"weight": weight, "points": entry.points_earned},
    )
    return entry, await get_account(account_id)


async def list_entries(
    account_id: PydanticObjectId,
    page: int = 1,
    page_size: int = 20,
    kind: str | None = None,
) -> Page[LedgerEntry]:
    """Completed entries of the account, newest first. Unknown kinds are ignored."""
    page, page_size, skip = paginate(page, page_size)
    filters = [LedgerEntry.account_id == account_id, LedgerEntry.status == "completed"]
    if kind in ("waste_exchange", "daily_checkin", "bonus", "redemption"):
        filters.append(LedgerEntry.kind == kind)
    total = await LedgerEntry.find(*filters).count()
    items = await LedgerEntry.find(*filters).sort(-LedgerEntry.created_at).skip(skip).limit(page_size).to_list()
    return build_page(items, page, page_size, total)


async def verify_chain(account_id: PydanticObjectId) -> dict[str, Any]:
    """
    Walk the account's completed entries in sequence order.

    The first entry must start from the opening balance, each entry must start where the
    previous one ended, sequences must run 1..version without gaps, and the last entry must
    end on the current balance.
    """
    account = await get_account(account_id)
    try:
        entries = await LedgerEntry.find(LedgerEntry.account_id == account_id).sort(+LedgerEntry.sequence).to_list()
    except PyMongoError as e:
        raise StorageFailure(details={"error": str(e)}) from e
    pending = [e for e in entries if e.status == "pending"]
    entries = [e for e in entries if e.status == "completed"]

    breaks = []
    expected_before, expected_sequence = account.opening_balance, 1
    for entry in entries:
        if entry.points_before != expected_before:
            breaks.append({
                "sequence": entry.sequence,
                "reason": "points_before",
                "expected": expected_before,
                "found": entry.points_before,
            })
        if entry.sequence != expected_sequence:
            breaks.append({
                "sequence": entry.sequence,
                "reason": "sequence",
                "expected": expected_sequence,
                "found": entry.sequence,
            })
        expected_before, expected_sequence = entry.points_after, entry.sequence + 1

    balance_matches = expected_before == account.points and expected_sequence - 1 == account.version
    return {
        "entries": len(entries),
        "pending": len(pending),
        "opening_balance": account.opening_balance,
        "balance": account.points,
        "balance_matches": balance_matches,
        "breaks": breaks,
        "ok": balance_matches and not breaks,
    }
