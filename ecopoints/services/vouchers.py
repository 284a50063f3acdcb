"""Voucher redemption: reserve a unique code, then debit the ledger carrying that code."""

from datetime import datetime

from beanie import PydanticObjectId
from pymongo.errors import DuplicateKeyError, PyMongoError

from ecopoints.core.audit import log_event
from ecopoints.core.config import get_settings
from ecopoints.core.exceptions import CodeSpaceExhausted, InsufficientBalance, StorageFailure, ValidationError
from ecopoints.core.logging import get_logger
from ecopoints.core.pagination import Page, build_page, paginate
from ecopoints.core.security import generate_voucher_code
from ecopoints.models.account import Account
from ecopoints.models.ledger_entry import LedgerEntry, RedemptionMeta, VoucherDetails
from ecopoints.models.voucher_code import VoucherCode
from ecopoints.services import ledger

log = get_logger(__name__)

VOUCHER_TYPES = ("shopping", "ecommerce", "food", "entertainment")
MIN_POINTS, MAX_POINTS = 100, 10000
MIN_VALUE, MAX_VALUE = 10000, 1000000
# field -> max length of the caller-supplied voucher details
DETAIL_LIMITS = {"name": 100, "description": 300, "icon_class": 50}


async def reserve_code(account_id: PydanticObjectId) -> VoucherCode:
    """Insert a fresh code; the unique index on `code` rejects collisions, which are re-drawn."""
    settings = get_settings()
    for attempt in range(1, settings.voucher_code_max_attempts + 1):
        reservation = VoucherCode(
            code=generate_voucher_code(settings.voucher_code_length),
            account_id=account_id,
        )
        try:
            await reservation.insert()
            return reservation
        except DuplicateKeyError:
            log.warning("voucher_code_collision", attempt=attempt)
        except PyMongoError as e:
            raise StorageFailure(details={"error": str(e)}) from e
    raise CodeSpaceExhausted(settings.voucher_code_max_attempts)


async def _release(reservation: VoucherCode) -> None:
    try:
        if await LedgerEntry.find_one(LedgerEntry.voucher_code == reservation.code):
            # A stored entry carries the code and may still settle, so the code stays taken.
            log.warning("voucher_release_skipped", code=reservation.code)
            return
        await reservation.delete()
    except PyMongoError as e:
        # An unreleased reservation has no ledger entry, so it never validates.
        log.error("voucher_release_failed", code=reservation.code, error=str(e))


async def redeem(
    account_id: PydanticObjectId,
    voucher_type: str,
    points_required: int,
    voucher_value: int,
    voucher_name: str | None = None,
    voucher_description: str | None = None,
    icon_class: str | None = None,
) -> tuple[LedgerEntry, Account]:
    if voucher_type not in VOUCHER_TYPES:
        raise ValidationError("Invalid voucher type", details={"voucher_type": voucher_type})
    if not (MIN_POINTS <= points_required <= MAX_POINTS):
        raise ValidationError("Points required must be between 100 and 10000")
    if not (MIN_VALUE <= voucher_value <= MAX_VALUE):
        raise ValidationError("Voucher value must be between 10,000 and 1,000,000 VND")
    supplied = {
        "name": (voucher_name or "").strip(),
        "description": (voucher_description or "").strip(),
        "icon_class": (icon_class or "").strip(),
    }
    for field, limit in DETAIL_LIMITS.items():
        if len(supplied[field]) > limit:
            raise ValidationError(f"Voucher {field} must be at most {limit} characters", details={"field": field})

    account = await ledger.get_account(account_id)
    if account.points < points_required:
        raise InsufficientBalance(required=points_required, available=account.points)

    details = VoucherDetails(value=voucher_value, **{k: v for k, v in supplied.items() if v})

    reservation = await reserve_code(account_id)
    try:
        entry = await ledger.apply_delta(
            account_id,
            "redemption",
            -points_required,
            f"Redeemed {points_required} points for voucher {details.name}",
            RedemptionMeta(voucher_type=voucher_type, voucher=details),
            voucher_code=reservation.code,
        )
    except Exception:
        await _release(reservation)
        raise

    reservation.status = "issued"
    reservation.ledger_entry_id = entry.id
    reservation.issued_at = datetime.utcnow()
    try:
        await reservation.save()
    except PyMongoError as e:
        # The debit is committed and the entry carries the code; validity follows the entry.
        log.error("voucher_issue_mark_failed", code=reservation.code, entry_id=str(entry.id), error=str(e))

    log.info(
        "voucher_redeemed",
        account_id=str(account_id),
        points=points_required,
        code=reservation.code,
        points_after=entry.points_after,
    )
    await log_event(
        account_id,
        "voucher_redeemed",
        "ledger_entry",
        entry.id,
        {"points": points_required, "voucher_code": reservation.code, "voucher_type": voucher_type},
    )
    return entry, await ledger.get_account(account_id)


async def is_code_valid(code: str) -> bool:
    """A code is valid only when a completed redemption entry carries it."""
    entry = await LedgerEntry.find_one(
        LedgerEntry.voucher_code == code,
        LedgerEntry.kind == "redemption",
        LedgerEntry.status == "completed",
    )
    return entry is not None


async def list_vouchers(account_id: PydanticObjectId, page: int = 1, page_size: int = 20) -> Page[LedgerEntry]:
    page, page_size, skip = paginate(page, page_size)
    filters = [
        LedgerEntry.account_id == account_id,
        LedgerEntry.kind == "redemption",
        LedgerEntry.voucher_code != None,  # noqa: E711
        LedgerEntry.status == "completed",
    ]
    total = await LedgerEntry.find(*filters).count()
    items = await LedgerEntry.find(*filters).sort(-LedgerEntry.created_at).skip(skip).limit(page_size).to_list()
    return build_page(items, page, page_size, total)
