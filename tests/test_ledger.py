"""Balance ledger: chain invariant, debits, optimistic locking and rollback."""

import asyncio
from datetime import datetime, timedelta

import pytest
from pymongo.errors import PyMongoError

from ecopoints.core.exceptions import (
    ConcurrencyConflict,
    InsufficientBalance,
    NotFoundError,
    StorageFailure,
    ValidationError,
)
from ecopoints.models.account import Account
from ecopoints.models.ledger_entry import BonusMeta, LedgerEntry
from ecopoints.services import ledger
from ecopoints.services.accounts import create_account

pytestmark = pytest.mark.asyncio


async def _entries(account_id):
    return await LedgerEntry.find(LedgerEntry.account_id == account_id).sort(+LedgerEntry.sequence).to_list()


async def test_exchange_waste_credits_points_and_stats(account):
    entry, updated = await ledger.exchange_waste(account.id, 12, location="Recycling point A", plastic_type="pet")
    assert entry.kind == "waste_exchange"
    assert entry.points_earned == 132
    assert entry.points_before == 0
    assert entry.points_after == 132
    assert entry.waste_amount == 12
    assert entry.metadata.bonus_applied is True
    assert entry.metadata.bonus_amount == 12
    assert updated.points == 132
    assert updated.stats.total_kg == 12
    assert updated.stats.total_orders == 1


async def test_exchange_waste_rejects_out_of_range_weight(account):
    with pytest.raises(ValidationError):
        await ledger.exchange_waste(account.id, 0.05)
    with pytest.raises(ValidationError):
        await ledger.exchange_waste(account.id, 1000.5)
    assert (await Account.get(account.id)).points == 0


async def test_exchange_waste_unknown_account(db):
    from beanie import PydanticObjectId
    with pytest.raises(NotFoundError):
        await ledger.exchange_waste(PydanticObjectId(), 5)


async def test_chain_holds_over_mixed_operations(db):
    acc = await create_account("Chain", "chain@example.com", opening_balance=40)
    await ledger.exchange_waste(acc.id, 5)
    await ledger.apply_delta(acc.id, "bonus", 7, "Welcome bonus", BonusMeta(reason="welcome"))
    await ledger.exchange_waste(acc.id, 2.5)
    entries = await _entries(acc.id)
    assert entries[0].points_before == 40
    for prev, cur in zip(entries, entries[1:]):
        assert cur.points_before == prev.points_after
    current = await Account.get(acc.id)
    assert current.points == entries[-1].points_after == 40 + 50 + 7 + 25
    report = await ledger.verify_chain(acc.id)
    assert report["ok"] is True
    assert report["entries"] == 3


async def test_verify_chain_checks_opening_balance(db):
    acc = await create_account("Audit", "audit@example.com", opening_balance=25)
    report = await ledger.verify_chain(acc.id)
    assert report["ok"] is True
    assert report["opening_balance"] == 25

    entry, _ = await ledger.exchange_waste(acc.id, 2)
    # Shift the whole history up by 10: internally consistent, but not from the opening balance.
    await LedgerEntry.get_motor_collection().update_one(
        {"_id": entry.id}, {"$set": {"points_before": 35, "points_after": 55}}
    )
    await Account.get_motor_collection().update_one({"_id": acc.id}, {"$set": {"points": 55}})

    report = await ledger.verify_chain(acc.id)
    assert report["balance_matches"] is True
    assert report["ok"] is False
    assert report["breaks"] == [{"sequence": 1, "reason": "points_before", "expected": 25, "found": 35}]


async def test_verify_chain_flags_balance_without_entry(account):
    await Account.get_motor_collection().update_one({"_id": account.id}, {"$inc": {"points": 10}})
    report = await ledger.verify_chain(account.id)
    assert report["entries"] == 0
    assert report["balance_matches"] is False
    assert report["ok"] is False


async def test_debit_below_zero_is_rejected(db):
    acc = await create_account("Poor", "poor@example.com", opening_balance=10)
    with pytest.raises(InsufficientBalance):
        await ledger.apply_delta(acc.id, "bonus", -11, "Correction", BonusMeta())
    assert (await Account.get(acc.id)).points == 10
    assert await _entries(acc.id) == []


async def test_stale_snapshot_is_not_written(account):
    snapshot = await Account.get(account.id)
    await ledger.exchange_waste(account.id, 1)
    with pytest.raises(ledger.StaleAccountVersion):
        await ledger.commit_entry(snapshot, "bonus", 5, "Stale", BonusMeta())
    current = await Account.get(account.id)
    assert current.points == 10
    assert len(await _entries(account.id)) == 1


async def test_retries_exhausted_surface_conflict(account):
    calls = []

    async def always_stale(acc):
        calls.append(acc.version)
        raise ledger.StaleAccountVersion()

    with pytest.raises(ConcurrencyConflict):
        await ledger.run_serialized(account.id, always_stale)
    assert len(calls) == 5


async def test_failed_entry_insert_leaves_account_untouched(account, monkeypatch):
    async def broken_insert(self, *args, **kwargs):
        raise PyMongoError("primary stepped down")

    monkeypatch.setattr(LedgerEntry, "insert", broken_insert)
    with pytest.raises(StorageFailure):
        await ledger.exchange_waste(account.id, 3)
    monkeypatch.undo()

    current = await Account.get(account.id)
    assert current.points == 0
    assert current.stats.total_kg == 0
    assert current.stats.total_orders == 0
    assert await _entries(account.id) == []

    entry, _ = await ledger.exchange_waste(account.id, 3)
    assert entry.points_before == 0
    assert entry.points_after == 30


async def test_failed_entry_leaves_no_credit_behind_a_concurrent_write(account, monkeypatch):
    original_insert = LedgerEntry.insert
    started, release = asyncio.Event(), asyncio.Event()
    calls = 0

    async def held_then_failing_insert(self, *args, **kwargs):
        nonlocal calls
        calls += 1
        if calls == 1:
            started.set()
            await release.wait()
            raise PyMongoError("write concern timeout")
        return await original_insert(self, *args, **kwargs)

    monkeypatch.setattr(LedgerEntry, "insert", held_then_failing_insert)
    slow = asyncio.create_task(ledger.exchange_waste(account.id, 1))
    await started.wait()
    await ledger.exchange_waste(account.id, 2)
    release.set()
    with pytest.raises(StorageFailure):
        await slow
    monkeypatch.undo()

    current = await Account.get(account.id)
    assert current.points == 20
    assert current.stats.total_kg == 2
    assert current.stats.total_orders == 1
    entries = await _entries(account.id)
    assert [(e.points_before, e.points_after, e.status) for e in entries] == [(0, 20, "completed")]
    assert (await ledger.verify_chain(account.id))["ok"] is True


class _FailingUpdates:
    """Account collection whose update_one errors, after applying the write when `lands` is set."""

    def __init__(self, collection, lands: bool):
        self._collection = collection
        self._lands = lands

    async def update_one(self, *args, **kwargs):
        if self._lands:
            await self._collection.update_one(*args, **kwargs)
        raise PyMongoError("connection reset")

    def __getattr__(self, name):
        return getattr(self._collection, name)


async def test_account_write_error_that_did_not_land_discards_entry(account, monkeypatch):
    proxy = _FailingUpdates(Account.get_motor_collection(), lands=False)
    monkeypatch.setattr(Account, "get_motor_collection", classmethod(lambda cls: proxy))
    with pytest.raises(StorageFailure):
        await ledger.exchange_waste(account.id, 4)
    monkeypatch.undo()

    assert (await Account.get(account.id)).points == 0
    assert await _entries(account.id) == []
    entry, _ = await ledger.exchange_waste(account.id, 4)
    assert entry.sequence == 1


async def test_account_write_error_that_landed_completes_entry(account, monkeypatch):
    proxy = _FailingUpdates(Account.get_motor_collection(), lands=True)
    monkeypatch.setattr(Account, "get_motor_collection", classmethod(lambda cls: proxy))
    entry = await ledger.apply_delta(account.id, "bonus", 15, "Welcome bonus", BonusMeta(reason="welcome"))
    monkeypatch.undo()

    assert entry.status == "completed"
    assert (await Account.get(account.id)).points == 15
    stored = await _entries(account.id)
    assert [(e.sequence, e.status) for e in stored] == [(1, "completed")]
    assert (await ledger.verify_chain(account.id))["ok"] is True


async def test_abandoned_pending_entry_is_discarded(account):
    abandoned = LedgerEntry(
        account_id=account.id,
        sequence=1,
        kind="bonus",
        points_earned=5,
        points_before=0,
        points_after=5,
        description="Never applied",
        status="pending",
        metadata=BonusMeta(),
        created_at=datetime.utcnow() - timedelta(minutes=5),
    )
    await abandoned.insert()

    entry, updated = await ledger.exchange_waste(account.id, 1)
    assert entry.sequence == 1
    assert updated.points == 10
    assert await LedgerEntry.get(abandoned.id) is None


async def test_pending_entry_of_landed_write_is_settled(account, monkeypatch):
    async def not_marked(entry):
        return None

    monkeypatch.setattr(ledger, "_mark_completed", not_marked)
    await ledger.exchange_waste(account.id, 1)
    monkeypatch.undo()

    report = await ledger.verify_chain(account.id)
    assert report["pending"] == 1
    assert report["ok"] is False

    await ledger.exchange_waste(account.id, 1)
    entries = await _entries(account.id)
    assert [(e.sequence, e.status) for e in entries] == [(1, "completed"), (2, "completed")]
    report = await ledger.verify_chain(account.id)
    assert report["pending"] == 0
    assert report["ok"] is True


async def test_concurrent_credits_reconcile(account):
    await asyncio.gather(*(ledger.exchange_waste(account.id, 1) for _ in range(8)))
    entries = await _entries(account.id)
    assert len(entries) == 8
    assert len({e.points_before for e in entries}) == 8
    report = await ledger.verify_chain(account.id)
    assert report["ok"] is True
    assert report["balance"] == 80


async def test_list_entries_paginates_and_filters(account):
    for _ in range(3):
        await ledger.exchange_waste(account.id, 1)
    await ledger.apply_delta(account.id, "bonus", 1, "Bonus", BonusMeta())
    page = await ledger.list_entries(account.id, page=1, page_size=2)
    assert page.total == 4
    assert len(page.items) == 2
    assert page.has_next is True
    assert page.has_prev is False
    assert page.total_pages == 2
    bonus_only = await ledger.list_entries(account.id, kind="bonus")
    assert bonus_only.total == 1
    assert bonus_only.items[0].kind == "bonus"


async def test_entry_rejects_broken_arithmetic(db):
    from bson import ObjectId
    with pytest.raises(ValueError):
        LedgerEntry(
            account_id=ObjectId(),
            sequence=1,
            kind="bonus",
            points_earned=5,
            points_before=0,
            points_after=6,
            description="bad",
            metadata=BonusMeta(),
        )
