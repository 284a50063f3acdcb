"""Daily check-in: same-day rejection, streaks, weekend and streak bonuses."""

import asyncio
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from ecopoints.core.exceptions import AlreadyCheckedInToday
from ecopoints.models.account import Account
from ecopoints.models.ledger_entry import LedgerEntry
from ecopoints.services import checkin as checkin_service

pytestmark = pytest.mark.asyncio

LOCAL = ZoneInfo("Asia/Ho_Chi_Minh")
MONDAY = datetime(2024, 5, 6, 9, 0, tzinfo=LOCAL)


async def test_first_checkin_on_weekday(account):
    entry, updated = await checkin_service.checkin(account.id, now=MONDAY)
    assert entry.kind == "daily_checkin"
    assert entry.points_earned == 2
    assert entry.metadata.checkin_streak == 1
    assert entry.metadata.weekend is False
    assert updated.points == 2
    assert updated.checkin_streak == 1
    assert updated.last_checkin is not None


async def test_second_checkin_same_day_fails_without_side_effects(account):
    await checkin_service.checkin(account.id, now=MONDAY.replace(hour=0, minute=30))
    before = await Account.get(account.id)
    with pytest.raises(AlreadyCheckedInToday):
        await checkin_service.checkin(account.id, now=MONDAY.replace(hour=23, minute=30))
    after = await Account.get(account.id)
    assert after.points == before.points == 2
    assert after.checkin_streak == before.checkin_streak == 1
    assert after.last_checkin == before.last_checkin


async def test_concurrent_checkins_award_once(account):
    results = await asyncio.gather(
        *(checkin_service.checkin(account.id, now=MONDAY) for _ in range(4)),
        return_exceptions=True,
    )
    assert sum(isinstance(r, tuple) for r in results) == 1
    assert sum(isinstance(r, AlreadyCheckedInToday) for r in results) == 3
    current = await Account.get(account.id)
    assert current.points == 2
    assert current.checkin_streak == 1
    assert await LedgerEntry.find(LedgerEntry.account_id == account.id).count() == 1


async def test_consecutive_days_extend_streak(account):
    await checkin_service.checkin(account.id, now=MONDAY)
    _, updated = await checkin_service.checkin(account.id, now=MONDAY + timedelta(days=1))
    assert updated.checkin_streak == 2


async def test_gap_resets_streak(account):
    await checkin_service.checkin(account.id, now=MONDAY)
    await checkin_service.checkin(account.id, now=MONDAY + timedelta(days=1))
    _, updated = await checkin_service.checkin(account.id, now=MONDAY + timedelta(days=3))
    assert updated.checkin_streak == 1


async def test_days_follow_local_calendar_not_utc(account):
    # 17:00 and 01:00 local fall on the same UTC date but on consecutive local days.
    first = datetime(2024, 5, 6, 10, 0, tzinfo=timezone.utc)
    second = datetime(2024, 5, 6, 18, 0, tzinfo=timezone.utc)
    await checkin_service.checkin(account.id, now=first)
    _, updated = await checkin_service.checkin(account.id, now=second)
    assert updated.checkin_streak == 2


async def test_weekend_award_replaces_base(account):
    saturday = MONDAY + timedelta(days=5)
    entry, _ = await checkin_service.checkin(account.id, now=saturday)
    assert entry.points_earned == 5
    assert entry.metadata.weekend is True


async def test_week_long_streak_earns_bonus(account):
    awards = []
    for day in range(7):
        entry, _ = await checkin_service.checkin(account.id, now=MONDAY + timedelta(days=day))
        awards.append(entry.points_earned)
    # Mon-Fri base, Saturday weekend, Sunday weekend + streak bonus
    assert awards == [2, 2, 2, 2, 2, 5, 8]
    current = await Account.get(account.id)
    assert current.points == 23
    assert current.checkin_streak == 7


async def test_streak_bonus_on_weekday(account):
    for day in range(8):
        entry, _ = await checkin_service.checkin(account.id, now=MONDAY + timedelta(days=day))
    assert entry.metadata.checkin_streak == 8
    assert entry.metadata.streak_bonus == 3
    assert entry.points_earned == 5


async def test_next_streak_rules():
    last = datetime(2024, 5, 6, 2, 0)  # naive UTC, 09:00 local
    assert checkin_service.next_streak(4, None, MONDAY) == 1
    assert checkin_service.next_streak(4, last, MONDAY + timedelta(days=1)) == 5
    assert checkin_service.next_streak(4, last, MONDAY + timedelta(days=2)) == 1
    with pytest.raises(AlreadyCheckedInToday):
        checkin_service.next_streak(4, last, MONDAY)
