"""Daily check-in: streak continuity and award, applied through the ledger."""

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from beanie import PydanticObjectId

from ecopoints.core.audit import log_event
from ecopoints.core.config import get_settings
from ecopoints.core.exceptions import AlreadyCheckedInToday
from ecopoints.core.logging import get_logger
from ecopoints.models.account import Account
from ecopoints.models.ledger_entry import CheckinMeta, LedgerEntry
from ecopoints.services import ledger

log = get_logger(__name__)


def local_date(moment: datetime, tz: ZoneInfo | None = None) -> date:
    """Calendar date of `moment` in the configured timezone. Naive datetimes are UTC."""
    tz = tz or ZoneInfo(get_settings().timezone)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(tz).date()


def next_streak(streak: int, last_checkin: datetime | None, now: datetime) -> int:
    """Streak after checking in at `now`. Raises AlreadyCheckedInToday for a same-day repeat."""
    today = local_date(now)
    if last_checkin is None:
        return 1
    last_day = local_date(last_checkin)
    if last_day >= today:
        raise AlreadyCheckedInToday()
    if last_day == today - timedelta(days=1):
        return streak + 1
    return 1


def checkin_award(streak: int, day: date) -> tuple[int, bool, int]:
    """Return (award, weekend, streak_bonus). Weekend replaces the base award; the streak bonus adds on top."""
    settings = get_settings()
    weekend = day.weekday() >= 5
    award = settings.checkin_weekend_points if weekend else settings.checkin_base_points
    streak_bonus = settings.checkin_streak_bonus if streak >= settings.checkin_streak_days else 0
    return award + streak_bonus, weekend, streak_bonus


async def checkin(account_id: PydanticObjectId, now: datetime | None = None) -> tuple[LedgerEntry, Account]:
    now = now or datetime.now(timezone.utc)
    stored_now = now.astimezone(timezone.utc).replace(tzinfo=None) if now.tzinfo else now
    today = local_date(now)

    async def step(account: Account) -> LedgerEntry:
        streak = next_streak(account.checkin_streak, account.last_checkin, now)
        award, weekend, streak_bonus = checkin_award(streak, today)
        description = f"Daily check-in: +{award} points (streak {streak} days)"
        return await ledger.commit_entry(
            account,
            "daily_checkin",
            award,
            description,
            CheckinMeta(checkin_streak=streak, weekend=weekend, streak_bonus=streak_bonus),
            set_fields={"checkin_streak": streak, "last_checkin": stored_now},
        )

    entry = await ledger.run_serialized(account_id, step)
    log.info(
        "daily_checkin",
        account_id=str(account_id),
        points=entry.points_earned,
        streak=entry.metadata.checkin_streak,
    )
    await log_event(
        account_id,
        "daily_checkin",
        "ledger_entry",
        entry.id,
        {"points": entry.points_earned, "streak": entry.metadata.checkin_streak},
    )
    return entry, await ledger.get_account(account_id)
