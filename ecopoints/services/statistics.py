"""Read-only rollups over the ledger and the submission log."""

from typing import Any

from beanie import PydanticObjectId

from ecopoints.models.ledger_entry import LedgerEntry
from ecopoints.models.waste_submission import WasteSubmission
from ecopoints.services.ledger import get_account

ECO_TIERS = ((1000, "Diamond"), (500, "Gold"), (100, "Silver"), (10, "Bronze"))


def eco_tier(total_kg: float) -> str:
    for threshold, name in ECO_TIERS:
        if (total_kg or 0) >= threshold:
            return name
    return "Newbie"


def _avg(total: float, count: int) -> float:
    return round(total / count, 2) if count else 0


async def ledger_stats(account_id: PydanticObjectId) -> dict[str, Any]:
    entries = await LedgerEntry.find(
        LedgerEntry.account_id == account_id,
        LedgerEntry.status == "completed",
    ).to_list()
    total_bonus = sum(getattr(e.metadata, "bonus_amount", 0) for e in entries)
    return {
        "total_transactions": len(entries),
        "total_waste_kg": sum(e.waste_amount for e in entries),
        "total_points_earned": sum(e.points_earned for e in entries),
        "total_bonus_points": total_bonus,
        "avg_points_per_kg": _avg(sum(e.points_per_kg for e in entries), len(entries)),
    }


async def submission_stats(account_id: PydanticObjectId | None = None) -> dict[str, Any]:
    """Totals over completed submissions, for one account or all."""
    filters = [WasteSubmission.status == "completed"]
    if account_id is not None:
        filters.append(WasteSubmission.account_id == account_id)
    items = await WasteSubmission.find(*filters).to_list()
    total_weight = sum(s.weight for s in items)
    total_points = sum(s.total_points for s in items)
    return {
        "total_transactions": len(items),
        "total_weight": total_weight,
        "total_points": total_points,
        "total_earnings": sum(s.total_earnings for s in items),
        "avg_weight": _avg(total_weight, len(items)),
        "avg_points": _avg(total_points, len(items)),
    }


async def account_summary(account_id: PydanticObjectId) -> dict[str, Any]:
    account = await get_account(account_id)
    return {
        "current_points": account.points,
        "checkin_streak": account.checkin_streak,
        "last_checkin": account.last_checkin.isoformat() if account.last_checkin else None,
        "eco_tier": eco_tier(account.stats.total_kg),
        "user_stats": account.stats.model_dump(),
        "transaction_stats": await ledger_stats(account_id),
        "recycle_stats": await submission_stats(account_id),
    }
