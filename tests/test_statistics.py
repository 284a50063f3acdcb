import pytest

from ecopoints.services import checkin, ledger, statistics

pytestmark = pytest.mark.asyncio


@pytest.mark.parametrize(
    "kg,tier",
    [(0, "Newbie"), (9.9, "Newbie"), (10, "Bronze"), (100, "Silver"), (500, "Gold"), (1000, "Diamond")],
)
async def test_eco_tier(kg, tier):
    assert statistics.eco_tier(kg) == tier


async def test_account_summary(account):
    await ledger.exchange_waste(account.id, 12)
    await ledger.exchange_waste(account.id, 2)
    await checkin.checkin(account.id)
    summary = await statistics.account_summary(account.id)
    assert summary["checkin_streak"] == 1
    assert summary["eco_tier"] == "Bronze"
    tx = summary["transaction_stats"]
    assert tx["total_transactions"] == 3
    assert tx["total_waste_kg"] == 14
    assert tx["total_bonus_points"] == 12
    assert summary["current_points"] == tx["total_points_earned"]
    assert summary["current_points"] in (154, 157)
