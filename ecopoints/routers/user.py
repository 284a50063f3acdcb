from fastapi import APIRouter, Depends

from ecopoints.deps import get_current_account
from ecopoints.models.account import Account
from ecopoints.routers.points import account_out
from ecopoints.services.statistics import eco_tier

router = APIRouter()


@router.get("/profile")
async def profile(account: Account = Depends(get_current_account)):
    """Return current account. Requires session cookie."""
    return {"account": account_out(account), "eco_tier": eco_tier(account.stats.total_kg)}


@router.get("/stats")
async def stats(account: Account = Depends(get_current_account)):
    return {
        "stats": account.stats.model_dump(),
        "eco_tier": eco_tier(account.stats.total_kg),
        "member_since": account.created_at.isoformat(),
    }
