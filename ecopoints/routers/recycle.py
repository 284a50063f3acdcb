from typing import Literal

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from ecopoints.deps import get_current_account, parse_object_id, require_admin
from ecopoints.models.account import Account
from ecopoints.models.waste_submission import WasteSubmission
from ecopoints.routers.points import page_out
from ecopoints.services import statistics as stats_service
from ecopoints.services import submissions as submission_service
from ecopoints.services.points import quote_submission

router = APIRouter()


class SubmitRequest(BaseModel):
    plastic_type: Literal["pet", "bag", "box", "mixed"]
    weight: float = Field(ge=0.1, le=1000)
    location: str = Field(min_length=10, max_length=200)
    notes: str = Field(default="", max_length=500)
    images: list[str] = Field(default_factory=list)


def submission_out(s: WasteSubmission) -> dict:
    return {
        "id": str(s.id),
        "account_id": str(s.account_id),
        "plastic_type": s.plastic_type,
        "weight": s.weight,
        "points": s.points,
        "bonus_points": s.bonus_points,
        "total_points": s.total_points,
        "price_per_kg": s.price_per_kg,
        "total_earnings": s.total_earnings,
        "status": s.status,
        "location": s.location,
        "notes": s.notes,
        "images": s.images,
        "confirmed_at": s.confirmed_at.isoformat() if s.confirmed_at else None,
        "completed_at": s.completed_at.isoformat() if s.completed_at else None,
        "cancelled_at": s.cancelled_at.isoformat() if s.cancelled_at else None,
        "created_at": s.created_at.isoformat(),
    }


@router.post("/submit", status_code=status.HTTP_201_CREATED)
async def submit(body: SubmitRequest, account: Account = Depends(get_current_account)):
    """Register a waste drop-off; an admin confirms it later."""
    s = await submission_service.submit(
        account.id, body.plastic_type, body.weight, body.location, notes=body.notes, images=body.images
    )
    return {"submission": submission_out(s)}


@router.get("/history")
async def history(
    account: Account = Depends(get_current_account),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    status: str | None = None,
):
    p = await submission_service.list_submissions(account.id, page=page, page_size=page_size, status=status)
    return page_out(p, [submission_out(s) for s in p.items])


@router.get("/stats")
async def stats(account: Account = Depends(get_current_account)):
    return {
        "recycle_stats": await stats_service.submission_stats(account.id),
        "user_stats": account.stats.model_dump(),
        "current_points": account.points,
    }


@router.get("/calculate")
async def calculate(
    weight: float = Query(..., ge=0.1, le=1000),
    plastic_type: Literal["pet", "bag", "box", "mixed"] = "mixed",
):
    """Preview a submission's points and earnings without saving."""
    quote = quote_submission(weight)
    return {"weight": weight, "plastic_type": plastic_type, **quote.model_dump()}


@router.put("/{submission_id}/confirm")
async def confirm(submission_id: str, admin: Account = Depends(require_admin)):
    s = await submission_service.confirm(parse_object_id(submission_id), actor_id=admin.id)
    return {"submission": submission_out(s)}


@router.put("/{submission_id}/complete")
async def complete(submission_id: str, admin: Account = Depends(require_admin)):
    s = await submission_service.complete(parse_object_id(submission_id), actor_id=admin.id)
    return {"submission": submission_out(s)}


@router.put("/{submission_id}/cancel")
async def cancel(submission_id: str, admin: Account = Depends(require_admin)):
    s = await submission_service.cancel(parse_object_id(submission_id), actor_id=admin.id)
    return {"submission": submission_out(s)}


@router.get("/all")
async def all_submissions(
    admin: Account = Depends(require_admin),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    status: str | None = None,
    plastic_type: str | None = None,
):
    p = await submission_service.list_submissions(
        None, page=page, page_size=page_size, status=status, plastic_type=plastic_type
    )
    return page_out(p, [submission_out(s) for s in p.items])
