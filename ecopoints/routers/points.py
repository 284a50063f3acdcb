from typing import Literal

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from ecopoints.core.pagination import Page
from ecopoints.deps import get_current_account, rate_limited
from ecopoints.models.account import Account
from ecopoints.models.ledger_entry import LedgerEntry
from ecopoints.services import checkin as checkin_service
from ecopoints.services import ledger as ledger_service
from ecopoints.services import statistics as stats_service
from ecopoints.services import vouchers as voucher_service
from ecopoints.services.points import calculate_points

router = APIRouter()


class ExchangeWasteRequest(BaseModel):
    waste_amount: float = Field(ge=0.1, le=1000)
    location: str = Field(default="", max_length=200)
    plastic_type: Literal["pet", "bag", "box", "all", ""] = ""


class RedeemVoucherRequest(BaseModel):
    voucher_type: Literal["shopping", "ecommerce", "food", "entertainment"]
    points_required: int = Field(ge=100, le=10000)
    voucher_value: int = Field(ge=10000, le=1000000)
    voucher_name: str | None = Field(default=None, max_length=100)
    voucher_description: str | None = Field(default=None, max_length=300)
    icon_class: str | None = Field(default=None, max_length=50)


def entry_out(e: LedgerEntry) -> dict:
    return {
        "id": str(e.id),
        "type": e.kind,
        "sequence": e.sequence,
        "waste_amount": e.waste_amount,
        "points_earned": e.points_earned,
        "points_before": e.points_before,
        "points_after": e.points_after,
        "description": e.description,
        "location": e.location,
        "status": e.status,
        "voucher_code": e.voucher_code,
        "metadata": e.metadata.model_dump(),
        "points_per_kg": e.points_per_kg,
        "created_at": e.created_at.isoformat(),
    }


def account_out(a: Account) -> dict:
    return {
        "id": str(a.id),
        "full_name": a.full_name,
        "email": a.email,
        "points": a.points,
        "checkin_streak": a.checkin_streak,
        "last_checkin": a.last_checkin.isoformat() if a.last_checkin else None,
        "stats": a.stats.model_dump(),
        "role": a.role,
    }


def page_out(p: Page, items: list[dict]) -> dict:
    return {
        "items": items,
        "pagination": {
            "page": p.page,
            "page_size": p.page_size,
            "total": p.total,
            "total_pages": p.total_pages,
            "has_next": p.has_next,
            "has_prev": p.has_prev,
        },
    }


@router.post("/exchange-waste", status_code=status.HTTP_201_CREATED, dependencies=[Depends(rate_limited("exchange"))])
async def exchange_waste(body: ExchangeWasteRequest, account: Account = Depends(get_current_account)):
    """Exchange recycled waste for points."""
    entry, updated = await ledger_service.exchange_waste(
        account.id, body.waste_amount, location=body.location, plastic_type=body.plastic_type
    )
    return {
        "message": f"Exchanged {body.waste_amount}kg of waste for {entry.points_earned} points",
        "transaction": entry_out(entry),
        "account": account_out(updated),
    }


@router.post("/daily-checkin", status_code=status.HTTP_201_CREATED, dependencies=[Depends(rate_limited("checkin"))])
async def daily_checkin(account: Account = Depends(get_current_account)):
    entry, updated = await checkin_service.checkin(account.id)
    return {
        "message": f"Checked in: +{entry.points_earned} points, streak {updated.checkin_streak} days",
        "transaction": entry_out(entry),
        "account": account_out(updated),
        "checkin_streak": updated.checkin_streak,
    }


@router.get("/calculator")
async def calculator(weight: float = Query(..., ge=0, le=1000)):
    """Preview points for a weight without recording anything."""
    quote = calculate_points(weight)
    return {"waste_amount": weight, "points_calculation": quote.model_dump()}


@router.get("/user-stats", dependencies=[Depends(rate_limited("points"))])
async def user_stats(account: Account = Depends(get_current_account)):
    return await stats_service.account_summary(account.id)


@router.get("/transactions", dependencies=[Depends(rate_limited("points"))])
async def transactions(
    account: Account = Depends(get_current_account),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    type: str | None = None,
):
    """Completed ledger entries, newest first."""
    p = await ledger_service.list_entries(account.id, page=page, page_size=page_size, kind=type)
    return page_out(p, [entry_out(e) for e in p.items])


@router.get("/verify-chain", dependencies=[Depends(rate_limited("points"))])
async def verify_chain(account: Account = Depends(get_current_account)):
    return await ledger_service.verify_chain(account.id)


@router.post("/redeem-voucher", status_code=status.HTTP_201_CREATED)
async def redeem_voucher(body: RedeemVoucherRequest, account: Account = Depends(get_current_account)):
    entry, updated = await voucher_service.redeem(
        account.id,
        body.voucher_type,
        body.points_required,
        body.voucher_value,
        voucher_name=body.voucher_name,
        voucher_description=body.voucher_description,
        icon_class=body.icon_class,
    )
    return {
        "message": f"Voucher redeemed, code {entry.voucher_code}",
        "transaction": entry_out(entry),
        "account": account_out(updated),
        "voucher_code": entry.voucher_code,
    }


@router.get("/vouchers", dependencies=[Depends(rate_limited("points"))])
async def vouchers(
    account: Account = Depends(get_current_account),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
):
    p = await voucher_service.list_vouchers(account.id, page=page, page_size=page_size)
    items = [
        {
            "id": str(e.id),
            "voucher_code": e.voucher_code,
            "voucher_details": e.metadata.voucher.model_dump(),
            "points_used": abs(e.points_earned),
            "redeemed_at": e.created_at.isoformat(),
            "status": e.status,
        }
        for e in p.items
    ]
    return page_out(p, items)
