from datetime import datetime
from typing import Annotated, Literal, Union

from beanie import Document, PydanticObjectId
from pydantic import BaseModel, Field, model_validator
from pymongo import ASCENDING, DESCENDING, IndexModel

LedgerKind = Literal["waste_exchange", "daily_checkin", "bonus", "redemption"]
LedgerStatus = Literal["pending", "completed", "cancelled"]
VoucherType = Literal["shopping", "ecommerce", "food", "entertainment"]


class WasteExchangeMeta(BaseModel):
    kind: Literal["waste_exchange"] = "waste_exchange"
    plastic_type: Literal["pet", "bag", "box", "all", ""] = ""
    bonus_applied: bool = False
    bonus_amount: float = 0


class CheckinMeta(BaseModel):
    kind: Literal["daily_checkin"] = "daily_checkin"
    checkin_streak: int
    weekend: bool = False
    streak_bonus: int = 0


class VoucherDetails(BaseModel):
    name: str = Field(default="Shopping voucher", max_length=100)
    value: int
    description: str = Field(default="Shopping voucher at partner stores", max_length=300)
    icon_class: str = Field(default="fas fa-ticket-alt", max_length=50)


class RedemptionMeta(BaseModel):
    kind: Literal["redemption"] = "redemption"
    voucher_type: VoucherType
    voucher: VoucherDetails


class BonusMeta(BaseModel):
    kind: Literal["bonus"] = "bonus"
    reason: str = ""


LedgerMetadata = Annotated[
    Union[WasteExchangeMeta, CheckinMeta, RedemptionMeta, BonusMeta],
    Field(discriminator="kind"),
]


class LedgerEntry(Document):
    """One balance-changing event. Written once, never edited."""
    account_id: PydanticObjectId
    sequence: int  # account.version after this entry committed
    kind: LedgerKind
    waste_amount: float = Field(default=0, ge=0)
    points_earned: int  # negative for redemptions
    points_before: int = Field(ge=0)
    points_after: int = Field(ge=0)
    description: str = Field(max_length=500)
    location: str = Field(default="", max_length=200)
    status: LedgerStatus = "completed"
    voucher_code: str | None = None
    metadata: LedgerMetadata
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @model_validator(mode="after")
    def _check_chain(self) -> "LedgerEntry":
        if self.points_after != self.points_before + self.points_earned:
            raise ValueError("points_after must equal points_before + points_earned")
        if self.metadata.kind != self.kind:
            raise ValueError("metadata kind does not match entry kind")
        return self

    @property
    def points_per_kg(self) -> float:
        if self.waste_amount > 0:
            return round(self.points_earned / self.waste_amount, 2)
        return 0

    class Settings:
        name = "ledger_entries"
        indexes = [
            IndexModel([("account_id", ASCENDING), ("sequence", ASCENDING)], unique=True),
            IndexModel(
                [("voucher_code", ASCENDING)],
                unique=True,
                partialFilterExpression={"voucher_code": {"$type": "string"}},
            ),
            IndexModel([("account_id", ASCENDING), ("created_at", DESCENDING)]),
            IndexModel([("kind", ASCENDING), ("created_at", DESCENDING)]),
            IndexModel([("status", ASCENDING)]),
        ]
