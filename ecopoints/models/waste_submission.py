from datetime import datetime
from typing import Literal

from beanie import Document, PydanticObjectId
from pydantic import Field

PlasticType = Literal["pet", "bag", "box", "mixed"]
SubmissionStatus = Literal["pending", "confirmed", "completed", "cancelled"]


class WasteSubmission(Document):
    """Raw waste deposit awaiting admin processing. Never touches Account.points."""
    account_id: PydanticObjectId
    plastic_type: PlasticType
    weight: float = Field(ge=0.1, le=1000)
    points: float = Field(ge=0)
    bonus_points: float = 0
    total_points: float = Field(ge=0)
    price_per_kg: int = Field(ge=0)  # fixed at submission time
    total_earnings: float = Field(ge=0)
    status: SubmissionStatus = "pending"
    location: str
    notes: str = Field(default="", max_length=500)
    images: list[str] = Field(default_factory=list)
    processed_by: PydanticObjectId | None = None
    confirmed_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "waste_submissions"
        indexes = [
            [("account_id", 1), ("created_at", -1)],
            [("status", 1)],
            [("plastic_type", 1)],
        ]
