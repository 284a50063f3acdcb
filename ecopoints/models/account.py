from datetime import datetime
from typing import Literal

from beanie import Document, Indexed
from pydantic import BaseModel, Field

PreferredPlastic = Literal["pet", "bag", "box", "all", ""]


class AccountStats(BaseModel):
    """Aggregate counters. Written by waste exchange and submission confirmation."""
    total_kg: float = 0
    total_earnings: float = 0
    total_orders: int = 0
    total_points: float = 0
    total_transactions: int = 0


class Account(Document):
    full_name: str = Field(max_length=100)
    email: Indexed(str, unique=True)
    phone: str | None = None
    address: str = ""
    plastic_type: PreferredPlastic = ""
    role: str = "user"  # "user" | "admin"
    is_active: bool = True
    points: int = Field(default=0, ge=0)
    opening_balance: int = Field(default=0, ge=0)  # balance before the first ledger entry
    checkin_streak: int = 0
    last_checkin: datetime | None = None
    stats: AccountStats = Field(default_factory=AccountStats)
    version: int = 0  # bumped by every balance/streak write
    session_version: int = 0
    last_login_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "accounts"
        indexes = [[("points", -1)]]
