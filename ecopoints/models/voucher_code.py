from datetime import datetime
from typing import Literal

from beanie import Document, Indexed, PydanticObjectId
from pydantic import Field


class VoucherCode(Document):
    """Code reservation. Only `issued` codes are redeemable; they always have a ledger entry."""
    code: Indexed(str, unique=True)
    account_id: PydanticObjectId
    status: Literal["reserved", "issued"] = "reserved"
    ledger_entry_id: PydanticObjectId | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    issued_at: datetime | None = None

    class Settings:
        name = "voucher_codes"
