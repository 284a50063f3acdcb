from datetime import datetime
from typing import Any, Literal

from beanie import Document, PydanticObjectId
from pydantic import Field
from pymongo import ASCENDING, DESCENDING, IndexModel

AuditEvent = Literal[
    "waste_exchange",
    "daily_checkin",
    "voucher_redeemed",
    "submission_created",
    "submission_confirmed",
    "submission_completed",
    "submission_cancelled",
]
AuditEntity = Literal["ledger_entry", "waste_submission"]


class AuditLog(Document):
    """Append-only record of a ledger or workflow action, kept apart from the ledger itself."""
    account_id: PydanticObjectId | None = None
    event_type: AuditEvent
    entity_type: AuditEntity
    entity_id: PydanticObjectId | None = None
    request_id: str | None = None  # ties the event to the request log line
    details: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "audit_logs"
        indexes = [
            IndexModel([("account_id", ASCENDING), ("created_at", DESCENDING)]),
            IndexModel([("entity_type", ASCENDING), ("entity_id", ASCENDING)]),
            IndexModel([("event_type", ASCENDING), ("created_at", DESCENDING)]),
        ]
