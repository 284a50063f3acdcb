"""Audit trail for ledger and workflow actions."""

from typing import Any

from beanie import PydanticObjectId
from pymongo.errors import PyMongoError

from ecopoints.core.logging import current_request_id, get_logger
from ecopoints.models.audit_log import AuditEntity, AuditEvent, AuditLog

log = get_logger(__name__)


async def log_event(
    account_id: PydanticObjectId | None,
    event_type: AuditEvent,
    entity_type: AuditEntity,
    entity_id: PydanticObjectId | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    """Append to audit_logs, tagged with the current request id. A failed write is logged, not raised."""
    try:
        await AuditLog(
            account_id=account_id,
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            request_id=current_request_id(),
            details=details or {},
        ).insert()
    except PyMongoError as e:
        log.warning("audit_write_failed", event_type=event_type, entity_id=str(entity_id), error=str(e))