"""Waste submission workflow: pending -> confirmed -> completed, or -> cancelled.

Transitions are admin-driven. Confirmation adds the submission's values to the
account's aggregate stats; it never touches the points balance or the ledger.
"""

from datetime import datetime
from typing import Any

from beanie import PydanticObjectId
from pymongo.errors import PyMongoError

from ecopoints.core.audit import log_event
from ecopoints.core.config import get_settings
from ecopoints.core.exceptions import InvalidTransition, NotFoundError, StorageFailure, ValidationError
from ecopoints.core.logging import get_logger
from ecopoints.core.pagination import Page, build_page, paginate
from ecopoints.models.account import Account
from ecopoints.models.waste_submission import WasteSubmission
from ecopoints.services.ledger import MAX_WEIGHT_KG, MIN_WEIGHT_KG, get_account
from ecopoints.services.points import calculate_submission_points

log = get_logger(__name__)

PLASTIC_TYPES = ("pet", "bag", "box", "mixed")
STATUSES = ("pending", "confirmed", "completed", "cancelled")

# target status -> statuses it may be reached from
TRANSITIONS: dict[str, tuple[str, ...]] = {
    "confirmed": ("pending",),
    "completed": ("confirmed",),
    "cancelled": ("pending", "confirmed"),
}

TIMESTAMP_FIELDS = {
    "confirmed": "confirmed_at",
    "completed": "completed_at",
    "cancelled": "cancelled_at",
}


async def submit(
    account_id: PydanticObjectId,
    plastic_type: str,
    weight: float,
    location: str,
    notes: str = "",
    images: list[str] | None = None,
) -> WasteSubmission:
    if plastic_type not in PLASTIC_TYPES:
        raise ValidationError("Invalid plastic type", details={"plastic_type": plastic_type})
    if not (MIN_WEIGHT_KG <= weight <= MAX_WEIGHT_KG):
        raise ValidationError("Weight must be between 0.1 and 1000 kg", details={"weight": weight})
    location = (location or "").strip()
    if not (10 <= len(location) <= 200):
        raise ValidationError("Location must be 10-200 characters")
    notes = (notes or "").strip()
    if len(notes) > 500:
        raise ValidationError("Notes must be at most 500 characters")
    await get_account(account_id)

    quote = calculate_submission_points(weight)
    submission = WasteSubmission(
        account_id=account_id,
        plastic_type=plastic_type,
        weight=weight,
        points=quote.points,
        bonus_points=quote.bonus_points,
        total_points=quote.total_points,
        price_per_kg=get_settings().submission_price_per_kg,
        total_earnings=quote.total_earnings,
        location=location,
        notes=notes,
        images=[i.strip() for i in images or [] if i and i.strip()],
    )
    try:
        await submission.insert()
    except PyMongoError as e:
        raise StorageFailure(details={"error": str(e)}) from e
    log.info("submission_created", account_id=str(account_id), submission_id=str(submission.id), weight=weight)
    await log_event(account_id, "submission_created", "waste_submission", submission.id, {"weight": weight})
    return submission


async def get_submission(submission_id: PydanticObjectId) -> WasteSubmission:
    submission = await WasteSubmission.get(submission_id)
    if not submission:
        raise NotFoundError("Submission not found")
    return submission


async def _transition(
    submission_id: PydanticObjectId,
    target: str,
    actor_id: PydanticObjectId | None,
) -> WasteSubmission:
    """Move to `target` with a write conditional on the status we read, so only one racer wins."""
    submission = await get_submission(submission_id)
    if submission.status not in TRANSITIONS[target]:
        raise InvalidTransition(submission.status, target)
    now = datetime.utcnow()
    changes: dict[str, Any] = {
        "status": target,
        TIMESTAMP_FIELDS[target]: now,
        "processed_by": actor_id,
        "updated_at": now,
    }
    try:
        result = await WasteSubmission.get_motor_collection().update_one(
            {"_id": submission.id, "status": submission.status}, {"$set": changes}
        )
    except PyMongoError as e:
        raise StorageFailure(details={"error": str(e)}) from e
    if result.modified_count != 1:
        current = await get_submission(submission_id)
        raise InvalidTransition(current.status, target)
    previous = submission.status
    for key, value in changes.items():
        setattr(submission, key, value)
    log.info(
        "submission_transition",
        submission_id=str(submission.id),
        from_status=previous,
        to_status=target,
        actor_id=str(actor_id) if actor_id else None,
    )
    return submission


async def confirm(submission_id: PydanticObjectId, actor_id: PydanticObjectId | None = None) -> WasteSubmission:
    submission = await _transition(submission_id, "confirmed", actor_id)
    try:
        await Account.get_motor_collection().update_one(
            {"_id": submission.account_id},
            {
                "$inc": {
                    "stats.total_points": submission.total_points,
                    "stats.total_earnings": submission.total_earnings,
                    "stats.total_kg": submission.weight,
                    "stats.total_transactions": 1,
                }
            },
        )
    except PyMongoError as e:
        await _undo_confirm(submission)
        raise StorageFailure("Could not update account statistics", details={"error": str(e)}) from e
    await log_event(
        submission.account_id,
        "submission_confirmed",
        "waste_submission",
        submission.id,
        {"total_points": submission.total_points, "total_earnings": submission.total_earnings},
    )
    return submission


async def _undo_confirm(submission: WasteSubmission) -> None:
    try:
        await WasteSubmission.get_motor_collection().update_one(
            {"_id": submission.id, "status": "confirmed"},
            {"$set": {"status": "pending", "confirmed_at": None, "processed_by": None}},
        )
    except PyMongoError as e:
        log.error("submission_confirm_undo_failed", submission_id=str(submission.id), error=str(e))


async def complete(submission_id: PydanticObjectId, actor_id: PydanticObjectId | None = None) -> WasteSubmission:
    submission = await _transition(submission_id, "completed", actor_id)
    await log_event(submission.account_id, "submission_completed", "waste_submission", submission.id)
    return submission


async def cancel(submission_id: PydanticObjectId, actor_id: PydanticObjectId | None = None) -> WasteSubmission:
    """Cancel from pending or confirmed. Stats already added by a confirmation stay in place."""
    submission = await _transition(submission_id, "cancelled", actor_id)
    await log_event(submission.account_id, "submission_cancelled", "waste_submission", submission.id)
    return submission


async def list_submissions(
    account_id: PydanticObjectId | None = None,
    page: int = 1,
    page_size: int = 10,
    status: str | None = None,
    plastic_type: str | None = None,
) -> Page[WasteSubmission]:
    """Submissions newest first; all accounts when `account_id` is None (admin view)."""
    page, page_size, skip = paginate(page, page_size)
    filters = []
    if account_id is not None:
        filters.append(WasteSubmission.account_id == account_id)
    if status in STATUSES:
        filters.append(WasteSubmission.status == status)
    if plastic_type in PLASTIC_TYPES:
        filters.append(WasteSubmission.plastic_type == plastic_type)
    total = await WasteSubmission.find(*filters).count()
    items = (
        await WasteSubmission.find(*filters)
        .sort(-WasteSubmission.created_at)
        .skip(skip)
        .limit(page_size)
        .to_list()
    )
    return build_page(items, page, page_size, total)
