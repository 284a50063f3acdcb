"""Point values for recycled waste.

Two formulas exist for the same physical action and are kept apart on purpose:

* ``calculate_points`` feeds the balance ledger (waste exchange). At or above the
  bonus threshold the bonus equals the full weight.
* ``calculate_submission_points`` feeds the admin-approved submission workflow.
  The bonus only counts the kilograms above the threshold.

Both are pure: same input, same output, no I/O.
"""

import math

from pydantic import BaseModel

from ecopoints.core.config import get_settings


class PointsQuote(BaseModel):
    base_points: float
    bonus_points: float
    total_points: int
    has_bonus: bool


class SubmissionQuote(BaseModel):
    points: float
    bonus_points: float
    total_points: float
    total_earnings: float
    has_bonus: bool


def calculate_points(weight: float) -> PointsQuote:
    """Ledger pathway: base = weight * 10, bonus = weight when weight >= 10, total floored."""
    settings = get_settings()
    amount = float(weight or 0)
    base_points = amount * settings.points_per_kg
    bonus_points = 0.0
    has_bonus = False
    if amount > 0 and amount >= settings.bonus_threshold_kg:
        bonus_points = amount
        has_bonus = True
    total = math.floor(base_points + bonus_points) if amount > 0 else 0
    return PointsQuote(
        base_points=base_points,
        bonus_points=bonus_points,
        total_points=total,
        has_bonus=has_bonus,
    )


def calculate_submission_points(weight: float) -> SubmissionQuote:
    """Submission pathway: bonus = (weight - 10) * 1 above the threshold, earnings = total * point value.

    Values are kept unfloored (rounded to cents of a point) since they are stored on the submission.
    """
    settings = get_settings()
    amount = float(weight)
    base_points = amount * settings.points_per_kg
    has_bonus = amount >= settings.bonus_threshold_kg
    bonus_points = max(0.0, amount - settings.bonus_threshold_kg) * 1 if has_bonus else 0.0
    total_points = base_points + bonus_points
    return SubmissionQuote(
        points=round(base_points, 2),
        bonus_points=round(bonus_points, 2),
        total_points=round(total_points, 2),
        total_earnings=round(total_points * settings.point_value, 2),
        has_bonus=has_bonus,
    )


def quote_submission(weight: float) -> SubmissionQuote:
    """Preview shown before submitting: same formula, floored for display."""
    raw = calculate_submission_points(weight)
    return SubmissionQuote(
        points=math.floor(raw.points),
        bonus_points=math.floor(raw.bonus_points),
        total_points=math.floor(raw.total_points),
        total_earnings=math.floor(raw.total_earnings),
        has_bonus=raw.has_bonus,
    )
