"""
Item State Machine

Decides an item's lifecycle status from the calculator output, and
implements the suspend/unsuspend toggle and the progress reset.

State Machine:
    LEARNING → REVIEWING → MASTERED
        ↑          │           │
        └── lapse ─┴───────────┘

    any ──suspend──→ SUSPENDED ──unsuspend──→ previous status
    any ──reset──→ LEARNING

Nothing here touches the database; callers apply the result to a
SchedulableItem inside their own transaction.
"""

from datetime import datetime
from typing import Optional

from study_scheduler.db.models import SchedulableItem
from study_scheduler.enums.scheduling import ItemStatus
from study_scheduler.errors import ConflictError
from study_scheduler.services.scheduling.calculator import (
    NextState,
    SchedulingParameters,
)

INITIAL_STATUS = ItemStatus.LEARNING


def next_status(
    current: ItemStatus,
    result: NextState,
    params: SchedulingParameters,
) -> ItemStatus:
    """
    Status after a review.

    Args:
        current: Status before the review
        result: Calculator output for the review
        params: Scheduling constants (mastery threshold)

    Returns:
        The new status.

    Raises:
        ConflictError: If the item is suspended
    """
    current = ItemStatus(current)

    if current == ItemStatus.SUSPENDED:
        raise ConflictError(
            "Suspended items cannot be reviewed; unsuspend first",
            details={"status": current.value},
        )

    if result.is_lapse:
        return ItemStatus.LEARNING

    if current == ItemStatus.LEARNING:
        return ItemStatus.REVIEWING if result.repetitions >= 1 else current

    if current == ItemStatus.REVIEWING and _reached_mastery(result, params):
        return ItemStatus.MASTERED

    return current


def _reached_mastery(result: NextState, params: SchedulingParameters) -> bool:
    return (
        result.repetitions >= params.mastery_repetitions
        and result.interval_days >= params.mastery_min_interval_days
    )


def suspend(item: SchedulableItem) -> bool:
    """
    Suspend an item in place.

    Returns:
        False if the item was already suspended, True otherwise.
    """
    if item.status == ItemStatus.SUSPENDED.value:
        return False

    item.suspended_from_status = item.status
    item.status = ItemStatus.SUSPENDED.value
    item.next_review_at = None
    return True


def unsuspend(item: SchedulableItem, now: datetime) -> bool:
    """
    Restore a suspended item to its previous status, due at `now`.

    Returns:
        False if the item was not suspended, True otherwise.
    """
    if item.status != ItemStatus.SUSPENDED.value:
        return False

    item.status = _restorable_status(item.suspended_from_status).value
    item.suspended_from_status = None
    item.next_review_at = now
    return True


def _restorable_status(previous: Optional[str]) -> ItemStatus:
    if previous in (None, ItemStatus.SUSPENDED.value):
        return INITIAL_STATUS
    return ItemStatus(previous)


def reset(item: SchedulableItem, params: SchedulingParameters, now: datetime) -> None:
    """
    Return an item to the state of a newly created one, due at `now`.

    Suspended items are unsuspended. The lifetime lapse count and
    last_reviewed_at describe past reviews and are kept.
    """
    item.status = INITIAL_STATUS.value
    item.suspended_from_status = None
    item.ease_factor = params.default_ease_factor
    item.interval_days = 0
    item.repetitions = 0
    item.fail_streak = 0
    item.is_leech = False
    item.next_review_at = now
