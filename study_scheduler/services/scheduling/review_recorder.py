"""
Review Recorder

Applies one review to one item: loads the item, runs the SM-2 calculator
and the state machine, then writes the updated item and an immutable
ReviewEvent in a single transaction.

The whole read-compute-write runs under optimistic retry, so two
concurrent reviews of the same item can never both build on the same
"before" state.

Usage:
    from study_scheduler.services.scheduling import ReviewRecorder

    recorder = ReviewRecorder(db_session)
    result = await recorder.record_review(item_id, owner_id, Quality.PERFECT)
    print(result.item.next_review_at, result.event.id)
"""

import logging
from datetime import datetime
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from study_scheduler.db.models import ReviewEvent, SchedulableItem
from study_scheduler.db.types import ensure_utc, utc_now
from study_scheduler.enums.scheduling import ItemStatus, Quality
from study_scheduler.errors import ConflictError, ValidationError
from study_scheduler.models.scheduling import (
    ItemResponse,
    ReviewEventResponse,
    ReviewResult,
)
from study_scheduler.services.scheduling import state_machine
from study_scheduler.services.scheduling.calculator import (
    SchedulingParameters,
    SchedulingState,
    compute_next_state,
    next_review_at,
    validate_quality,
)
from study_scheduler.services.scheduling.concurrency import run_with_optimistic_retry
from study_scheduler.services.scheduling.item_service import (
    load_owned_item,
    require_identifier,
)

logger = logging.getLogger(__name__)


class ReviewRecorder:
    """
    The single write path for scheduling state.

    Provides:
    - Input validation before any read
    - Ownership and suspension checks
    - Atomic item update + review event append
    - Review history lookup
    """

    def __init__(
        self,
        db: AsyncSession,
        params: Optional[SchedulingParameters] = None,
        max_attempts: Optional[int] = None,
    ):
        """
        Initialize the recorder.

        Args:
            db: Async database session
            params: Scheduling constants (defaults to settings)
            max_attempts: Optimistic retry attempts
                (defaults to settings.REVIEW_MAX_RETRIES)
        """
        self.db = db
        self.params = params or SchedulingParameters.from_settings()
        self.max_attempts = max_attempts

    async def record_review(
        self,
        item_id: str,
        owner_id: str,
        quality: Union[int, Quality],
        occurred_at: Optional[datetime] = None,
        response_time_ms: Optional[int] = None,
    ) -> ReviewResult:
        """
        Record a review and reschedule the item.

        Args:
            item_id: Reviewed item
            owner_id: Caller; must own the item
            quality: Recall quality, 0-5
            occurred_at: Review time (default: current UTC time)
            response_time_ms: Optional answer latency

        Returns:
            ReviewResult with the updated item and the created event

        Raises:
            ValidationError: Invalid quality, identifiers, review time or
                response time
            NotFoundError: Item does not exist
            AuthorizationError: Item belongs to another owner
            ConflictError: Item is suspended, or concurrent updates kept
                winning after all retries
            StorageError: The database failed; nothing was written
        """
        quality = validate_quality(quality)
        require_identifier(item_id, "item_id")
        require_identifier(owner_id, "owner_id")
        if response_time_ms is not None and (
            isinstance(response_time_ms, bool)
            or not isinstance(response_time_ms, int)
            or response_time_ms < 0
        ):
            raise ValidationError(
                "response_time_ms must be a non-negative integer",
                details={"response_time_ms": response_time_ms},
            )
        if occurred_at is not None and not isinstance(occurred_at, datetime):
            raise ValidationError(
                "occurred_at must be a datetime",
                details={"occurred_at": repr(occurred_at)},
            )
        occurred_at = ensure_utc(occurred_at) or utc_now()

        async def _attempt() -> tuple[SchedulableItem, ReviewEvent]:
            item = await load_owned_item(self.db, item_id, owner_id)
            event = self._apply(item, quality, occurred_at, response_time_ms)
            self.db.add(event)
            await self.db.commit()
            return item, event

        item, event = await run_with_optimistic_retry(
            self.db,
            _attempt,
            description=f"Review of item {item_id}",
            max_attempts=self.max_attempts,
        )

        logger.info(
            f"Reviewed item {item.id} (quality {int(quality)}): "
            f"{event.status_before} -> {event.status_after}, "
            f"next due in {item.interval_days} days"
        )

        return ReviewResult(
            item=ItemResponse.from_db_record(item),
            event=ReviewEventResponse.from_db_record(event),
        )

    def _apply(
        self,
        item: SchedulableItem,
        quality: Quality,
        occurred_at: datetime,
        response_time_ms: Optional[int],
    ) -> ReviewEvent:
        """Mutate the item in place and build its review event."""
        status_before = ItemStatus(item.status)
        if status_before == ItemStatus.SUSPENDED:
            logger.warning(f"Rejected review of suspended item {item.id}")
            raise ConflictError(
                f"Item {item.id} is suspended; unsuspend it before reviewing",
                details={"item_id": item.id, "status": status_before.value},
            )

        current = SchedulingState(
            ease_factor=(
                item.ease_factor
                if item.ease_factor is not None
                else self.params.default_ease_factor
            ),
            interval_days=item.interval_days or 0,
            repetitions=item.repetitions or 0,
        )
        result = compute_next_state(current, quality, self.params)
        status_after = state_machine.next_status(status_before, result, self.params)

        item.ease_factor = result.ease_factor
        item.interval_days = result.interval_days
        item.repetitions = result.repetitions
        if result.is_lapse:
            item.lapses = (item.lapses or 0) + 1
            item.fail_streak = (item.fail_streak or 0) + 1
            if item.fail_streak >= self.params.leech_threshold and not item.is_leech:
                item.is_leech = True
                logger.info(
                    f"Item {item.id} flagged as leech after "
                    f"{item.fail_streak} consecutive lapses"
                )
        else:
            item.fail_streak = 0
            item.is_leech = False
        item.status = status_after.value
        item.last_reviewed_at = occurred_at
        item.next_review_at = next_review_at(occurred_at, result.interval_days)
        item.updated_at = occurred_at

        return ReviewEvent(
            item_id=item.id,
            owner_id=item.owner_id,
            quality=int(quality),
            occurred_at=occurred_at,
            response_time_ms=response_time_ms,
            resulting_interval_days=result.interval_days,
            resulting_ease_factor=result.ease_factor,
            is_lapse=result.is_lapse,
            status_before=status_before.value,
            status_after=status_after.value,
        )

    async def list_review_events(
        self,
        item_id: str,
        owner_id: str,
        limit: int = 100,
    ) -> list[ReviewEventResponse]:
        """
        Get an item's review history, newest first.

        Args:
            item_id: Item whose history to load
            owner_id: Caller; must own the item
            limit: Maximum events to return

        Returns:
            List of review events
        """
        require_identifier(item_id, "item_id")
        require_identifier(owner_id, "owner_id")
        if limit < 1:
            raise ValidationError("limit must be positive", details={"limit": limit})

        await load_owned_item(self.db, item_id, owner_id)

        result = await self.db.execute(
            select(ReviewEvent)
            .where(ReviewEvent.item_id == item_id)
            .order_by(ReviewEvent.occurred_at.desc(), ReviewEvent.id.desc())
            .limit(limit)
        )
        return [
            ReviewEventResponse.from_db_record(event)
            for event in result.scalars().all()
        ]
