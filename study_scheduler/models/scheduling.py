"""
Scheduler API Models (Pydantic)

Request/response schemas exchanged with content subsystems and the API
layer:
- Item creation and item state
- Review results and review history
- Due-item pages
- Aggregate statistics

ARCHITECTURE NOTE:
    This file contains PYDANTIC models for validation and serialization.
    There is a corresponding SQLAlchemy file: study_scheduler/db/models.py
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, TYPE_CHECKING

from pydantic import Field

from study_scheduler.enums.scheduling import ContentType, ItemStatus
from study_scheduler.models.base import StrictRequest, StrictResponse

if TYPE_CHECKING:
    from study_scheduler.db.models import ReviewEvent, SchedulableItem


# ===========================================
# Item Models
# ===========================================


class ItemCreate(StrictRequest):
    """
    Request to start scheduling a piece of content for a learner.

    Sent by a content subsystem the first time content is attached to a
    learner (a flashcard added to a deck, a question added to an error
    notebook).
    """

    owner_id: str = Field(..., min_length=1, max_length=128)
    content_ref: str = Field(..., min_length=1, max_length=128)
    content_type: ContentType = ContentType.FLASHCARD
    scope: Optional[str] = Field(
        None, max_length=128, description="Deck or notebook the content belongs to"
    )
    notes: Optional[str] = None


class ItemResponse(StrictResponse):
    """
    Scheduling state of one item.

    next_review_at is None only while the item is suspended.
    """

    id: str
    owner_id: str
    content_type: ContentType
    content_ref: str
    scope: Optional[str] = None
    notes: Optional[str] = None

    status: ItemStatus
    ease_factor: float = Field(gt=0)
    interval_days: int = Field(ge=0)
    repetitions: int = Field(ge=0)
    lapses: int = Field(ge=0)
    fail_streak: int = Field(ge=0)
    is_leech: bool = False

    last_reviewed_at: Optional[datetime] = None
    next_review_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_db_record(cls, record: SchedulableItem) -> ItemResponse:
        """
        Create an ItemResponse from a database SchedulableItem record.

        Args:
            record: SQLAlchemy SchedulableItem record from the database

        Returns:
            ItemResponse instance with data from the database record
        """
        return cls(
            id=record.id,
            owner_id=record.owner_id,
            content_type=ContentType(record.content_type),
            content_ref=record.content_ref,
            scope=record.scope,
            notes=record.notes,
            status=ItemStatus(record.status),
            ease_factor=record.ease_factor,
            interval_days=record.interval_days,
            repetitions=record.repetitions,
            lapses=record.lapses,
            fail_streak=record.fail_streak or 0,
            is_leech=bool(record.is_leech),
            last_reviewed_at=record.last_reviewed_at,
            next_review_at=record.next_review_at,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


# ===========================================
# Review Models
# ===========================================


class ReviewEventResponse(StrictResponse):
    """One entry of an item's review history."""

    id: str
    item_id: str
    owner_id: str
    quality: int = Field(ge=0, le=5)
    occurred_at: datetime
    resulting_interval_days: int = Field(ge=0)
    resulting_ease_factor: float
    response_time_ms: Optional[int] = None
    is_lapse: bool = False
    status_before: Optional[ItemStatus] = None
    status_after: Optional[ItemStatus] = None

    @classmethod
    def from_db_record(cls, record: ReviewEvent) -> ReviewEventResponse:
        return cls.model_validate(record)


class ReviewResult(StrictResponse):
    """
    Outcome of recording a review.

    Both parts were committed in the same transaction.
    """

    item: ItemResponse
    event: ReviewEventResponse


class DueItemsPage(StrictResponse):
    """
    One page of due items, oldest-due first.

    Pass next_cursor back to fetch the following page; it is None on the
    last page.
    """

    items: list[ItemResponse]
    next_cursor: Optional[str] = None
    total_due: int = 0


# ===========================================
# Statistics Models
# ===========================================


class ReviewForecast(StrictResponse):
    """
    Forecast of upcoming reviews for active items.

    Buckets are mutually exclusive and use UTC calendar days.
    """

    overdue: int = 0
    today: int = 0
    tomorrow: int = 0
    this_week: int = 0
    later: int = 0


class ItemStatistics(StrictResponse):
    """
    Aggregate view of an owner's items, optionally narrowed to a scope.

    due_count uses the same predicate as the due-item query. Averages are
    taken over active (non-suspended) items.
    leech_items counts every flagged item, suspended ones included.
    """

    owner_id: str
    scope: Optional[str] = None
    total_items: int = 0
    by_status: dict[ItemStatus, int] = Field(default_factory=dict)
    due_count: int = 0
    average_ease_factor: float = 0.0
    average_interval_days: float = 0.0

    active_items: int = 0
    reviewed_items: int = 0
    new_items: int = 0
    leech_items: int = 0
    next_review_at: Optional[datetime] = None
    last_reviewed_at: Optional[datetime] = None
    forecast: ReviewForecast = Field(default_factory=ReviewForecast)
    computed_at: datetime
