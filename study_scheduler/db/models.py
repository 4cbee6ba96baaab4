"""
SQLAlchemy Database Models for the Scheduler

Tables:
- schedulable_items: Per (owner, content) SM-2 scheduling state
- review_events: Append-only log of recorded reviews
- statistics_snapshots: Advisory copies of per-owner statistics

ARCHITECTURE NOTE:
    This file contains SQLALCHEMY models for database persistence.
    There is a corresponding Pydantic file: study_scheduler/models/scheduling.py

    Data flows: Service Layer → Pydantic → SQLAlchemy → Database
"""

from datetime import datetime
from typing import Optional
import uuid

from sqlalchemy import (
    Boolean,
    Float,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from study_scheduler.db.base import Base
from study_scheduler.db.types import UTCDateTime, utc_now


def _new_id() -> str:
    return str(uuid.uuid4())


# ===========================================
# Schedulable Items (SM-2)
# ===========================================


class SchedulableItem(Base):
    """
    Spaced repetition state for one piece of content owned by one learner.

    Content itself (flashcards, questions, notebook entries) lives in other
    subsystems; this row only references it through content_type/content_ref.

    Attributes:
        id: UUID string primary key.
        owner_id: Learner who reviews the item. Every query is scoped to it.
        content_type: Which content subsystem owns content_ref.
        content_ref: Opaque id of the studied content.
        scope: Optional content collection (deck, notebook) for filtering.

        SM-2 State:
        status: LEARNING, REVIEWING, MASTERED or SUSPENDED.
        ease_factor: Interval growth multiplier, never below the minimum.
        interval_days: Days between the last review and the next one.
        repetitions: Consecutive successful reviews since the last lapse.
        lapses: Lifetime count of failed reviews.
        fail_streak: Consecutive failed reviews, cleared by any success.
        is_leech: Set once fail_streak reaches the leech threshold.

        Scheduling:
        last_reviewed_at: Most recent review, None if never reviewed.
        next_review_at: When the item is due. None while suspended.
        suspended_from_status: Status restored when unsuspended.

        version_id: Optimistic concurrency counter, bumped on every update.
    """

    __tablename__ = "schedulable_items"
    __table_args__ = (
        UniqueConstraint(
            "owner_id",
            "content_type",
            "content_ref",
            name="uq_schedulable_items_owner_content",
        ),
        Index(
            "ix_schedulable_items_owner_status_next_review",
            "owner_id",
            "status",
            "next_review_at",
        ),
        Index("ix_schedulable_items_owner_scope", "owner_id", "scope"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)

    # Ownership and content reference
    owner_id: Mapped[str] = mapped_column(String(128), index=True)
    content_type: Mapped[str] = mapped_column(String(32))
    content_ref: Mapped[str] = mapped_column(String(128), index=True)
    scope: Mapped[Optional[str]] = mapped_column(String(128))
    notes: Mapped[Optional[str]] = mapped_column(Text)

    # SM-2 state
    status: Mapped[str] = mapped_column(String(20), default="LEARNING")
    ease_factor: Mapped[float] = mapped_column(Float, default=2.5)
    interval_days: Mapped[int] = mapped_column(Integer, default=0)
    repetitions: Mapped[int] = mapped_column(Integer, default=0)
    lapses: Mapped[int] = mapped_column(Integer, default=0)
    fail_streak: Mapped[int] = mapped_column(Integer, default=0)
    is_leech: Mapped[bool] = mapped_column(Boolean, default=False)

    # Scheduling
    last_reviewed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    next_review_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    suspended_from_status: Mapped[Optional[str]] = mapped_column(String(20))

    # Bookkeeping
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utc_now, onupdate=utc_now
    )

    __mapper_args__ = {"version_id_col": version_id}


# ===========================================
# Review Events
# ===========================================


class ReviewEvent(Base):
    """
    Immutable record of one review.

    Rows are only ever inserted. item_id is deliberately not a cascading
    foreign key: whether history outlives a deleted item is the caller's
    choice (see ItemService.delete_item).

    Attributes:
        id: UUID string primary key.
        item_id: Reviewed SchedulableItem.
        owner_id: Learner who recorded the review.
        quality: SM-2 quality (0-5).
        occurred_at: When the review happened.
        response_time_ms: Optional time the learner took to answer.
        resulting_interval_days: Interval scheduled by this review.
        resulting_ease_factor: Ease factor after this review.
        is_lapse: Whether quality was below the success threshold.
        status_before: Item status before the review.
        status_after: Item status after the review.
    """

    __tablename__ = "review_events"
    __table_args__ = (
        Index("ix_review_events_item_occurred", "item_id", "occurred_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    item_id: Mapped[str] = mapped_column(String(36))
    owner_id: Mapped[str] = mapped_column(String(128), index=True)

    # Review details
    quality: Mapped[int] = mapped_column(Integer)
    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now)
    response_time_ms: Mapped[Optional[int]] = mapped_column(Integer)

    # Resulting state
    resulting_interval_days: Mapped[int] = mapped_column(Integer)
    resulting_ease_factor: Mapped[float] = mapped_column(Float)
    is_lapse: Mapped[bool] = mapped_column(Boolean, default=False)
    status_before: Mapped[Optional[str]] = mapped_column(String(20))
    status_after: Mapped[Optional[str]] = mapped_column(String(20))


# ===========================================
# Statistics Snapshots
# ===========================================


class StatisticsSnapshot(Base):
    """
    Last computed statistics for an owner, optionally per scope.

    Advisory only: refreshed by full scans, never read by the scheduler
    itself, so it may lag behind the items table.

    Attributes:
        id: Primary key, auto-incrementing integer identifier.
        owner_id: Learner the statistics describe.
        scope: Content collection, empty string for owner-wide totals.
        payload: Serialized ItemStatistics.
        computed_at: When the scan finished.
    """

    __tablename__ = "statistics_snapshots"
    __table_args__ = (
        UniqueConstraint("owner_id", "scope", name="uq_statistics_snapshots_owner_scope"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(128))
    scope: Mapped[str] = mapped_column(String(128), default="")
    payload: Mapped[dict] = mapped_column(JSON)
    computed_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now)
