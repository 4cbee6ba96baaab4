"""
Scheduling Service

Single entry point for collaborators. Content subsystems use the item
lifecycle methods; the API layer uses reviews, due items and statistics.
Each method delegates to the component that owns the behavior.

Usage:
    from study_scheduler.db.base import async_session_maker
    from study_scheduler.services.scheduling import SchedulingService

    async with async_session_maker() as session:
        service = SchedulingService(session)
        item = await service.create_item("user-1", "flashcard-42", scope="deck-7")
        page = await service.list_due_items("user-1", scope="deck-7")
        result = await service.record_review(item.id, "user-1", 5)
"""

from datetime import datetime
from typing import Optional, Union

import pydantic
from sqlalchemy.ext.asyncio import AsyncSession

from study_scheduler.enums.scheduling import ContentType, ItemStatus, Quality
from study_scheduler.errors import ValidationError
from study_scheduler.models.scheduling import (
    DueItemsPage,
    ItemCreate,
    ItemResponse,
    ItemStatistics,
    ReviewEventResponse,
    ReviewResult,
)
from study_scheduler.services.scheduling.calculator import SchedulingParameters
from study_scheduler.services.scheduling.due_items import DueItemQuery
from study_scheduler.services.scheduling.item_service import ItemService
from study_scheduler.services.scheduling.review_recorder import ReviewRecorder
from study_scheduler.services.scheduling.statistics import StatisticsAggregator


class SchedulingService:
    """
    Facade over the scheduling components, sharing one session.
    """

    def __init__(
        self,
        db: AsyncSession,
        params: Optional[SchedulingParameters] = None,
    ):
        self.db = db
        self.params = params or SchedulingParameters.from_settings()
        self.items = ItemService(db, self.params)
        self.reviews = ReviewRecorder(db, self.params)
        self.due = DueItemQuery(db)
        self.stats = StatisticsAggregator(db, self.params)

    # ===========================================
    # Item lifecycle (content subsystems)
    # ===========================================

    async def create_item(
        self,
        owner_id: str,
        content_ref: str,
        content_type: ContentType = ContentType.FLASHCARD,
        scope: Optional[str] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ItemResponse:
        """Start scheduling content for a learner; idempotent per content."""
        try:
            data = ItemCreate(
                owner_id=owner_id,
                content_ref=content_ref,
                content_type=content_type,
                scope=scope,
                notes=notes,
            )
        except pydantic.ValidationError as e:
            raise ValidationError(
                "Invalid item", details={"errors": e.errors(include_url=False)}
            ) from e
        return await self.items.create_item(data, now=now)

    async def delete_item(
        self,
        item_id: str,
        owner_id: Optional[str] = None,
        purge_history: bool = False,
    ) -> bool:
        return await self.items.delete_item(item_id, owner_id, purge_history)

    async def delete_items_for_content(
        self,
        content_ref: str,
        content_type: Optional[ContentType] = None,
        purge_history: bool = False,
        owner_id: Optional[str] = None,
    ) -> int:
        return await self.items.delete_items_for_content(
            content_ref, content_type, purge_history, owner_id
        )

    async def set_suspended(
        self,
        item_id: str,
        owner_id: str,
        suspended: bool,
        now: Optional[datetime] = None,
    ) -> ItemResponse:
        return await self.items.set_suspended(item_id, owner_id, suspended, now)

    async def reset_item(
        self,
        item_id: str,
        owner_id: str,
        now: Optional[datetime] = None,
    ) -> ItemResponse:
        """Start an item over as if newly created, keeping its history."""
        return await self.items.reset_item(item_id, owner_id, now)

    async def get_item(self, item_id: str, owner_id: str) -> ItemResponse:
        return await self.items.get_item(item_id, owner_id)

    async def get_item_by_content(
        self,
        owner_id: str,
        content_ref: str,
        content_type: ContentType = ContentType.FLASHCARD,
    ) -> Optional[ItemResponse]:
        return await self.items.get_item_by_content(owner_id, content_ref, content_type)

    async def list_items(
        self,
        owner_id: str,
        status: Optional[ItemStatus] = None,
        content_type: Optional[ContentType] = None,
        scope: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[ItemResponse]:
        return await self.items.list_items(
            owner_id, status, content_type, scope, limit, offset
        )

    # ===========================================
    # Reviews, due items and statistics (API layer)
    # ===========================================

    async def record_review(
        self,
        item_id: str,
        owner_id: str,
        quality: Union[int, Quality],
        occurred_at: Optional[datetime] = None,
        response_time_ms: Optional[int] = None,
    ) -> ReviewResult:
        return await self.reviews.record_review(
            item_id, owner_id, quality, occurred_at, response_time_ms
        )

    async def list_review_events(
        self,
        item_id: str,
        owner_id: str,
        limit: int = 100,
    ) -> list[ReviewEventResponse]:
        return await self.reviews.list_review_events(item_id, owner_id, limit)

    async def list_due_items(
        self,
        owner_id: str,
        scope: Optional[str] = None,
        as_of: Optional[datetime] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
        content_type: Optional[ContentType] = None,
    ) -> DueItemsPage:
        return await self.due.list_due_items(
            owner_id, scope, as_of, limit, cursor, content_type
        )

    async def compute_statistics(
        self,
        owner_id: str,
        scope: Optional[str] = None,
        as_of: Optional[datetime] = None,
        full_scan: bool = False,
    ) -> ItemStatistics:
        return await self.stats.compute_statistics(owner_id, scope, as_of, full_scan)

    async def refresh_statistics_snapshot(
        self,
        owner_id: str,
        scope: Optional[str] = None,
    ) -> ItemStatistics:
        return await self.stats.refresh_statistics_snapshot(owner_id, scope)
