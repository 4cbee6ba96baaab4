"""
Item Lifecycle Service

Create, read, delete and suspend schedulable items. Content subsystems
call this when content is attached to or removed from a learner; the
review path lives in review_recorder.py.

Usage:
    from study_scheduler.services.scheduling import ItemService

    service = ItemService(db_session)
    item = await service.create_item(ItemCreate(owner_id="u1", content_ref="fc-9"))
    await service.set_suspended(item.id, "u1", True)
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from study_scheduler.db.models import ReviewEvent, SchedulableItem
from study_scheduler.db.types import ensure_utc, utc_now
from study_scheduler.enums.scheduling import ContentType, ItemStatus
from study_scheduler.errors import (
    AuthorizationError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from study_scheduler.models.scheduling import ItemCreate, ItemResponse
from study_scheduler.services.scheduling import state_machine
from study_scheduler.services.scheduling.calculator import SchedulingParameters
from study_scheduler.services.scheduling.concurrency import run_with_optimistic_retry

logger = logging.getLogger(__name__)


def require_identifier(value: Optional[str], name: str) -> str:
    """Reject missing or blank identifiers before touching storage."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} is required", details={name: value})
    return value


async def load_owned_item(
    db: AsyncSession,
    item_id: str,
    owner_id: str,
) -> SchedulableItem:
    """
    Load an item and check that `owner_id` owns it.

    Raises:
        NotFoundError: If the item does not exist
        AuthorizationError: If another owner holds the item
    """
    result = await db.execute(
        select(SchedulableItem).where(SchedulableItem.id == item_id)
    )
    item = result.scalar_one_or_none()

    if item is None:
        logger.warning(f"Item {item_id} not found")
        raise NotFoundError(f"Item {item_id} not found", details={"item_id": item_id})

    if item.owner_id != owner_id:
        logger.warning(f"Owner {owner_id} attempted to access item {item_id}")
        raise AuthorizationError(
            f"Item {item_id} does not belong to the caller",
            details={"item_id": item_id},
        )

    return item


class ItemService:
    """
    Lifecycle operations on schedulable items.

    Provides:
    - Idempotent item creation for content subsystems
    - Lookup and listing scoped to an owner
    - Deletion by item or by content, with optional history purge
    - Suspend/unsuspend toggle under optimistic concurrency
    - Progress reset under optimistic concurrency
    """

    def __init__(
        self,
        db: AsyncSession,
        params: Optional[SchedulingParameters] = None,
    ):
        """
        Initialize the item service.

        Args:
            db: Async database session
            params: Scheduling constants (defaults to settings)
        """
        self.db = db
        self.params = params or SchedulingParameters.from_settings()

    async def create_item(
        self,
        data: ItemCreate,
        now: Optional[datetime] = None,
    ) -> ItemResponse:
        """
        Start scheduling content for a learner.

        The new item is LEARNING and immediately due. Attaching the same
        content to the same owner again returns the existing item.

        Args:
            data: Item creation data
            now: Creation time (default: current UTC time)

        Returns:
            Created (or already existing) item
        """
        existing = await self._find_by_content(
            data.owner_id, data.content_ref, data.content_type
        )
        if existing is not None:
            logger.debug(
                f"Item for {data.content_type.value}:{data.content_ref} "
                f"already exists for owner {data.owner_id}"
            )
            return ItemResponse.from_db_record(existing)

        now = ensure_utc(now) or utc_now()
        item = SchedulableItem(
            owner_id=data.owner_id,
            content_type=data.content_type.value,
            content_ref=data.content_ref,
            scope=data.scope,
            notes=data.notes,
            status=state_machine.INITIAL_STATUS.value,
            ease_factor=self.params.default_ease_factor,
            interval_days=0,
            repetitions=0,
            lapses=0,
            fail_streak=0,
            is_leech=False,
            last_reviewed_at=None,
            next_review_at=now,
            created_at=now,
            updated_at=now,
        )

        self.db.add(item)
        try:
            await self.db.commit()
        except IntegrityError:
            # Another request attached the same content first
            await self.db.rollback()
            existing = await self._find_by_content(
                data.owner_id, data.content_ref, data.content_type
            )
            if existing is None:
                raise StorageError("Item creation failed; no changes were applied")
            return ItemResponse.from_db_record(existing)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to create item: {type(e).__name__}: {e}")
            raise StorageError(
                "Item creation failed; no changes were applied",
                details={"exception": type(e).__name__},
            ) from e

        logger.info(
            f"Created item {item.id} for {item.content_type}:{item.content_ref} "
            f"(owner {item.owner_id})"
        )
        return ItemResponse.from_db_record(item)

    async def get_item(self, item_id: str, owner_id: str) -> ItemResponse:
        """Get an item owned by `owner_id`."""
        require_identifier(item_id, "item_id")
        require_identifier(owner_id, "owner_id")
        item = await load_owned_item(self.db, item_id, owner_id)
        return ItemResponse.from_db_record(item)

    async def get_item_by_content(
        self,
        owner_id: str,
        content_ref: str,
        content_type: ContentType = ContentType.FLASHCARD,
    ) -> Optional[ItemResponse]:
        """Get the item tracking a piece of content, or None."""
        require_identifier(owner_id, "owner_id")
        require_identifier(content_ref, "content_ref")
        item = await self._find_by_content(owner_id, content_ref, content_type)
        return ItemResponse.from_db_record(item) if item else None

    async def list_items(
        self,
        owner_id: str,
        status: Optional[ItemStatus] = None,
        content_type: Optional[ContentType] = None,
        scope: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[ItemResponse]:
        """
        List an owner's items with optional filters.

        Unlike the due-item query this includes suspended and not-yet-due
        items. Suspended items sort last.

        Args:
            owner_id: Learner whose items to list
            status: Filter by status
            content_type: Filter by content type
            scope: Filter by deck/notebook
            limit: Maximum items to return
            offset: Pagination offset

        Returns:
            List of item responses ordered by next review time
        """
        require_identifier(owner_id, "owner_id")
        if limit < 1 or offset < 0:
            raise ValidationError(
                "limit must be positive and offset non-negative",
                details={"limit": limit, "offset": offset},
            )

        query = select(SchedulableItem).where(SchedulableItem.owner_id == owner_id)

        if status:
            query = query.where(SchedulableItem.status == ItemStatus(status).value)

        if content_type:
            query = query.where(
                SchedulableItem.content_type == ContentType(content_type).value
            )

        if scope:
            query = query.where(SchedulableItem.scope == scope)

        query = (
            query.order_by(
                SchedulableItem.next_review_at.is_(None),
                SchedulableItem.next_review_at.asc(),
                SchedulableItem.id.asc(),
            )
            .limit(limit)
            .offset(offset)
        )

        result = await self.db.execute(query)
        return [ItemResponse.from_db_record(item) for item in result.scalars().all()]

    async def delete_item(
        self,
        item_id: str,
        owner_id: Optional[str] = None,
        purge_history: bool = False,
    ) -> bool:
        """
        Delete an item, e.g. because its content was deleted.

        Args:
            item_id: Item to delete
            owner_id: When given, the item must belong to this owner
            purge_history: Also delete the item's review events

        Returns:
            True once the item is gone

        Raises:
            NotFoundError: If the item does not exist
            AuthorizationError: If owner_id is given and does not match
        """
        require_identifier(item_id, "item_id")

        result = await self.db.execute(
            select(SchedulableItem).where(SchedulableItem.id == item_id)
        )
        item = result.scalar_one_or_none()
        if item is None:
            raise NotFoundError(f"Item {item_id} not found", details={"item_id": item_id})
        if owner_id is not None and item.owner_id != owner_id:
            raise AuthorizationError(
                f"Item {item_id} does not belong to the caller",
                details={"item_id": item_id},
            )

        await self._delete_ids([item_id], purge_history)
        logger.info(f"Deleted item {item_id} (purge_history={purge_history})")
        return True

    async def delete_items_for_content(
        self,
        content_ref: str,
        content_type: Optional[ContentType] = None,
        purge_history: bool = False,
        owner_id: Optional[str] = None,
    ) -> int:
        """
        Delete every item tracking a piece of content.

        Args:
            content_ref: Content that was removed
            content_type: Restrict to one content type
            purge_history: Also delete the items' review events
            owner_id: Restrict to one owner

        Returns:
            Number of deleted items
        """
        require_identifier(content_ref, "content_ref")

        query = select(SchedulableItem.id).where(
            SchedulableItem.content_ref == content_ref
        )
        if content_type:
            query = query.where(
                SchedulableItem.content_type == ContentType(content_type).value
            )
        if owner_id:
            query = query.where(SchedulableItem.owner_id == owner_id)

        result = await self.db.execute(query)
        item_ids = list(result.scalars().all())
        if not item_ids:
            return 0

        await self._delete_ids(item_ids, purge_history)
        logger.info(f"Deleted {len(item_ids)} item(s) for content {content_ref}")
        return len(item_ids)

    async def set_suspended(
        self,
        item_id: str,
        owner_id: str,
        suspended: bool,
        now: Optional[datetime] = None,
    ) -> ItemResponse:
        """
        Suspend or unsuspend an item.

        Suspending clears next_review_at so the item is never due.
        Unsuspending restores the previous status and makes the item due
        at `now`. Toggling to the current state is a no-op.

        Args:
            item_id: Item to toggle
            owner_id: Caller; must own the item
            suspended: Target state
            now: Time used as the new due date on unsuspend

        Returns:
            Updated item
        """
        require_identifier(item_id, "item_id")
        require_identifier(owner_id, "owner_id")
        now = ensure_utc(now) or utc_now()

        async def _toggle() -> SchedulableItem:
            item = await load_owned_item(self.db, item_id, owner_id)
            if suspended:
                changed = state_machine.suspend(item)
            else:
                changed = state_machine.unsuspend(item, now)

            if changed:
                item.updated_at = now
                await self.db.commit()
            return item

        item = await run_with_optimistic_retry(
            self.db,
            _toggle,
            description=f"{'Suspend' if suspended else 'Unsuspend'} item {item_id}",
        )

        logger.info(f"Item {item_id} status is now {item.status}")
        return ItemResponse.from_db_record(item)

    async def reset_item(
        self,
        item_id: str,
        owner_id: str,
        now: Optional[datetime] = None,
    ) -> ItemResponse:
        """
        Discard an item's scheduling progress.

        The item goes back to LEARNING with the default ease, zero interval
        and repetitions, a cleared leech flag, and is due at `now`. Review
        history and the lifetime lapse count are kept.

        Args:
            item_id: Item to reset
            owner_id: Caller; must own the item
            now: New due date (default: current UTC time)

        Returns:
            Updated item
        """
        require_identifier(item_id, "item_id")
        require_identifier(owner_id, "owner_id")
        now = ensure_utc(now) or utc_now()

        async def _reset() -> SchedulableItem:
            item = await load_owned_item(self.db, item_id, owner_id)
            state_machine.reset(item, self.params, now)
            item.updated_at = now
            await self.db.commit()
            return item

        item = await run_with_optimistic_retry(
            self.db, _reset, description=f"Reset item {item_id}"
        )

        logger.info(f"Reset scheduling progress of item {item_id}")
        return ItemResponse.from_db_record(item)

    async def _find_by_content(
        self,
        owner_id: str,
        content_ref: str,
        content_type: ContentType,
    ) -> Optional[SchedulableItem]:
        result = await self.db.execute(
            select(SchedulableItem).where(
                SchedulableItem.owner_id == owner_id,
                SchedulableItem.content_ref == content_ref,
                SchedulableItem.content_type == ContentType(content_type).value,
            )
        )
        return result.scalar_one_or_none()

    async def _delete_ids(self, item_ids: list[str], purge_history: bool) -> None:
        try:
            if purge_history:
                await self.db.execute(
                    delete(ReviewEvent).where(ReviewEvent.item_id.in_(item_ids))
                )
            await self.db.execute(
                delete(SchedulableItem).where(SchedulableItem.id.in_(item_ids))
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to delete items: {type(e).__name__}: {e}")
            raise StorageError(
                "Item deletion failed; no changes were applied",
                details={"exception": type(e).__name__},
            ) from e
