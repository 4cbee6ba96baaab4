"""
Due-Item Query

Read-only selection of the items an owner must review now: not
suspended, with next_review_at at or before the reference time. Results
are ordered oldest-due first with the item id as tie-breaker, which makes
keyset pagination stable while reviews are being recorded concurrently.
"""

import base64
import binascii
import json
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from study_scheduler.config import settings
from study_scheduler.db.models import SchedulableItem
from study_scheduler.db.types import ensure_utc, utc_now
from study_scheduler.enums.scheduling import ContentType, ItemStatus
from study_scheduler.errors import ValidationError
from study_scheduler.models.scheduling import DueItemsPage, ItemResponse
from study_scheduler.services.scheduling.item_service import require_identifier

logger = logging.getLogger(__name__)


def due_conditions(
    owner_id: str,
    as_of: datetime,
    scope: Optional[str] = None,
    content_type: Optional[ContentType] = None,
) -> list:
    """
    SQL conditions selecting due items.

    Shared with the statistics aggregator so due counts always match what
    the learner sees in the queue.
    """
    conditions = [
        SchedulableItem.owner_id == owner_id,
        SchedulableItem.status != ItemStatus.SUSPENDED.value,
        SchedulableItem.next_review_at.is_not(None),
        SchedulableItem.next_review_at <= as_of,
    ]
    if scope:
        conditions.append(SchedulableItem.scope == scope)
    if content_type:
        conditions.append(
            SchedulableItem.content_type == ContentType(content_type).value
        )
    return conditions


def is_due(item: SchedulableItem, as_of: datetime) -> bool:
    """In-memory twin of due_conditions() for full scans."""
    return (
        item.status != ItemStatus.SUSPENDED.value
        and item.next_review_at is not None
        and item.next_review_at <= as_of
    )


def encode_cursor(item: SchedulableItem) -> str:
    """Opaque cursor pointing just after `item`."""
    payload = {"n": item.next_review_at.isoformat(), "i": item.id}
    raw = json.dumps(payload, separators=(",", ":")).encode()
    return base64.urlsafe_b64encode(raw).decode()


def decode_cursor(cursor: str) -> tuple[datetime, str]:
    """
    Decode a cursor produced by encode_cursor().

    Raises:
        ValidationError: If the cursor is malformed
    """
    try:
        payload = json.loads(base64.urlsafe_b64decode(cursor.encode()))
        return ensure_utc(datetime.fromisoformat(payload["n"])), str(payload["i"])
    except (binascii.Error, ValueError, KeyError, TypeError, AttributeError) as e:
        raise ValidationError("Malformed cursor", details={"cursor": cursor}) from e


class DueItemQuery:
    """
    Due-item pages for an owner.

    Pure reads; safe to run concurrently with the review recorder.
    """

    def __init__(self, db: AsyncSession):
        """
        Initialize the query.

        Args:
            db: Async database session
        """
        self.db = db

    async def list_due_items(
        self,
        owner_id: str,
        scope: Optional[str] = None,
        as_of: Optional[datetime] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
        content_type: Optional[ContentType] = None,
    ) -> DueItemsPage:
        """
        Get one page of due items, oldest-due first.

        Args:
            owner_id: Learner whose queue to read
            scope: Optional deck/notebook to narrow to
            as_of: Reference time (default: current UTC time)
            limit: Page size (defaults to settings.REVIEW_DEFAULT_LIMIT)
            cursor: next_cursor of the previous page
            content_type: Optional content type to narrow to

        Returns:
            DueItemsPage with items, the cursor of the next page and the
            total number of due items matching the filters

        Raises:
            ValidationError: Missing owner, limit out of range or bad cursor
        """
        require_identifier(owner_id, "owner_id")
        if limit is None:
            limit = settings.REVIEW_DEFAULT_LIMIT
        if limit < 1 or limit > settings.REVIEW_MAX_LIMIT:
            raise ValidationError(
                f"limit must be between 1 and {settings.REVIEW_MAX_LIMIT}",
                details={"limit": limit},
            )

        as_of = ensure_utc(as_of) or utc_now()
        conditions = due_conditions(owner_id, as_of, scope, content_type)

        query = select(SchedulableItem).where(*conditions)
        if cursor:
            after_due, after_id = decode_cursor(cursor)
            query = query.where(
                or_(
                    SchedulableItem.next_review_at > after_due,
                    and_(
                        SchedulableItem.next_review_at == after_due,
                        SchedulableItem.id > after_id,
                    ),
                )
            )

        # Fetch one extra row to learn whether another page exists
        query = query.order_by(
            SchedulableItem.next_review_at.asc(), SchedulableItem.id.asc()
        ).limit(limit + 1)

        result = await self.db.execute(query)
        items = list(result.scalars().all())

        next_cursor = None
        if len(items) > limit:
            items = items[:limit]
            next_cursor = encode_cursor(items[-1])

        count_query = select(func.count(SchedulableItem.id)).where(*conditions)
        total_result = await self.db.execute(count_query)
        total_due = total_result.scalar() or 0

        logger.debug(
            f"Due query for owner {owner_id}: {len(items)} of {total_due} item(s)"
        )

        return DueItemsPage(
            items=[ItemResponse.from_db_record(item) for item in items],
            next_cursor=next_cursor,
            total_due=total_due,
        )
