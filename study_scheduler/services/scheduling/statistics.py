"""
Statistics Aggregator

Summarizes an owner's items: counts per status, due count, average ease
and interval, review coverage and a workload forecast.

Two strategies produce identical numbers:
- Index-assisted (default): a handful of SQL aggregates
- Full scan: walks the items in keyset chunks of STATS_SCAN_CHUNK_SIZE,
  keeping memory bounded; used to rebuild the advisory snapshots

The snapshot table mirrors the last full scan per (owner, scope). It is a
convenience for dashboards, never a source of truth.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from study_scheduler.config import settings
from study_scheduler.db.models import SchedulableItem, StatisticsSnapshot
from study_scheduler.db.types import ensure_utc, utc_now
from study_scheduler.enums.scheduling import ItemStatus
from study_scheduler.errors import StorageError
from study_scheduler.models.scheduling import ItemStatistics, ReviewForecast
from study_scheduler.services.scheduling.calculator import SchedulingParameters
from study_scheduler.services.scheduling.due_items import due_conditions, is_due
from study_scheduler.services.scheduling.item_service import require_identifier

logger = logging.getLogger(__name__)

AVERAGE_PRECISION = 4


@dataclass(frozen=True)
class ForecastWindow:
    """
    UTC calendar-day boundaries for the review forecast.

    Ranges are [start, end): inclusive start, exclusive end.
    """

    today_start: datetime
    tomorrow_start: datetime
    day_after_tomorrow: datetime
    week_end: datetime

    @classmethod
    def starting(cls, as_of: datetime) -> "ForecastWindow":
        today_start = as_of.replace(hour=0, minute=0, second=0, microsecond=0)
        tomorrow_start = today_start + timedelta(days=1)
        return cls(
            today_start=today_start,
            tomorrow_start=tomorrow_start,
            day_after_tomorrow=tomorrow_start + timedelta(days=1),
            week_end=today_start + timedelta(days=7),
        )

    def bucket(self, when: datetime) -> str:
        """Name of the forecast bucket `when` falls in."""
        if when < self.today_start:
            return "overdue"
        if when < self.tomorrow_start:
            return "today"
        if when < self.day_after_tomorrow:
            return "tomorrow"
        if when < self.week_end:
            return "this_week"
        return "later"


@dataclass
class _StatsAccumulator:
    """Running totals fed by either strategy."""

    by_status: dict[ItemStatus, int] = field(
        default_factory=lambda: {status: 0 for status in ItemStatus}
    )
    due_count: int = 0
    active_items: int = 0
    ease_sum: float = 0.0
    interval_sum: int = 0
    reviewed_items: int = 0
    leech_items: int = 0
    next_review_at: Optional[datetime] = None
    last_reviewed_at: Optional[datetime] = None
    forecast: dict[str, int] = field(
        default_factory=lambda: dict.fromkeys(ReviewForecast.model_fields, 0)
    )

    def add(self, row, as_of: datetime, window: ForecastWindow) -> None:
        status = ItemStatus(row.status)
        self.by_status[status] += 1
        if row.is_leech:
            self.leech_items += 1

        if row.last_reviewed_at is not None:
            self.reviewed_items += 1
            if self.last_reviewed_at is None or row.last_reviewed_at > self.last_reviewed_at:
                self.last_reviewed_at = row.last_reviewed_at

        if status == ItemStatus.SUSPENDED:
            return

        self.active_items += 1
        self.ease_sum += row.ease_factor
        self.interval_sum += row.interval_days
        if is_due(row, as_of):
            self.due_count += 1
        if row.next_review_at is not None:
            self.forecast[window.bucket(row.next_review_at)] += 1
            if self.next_review_at is None or row.next_review_at < self.next_review_at:
                self.next_review_at = row.next_review_at

    def build(
        self,
        owner_id: str,
        scope: Optional[str],
        params: SchedulingParameters,
        computed_at: datetime,
    ) -> ItemStatistics:
        total_items = sum(self.by_status.values())
        if self.active_items:
            average_ease = round(self.ease_sum / self.active_items, AVERAGE_PRECISION)
            average_interval = round(
                self.interval_sum / self.active_items, AVERAGE_PRECISION
            )
        else:
            average_ease = params.default_ease_factor
            average_interval = 0.0

        return ItemStatistics(
            owner_id=owner_id,
            scope=scope,
            total_items=total_items,
            by_status=self.by_status,
            due_count=self.due_count,
            average_ease_factor=average_ease,
            average_interval_days=average_interval,
            active_items=self.active_items,
            reviewed_items=self.reviewed_items,
            new_items=total_items - self.reviewed_items,
            leech_items=self.leech_items,
            next_review_at=self.next_review_at,
            last_reviewed_at=self.last_reviewed_at,
            forecast=ReviewForecast(**self.forecast),
            computed_at=computed_at,
        )


class StatisticsAggregator:
    """
    Read-only statistics over an owner's items.

    Provides:
    - Index-assisted aggregates for interactive use
    - Chunked full scans for batch recomputation
    - Advisory snapshot persistence
    """

    def __init__(
        self,
        db: AsyncSession,
        params: Optional[SchedulingParameters] = None,
        chunk_size: Optional[int] = None,
    ):
        """
        Initialize the aggregator.

        Args:
            db: Async database session
            params: Scheduling constants (defaults to settings)
            chunk_size: Rows per full-scan chunk
                (defaults to settings.STATS_SCAN_CHUNK_SIZE)
        """
        self.db = db
        self.params = params or SchedulingParameters.from_settings()
        self.chunk_size = max(1, chunk_size or settings.STATS_SCAN_CHUNK_SIZE)

    async def compute_statistics(
        self,
        owner_id: str,
        scope: Optional[str] = None,
        as_of: Optional[datetime] = None,
        full_scan: bool = False,
    ) -> ItemStatistics:
        """
        Compute statistics for an owner, optionally narrowed to a scope.

        Args:
            owner_id: Learner to summarize
            scope: Optional deck/notebook
            as_of: Reference time for due count and forecast
                (default: current UTC time)
            full_scan: Walk items in chunks instead of SQL aggregates

        Returns:
            ItemStatistics
        """
        require_identifier(owner_id, "owner_id")
        as_of = ensure_utc(as_of) or utc_now()
        window = ForecastWindow.starting(as_of)

        if full_scan:
            acc = await self._scan(owner_id, scope, as_of, window)
        else:
            acc = await self._aggregate(owner_id, scope, as_of, window)

        stats = acc.build(owner_id, scope, self.params, as_of)
        logger.debug(
            f"Statistics for owner {owner_id} (scope={scope}, full_scan={full_scan}): "
            f"{stats.total_items} items, {stats.due_count} due"
        )
        return stats

    async def refresh_statistics_snapshot(
        self,
        owner_id: str,
        scope: Optional[str] = None,
    ) -> ItemStatistics:
        """
        Recompute statistics with a full scan and store them as the
        owner's snapshot for `scope`.

        Raises:
            StorageError: If the snapshot could not be written
        """
        stats = await self.compute_statistics(owner_id, scope, full_scan=True)
        scope_key = scope or ""

        try:
            try:
                await self._store_snapshot(owner_id, scope_key, stats)
            except IntegrityError:
                # A concurrent refresh inserted the row first; update it instead
                await self.db.rollback()
                await self._store_snapshot(owner_id, scope_key, stats)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                f"Failed to store statistics snapshot for owner {owner_id}: "
                f"{type(e).__name__}: {e}"
            )
            raise StorageError(
                "Statistics snapshot could not be stored",
                details={"owner_id": owner_id, "exception": type(e).__name__},
            ) from e

        logger.info(f"Refreshed statistics snapshot for owner {owner_id} (scope={scope})")
        return stats

    async def _store_snapshot(
        self,
        owner_id: str,
        scope_key: str,
        stats: ItemStatistics,
    ) -> None:
        result = await self.db.execute(
            select(StatisticsSnapshot).where(
                StatisticsSnapshot.owner_id == owner_id,
                StatisticsSnapshot.scope == scope_key,
            )
        )
        snapshot = result.scalar_one_or_none()
        if snapshot is None:
            snapshot = StatisticsSnapshot(owner_id=owner_id, scope=scope_key)
            self.db.add(snapshot)

        snapshot.payload = stats.model_dump(mode="json")
        snapshot.computed_at = stats.computed_at
        await self.db.commit()

    def _owner_conditions(self, owner_id: str, scope: Optional[str]) -> list:
        conditions = [SchedulableItem.owner_id == owner_id]
        if scope:
            conditions.append(SchedulableItem.scope == scope)
        return conditions

    async def _aggregate(
        self,
        owner_id: str,
        scope: Optional[str],
        as_of: datetime,
        window: ForecastWindow,
    ) -> _StatsAccumulator:
        acc = _StatsAccumulator()
        conditions = self._owner_conditions(owner_id, scope)
        active = conditions + [SchedulableItem.status != ItemStatus.SUSPENDED.value]

        status_result = await self.db.execute(
            select(SchedulableItem.status, func.count(SchedulableItem.id))
            .where(*conditions)
            .group_by(SchedulableItem.status)
        )
        for status, count in status_result.all():
            acc.by_status[ItemStatus(status)] = count

        reviewed_result = await self.db.execute(
            select(
                func.count(SchedulableItem.id),
                func.max(SchedulableItem.last_reviewed_at),
            ).where(*conditions, SchedulableItem.last_reviewed_at.is_not(None))
        )
        acc.reviewed_items, last_reviewed_at = reviewed_result.one()
        acc.last_reviewed_at = ensure_utc(last_reviewed_at)

        leech_result = await self.db.execute(
            select(func.count(SchedulableItem.id)).where(
                *conditions, SchedulableItem.is_leech.is_(True)
            )
        )
        acc.leech_items = leech_result.scalar() or 0

        active_result = await self.db.execute(
            select(
                func.count(SchedulableItem.id),
                func.sum(SchedulableItem.ease_factor),
                func.sum(SchedulableItem.interval_days),
                func.min(SchedulableItem.next_review_at),
            ).where(*active)
        )
        active_items, ease_sum, interval_sum, next_review = active_result.one()
        acc.active_items = active_items or 0
        acc.ease_sum = float(ease_sum or 0.0)
        acc.interval_sum = int(interval_sum or 0)
        acc.next_review_at = ensure_utc(next_review)

        due_result = await self.db.execute(
            select(func.count(SchedulableItem.id)).where(
                *due_conditions(owner_id, as_of, scope)
            )
        )
        acc.due_count = due_result.scalar() or 0

        ranges = {
            "overdue": (None, window.today_start),
            "today": (window.today_start, window.tomorrow_start),
            "tomorrow": (window.tomorrow_start, window.day_after_tomorrow),
            "this_week": (window.day_after_tomorrow, window.week_end),
            "later": (window.week_end, None),
        }
        for bucket, (start, end) in ranges.items():
            acc.forecast[bucket] = await self._count_in_date_range(active, start, end)

        return acc

    async def _count_in_date_range(
        self,
        conditions: list,
        start: Optional[datetime],
        end: Optional[datetime],
    ) -> int:
        """Count active items with next_review_at in [start, end)."""
        query = select(func.count(SchedulableItem.id)).where(
            *conditions, SchedulableItem.next_review_at.is_not(None)
        )
        if start is not None:
            query = query.where(SchedulableItem.next_review_at >= start)
        if end is not None:
            query = query.where(SchedulableItem.next_review_at < end)

        result = await self.db.execute(query)
        return result.scalar() or 0

    async def _scan(
        self,
        owner_id: str,
        scope: Optional[str],
        as_of: datetime,
        window: ForecastWindow,
    ) -> _StatsAccumulator:
        acc = _StatsAccumulator()
        conditions = self._owner_conditions(owner_id, scope)
        last_id: Optional[str] = None
        chunks = 0

        # Column rows rather than entities, so the identity map stays empty
        while True:
            query = select(
                SchedulableItem.id,
                SchedulableItem.status,
                SchedulableItem.ease_factor,
                SchedulableItem.interval_days,
                SchedulableItem.last_reviewed_at,
                SchedulableItem.next_review_at,
                SchedulableItem.is_leech,
            ).where(*conditions)
            if last_id is not None:
                query = query.where(SchedulableItem.id > last_id)
            query = query.order_by(SchedulableItem.id.asc()).limit(self.chunk_size)

            result = await self.db.execute(query)
            rows = result.all()
            if not rows:
                break

            for row in rows:
                acc.add(row, as_of, window)
            last_id = rows[-1].id
            chunks += 1

            if len(rows) < self.chunk_size:
                break

        logger.debug(f"Scanned {chunks} chunk(s) for owner {owner_id}")
        return acc
