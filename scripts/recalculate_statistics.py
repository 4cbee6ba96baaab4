#!/usr/bin/env python3
"""
Statistics Recalculation Script

Recompute review statistics with a chunked full scan and store them as
advisory snapshots, or print them without storing.

Setup:
    1. Ensure PostgreSQL is running and the schema is migrated
    2. Copy .env.example to .env in the project root and set POSTGRES_* or
       DATABASE_URL
    3. Run any command below

Usage:
    # Print statistics for one learner (SQL aggregates)
    python scripts/recalculate_statistics.py show user-1
    python scripts/recalculate_statistics.py show user-1 --scope deck-7 --full-scan

    # Refresh the stored snapshot for one learner
    python scripts/recalculate_statistics.py refresh user-1
    python scripts/recalculate_statistics.py refresh user-1 --scope deck-7

    # Refresh owner-wide snapshots for every learner with items
    python scripts/recalculate_statistics.py refresh-all

Environment Variables (set in .env or environment):
    - DATABASE_URL or POSTGRES_*: Database connection
    - STATS_SCAN_CHUNK_SIZE: Rows per scan chunk
    - DEBUG: Enable verbose logging
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Optional

# Add project root to path for imports (must be before study_scheduler.* imports)
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from dotenv import load_dotenv

load_dotenv(project_root / ".env")

# Override DEBUG to suppress SQLAlchemy echo (engine uses echo=settings.DEBUG)
os.environ["DEBUG"] = "false"

from sqlalchemy import select

from study_scheduler.db.base import async_session_maker, engine
from study_scheduler.db.models import SchedulableItem
from study_scheduler.errors import ServiceError
from study_scheduler.models.scheduling import ItemStatistics
from study_scheduler.services.scheduling import StatisticsAggregator

logger = logging.getLogger(__name__)


def setup_logging(debug: bool = False) -> None:
    """Configure logging based on debug flag."""
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )


def print_statistics(stats: ItemStatistics, output_format: str) -> None:
    """Print statistics as JSON or a short table."""
    if output_format == "json":
        print(json.dumps(stats.model_dump(mode="json"), indent=2))
        return

    print(f"\nOwner: {stats.owner_id}   Scope: {stats.scope or '(all)'}")
    print("-" * 48)
    print(f"  Total items:       {stats.total_items}")
    for status, count in stats.by_status.items():
        print(f"    {status.value:<16} {count}")
    print(f"  Due now:           {stats.due_count}")
    print(f"  Average ease:      {stats.average_ease_factor:.2f}")
    print(f"  Average interval:  {stats.average_interval_days:.1f} days")
    print(f"  Reviewed / new:    {stats.reviewed_items} / {stats.new_items}")
    print(f"  Leeches:           {stats.leech_items}")
    forecast = stats.forecast
    print(
        f"  Forecast:          overdue={forecast.overdue} today={forecast.today} "
        f"tomorrow={forecast.tomorrow} week={forecast.this_week} later={forecast.later}"
    )


async def show_statistics(
    owner_id: str,
    scope: Optional[str],
    full_scan: bool,
    output_format: str,
) -> None:
    async with async_session_maker() as session:
        aggregator = StatisticsAggregator(session)
        stats = await aggregator.compute_statistics(
            owner_id, scope=scope, full_scan=full_scan
        )
    print_statistics(stats, output_format)


async def refresh_statistics(
    owner_id: str,
    scope: Optional[str],
    output_format: str,
) -> None:
    async with async_session_maker() as session:
        aggregator = StatisticsAggregator(session)
        stats = await aggregator.refresh_statistics_snapshot(owner_id, scope=scope)
    print_statistics(stats, output_format)


async def refresh_all(dry_run: bool = False) -> None:
    """Refresh owner-wide snapshots for every owner that has items."""
    async with async_session_maker() as session:
        result = await session.execute(
            select(SchedulableItem.owner_id)
            .distinct()
            .order_by(SchedulableItem.owner_id)
        )
        owner_ids = list(result.scalars().all())

        logger.info(f"Found {len(owner_ids)} owner(s) with items")
        if dry_run:
            for owner_id in owner_ids:
                print(f"  would refresh: {owner_id}")
            return

        aggregator = StatisticsAggregator(session)
        failed = 0
        for owner_id in owner_ids:
            try:
                await aggregator.refresh_statistics_snapshot(owner_id)
            except ServiceError as e:
                failed += 1
                logger.error(f"Refresh failed for owner {owner_id}: {e.message}")

    logger.info(f"Refreshed {len(owner_ids) - failed} snapshot(s), {failed} failed")
    if failed:
        sys.exit(1)


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Recalculate spaced repetition statistics",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    subparsers = parser.add_subparsers(dest="command")

    show = subparsers.add_parser("show", help="Print statistics without storing")
    show.add_argument("owner_id", help="Learner id")
    show.add_argument("--scope", default=None, help="Deck or notebook")
    show.add_argument(
        "--full-scan", action="store_true", help="Walk items in chunks"
    )
    show.add_argument("--format", choices=["table", "json"], default="table")

    refresh = subparsers.add_parser("refresh", help="Refresh one snapshot")
    refresh.add_argument("owner_id", help="Learner id")
    refresh.add_argument("--scope", default=None, help="Deck or notebook")
    refresh.add_argument("--format", choices=["table", "json"], default="table")

    refresh_all_parser = subparsers.add_parser(
        "refresh-all", help="Refresh owner-wide snapshots for every owner"
    )
    refresh_all_parser.add_argument(
        "--dry-run", action="store_true", help="List owners without refreshing"
    )

    return parser


async def main() -> None:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    setup_logging(args.debug)

    try:
        if args.command == "show":
            await show_statistics(
                args.owner_id, args.scope, args.full_scan, args.format
            )
        elif args.command == "refresh":
            await refresh_statistics(args.owner_id, args.scope, args.format)
        elif args.command == "refresh-all":
            await refresh_all(dry_run=args.dry_run)
    except ServiceError as e:
        logger.error(f"{e.error_code}: {e.message}")
        sys.exit(1)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
