"""
Scheduling Services

SM-2 spaced repetition scheduling for study content.

Modules:
- calculator: Pure SM-2 next-state computation
- state_machine: Item lifecycle status and suspend/unsuspend
- concurrency: Optimistic read-modify-write with retries
- item_service: Item creation, lookup, deletion and suspension
- review_recorder: Transactional review recording
- due_items: Paginated due-item query
- statistics: Aggregate statistics and snapshots
- scheduling_service: Facade for collaborators

Usage:
    from study_scheduler.services.scheduling import SchedulingService
"""

from study_scheduler.services.scheduling.calculator import (
    NextState,
    SchedulingParameters,
    SchedulingState,
    compute_next_state,
    next_ease_factor,
    next_review_at,
    validate_quality,
)
from study_scheduler.services.scheduling import state_machine
from study_scheduler.services.scheduling.concurrency import run_with_optimistic_retry
from study_scheduler.services.scheduling.item_service import ItemService
from study_scheduler.services.scheduling.review_recorder import ReviewRecorder
from study_scheduler.services.scheduling.due_items import DueItemQuery
from study_scheduler.services.scheduling.statistics import StatisticsAggregator
from study_scheduler.services.scheduling.scheduling_service import SchedulingService

__all__ = [
    # Calculator
    "NextState",
    "SchedulingParameters",
    "SchedulingState",
    "compute_next_state",
    "next_ease_factor",
    "next_review_at",
    "validate_quality",
    # State machine
    "state_machine",
    "run_with_optimistic_retry",
    # Services
    "ItemService",
    "ReviewRecorder",
    "DueItemQuery",
    "StatisticsAggregator",
    "SchedulingService",
]
