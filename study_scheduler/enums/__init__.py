"""Enums shared across the scheduler."""

from study_scheduler.enums.scheduling import (
    ContentType,
    ItemStatus,
    LegacyQuality,
    Quality,
)

__all__ = [
    "ContentType",
    "ItemStatus",
    "LegacyQuality",
    "Quality",
]
