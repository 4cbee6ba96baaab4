"""Pydantic schemas for scheduler inputs and outputs."""

from study_scheduler.models.scheduling import (
    DueItemsPage,
    ItemCreate,
    ItemResponse,
    ItemStatistics,
    ReviewEventResponse,
    ReviewForecast,
    ReviewResult,
)

__all__ = [
    "DueItemsPage",
    "ItemCreate",
    "ItemResponse",
    "ItemStatistics",
    "ReviewEventResponse",
    "ReviewForecast",
    "ReviewResult",
]
