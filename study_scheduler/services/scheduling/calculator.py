"""
SM-2 Scheduling Calculator

Pure implementation of the SM-2 family interval calculation shared by
every content type (flashcards, questions, error-notebook entries).

Key Concepts:
- Ease factor (EF): Multiplier for interval growth, floored at 1.3
- Interval: Days until the next review
- Repetitions: Consecutive successes since the last lapse
- Lapse: A review with quality below the success threshold

Usage:
    from study_scheduler.services.scheduling.calculator import (
        SchedulingState,
        compute_next_state,
    )

    current = SchedulingState(ease_factor=2.5, interval_days=0, repetitions=0)
    nxt = compute_next_state(current, Quality.PERFECT)
    # nxt.interval_days == 1, nxt.ease_factor == 2.6
"""

import logging
import math
from dataclasses import dataclass, fields
from datetime import datetime, timedelta
from typing import Optional, Union

from study_scheduler.config import settings, yaml_config
from study_scheduler.enums.scheduling import LegacyQuality, Quality
from study_scheduler.errors import ValidationError

logger = logging.getLogger(__name__)

MIN_QUALITY = int(Quality.BLACKOUT)
MAX_QUALITY = int(Quality.PERFECT)

# Ease factors are persisted with this many decimals
EASE_FACTOR_PRECISION = 4


@dataclass(frozen=True)
class SchedulingParameters:
    """
    Tunable constants of the scheduler.

    Defaults come from settings; the `scheduling` section of
    config/default.yaml can override individual fields.
    """

    default_ease_factor: float = 2.5
    min_ease_factor: float = 1.3
    success_threshold: int = 3
    first_interval_days: int = 1
    second_interval_days: int = 6
    lapse_interval_days: int = 0
    mastery_repetitions: int = 3
    mastery_min_interval_days: int = 0
    maximum_interval_days: int = 0
    leech_threshold: int = 8

    @classmethod
    def from_settings(cls, overrides: Optional[dict] = None) -> "SchedulingParameters":
        """
        Build parameters from settings and YAML overrides.

        Args:
            overrides: Extra field overrides, applied last

        Returns:
            Configured SchedulingParameters
        """
        values = {
            "default_ease_factor": settings.SRS_DEFAULT_EASE_FACTOR,
            "min_ease_factor": settings.SRS_MIN_EASE_FACTOR,
            "success_threshold": settings.SRS_SUCCESS_THRESHOLD,
            "first_interval_days": settings.SRS_FIRST_INTERVAL_DAYS,
            "second_interval_days": settings.SRS_SECOND_INTERVAL_DAYS,
            "lapse_interval_days": settings.SRS_LAPSE_INTERVAL_DAYS,
            "mastery_repetitions": settings.SRS_MASTERY_REPETITIONS,
            "mastery_min_interval_days": settings.SRS_MASTERY_MIN_INTERVAL_DAYS,
            "maximum_interval_days": settings.SRS_MAXIMUM_INTERVAL_DAYS,
            "leech_threshold": settings.SRS_LEECH_THRESHOLD,
        }
        known = {f.name for f in fields(cls)}
        for source in (yaml_config.get("scheduling") or {}, overrides or {}):
            for key, value in source.items():
                if key not in known:
                    logger.warning(f"Ignoring unknown scheduling parameter: {key}")
                    continue
                values[key] = value

        params = cls(**values)
        if (
            params.min_ease_factor <= 0
            or params.lapse_interval_days < 0
            or params.maximum_interval_days < 0
            or params.leech_threshold < 1
        ):
            raise ValueError(f"Invalid scheduling parameters: {params}")
        return params


@dataclass(frozen=True)
class SchedulingState:
    """Numeric SM-2 state of an item before a review."""

    ease_factor: float
    interval_days: int
    repetitions: int


@dataclass(frozen=True)
class NextState:
    """Numeric SM-2 state of an item after a review."""

    ease_factor: float
    interval_days: int
    repetitions: int
    is_lapse: bool


def validate_quality(quality: Union[int, Quality]) -> Quality:
    """
    Check that quality is an integer on the 0-5 scale.

    Out-of-range values are rejected rather than clamped: a clamped value
    would silently bend the ease factor trajectory.

    Raises:
        ValidationError: If quality is not an integer in [0, 5]
    """
    if isinstance(quality, LegacyQuality):
        raise ValidationError(
            "Legacy 4-level ratings must be converted with Quality.from_legacy()",
            details={"quality": repr(quality)},
        )
    if isinstance(quality, bool) or not isinstance(quality, int):
        raise ValidationError(
            f"Quality must be an integer between {MIN_QUALITY} and {MAX_QUALITY}",
            details={"quality": repr(quality)},
        )
    if quality < MIN_QUALITY or quality > MAX_QUALITY:
        raise ValidationError(
            f"Quality must be between {MIN_QUALITY} and {MAX_QUALITY}, got {quality}",
            details={"quality": quality},
        )
    return Quality(quality)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _cap_interval(interval_days: int, params: SchedulingParameters) -> int:
    # 0 disables the cap
    if params.maximum_interval_days:
        return min(interval_days, params.maximum_interval_days)
    return interval_days


def next_ease_factor(
    ease_factor: float,
    quality: int,
    params: SchedulingParameters,
) -> float:
    """Apply the SM-2 ease update, floored at the minimum ease factor."""
    q = MAX_QUALITY - quality
    updated = ease_factor + (0.1 - q * (0.08 + q * 0.02))
    return round(max(params.min_ease_factor, updated), EASE_FACTOR_PRECISION)


def compute_next_state(
    current: SchedulingState,
    quality: Union[int, Quality],
    params: Optional[SchedulingParameters] = None,
) -> NextState:
    """
    Compute the scheduling state that follows a review.

    Lapses (quality below the success threshold) reset repetitions and
    make the item due after the lapse interval, but still lower the ease
    factor, so items that are often forgotten keep shorter intervals after
    recovery.

    Successes grow the interval: first interval, second interval, then
    previous interval times the new ease factor (rounded half up). When
    maximum_interval_days is set, no interval exceeds it.

    Args:
        current: State before the review
        quality: Recall quality, 0-5
        params: Scheduling constants (default: from settings)

    Returns:
        NextState with the new ease factor, interval, repetitions and
        whether the review was a lapse.

    Raises:
        ValidationError: If quality is outside [0, 5]

    Example:
        >>> compute_next_state(SchedulingState(2.5, 0, 0), 5)
        NextState(ease_factor=2.6, interval_days=1, repetitions=1, is_lapse=False)
    """
    quality = validate_quality(quality)
    params = params or SchedulingParameters.from_settings()

    ease_factor = next_ease_factor(
        max(current.ease_factor, params.min_ease_factor), quality, params
    )

    if quality < params.success_threshold:
        return NextState(
            ease_factor=ease_factor,
            interval_days=_cap_interval(params.lapse_interval_days, params),
            repetitions=0,
            is_lapse=True,
        )

    repetitions = max(current.repetitions, 0) + 1
    if repetitions == 1:
        interval_days = params.first_interval_days
    elif repetitions == 2:
        interval_days = params.second_interval_days
    else:
        interval_days = max(
            params.first_interval_days,
            _round_half_up(max(current.interval_days, 0) * ease_factor),
        )
    interval_days = _cap_interval(interval_days, params)

    return NextState(
        ease_factor=ease_factor,
        interval_days=interval_days,
        repetitions=repetitions,
        is_lapse=False,
    )


def next_review_at(occurred_at: datetime, interval_days: int) -> datetime:
    """
    Derive the due timestamp from the review time and the new interval.

    An interval of 0 means due immediately, at occurred_at itself.
    """
    if interval_days < 0:
        raise ValueError(f"interval_days must be non-negative, got {interval_days}")
    return occurred_at + timedelta(days=interval_days)
