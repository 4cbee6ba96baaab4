"""
Optimistic Read-Modify-Write

Every item row carries a version counter (SQLAlchemy version_id_col).
An UPDATE issued against an outdated version matches no row and raises
StaleDataError at flush time. run_with_optimistic_retry() rolls the
session back and re-runs the whole read-compute-write, so the retry
always starts from the freshly committed state.

Uses tenacity for retry logic:
- retries only on StaleDataError
- short random wait between attempts to de-synchronize writers
- ConflictError once attempts are exhausted
- StorageError for any other SQLAlchemy failure
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Optional, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random,
)

from study_scheduler.config import settings
from study_scheduler.errors import ConflictError, StorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _log_retry(retry_state: RetryCallState) -> None:
    logger.info(
        f"Concurrent update detected, retrying "
        f"(attempt {retry_state.attempt_number} failed)"
    )


async def run_with_optimistic_retry(
    session: AsyncSession,
    operation: Callable[[], Awaitable[T]],
    description: str,
    max_attempts: Optional[int] = None,
    wait_seconds: Optional[float] = None,
) -> T:
    """
    Run a read-modify-write operation with optimistic retries.

    The operation must do its own reads and its own commit; it is called
    again from scratch after every lost race.

    Args:
        session: Session the operation uses; rolled back after any failure
        operation: Zero-argument coroutine function performing one attempt
        description: Human-readable operation name for errors and logs
        max_attempts: Attempts before giving up
            (defaults to settings.REVIEW_MAX_RETRIES)
        wait_seconds: Upper bound of the random wait between attempts
            (defaults to settings.REVIEW_RETRY_WAIT_SECONDS)

    Returns:
        Whatever the operation returns.

    Raises:
        ConflictError: If every attempt lost a concurrent-update race
        StorageError: If the database failed
        ServiceError: Anything the operation raises itself, unchanged
    """
    if max_attempts is None:
        max_attempts = settings.REVIEW_MAX_RETRIES
    if wait_seconds is None:
        wait_seconds = settings.REVIEW_RETRY_WAIT_SECONDS

    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max(1, max_attempts)),
            wait=wait_random(0, wait_seconds),
            retry=retry_if_exception_type(StaleDataError),
            before_sleep=_log_retry,
            reraise=True,
        ):
            with attempt:
                try:
                    result = await operation()
                except BaseException:
                    await session.rollback()
                    raise
    except StaleDataError as e:
        logger.warning(f"{description}: gave up after {max_attempts} attempts")
        raise ConflictError(
            f"{description} lost a concurrent update race; retry the request",
            details={"attempts": max_attempts},
        ) from e
    except SQLAlchemyError as e:
        logger.error(f"{description}: storage failure: {type(e).__name__}: {e}")
        raise StorageError(
            f"{description} failed in storage; no changes were applied",
            details={"exception": type(e).__name__},
        ) from e

    return result
