# backend/modules/orders/utils/database_retry.py

import asyncio
import logging
from typing import TypeVar, Callable, Set
from sqlalchemy.exc import OperationalError, DBAPIError
import random

from core.exceptions import ConcurrencyConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Database error codes that indicate retry-able conditions
RETRY_ERROR_CODES: Set[str] = {
    # PostgreSQL
    "40001",  # serialization_failure
    "40P01",  # deadlock_detected
    "55P03",  # lock_not_available
    # SQLite (for testing)
    "database is locked",
    "database table is locked",
}


def is_retryable_error(error: Exception) -> bool:
    """
    Check if an error means "re-read and try again"

    Covers optimistic version conflicts as well as lock and serialization
    failures reported by the database.
    """
    if isinstance(error, ConcurrencyConflictError):
        return True

    if isinstance(error, (OperationalError, DBAPIError)):
        error_str = str(error).lower()
        if any(code in error_str for code in ["deadlock", "serialization", "lock"]):
            return True

        if hasattr(error, "orig") and hasattr(error.orig, "pgcode"):
            return error.orig.pgcode in RETRY_ERROR_CODES

    return False


async def retry_on_conflict(
    func: Callable[..., T],
    *args,
    max_retries: int = 3,
    initial_delay: float = 0.05,
    max_delay: float = 1.0,
    backoff_factor: float = 2.0,
    jitter: bool = True,
    **kwargs,
) -> T:
    """
    Re-run ``func`` when it fails with a retryable conflict

    ``func`` must re-read its rows on every call; retrying a write built
    from stale values would overwrite the concurrent change.

    Args:
        func: The async function to retry
        max_retries: Maximum number of retry attempts after the first call
        initial_delay: Delay before the second retry in seconds
        max_delay: Maximum delay between retries in seconds
        backoff_factor: Multiplier for exponential backoff
        jitter: Add random jitter to prevent thundering herd

    Raises:
        The last exception once retries are exhausted
    """
    delay = initial_delay

    for attempt in range(max_retries + 1):
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            if not is_retryable_error(e) or attempt == max_retries:
                raise

            # The first retry goes straight away; the competing write has
            # usually committed by the time we re-read
            if attempt > 0:
                actual_delay = min(delay, max_delay)
                if jitter:
                    actual_delay *= 1 + random.random() * 0.25

                logger.warning(
                    f"Write conflict on attempt {attempt + 1}/{max_retries + 1}. "
                    f"Retrying in {actual_delay:.2f}s. Error: {str(e)}"
                )

                await asyncio.sleep(actual_delay)
                delay *= backoff_factor
            else:
                logger.info(f"Write conflict, retrying immediately: {str(e)}")

