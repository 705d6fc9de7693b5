# backend/modules/payments/utils/retry_decorator.py

import asyncio
import logging
import random
from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, Optional

import httpx


logger = logging.getLogger(__name__)

# Provider answered but asked us to come back later
RETRYABLE_STATUS_CODES = frozenset({429, 502, 503, 504})

# The request never left this process, so repeating it cannot double-charge
CONNECT_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout)


@dataclass(frozen=True)
class GatewayRetryPolicy:
    """Backoff for calls to payment providers"""

    max_attempts: int = 3
    initial_delay: float = 0.5
    max_delay: float = 8.0
    jitter: float = 0.25  # fraction of the delay

    def delay_for(self, attempt: int) -> float:
        delay = min(self.initial_delay * (2 ** (attempt - 1)), self.max_delay)
        if self.jitter:
            spread = delay * self.jitter
            delay += random.uniform(-spread, spread)
        return max(delay, 0.0)


def is_retryable_error(error: Exception, method: str = "GET") -> bool:
    """
    Decide whether a failed provider call may be sent again.

    Read timeouts are only repeated for GET: a POST that timed out may
    already have created an order at the provider.
    """
    if isinstance(error, CONNECT_ERRORS):
        return True
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code in RETRYABLE_STATUS_CODES
    if isinstance(error, (httpx.ReadTimeout, httpx.RemoteProtocolError)):
        return method.upper() == "GET"
    return False


def payment_retry(policy: Optional[GatewayRetryPolicy] = None) -> Callable:
    """
    Retry decorator for ``_send(self, method, url, ...)`` style coroutines.

    Usage:
        @payment_retry(GatewayRetryPolicy(max_attempts=5))
        async def _send(self, method, url, **kwargs):
            ...
    """
    policy = policy or GatewayRetryPolicy()

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(self, method: str, url: str, *args, **kwargs) -> Any:
            attempt = 1
            while True:
                try:
                    return await func(self, method, url, *args, **kwargs)
                except httpx.HTTPError as e:
                    if not is_retryable_error(e, method) or attempt >= policy.max_attempts:
                        raise
                    delay = policy.delay_for(attempt)
                    logger.warning(
                        f"{method} {url} failed on attempt {attempt}/{policy.max_attempts} "
                        f"({type(e).__name__}); retrying in {delay:.2f}s"
                    )
                    await asyncio.sleep(delay)
                    attempt += 1

        return wrapper

    return decorator
