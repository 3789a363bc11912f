"""
Retry utilities with exponential backoff for transient remote failures.

The remote tabular client never retries on its own: every call is attempted
exactly once and the outcome is handed back to the caller. Only callers that
know their operation is idempotent opt in to retrying, by wrapping a coroutine
with ``retry_async_on_transient_error``. Today that is the bootstrap resolver
(search-before-create is safe to repeat) and sheet id lookups (plain reads).
Appends are never wrapped: repeating an append whose response was lost would
write the row twice.

BACKOFF AND JITTER:
-------------------
Attempt n waits ``base_delay * 2**n`` seconds, capped at ``max_delay``, then
multiplied by a random factor in [0.5, 1.5) so that many clients recovering
from the same outage do not retry in lockstep.

USAGE:
------
    from utils.retry import retry_async_on_transient_error

    @retry_async_on_transient_error(is_retryable=lambda e: e.transient)
    async def lookup():
        return (await client.list_sheets(spreadsheet_id)).unwrap()
"""

import asyncio
import random
from functools import wraps
from typing import Awaitable, Callable, Optional


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Delay before retry number ``attempt`` (0-indexed), jitter included."""
    delay = min(base_delay * (2 ** attempt), max_delay)
    return delay * (0.5 + random.random())


def retry_async_on_transient_error(
    is_retryable: Callable[[Exception], bool],
    max_retries: int = 5,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    on_retry: Optional[Callable[[Exception, int, float], None]] = None,
):
    """
    Decorator that retries a coroutine function on transient errors.

    Args:
        is_retryable: Takes the raised exception and returns True if it is
                      transient. Anything else is re-raised immediately.
        max_retries: Retry attempts after the initial try (so up to
                     ``max_retries + 1`` attempts in total).
        base_delay: Delay in seconds before the first retry.
        max_delay: Upper bound for a single delay before jitter.
        on_retry: Optional callback ``(exc, attempt, delay)`` invoked before
                  each sleep, attempt being 1-indexed.

    Returns:
        A decorator for ``async def`` functions.

    Raises:
        The last exception once retries are exhausted, or immediately when
        the exception is not retryable. Cancellation is never retried.
    """

    def decorator(func: Callable[..., Awaitable]) -> Callable[..., Awaitable]:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except Exception as exc:
                    if not is_retryable(exc) or attempt == max_retries:
                        raise
                    delay = backoff_delay(attempt, base_delay, max_delay)
                    if on_retry:
                        on_retry(exc, attempt + 1, delay)
                    await asyncio.sleep(delay)
        return wrapper
    return decorator


# ---------------------------------------------------------------------------
# Common retry condition helpers
# ---------------------------------------------------------------------------

# HTTP status codes that indicate a transient server-side condition
TRANSIENT_HTTP_STATUS_CODES = {
    429,  # Too Many Requests (rate limited)
    500,  # Internal Server Error
    502,  # Bad Gateway
    503,  # Service Unavailable
    504,  # Gateway Timeout
}

# Network exception types that are typically transient
TRANSIENT_NETWORK_EXCEPTIONS = (
    ConnectionError,
    TimeoutError,
    OSError,
)


def is_transient_network_error(exc: Exception) -> bool:
    """Check if an exception is a transient network error."""
    return isinstance(exc, TRANSIENT_NETWORK_EXCEPTIONS)
