"""
Kill Notifier Retry Logic

Async retry policy for name resolution, built on tenacity:
- Exponential backoff (base delay doubling per attempt)
- Attempt cap combined with a per-event deadline
- HTTP status classification into retryable / non-retryable errors
- Debug logging of each retry

Usage:
    retrying = resolution_retrying(max_attempts=3, base_delay=0.1)
    async for attempt in retrying:
        with attempt:
            name = await resolver.resolve(kind, entity_id)
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Optional, Union

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.stop import stop_base

from .errors import (
    CircuitOpenError,
    NonRetryableResolutionError,
    ResolutionError,
    RetryableResolutionError,
)
from .logging import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 0.1  # seconds; 100ms, 200ms, 400ms...

# HTTP status codes that should trigger retry
RETRYABLE_STATUS_CODES = {
    429,  # Too Many Requests
    500,  # Internal Server Error
    502,  # Bad Gateway
    503,  # Service Unavailable
    504,  # Gateway Timeout
}

# Status codes that should NOT be retried
NON_RETRYABLE_STATUS_CODES = {
    400,
    401,
    403,
    404,
    420,  # ESI error limited; backing off inside one event cannot help
    422,
}

SleepFn = Callable[[float], Awaitable[Any]]
ClockFn = Callable[[], float]


def parse_retry_after(headers: Mapping[str, str]) -> Optional[float]:
    """
    Parse Retry-After header from an HTTP response.

    Args:
        headers: Response headers

    Returns:
        Seconds to wait, or None if absent or not numeric
    """
    try:
        value = headers.get("Retry-After") or headers.get("retry-after")
        if value:
            return float(value)
    except (ValueError, TypeError, AttributeError):
        pass
    return None


def classify_status(
    status_code: int,
    message: str = "",
    retry_after: Optional[float] = None,
) -> Union[RetryableResolutionError, NonRetryableResolutionError]:
    """
    Classify an HTTP failure status.

    Args:
        status_code: HTTP status code of the failed response
        message: Error message from the response body
        retry_after: Parsed Retry-After value, if any

    Returns:
        RetryableResolutionError for transient statuses,
        NonRetryableResolutionError otherwise
    """
    message = message or f"HTTP {status_code}"
    if status_code in RETRYABLE_STATUS_CODES or (
        status_code >= 500 and status_code not in NON_RETRYABLE_STATUS_CODES
    ):
        return RetryableResolutionError(
            message, status_code=status_code, retry_after=retry_after
        )
    return NonRetryableResolutionError(message, status_code=status_code)


def is_retryable(exc: BaseException) -> bool:
    """
    Determine if an exception should trigger a retry.

    Args:
        exc: The exception to check

    Returns:
        True if the lookup should be attempted again
    """
    if isinstance(exc, (NonRetryableResolutionError, CircuitOpenError)):
        return False
    if isinstance(exc, ResolutionError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES
    if isinstance(exc, (httpx.TransportError, asyncio.TimeoutError)):
        return True
    return False


class stop_at_deadline(stop_base):
    """Stop retrying once a monotonic deadline has passed."""

    def __init__(self, deadline: Optional[float], clock: ClockFn = time.monotonic) -> None:
        self.deadline = deadline
        self.clock = clock

    def __call__(self, retry_state: RetryCallState) -> bool:
        if self.deadline is None:
            return False
        return self.clock() >= self.deadline


def _log_before_sleep(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    sleep_for = retry_state.next_action.sleep if retry_state.next_action else 0.0
    logger.debug(
        "Attempt %d failed (%s), retrying in %.2fs",
        retry_state.attempt_number,
        exc,
        sleep_for,
    )


def resolution_retrying(
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    deadline: Optional[float] = None,
    sleep: SleepFn = asyncio.sleep,
    clock: ClockFn = time.monotonic,
) -> AsyncRetrying:
    """
    Build the retry controller for one name resolution cycle.

    Args:
        max_attempts: Total attempts, including the first
        base_delay: Delay before the first retry; doubles each time
        deadline: Monotonic time after which no further attempts start
        sleep: Awaitable sleep (injected in tests)
        clock: Monotonic clock used for the deadline

    Returns:
        AsyncRetrying that re-raises the last error on exhaustion
    """
    return AsyncRetrying(
        stop=stop_after_attempt(max_attempts) | stop_at_deadline(deadline, clock),
        wait=wait_exponential(multiplier=base_delay, exp_base=2, min=0),
        retry=retry_if_exception(is_retryable),
        before_sleep=_log_before_sleep,
        sleep=sleep,
        reraise=True,
    )
