"""Retry policy for remote document API calls.

Retries are exception-based: a failed attempt raises a SheetbridgeError and
the policy decides whether another attempt is worthwhile.

- Any 4xx except 429 is final and raised immediately.
- 429, 5xx, network errors and per-call timeouts are retried.
- Errors outside the remote taxonomy (validation, auth) are never retried.
- After max_attempts the last error is raised unchanged.

The sleep between attempts is an await, so other batches keep making
progress while one waits out a throttle.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import Annotated, Callable, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from sheetbridge.foundation.errors import RemoteError, SheetbridgeError
from sheetbridge.runtime.observability import get_logger

from .backoff import Backoff, ExponentialBackoff

T = TypeVar("T")

log = get_logger("sheetbridge.retry")

Sleep = Callable[[float], Awaitable[object]]
RetryHook = Callable[[int, SheetbridgeError, float], None]


class RetryPolicy(BaseModel):
    """Configurable retry policy for remote calls.

    Attributes:
        max_attempts: Total attempts including the first (1 = no retries)
        backoff: Backoff strategy for delay calculation

    Example:
        >>> policy = RetryPolicy(max_attempts=3, backoff=ExponentialBackoff(base=1.0))
        >>> policy.should_retry(RemoteThrottledError("slow down", status=429), attempt=0)
        True
    """

    model_config = ConfigDict(
        frozen=True,
        arbitrary_types_allowed=True,  # For Backoff protocol
        validate_default=True,
        extra="forbid",
    )

    max_attempts: Annotated[int, Field(ge=1, le=10)] = 3
    backoff: Backoff = Field(default_factory=ExponentialBackoff, repr=False)

    @staticmethod
    def is_retryable(exc: SheetbridgeError) -> bool:
        """Whether an error class is worth another attempt at all."""
        return isinstance(exc, RemoteError) and exc.retryable

    def should_retry(self, exc: SheetbridgeError, attempt: int) -> bool:
        """Determine if retry should be attempted.

        Args:
            exc: Error raised by the failed attempt
            attempt: 0-indexed number of the attempt that just failed
        """
        return attempt + 1 < self.max_attempts and self.is_retryable(exc)

    def get_delay(self, attempt: int, exc: SheetbridgeError) -> float:
        """Get delay before the retry that follows failed attempt `attempt`."""
        return self.backoff.delay(attempt, exc.retry_after)

    @classmethod
    def from_settings(cls, max_attempts: int, base_delay: float, max_jitter: float) -> RetryPolicy:
        return cls(max_attempts=max_attempts, backoff=ExponentialBackoff(base=base_delay, max_jitter=max_jitter))


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    name: str,
    *,
    sleep: Sleep = asyncio.sleep,
    proceed: Callable[[], bool] | None = None,
    on_retry: RetryHook | None = None,
) -> T:
    """Execute async operation with retry policy.

    Args:
        operation: Async callable performing one attempt
        policy: Retry policy configuration
        name: Logical operation name for logging
        sleep: Awaitable sleep (injectable for tests)
        proceed: Checked before each retry; False stops retrying (e.g. breaker opened)
        on_retry: Callback(attempt, error, delay) invoked before each sleep

    Returns:
        Result of the first successful attempt

    Raises:
        SheetbridgeError: The first non-retryable error, or the last error once attempts are exhausted
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except SheetbridgeError as e:
            if not policy.should_retry(e, attempt) or (proceed is not None and not proceed()):
                raise
            delay = policy.get_delay(attempt, e)
            log.info("retry scheduled", operation=name, attempt=attempt + 1,
                     max_attempts=policy.max_attempts, status=e.status, delay=round(delay, 3))
            if on_retry:
                on_retry(attempt, e, delay)
            await sleep(delay)
            attempt += 1
