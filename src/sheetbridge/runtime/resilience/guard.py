"""Composition of breaker, retry and per-call timeout around remote calls.

Order of protection for one logical call:
    1. Breaker gate: fail fast with RemoteUnavailableError (or run the fallback) if open
    2. Retry loop: up to max_attempts attempts with backoff
    3. Each attempt: hard timeout, outcome recorded on the breaker

The breaker is consulted once per logical call. If an attempt trips it, the
retry loop stops and the last error is raised rather than hammering an
operation the breaker has just declared unhealthy.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable
from dataclasses import dataclass, field
from typing import Callable, TypeVar

from sheetbridge.foundation.errors import (
    RemoteThrottledError,
    RemoteTimeoutError,
    RemoteUnavailableError,
    SheetbridgeError,
)
from sheetbridge.runtime.observability import Metrics, get_logger
from sheetbridge.runtime.retry import RetryPolicy, execute_with_retry
from sheetbridge.runtime.retry.policy import Sleep

from .breaker import BreakerRegistry, State

T = TypeVar("T")

log = get_logger("sheetbridge.guard")

Fallback = Callable[[RemoteUnavailableError], Awaitable[T]]


@dataclass(slots=True)
class RemoteGuard:
    """Runs remote calls under breaker, retry and timeout protection.

    Args:
        breakers: Shared breaker registry
        policy: Retry policy applied to every call
        call_timeout: Hard timeout per attempt in seconds (default: 30)
        metrics: Metrics sink for call/retry/throttle counts and durations
        sleep: Awaitable sleep between retries (injectable for tests)

    Example:
        >>> guard = RemoteGuard(BreakerRegistry(), RetryPolicy(max_attempts=3))
        >>> session_id = await guard.call("createSession", lambda: client.create_session(handle))
    """

    breakers: BreakerRegistry
    policy: RetryPolicy = field(default_factory=RetryPolicy)
    call_timeout: float = 30.0
    metrics: Metrics = field(default_factory=Metrics)
    sleep: Sleep = field(default=asyncio.sleep, repr=False)

    async def call(self, name: str, fn: Callable[[], Awaitable[T]], *, fallback: Fallback[T] | None = None) -> T:
        """Invoke fn under the breaker named `name`.

        Raises:
            RemoteUnavailableError: Breaker open and no fallback given (no remote call made)
            RemoteTimeoutError: Last attempt exceeded call_timeout
            SheetbridgeError: Last remote error once retries are exhausted or not applicable
        """
        breaker = self.breakers.get(name)
        if not breaker.allow():
            err = RemoteUnavailableError(name, retry_after=breaker.retry_after)
            if fallback is not None:
                log.info("circuit open, using fallback", operation=name)
                return await fallback(err)
            log.warning("circuit open, failing fast", operation=name, retry_after=err.retry_after)
            raise err

        async def attempt() -> T:
            self.metrics.increment("remote.calls", name=name)
            start = time.perf_counter()
            try:
                result = await asyncio.wait_for(fn(), self.call_timeout)
            except TimeoutError:
                err = RemoteTimeoutError(f"Remote operation '{name}' timed out after {self.call_timeout}s")
                breaker.record_failure(err)
                raise err from None
            except asyncio.CancelledError:
                breaker.release()
                raise
            except Exception as e:
                if isinstance(e, RemoteThrottledError):
                    self.metrics.increment("remote.throttled", name=name)
                breaker.record_failure(e)
                raise
            finally:
                self.metrics.timing("remote.duration_ms", (time.perf_counter() - start) * 1000, name=name)
            breaker.record_success()
            return result

        def on_retry(attempt_no: int, exc: SheetbridgeError, delay: float) -> None:
            self.metrics.increment("remote.retries", name=name)

        return await execute_with_retry(
            attempt, self.policy, name,
            sleep=self.sleep,
            proceed=lambda: breaker.state != State.OPEN,
            on_retry=on_retry,
        )
