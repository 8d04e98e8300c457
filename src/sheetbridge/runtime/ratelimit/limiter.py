"""Per-user sliding-window rate limiting.

Each user has a window of request timestamps in the backing store. A check
drops timestamps at or before now - window, denies if the survivors already
fill the quota, and otherwise records now. The drop/count/add sequence is a
single store call (KeyValueStore.window_admit), so concurrent checks for the
same user cannot over-admit.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from sheetbridge.foundation.errors import RateLimitedError
from sheetbridge.runtime.observability import get_logger

if TYPE_CHECKING:
    from sheetbridge.io.store import KeyValueStore

log = get_logger("sheetbridge.ratelimit")


@dataclass(frozen=True, slots=True)
class RateDecision:
    """Outcome of one admission check.

    Attributes:
        allowed: Whether the request was admitted (and recorded)
        remaining: Requests still admissible in the current window
        reset_at: Epoch seconds when capacity frees up
    """
    allowed: bool
    remaining: int
    reset_at: float


@dataclass(slots=True)
class SlidingWindowLimiter:
    """Sliding-window admission control keyed by user id.

    Args:
        store: Backing store providing the atomic window primitive
        clock: Wall-clock time source in epoch seconds (injectable for tests)
        prefix: Key prefix for per-user windows

    Example:
        >>> limiter = SlidingWindowLimiter(MemoryStore())
        >>> decision = await limiter.check("user-1", quota=100, window_seconds=60)
        >>> decision.allowed, decision.remaining
        (True, 99)
    """

    store: KeyValueStore
    clock: Callable[[], float] = field(default=time.time, repr=False)
    prefix: str = "rate:"

    async def check(self, user_id: str, quota: int, window_seconds: float) -> RateDecision:
        now = self.clock()
        state = await self.store.window_admit(f"{self.prefix}{user_id}", now, window_seconds, quota)
        if not state.admitted:
            reset_at = (state.oldest if state.oldest is not None else now) + window_seconds
            return RateDecision(False, 0, reset_at)
        return RateDecision(True, max(0, quota - state.count), now + window_seconds)

    async def acquire(self, user_id: str, quota: int, window_seconds: float) -> RateDecision:
        """Check and raise RateLimitedError on denial."""
        decision = await self.check(user_id, quota, window_seconds)
        if not decision.allowed:
            log.warning("rate limit exceeded", user_id=user_id, quota=quota,
                        window_seconds=window_seconds, reset_at=decision.reset_at)
            raise RateLimitedError(
                f"Rate limit exceeded: {quota} batches per {window_seconds:g}s",
                remaining=decision.remaining, reset_at=decision.reset_at, now=self.clock(),
            )
        return decision
