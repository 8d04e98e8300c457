"""Circuit breaker keyed by logical remote-operation name.

Implements the circuit breaker pattern as a standalone state machine with
rolling error-percentage statistics.

State Machine:
    CLOSED → error% ≥ threshold with volume ≥ volume_threshold → OPEN
    OPEN → reset_timeout elapses → HALF_OPEN
    HALF_OPEN → trial succeeds → CLOSED (rolling stats reset)
    HALF_OPEN → trial fails → OPEN (timer restarts)

Breakers model remote-API health, not per-document health: one breaker per
operation name ("createSession", "applyRange", ...) shared by every batch.
A BreakerRegistry owns them; construct one per process and pass it around.

None of the methods here await, so each state change is atomic with respect
to other coroutines on the loop.
"""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable, TypedDict

from sheetbridge.runtime.observability import get_logger

log = get_logger("sheetbridge.breaker")

# Every failed attempt counts toward the error rate, 4xx responses included.
DEFAULT_IGNORED: tuple[type[BaseException], ...] = ()


class State(IntEnum):
    """Circuit breaker states."""
    CLOSED, OPEN, HALF_OPEN = 0, 1, 2  # Normal → Failing fast → Testing recovery


class BreakerStats(TypedDict):
    name: str
    state: str
    successes: int
    failures: int
    error_percentage: float
    retry_after: float | None


# ─────────────────────────────────────────────────────────────────────────────
# Rolling Statistics
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(slots=True)
class _Bucket:
    start: float
    successes: int = 0
    failures: int = 0


@dataclass(slots=True)
class RollingStats:
    """Success/failure counts over a sliding time window split into fixed buckets.

    A bucket covers window / buckets seconds. Buckets older than the window
    are dropped as time advances, so counts decay in bucket-sized steps.
    """

    window: float = 10.0
    buckets: int = 10
    _ring: deque[_Bucket] = field(default_factory=deque, repr=False)

    @property
    def bucket_width(self) -> float:
        return self.window / self.buckets

    def _advance(self, now: float) -> _Bucket:
        horizon = now - self.window
        while self._ring and self._ring[0].start <= horizon:
            self._ring.popleft()
        if not self._ring or now - self._ring[-1].start >= self.bucket_width:
            self._ring.append(_Bucket(now - (now % self.bucket_width)))
        return self._ring[-1]

    def record(self, now: float, *, ok: bool) -> None:
        bucket = self._advance(now)
        if ok:
            bucket.successes += 1
        else:
            bucket.failures += 1

    def totals(self, now: float) -> tuple[int, int]:
        """(successes, failures) inside the window ending at now."""
        self._advance(now)
        return sum(b.successes for b in self._ring), sum(b.failures for b in self._ring)

    def reset(self) -> None:
        self._ring.clear()


# ─────────────────────────────────────────────────────────────────────────────
# Breaker
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(slots=True)
class CircuitBreaker:
    """Per-operation circuit breaker.

    Args:
        name: Logical remote-operation name
        error_threshold_percentage: Error rate that trips the circuit (default: 50)
        volume_threshold: Min calls in the rolling window before tripping (default: 10)
        rolling_window: Stats window in seconds (default: 10)
        rolling_buckets: Buckets the window is split into (default: 10)
        reset_timeout: Seconds open before the half-open trial (default: 30)
        ignore: Exception types recorded as successes rather than failures (default: none)
        clock: Monotonic time source (injectable for tests)

    Example:
        >>> breaker = CircuitBreaker("createSession")
        >>> if breaker.allow():
        ...     try:
        ...         session = await client.create_session(handle)
        ...         breaker.record_success()
        ...     except SheetbridgeError as e:
        ...         breaker.record_failure(e)
        ...         raise
    """

    name: str
    error_threshold_percentage: float = 50.0
    volume_threshold: int = 10
    rolling_window: float = 10.0
    rolling_buckets: int = 10
    reset_timeout: float = 30.0
    ignore: tuple[type[BaseException], ...] = DEFAULT_IGNORED
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)
    _state: State = field(default=State.CLOSED, init=False)
    _opened_at: float = field(default=0.0, init=False, repr=False)
    _trial_in_flight: bool = field(default=False, init=False, repr=False)
    _stats: RollingStats = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._stats = RollingStats(self.rolling_window, self.rolling_buckets)

    def _transition(self, to: State, **ctx: object) -> None:
        prev, self._state = self._state, to
        match to:
            case State.OPEN:
                self._opened_at = self.clock()
                log.warning("circuit opened", breaker=self.name, previous=prev.name.lower(), **ctx)
            case State.HALF_OPEN:
                log.info("circuit half-open", breaker=self.name)
            case State.CLOSED:
                self._stats.reset()
                log.info("circuit closed", breaker=self.name)

    def _evaluate(self) -> State:
        """Move OPEN → HALF_OPEN once the reset timeout has elapsed."""
        if self._state == State.OPEN and self.clock() - self._opened_at >= self.reset_timeout:
            self._trial_in_flight = False
            self._transition(State.HALF_OPEN)
        return self._state

    # ─────────────────────────────────────────────────────────────────
    # Public API
    # ─────────────────────────────────────────────────────────────────

    def allow(self) -> bool:
        """Check if a call may go through.

        In HALF_OPEN exactly one caller gets True (the trial) until its
        outcome is recorded; everyone else fails fast.
        """
        match self._evaluate():
            case State.CLOSED:
                return True
            case State.HALF_OPEN if not self._trial_in_flight:
                self._trial_in_flight = True
                return True
            case _:
                return False

    def record_success(self) -> None:
        """Record a successful call."""
        match self._state:
            case State.HALF_OPEN:
                self._trial_in_flight = False
                self._transition(State.CLOSED)
            case State.CLOSED:
                self._stats.record(self.clock(), ok=True)
            case State.OPEN:
                pass  # late result of a call admitted before the trip

    def record_failure(self, exc: BaseException | None = None) -> None:
        """Record a failed call. Errors matching `ignore` count as successes."""
        if exc is not None and isinstance(exc, self.ignore):
            self.record_success()
            return
        match self._state:
            case State.HALF_OPEN:
                self._trial_in_flight = False
                self._transition(State.OPEN, reason="trial failed")
            case State.CLOSED:
                now = self.clock()
                self._stats.record(now, ok=False)
                successes, failures = self._stats.totals(now)
                total = successes + failures
                if total >= self.volume_threshold and failures * 100.0 / total >= self.error_threshold_percentage:
                    self._transition(State.OPEN, calls=total, failures=failures)
            case State.OPEN:
                pass

    def release(self) -> None:
        """Give back a half-open trial whose call never produced an outcome (e.g. cancelled)."""
        if self._state == State.HALF_OPEN:
            self._trial_in_flight = False

    def reset(self) -> None:
        """Manually reset circuit to closed state."""
        self._trial_in_flight = False
        self._transition(State.CLOSED)

    # ─────────────────────────────────────────────────────────────────
    # Observability Properties
    # ─────────────────────────────────────────────────────────────────

    @property
    def state(self) -> State:
        """Current circuit state (evaluates transitions)."""
        return self._evaluate()

    @property
    def is_open(self) -> bool:
        return self.state == State.OPEN

    @property
    def retry_after(self) -> float | None:
        """Seconds until the circuit goes half-open, or None if not open."""
        if self.state != State.OPEN:
            return None
        return max(0.0, self.reset_timeout - (self.clock() - self._opened_at))

    @property
    def stats(self) -> BreakerStats:
        successes, failures = self._stats.totals(self.clock())
        total = successes + failures
        return {
            "name": self.name, "state": self.state.name.lower(),
            "successes": successes, "failures": failures,
            "error_percentage": round(failures * 100.0 / total, 2) if total else 0.0,
            "retry_after": self.retry_after,
        }


# ─────────────────────────────────────────────────────────────────────────────
# Registry
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(slots=True)
class BreakerRegistry:
    """One lazily created breaker per logical operation name, all sharing the same thresholds.

    Example:
        >>> registry = BreakerRegistry(reset_timeout=30.0)
        >>> registry.get("createSession") is registry.get("createSession")
        True
    """

    error_threshold_percentage: float = 50.0
    volume_threshold: int = 10
    rolling_window: float = 10.0
    rolling_buckets: int = 10
    reset_timeout: float = 30.0
    ignore: tuple[type[BaseException], ...] = DEFAULT_IGNORED
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)
    _breakers: dict[str, CircuitBreaker] = field(default_factory=dict, init=False, repr=False)

    def get(self, name: str) -> CircuitBreaker:
        if (breaker := self._breakers.get(name)) is None:
            breaker = self._breakers[name] = CircuitBreaker(
                name,
                error_threshold_percentage=self.error_threshold_percentage,
                volume_threshold=self.volume_threshold,
                rolling_window=self.rolling_window,
                rolling_buckets=self.rolling_buckets,
                reset_timeout=self.reset_timeout,
                ignore=self.ignore,
                clock=self.clock,
            )
        return breaker

    def __contains__(self, name: object) -> bool:
        return name in self._breakers

    def __len__(self) -> int:
        return len(self._breakers)

    def names(self) -> list[str]:
        return sorted(self._breakers)

    def stats(self) -> dict[str, BreakerStats]:
        """Snapshot of every breaker for monitoring."""
        return {name: b.stats for name, b in sorted(self._breakers.items())}

    def reset(self) -> None:
        for breaker in self._breakers.values():
            breaker.reset()
