"""Backoff strategy for remote-call retries.

Delay before retry attempt n (0-indexed, first retry = attempt 0):
- server-directed: the failure's Retry-After seconds, used verbatim
- otherwise: base * multiplier ** attempt

Uniform jitter in [0, max_jitter] is added in both cases so concurrent
retriers against the same throttled API do not wake in lockstep.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable


@runtime_checkable
class Backoff(Protocol):
    """Protocol for backoff delay calculation.

    Implementations compute the delay before the next retry attempt.
    Attempt numbers are 0-indexed (first retry = attempt 0).
    """

    def delay(self, attempt: int, retry_after: float | None = None) -> float:
        """Calculate delay in seconds for given attempt number.

        Args:
            attempt: 0-indexed retry attempt number
            retry_after: Server-provided delay in seconds, overrides the computed base

        Returns:
            Delay in seconds before next retry
        """
        ...


@dataclass(frozen=True, slots=True)
class ExponentialBackoff:
    """Exponential backoff with server override and additive jitter.

    Delay = (retry_after or base * (multiplier ^ attempt)) + uniform(0, max_jitter)

    Attributes:
        base: Initial delay in seconds (default: 1.0)
        multiplier: Exponential growth factor (default: 2.0)
        max_jitter: Upper bound of added jitter in seconds (default: 1.0)
    """

    base: float = 1.0
    multiplier: float = 2.0
    max_jitter: float = 1.0
    rng: random.Random = field(default_factory=random.Random, repr=False, compare=False)

    def delay(self, attempt: int, retry_after: float | None = None) -> float:
        d = retry_after if retry_after is not None else self.base * (self.multiplier ** attempt)
        return d + (self.rng.uniform(0.0, self.max_jitter) if self.max_jitter > 0 else 0.0)


@dataclass(frozen=True, slots=True)
class ConstantBackoff:
    """Fixed delay between retries, still honoring server-directed delays.

    Attributes:
        delay_seconds: Fixed delay in seconds (default: 1.0)
    """

    delay_seconds: float = 1.0

    def delay(self, attempt: int, retry_after: float | None = None) -> float:
        return retry_after if retry_after is not None else self.delay_seconds
