"""Resilience primitives for remote calls.

- CircuitBreaker / BreakerRegistry: per-operation-name breakers with rolling error rate
- RemoteGuard: breaker gate + retry loop + per-attempt timeout in one call
"""

from .breaker import DEFAULT_IGNORED, BreakerRegistry, BreakerStats, CircuitBreaker, RollingStats, State
from .guard import RemoteGuard

__all__ = [
    "State",
    "CircuitBreaker",
    "BreakerRegistry",
    "BreakerStats",
    "RollingStats",
    "DEFAULT_IGNORED",
    "RemoteGuard",
]
