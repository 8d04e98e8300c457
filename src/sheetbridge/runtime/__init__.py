"""Runtime - Remote-call protection, admission control and monitoring.

Contains: resilience (breakers, guarded calls), retry, ratelimit, observability.
"""

from __future__ import annotations

__all__ = [
    # Resilience
    "State", "CircuitBreaker", "BreakerRegistry", "RemoteGuard",
    # Retry
    "Backoff", "ExponentialBackoff", "ConstantBackoff", "RetryPolicy", "execute_with_retry",
    # Rate limiting
    "RateDecision", "SlidingWindowLimiter",
    # Observability
    "BoundLogger", "configure_logging", "get_logger", "log_context",
    "Metrics", "MetricsBackend", "LogMetricsBackend", "InMemoryMetricsBackend", "OpenTelemetryMetricsBackend",
]


def __getattr__(name: str):
    """Lazy imports to avoid circular dependencies."""
    if name in ("State", "CircuitBreaker", "BreakerRegistry", "RemoteGuard"):
        from . import resilience
        return getattr(resilience, name)

    if name in ("Backoff", "ExponentialBackoff", "ConstantBackoff", "RetryPolicy", "execute_with_retry"):
        from . import retry
        return getattr(retry, name)

    if name in ("RateDecision", "SlidingWindowLimiter"):
        from . import ratelimit
        return getattr(ratelimit, name)

    if name in ("BoundLogger", "configure_logging", "get_logger", "log_context", "Metrics", "MetricsBackend",
                "LogMetricsBackend", "InMemoryMetricsBackend", "OpenTelemetryMetricsBackend"):
        from . import observability
        return getattr(observability, name)

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
