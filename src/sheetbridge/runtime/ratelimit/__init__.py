"""Per-user sliding-window rate limiting."""

from .limiter import RateDecision, SlidingWindowLimiter

__all__ = ["RateDecision", "SlidingWindowLimiter"]
