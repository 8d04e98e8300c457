"""Retry policies for remote calls.

Bounded attempts with exponential backoff, server-directed Retry-After
override and additive jitter.

Example:
    >>> from sheetbridge.runtime.retry import RetryPolicy, ExponentialBackoff, execute_with_retry
    >>> policy = RetryPolicy(max_attempts=3, backoff=ExponentialBackoff(base=1.0, max_jitter=1.0))
    >>> result = await execute_with_retry(lambda: client.list_worksheets(handle), policy, "worksheets")
"""

from .backoff import Backoff, ConstantBackoff, ExponentialBackoff
from .policy import RetryPolicy, execute_with_retry

__all__ = [
    # Backoff strategies
    "Backoff",
    "ExponentialBackoff",
    "ConstantBackoff",
    # Policy
    "RetryPolicy",
    # Execution
    "execute_with_retry",
]
