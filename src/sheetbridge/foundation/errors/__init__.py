"""Unified error handling for sheetbridge.

- ErrorCode: Standard error codes for batch and operation failures
- SheetbridgeError and subclasses: the batch/remote failure taxonomy
- ErrorInfo: serializable error view for callers
- remote_error_from_status / parse_retry_after: HTTP response classification
"""

from .errors import (
    AuthExchangeError,
    BatchFailedError,
    ErrorCode,
    ErrorInfo,
    RateLimitedError,
    RemoteClientError,
    RemoteConflictError,
    RemoteError,
    RemoteLockedError,
    RemoteThrottledError,
    RemoteTimeoutError,
    RemoteTransientError,
    RemoteUnavailableError,
    SheetbridgeError,
    ValidationError,
    parse_retry_after,
    remote_error_from_status,
)

__all__ = [
    "ErrorCode", "ErrorInfo", "SheetbridgeError",
    "ValidationError", "AuthExchangeError", "RateLimitedError", "BatchFailedError",
    "RemoteError", "RemoteThrottledError", "RemoteConflictError", "RemoteLockedError",
    "RemoteClientError", "RemoteTransientError", "RemoteTimeoutError", "RemoteUnavailableError",
    "remote_error_from_status", "parse_retry_after",
]
