"""Error taxonomy for batch application.

Every failure the core can produce derives from SheetbridgeError and carries
a machine-readable ErrorCode. Batch-level errors abort the whole batch;
operation-level failures are folded into the result by the executor and
never raised to the caller.

Hierarchy:
    SheetbridgeError
    ├── ValidationError           malformed batch, unknown operation type
    ├── AuthExchangeError         credential exchange failed
    ├── RateLimitedError          per-user quota exceeded
    ├── RemoteError               remote document API failures (status-bearing)
    │   ├── RemoteThrottledError  429, retried
    │   ├── RemoteConflictError   409, not retried
    │   ├── RemoteLockedError     423, not retried
    │   ├── RemoteClientError     other 4xx, not retried
    │   ├── RemoteTransientError  5xx / network, retried
    │   │   └── RemoteTimeoutError  hard per-call timeout
    │   └── RemoteUnavailableError  circuit open, fast-fail
    └── BatchFailedError          batch-level wrapper around a remote failure
"""

from __future__ import annotations

from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from enum import StrEnum
from typing import ClassVar, Self

from pydantic import BaseModel, ConfigDict, Field


class ErrorCode(StrEnum):
    """Standard error codes surfaced to callers."""
    INVALID_BATCH = "INVALID_BATCH"
    AUTH_EXCHANGE_FAILED = "AUTH_EXCHANGE_FAILED"
    RATE_LIMITED = "RATE_LIMITED"
    REMOTE_THROTTLED = "REMOTE_THROTTLED"
    REMOTE_CONFLICT = "REMOTE_CONFLICT"
    REMOTE_LOCKED = "REMOTE_LOCKED"
    REMOTE_CLIENT_ERROR = "REMOTE_CLIENT_ERROR"
    REMOTE_TRANSIENT = "REMOTE_TRANSIENT"
    REMOTE_TIMEOUT = "REMOTE_TIMEOUT"
    REMOTE_UNAVAILABLE = "REMOTE_UNAVAILABLE"
    BATCH_FAILED = "BATCH_FAILED"
    UNKNOWN = "UNKNOWN"


class ErrorInfo(BaseModel):
    """Serializable view of an error for caller-facing responses."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    code: ErrorCode
    message: str
    recoverable: bool = False
    status: int | None = None
    retry_after: float | None = Field(default=None, alias="retryAfter")


class SheetbridgeError(Exception):
    """Base exception. Subclasses pin their code and recoverability."""

    code: ClassVar[ErrorCode] = ErrorCode.UNKNOWN
    recoverable: ClassVar[bool] = False

    def __init__(self, message: str, *, status: int | None = None, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.retry_after = retry_after

    def info(self) -> ErrorInfo:
        return ErrorInfo(
            code=self.code, message=self.message, recoverable=self.recoverable,
            status=self.status, retry_after=self.retry_after,
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, status={self.status}, retry_after={self.retry_after})"


class ValidationError(SheetbridgeError):
    """Malformed batch. Raised before any remote call is made."""
    code = ErrorCode.INVALID_BATCH


class AuthExchangeError(SheetbridgeError):
    """Inbound credential could not be exchanged for a remote credential."""
    code = ErrorCode.AUTH_EXCHANGE_FAILED


class RateLimitedError(SheetbridgeError):
    """Caller exceeded the per-user quota. Back off until reset_at (epoch seconds)."""
    code = ErrorCode.RATE_LIMITED
    recoverable = True

    def __init__(self, message: str, *, remaining: int, reset_at: float, now: float) -> None:
        super().__init__(message, status=429, retry_after=max(0.0, reset_at - now))
        self.remaining = remaining
        self.reset_at = reset_at


class RemoteError(SheetbridgeError):
    """Failure reported by (or while reaching) the remote document API."""
    code = ErrorCode.REMOTE_CLIENT_ERROR

    @property
    def retryable(self) -> bool:
        """Any 4xx except 429 is final; everything else may be retried."""
        return self.status is None or not (400 <= self.status < 500) or self.status == 429


class RemoteThrottledError(RemoteError):
    code = ErrorCode.REMOTE_THROTTLED
    recoverable = True


class RemoteConflictError(RemoteError):
    """Document modified concurrently. Caller should refresh and resubmit."""
    code = ErrorCode.REMOTE_CONFLICT


class RemoteLockedError(RemoteError):
    """Document locked by another session."""
    code = ErrorCode.REMOTE_LOCKED


class RemoteClientError(RemoteError):
    code = ErrorCode.REMOTE_CLIENT_ERROR


class RemoteTransientError(RemoteError):
    code = ErrorCode.REMOTE_TRANSIENT
    recoverable = True


class RemoteTimeoutError(RemoteTransientError):
    code = ErrorCode.REMOTE_TIMEOUT


class RemoteUnavailableError(RemoteError):
    """Circuit open for the logical operation; no remote call was attempted."""
    code = ErrorCode.REMOTE_UNAVAILABLE
    recoverable = True

    def __init__(self, operation: str, *, retry_after: float | None = None) -> None:
        super().__init__(f"Remote operation '{operation}' unavailable: circuit open", retry_after=retry_after)
        self.operation = operation

    @property
    def retryable(self) -> bool:
        return False


class BatchFailedError(SheetbridgeError):
    """Batch aborted before operations could be applied.

    Adopts the cause's code, status and retry-after so callers can tell a
    throttled, locked or conflicting document apart from a generic failure.
    """
    code = ErrorCode.BATCH_FAILED

    def __init__(self, message: str, *, cause: SheetbridgeError | None = None) -> None:
        super().__init__(
            message,
            status=cause.status if cause else None,
            retry_after=cause.retry_after if cause else None,
        )
        self.cause = cause

    def info(self) -> ErrorInfo:
        code = self.cause.code if self.cause else self.code
        recoverable = self.cause.recoverable if self.cause else False
        return ErrorInfo(code=code, message=self.message, recoverable=recoverable,
                         status=self.status, retry_after=self.retry_after)

    @classmethod
    def wrap(cls, exc: SheetbridgeError, context: str) -> Self:
        return cls(f"{context}: {exc.message}", cause=exc)


# ─────────────────────────────────────────────────────────────────────────────
# Status Mapping
# ─────────────────────────────────────────────────────────────────────────────

_STATUS_ERRORS: dict[int, type[RemoteError]] = {
    409: RemoteConflictError,
    423: RemoteLockedError,
    429: RemoteThrottledError,
}


def remote_error_from_status(status: int, message: str, retry_after: float | None = None) -> RemoteError:
    """Map an HTTP status from the remote API to the matching RemoteError."""
    if (cls := _STATUS_ERRORS.get(status)) is not None:
        return cls(message, status=status, retry_after=retry_after)
    if 400 <= status < 500:
        return RemoteClientError(message, status=status, retry_after=retry_after)
    return RemoteTransientError(message, status=status, retry_after=retry_after)


def parse_retry_after(value: str | None, *, now: datetime | None = None) -> float | None:
    """Parse a Retry-After header as seconds. Accepts delta-seconds or an HTTP date."""
    if not value or not (value := value.strip()):
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    return max(0.0, (when - (now or datetime.now(UTC))).total_seconds())
