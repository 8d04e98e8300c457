"""Batch orchestration: the single entry point for applying edits.

run(batch, caller), in order:
    1. Idempotency: replay a stored result, or join an in-flight submission
    2. Rate limit: per-user sliding window (RateLimitedError on denial)
    3. Credential exchange: caller credential → remote token (AuthExchangeError)
    4. Session: cached or newly created (failure → BatchFailedError)
    5. Execute operations sequentially
    6. Store the result under the idempotency key
    7. Return the result

apply_batch() wraps run() for transports that want a value rather than an
exception: it returns one of Applied, RateLimited, AuthFailed or BatchFailed.

close_session() ends the cached remote session for a document early.
"""

from __future__ import annotations

import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sheetbridge.foundation.errors import (
    AuthExchangeError,
    BatchFailedError,
    ErrorCode,
    RateLimitedError,
    RemoteError,
    SheetbridgeError,
)
from sheetbridge.runtime.observability import Metrics, get_logger, log_context

from .client import WorkbookClient
from .models import OperationBatch

if TYPE_CHECKING:
    from types import TracebackType

    import httpx

    from sheetbridge.io.store import KeyValueStore
    from sheetbridge.runtime.ratelimit import SlidingWindowLimiter
    from sheetbridge.runtime.resilience import BreakerRegistry, RemoteGuard

    from .credentials import CredentialExchange
    from .executor import OperationExecutor
    from .idempotency import IdempotencyStore
    from .models import CallerIdentity, DocumentHandle, Operation, OperationResult, WorksheetInfo
    from .sessions import SessionCache

log = get_logger("sheetbridge.orchestrator")


# ─────────────────────────────────────────────────────────────────────────────
# Outcomes
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class Applied:
    """Batch ran (or was replayed). Per-operation failures live in result.errors."""
    result: OperationResult


@dataclass(frozen=True, slots=True)
class RateLimited:
    """Caller exceeded the quota; back off until reset_at (epoch seconds)."""
    remaining: int
    reset_at: float
    retry_after: float


@dataclass(frozen=True, slots=True)
class AuthFailed:
    message: str


@dataclass(frozen=True, slots=True)
class BatchFailed:
    """Batch aborted without a result. code distinguishes throttled, locked, conflict, unavailable, ..."""
    code: ErrorCode
    message: str
    status: int | None = None
    retry_after: float | None = None


BatchOutcome = Applied | RateLimited | AuthFailed | BatchFailed


# ─────────────────────────────────────────────────────────────────────────────
# Orchestrator
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(slots=True)
class BatchOrchestrator:
    """Ties idempotency, rate limiting, sessions and execution together.

    Holds the process-wide shared state (breakers, session cache, idempotency
    records, rate windows) through the components it is given. Build one per
    process with build_orchestrator() and close it with aclose().

    Example:
        >>> async with build_orchestrator() as orchestrator:
        ...     outcome = await orchestrator.apply_batch(
        ...         DocumentHandle(item_id="wb1"),
        ...         [{"type": "insert", "target": "A1:B2", "data": [["Name", "Value"], ["Test", 123]]}],
        ...         None, caller,
        ...     )
    """

    http: httpx.AsyncClient
    credentials: CredentialExchange
    sessions: SessionCache
    idempotency: IdempotencyStore
    limiter: SlidingWindowLimiter
    executor: OperationExecutor
    guard: RemoteGuard
    store: KeyValueStore
    rate_limit_enabled: bool = True
    quota: int = 100
    window_seconds: float = 60.0
    metrics: Metrics = field(default_factory=Metrics)
    owns_http: bool = True
    owns_store: bool = True

    @property
    def breakers(self) -> BreakerRegistry:
        return self.guard.breakers

    async def run(self, batch: OperationBatch, caller: CallerIdentity) -> OperationResult:
        """Apply a validated batch on behalf of caller.

        Raises:
            RateLimitedError: Caller is over quota
            AuthExchangeError: Caller credential could not be exchanged
            BatchFailedError: Session could not be acquired
        """
        start = time.perf_counter()
        with log_context(item_id=batch.document.item_id, user_id=caller.user_id,
                         idempotency_key=batch.idempotency_key):
            log.info("batch started", operations=len(batch.operations))
            if (key := batch.idempotency_key) is not None:
                result, replayed = await self.idempotency.run_once(key, lambda: self._execute(batch, caller))
            else:
                result, replayed = await self._execute(batch, caller), False
            duration_ms = (time.perf_counter() - start) * 1000
            self.metrics.timing("batch.duration_ms", duration_ms, replayed=str(replayed).lower())
            log.info("batch finished", applied=len(result.applied), errors=len(result.errors or ()),
                     replayed=replayed, duration_ms=round(duration_ms, 2))
            return result

    async def _execute(self, batch: OperationBatch, caller: CallerIdentity) -> OperationResult:
        if self.rate_limit_enabled:
            await self.limiter.acquire(caller.user_id, self.quota, self.window_seconds)
        client = await self._client(caller)
        try:
            session = await self.sessions.acquire(batch.document, client)
        except RemoteError as e:
            log.error("session acquisition failed", code=e.code, status=e.status, error=e.message)
            raise BatchFailedError.wrap(e, "Session acquisition failed") from e
        return await self.executor.apply(batch.document, session, batch.operations, client)

    async def _client(self, caller: CallerIdentity) -> WorkbookClient:
        try:
            token = await self.credentials.exchange(caller.credential)
        except AuthExchangeError:
            log.warning("credential exchange failed", user_id=caller.user_id)
            raise
        return WorkbookClient(self.http, token)

    async def apply_batch(
        self,
        document: DocumentHandle | Mapping[str, Any],
        operations: Sequence[Operation | Mapping[str, Any]],
        idempotency_key: str | None,
        caller: CallerIdentity,
    ) -> BatchOutcome:
        """Validate and run a batch, mapping every batch-level failure to an outcome value."""
        try:
            batch = OperationBatch.parse({
                "documentHandle": document, "operations": list(operations), "idempotencyKey": idempotency_key,
            })
            return Applied(await self.run(batch, caller))
        except RateLimitedError as e:
            return RateLimited(e.remaining, e.reset_at, e.retry_after or 0.0)
        except AuthExchangeError as e:
            return AuthFailed(e.message)
        except SheetbridgeError as e:
            info = e.info()
            return BatchFailed(info.code, e.message, e.status, e.retry_after)

    async def worksheets(self, document: DocumentHandle, caller: CallerIdentity) -> list[WorksheetInfo]:
        """Worksheet metadata for a document (breaker and retry protected)."""
        client = await self._client(caller)
        return await self.guard.call("listWorksheets", lambda: client.list_worksheets(document))

    async def close_session(self, document: DocumentHandle, caller: CallerIdentity) -> bool:
        """Close the document's cached remote session, if any.

        The cache entry is dropped before the remote call, so a failed close
        still leaves the next batch to start a new session. Returns whether the
        remote side confirmed the close.

        Raises:
            AuthExchangeError: Caller credential could not be exchanged
        """
        if (session := await self.sessions.peek(document)) is None:
            return False
        await self.sessions.invalidate(document)
        client = await self._client(caller)
        return await client.close_session(document, session.session_id)

    # ─────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────

    async def aclose(self) -> None:
        """Release the HTTP pool and store connections this orchestrator created."""
        if self.owns_http:
            await self.http.aclose()
        if self.owns_store and (close := getattr(self.store, "close", None)) is not None:
            await close()

    async def __aenter__(self) -> BatchOrchestrator:
        return self

    async def __aexit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None,
                        exc_tb: TracebackType | None) -> None:
        await self.aclose()
