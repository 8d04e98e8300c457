"""Wiring of a BatchOrchestrator from settings."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import httpx

from sheetbridge.foundation.config import get_settings
from sheetbridge.io.store import create_store
from sheetbridge.runtime.observability import Metrics, configure_logging
from sheetbridge.runtime.ratelimit import SlidingWindowLimiter
from sheetbridge.runtime.resilience import BreakerRegistry, RemoteGuard
from sheetbridge.runtime.retry import RetryPolicy

from .credentials import OnBehalfOfExchange
from .executor import OperationExecutor
from .idempotency import IdempotencyStore
from .orchestrator import BatchOrchestrator
from .sessions import SessionCache

if TYPE_CHECKING:
    from sheetbridge.foundation.config import SheetbridgeSettings
    from sheetbridge.io.store import KeyValueStore
    from sheetbridge.runtime.retry.policy import Sleep

    from .credentials import CredentialExchange


def build_orchestrator(
    settings: SheetbridgeSettings | None = None,
    *,
    http: httpx.AsyncClient | None = None,
    store: KeyValueStore | None = None,
    credentials: CredentialExchange | None = None,
    metrics: Metrics | None = None,
    sleep: Sleep = asyncio.sleep,
    configure_logs: bool = True,
) -> BatchOrchestrator:
    """Build a fully wired orchestrator.

    Anything not passed in is created from settings. Resources created here
    (HTTP pool, store connection) are closed by BatchOrchestrator.aclose();
    ones passed in are left to the caller.

    Example:
        >>> orchestrator = build_orchestrator()  # env / .env driven
        >>> orchestrator = build_orchestrator(store=MemoryStore(), credentials=StaticCredentialExchange("t"))
    """
    settings = settings or get_settings()
    if configure_logs:
        configure_logging(settings.logging.format, settings.logging.level)
    owns_http, owns_store = http is None, store is None
    metrics = metrics or Metrics()
    if http is None:
        http = httpx.AsyncClient(
            base_url=settings.remote.base_url,
            timeout=settings.breaker.call_timeout,
            headers={"User-Agent": settings.remote.user_agent},
        )
    store = store or create_store(settings.store)

    b = settings.breaker
    breakers = BreakerRegistry(
        error_threshold_percentage=b.error_threshold_percentage,
        volume_threshold=b.volume_threshold,
        rolling_window=b.rolling_window,
        rolling_buckets=b.rolling_buckets,
        reset_timeout=b.reset_timeout,
    )
    r = settings.retry
    guard = RemoteGuard(
        breakers,
        RetryPolicy.from_settings(r.max_attempts, r.base_delay, r.max_jitter),
        call_timeout=b.call_timeout,
        metrics=metrics,
        sleep=sleep,
    )
    return BatchOrchestrator(
        http=http,
        credentials=credentials or OnBehalfOfExchange.from_settings(http, settings.auth),
        sessions=SessionCache(store, guard, ttl=settings.session.ttl,
                              persist_changes=settings.session.persist_changes),
        idempotency=IdempotencyStore(store, ttl=settings.idempotency.ttl, prefix=settings.idempotency.prefix),
        limiter=SlidingWindowLimiter(store),
        executor=OperationExecutor(guard, settings.remote.default_worksheet, metrics),
        guard=guard,
        store=store,
        rate_limit_enabled=settings.rate_limit.enabled,
        quota=settings.rate_limit.quota,
        window_seconds=settings.rate_limit.window_seconds,
        metrics=metrics,
        owns_http=owns_http,
        owns_store=owns_store,
    )
