"""sheetbridge - Resilient batched edits against a remote workbook API.

Applies ordered batches of typed edit operations (insert, update, delete,
format, table, chart) to remote spreadsheets on behalf of many callers, with
session caching, circuit breakers, retry with server-directed backoff,
per-user rate limiting and idempotent replay.

Quick Start:
    >>> from sheetbridge import build_orchestrator, CallerIdentity, DocumentHandle
    >>>
    >>> async with build_orchestrator() as orchestrator:
    ...     outcome = await orchestrator.apply_batch(
    ...         DocumentHandle(item_id="wb1"),
    ...         [{"type": "insert", "target": "A1:B2", "data": [["Name", "Value"], ["Test", 123]]}],
    ...         idempotency_key="k1",
    ...         caller=CallerIdentity(user_id="u1", credential=inbound_token),
    ...     )
"""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = [
    # Orchestration
    "build_orchestrator", "BatchOrchestrator", "BatchOutcome", "Applied", "RateLimited", "AuthFailed", "BatchFailed",
    # Models
    "DocumentHandle", "Operation", "OperationBatch", "OperationResult", "OperationFailure", "CallerIdentity",
    # Errors
    "ErrorCode", "SheetbridgeError", "ValidationError", "AuthExchangeError", "RateLimitedError", "BatchFailedError",
    # Config
    "SheetbridgeSettings", "get_settings",
    # Logging
    "configure_logging", "get_logger",
]

_WORKBOOK = frozenset({
    "build_orchestrator", "BatchOrchestrator", "BatchOutcome", "Applied", "RateLimited", "AuthFailed", "BatchFailed",
    "DocumentHandle", "Operation", "OperationBatch", "OperationResult", "OperationFailure", "CallerIdentity",
})


def __getattr__(name: str):
    """Lazy imports keep `import sheetbridge` cheap and cycle-free."""
    if name in _WORKBOOK:
        from . import workbook
        return getattr(workbook, name)
    if name in ("ErrorCode", "SheetbridgeError", "ValidationError", "AuthExchangeError",
                "RateLimitedError", "BatchFailedError"):
        from .foundation import errors
        return getattr(errors, name)
    if name in ("SheetbridgeSettings", "get_settings"):
        from .foundation import config
        return getattr(config, name)
    if name in ("configure_logging", "get_logger"):
        from .runtime import observability
        return getattr(observability, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
