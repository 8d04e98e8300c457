"""Async key-value storage for shared pipeline state.

Backs the session cache, idempotency records and per-user rate windows.

Backends:
    - MemoryStore: Thread-safe in-memory (default)
    - RedisStore: Async redis.asyncio backend (requires sheetbridge[redis])

All backends implement window_admit(), the atomic sliding-window primitive.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .store import KeyValueStore, MemoryStore, WindowState

if TYPE_CHECKING:
    from ...foundation.config import StoreSettings

__all__ = [
    "KeyValueStore",
    "MemoryStore",
    "WindowState",
    "create_store",
    # Redis (lazy import)
    "RedisStore",
]


def create_store(settings: StoreSettings) -> KeyValueStore:
    """Build the store backend selected by settings."""
    if settings.backend == "redis" and settings.redis_url is not None:
        from .redis import RedisStore
        return RedisStore.from_url(settings.redis_url.get_secret_value(), settings.prefix)
    return MemoryStore()


def __getattr__(name: str) -> object:
    """Lazy import Redis backend to avoid import-time dependency."""
    if name == "RedisStore":
        from .redis import RedisStore
        return RedisStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
