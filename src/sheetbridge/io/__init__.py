"""IO - Storage backends for shared state."""

from __future__ import annotations

__all__ = ["KeyValueStore", "MemoryStore", "RedisStore", "WindowState", "create_store"]


def __getattr__(name: str):
    """Lazy imports to avoid optional-dependency imports."""
    if name in __all__:
        from . import store
        return getattr(store, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
