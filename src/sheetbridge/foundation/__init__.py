"""Foundation - Core building blocks for sheetbridge.

Contains: configuration and the error taxonomy.
"""

from __future__ import annotations

__all__ = [
    # Errors
    "ErrorCode", "ErrorInfo", "SheetbridgeError", "ValidationError", "AuthExchangeError",
    "RateLimitedError", "BatchFailedError", "RemoteError",
    # Config
    "SheetbridgeSettings", "get_settings", "clear_settings_cache",
]


def __getattr__(name: str):
    """Lazy imports to avoid circular dependencies."""
    if name in ("ErrorCode", "ErrorInfo", "SheetbridgeError", "ValidationError", "AuthExchangeError",
                "RateLimitedError", "BatchFailedError", "RemoteError"):
        from . import errors
        return getattr(errors, name)

    if name in ("SheetbridgeSettings", "get_settings", "clear_settings_cache"):
        from . import config
        return getattr(config, name)

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
