"""Configuration management using pydantic-settings.

Provides environment-based configuration with type safety and validation.
"""

from .settings import (
    AuthSettings,
    BreakerSettings,
    IdempotencySettings,
    LoggingSettings,
    RateLimitSettings,
    RemoteSettings,
    RetrySettings,
    SessionSettings,
    SheetbridgeSettings,
    StoreSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    "AuthSettings",
    "BreakerSettings",
    "IdempotencySettings",
    "LoggingSettings",
    "RateLimitSettings",
    "RemoteSettings",
    "RetrySettings",
    "SessionSettings",
    "SheetbridgeSettings",
    "StoreSettings",
    "clear_settings_cache",
    "get_settings",
]
