"""Environment-based configuration using pydantic-settings.

Provides type-safe, validated configuration from environment variables
with defaults matching the remote workbook API's operating envelope.
Supports .env files and nested configuration.

Example:
    >>> from sheetbridge.foundation.config import get_settings
    >>> settings = get_settings()
    >>> settings.session.ttl
    300.0
    >>> settings.breaker.error_threshold_percentage
    50.0

    # Or with environment variables:
    # SHEETBRIDGE_SESSION_TTL=600
    # SHEETBRIDGE_RATELIMIT_QUOTA=50
    # SHEETBRIDGE_STORE_REDIS_URL=redis://localhost:6379/0
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated, Literal

from pydantic import (
    Field,
    NonNegativeFloat,
    PositiveFloat,
    PositiveInt,
    SecretStr,
    computed_field,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict


class SessionSettings(BaseSettings):
    """Remote workbook session caching."""

    model_config = SettingsConfigDict(env_prefix="SHEETBRIDGE_SESSION_", extra="ignore")

    ttl: PositiveFloat = Field(default=300.0, description="Session cache TTL, renewed on every hit")
    persist_changes: bool = True


class IdempotencySettings(BaseSettings):
    """Idempotent replay retention."""

    model_config = SettingsConfigDict(env_prefix="SHEETBRIDGE_IDEMPOTENCY_", extra="ignore")

    ttl: PositiveFloat = Field(default=86400.0, description="Retention window for stored batch results")
    prefix: str = "idem:"


class RateLimitSettings(BaseSettings):
    """Per-user sliding window admission."""

    model_config = SettingsConfigDict(env_prefix="SHEETBRIDGE_RATELIMIT_", extra="ignore")

    enabled: bool = True
    quota: PositiveInt = Field(default=100, description="Max batches per window per user")
    window_seconds: PositiveFloat = Field(default=60.0, description="Sliding window length in seconds")


class BreakerSettings(BaseSettings):
    """Circuit breaker thresholds shared by every logical remote operation."""

    model_config = SettingsConfigDict(env_prefix="SHEETBRIDGE_BREAKER_", extra="ignore")

    error_threshold_percentage: Annotated[float, Field(gt=0.0, le=100.0)] = 50.0
    volume_threshold: PositiveInt = Field(default=10, description="Min calls in window before tripping")
    rolling_window: PositiveFloat = Field(default=10.0, description="Rolling stats window in seconds")
    rolling_buckets: PositiveInt = 10
    reset_timeout: PositiveFloat = Field(default=30.0, description="Seconds open before a half-open trial")
    call_timeout: PositiveFloat = Field(default=30.0, description="Hard per-call timeout in seconds")


class RetrySettings(BaseSettings):
    """Retry and backoff for remote calls."""

    model_config = SettingsConfigDict(env_prefix="SHEETBRIDGE_RETRY_", extra="ignore")

    max_attempts: Annotated[int, Field(ge=1, le=10)] = 3
    base_delay: PositiveFloat = Field(default=1.0, description="Backoff base in seconds")
    max_jitter: NonNegativeFloat = Field(default=1.0, description="Upper bound of uniform jitter in seconds")


class RemoteSettings(BaseSettings):
    """Remote document API endpoint."""

    model_config = SettingsConfigDict(env_prefix="SHEETBRIDGE_REMOTE_", extra="ignore")

    base_url: str = "https://graph.microsoft.com/v1.0"
    default_worksheet: str = "Sheet1"
    user_agent: str = "sheetbridge/0.1"

    @field_validator("base_url", mode="after")
    @classmethod
    def _strip_slash(cls, v: str) -> str:
        return v.rstrip("/")


class AuthSettings(BaseSettings):
    """On-behalf-of credential exchange."""

    model_config = SettingsConfigDict(env_prefix="SHEETBRIDGE_AUTH_", extra="ignore")

    tenant_id: str = "common"
    client_id: str = ""
    client_secret: SecretStr = SecretStr("")
    authority: str = "https://login.microsoftonline.com"
    scopes: tuple[str, ...] = ("https://graph.microsoft.com/.default",)


class StoreSettings(BaseSettings):
    """Backing store for sessions, idempotency records and rate windows."""

    model_config = SettingsConfigDict(env_prefix="SHEETBRIDGE_STORE_", extra="ignore")

    redis_url: SecretStr | None = Field(default=None, description="Redis URL for shared state")
    prefix: str = "sheetbridge:"

    @computed_field
    @property
    def backend(self) -> Literal["memory", "redis"]:
        """Determine store backend from configuration."""
        return "redis" if self.redis_url else "memory"


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="SHEETBRIDGE_LOG_", extra="ignore")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json", "none"] = "console"


class SheetbridgeSettings(BaseSettings):
    """Root settings.

    Loads configuration from environment variables with SHEETBRIDGE_ prefix.
    Supports nested configuration and .env files.

    Example environment variables:
        SHEETBRIDGE_ENVIRONMENT=production
        SHEETBRIDGE_BREAKER_RESET_TIMEOUT=60
        SHEETBRIDGE_RETRY_MAX_ATTEMPTS=5
        SHEETBRIDGE_LOG_FORMAT=json
    """

    model_config = SettingsConfigDict(
        env_prefix="SHEETBRIDGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        validate_default=True,
    )

    environment: Literal["development", "staging", "production"] = "development"

    session: SessionSettings = Field(default_factory=SessionSettings)
    idempotency: IdempotencySettings = Field(default_factory=IdempotencySettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    breaker: BreakerSettings = Field(default_factory=BreakerSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    remote: RemoteSettings = Field(default_factory=RemoteSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @field_validator("environment", mode="before")
    @classmethod
    def _normalize_env(cls, v: str) -> str:
        """Normalize environment name to lowercase."""
        return v.lower() if isinstance(v, str) else v

    @computed_field
    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> SheetbridgeSettings:
    """Get the process settings instance (cached)."""
    return SheetbridgeSettings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing).

    After calling this, the next get_settings() call will
    reload configuration from environment.
    """
    get_settings.cache_clear()
