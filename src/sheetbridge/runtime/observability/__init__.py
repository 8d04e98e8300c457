"""Observability: structured logging and metrics.

Logging:
    >>> from sheetbridge.runtime.observability import configure_logging, get_logger
    >>> configure_logging(format="json", level="INFO")
    >>> get_logger("sheetbridge").info("ready")

Metrics:
    >>> from sheetbridge.runtime.observability import Metrics, OpenTelemetryMetricsBackend
    >>> metrics = Metrics(OpenTelemetryMetricsBackend())
"""

from .logging import (
    BoundLogger,
    CaptureRenderer,
    ConsoleRenderer,
    JsonRenderer,
    LogEntry,
    LogRenderer,
    NoOpRenderer,
    configure_logging,
    get_logger,
    log_context,
)
from .metrics import (
    InMemoryMetricsBackend,
    LogMetricsBackend,
    Metrics,
    MetricsBackend,
    OpenTelemetryMetricsBackend,
)

__all__ = [
    # Logging
    "BoundLogger", "LogEntry", "LogRenderer", "ConsoleRenderer", "JsonRenderer", "NoOpRenderer",
    "CaptureRenderer", "configure_logging", "get_logger", "log_context",
    # Metrics
    "MetricsBackend", "LogMetricsBackend", "InMemoryMetricsBackend", "OpenTelemetryMetricsBackend", "Metrics",
]
