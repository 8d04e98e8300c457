"""Metrics emission for remote calls and batch execution.

Emits:
- workbook.operations: Counter per applied operation (tag: type)
- remote.calls: Counter per remote attempt (tag: name)
- remote.retries: Counter per scheduled retry (tag: name)
- remote.throttled: Counter per 429 response (tag: name)
- remote.duration_ms: Timing per remote attempt (tag: name)
- batch.duration_ms: Timing per orchestrated batch

Emission is fire-and-forget. A failing backend is logged, never raised into
the batch pipeline.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from .logging import get_logger

_log = get_logger("sheetbridge.metrics")


@runtime_checkable
class MetricsBackend(Protocol):
    """Protocol for metrics collection backends."""

    def increment(self, metric: str, value: int = 1, tags: dict[str, str] | None = None) -> None: ...
    def timing(self, metric: str, value_ms: float, tags: dict[str, str] | None = None) -> None: ...


@dataclass(slots=True)
class LogMetricsBackend:
    """Default metrics backend that writes debug log entries."""

    def increment(self, metric: str, value: int = 1, tags: dict[str, str] | None = None) -> None:
        if _log.is_enabled_for(logging.DEBUG):
            _log.debug("metric", metric=metric, value=value, **(tags or {}))

    def timing(self, metric: str, value_ms: float, tags: dict[str, str] | None = None) -> None:
        if _log.is_enabled_for(logging.DEBUG):
            _log.debug("metric", metric=metric, value_ms=round(value_ms, 2), **(tags or {}))


@dataclass(slots=True)
class InMemoryMetricsBackend:
    """Accumulates counters and timings in memory for inspection."""

    counters: dict[tuple[str, tuple[tuple[str, str], ...]], int] = field(default_factory=lambda: defaultdict(int))
    timings: dict[str, list[float]] = field(default_factory=lambda: defaultdict(list))

    def increment(self, metric: str, value: int = 1, tags: dict[str, str] | None = None) -> None:
        self.counters[(metric, tuple(sorted((tags or {}).items())))] += value

    def timing(self, metric: str, value_ms: float, tags: dict[str, str] | None = None) -> None:
        self.timings[metric].append(value_ms)

    def count(self, metric: str, **tags: str) -> int:
        """Sum of a counter across all tag sets matching the given tags."""
        return sum(v for (name, tagset), v in self.counters.items()
                   if name == metric and all(dict(tagset).get(k) == t for k, t in tags.items()))


@dataclass(slots=True)
class OpenTelemetryMetricsBackend:
    """OpenTelemetry meter backend with lazily created instruments.

    Requires: pip install sheetbridge[otel]
    """

    meter_name: str = "sheetbridge"
    _meter: Any = field(default=None, init=False, repr=False)
    _counters: dict[str, Any] = field(default_factory=dict, init=False, repr=False)
    _histograms: dict[str, Any] = field(default_factory=dict, init=False, repr=False)

    def _ensure_meter(self) -> Any:
        if self._meter is None:
            try:
                from opentelemetry import metrics
            except ImportError as e:
                raise ImportError(
                    "OpenTelemetry metrics require opentelemetry-api. "
                    "Install with: pip install sheetbridge[otel]"
                ) from e
            self._meter = metrics.get_meter(self.meter_name)
        return self._meter

    def increment(self, metric: str, value: int = 1, tags: dict[str, str] | None = None) -> None:
        if (counter := self._counters.get(metric)) is None:
            counter = self._counters[metric] = self._ensure_meter().create_counter(metric)
        counter.add(value, attributes=tags or {})

    def timing(self, metric: str, value_ms: float, tags: dict[str, str] | None = None) -> None:
        if (histogram := self._histograms.get(metric)) is None:
            histogram = self._histograms[metric] = self._ensure_meter().create_histogram(metric, unit="ms")
        histogram.record(value_ms, attributes=tags or {})


@dataclass(slots=True)
class Metrics:
    """Fire-and-forget facade over a MetricsBackend."""

    backend: MetricsBackend = field(default_factory=LogMetricsBackend)

    def increment(self, metric: str, value: int = 1, **tags: str) -> None:
        try:
            self.backend.increment(metric, value, tags or None)
        except Exception as e:  # noqa: BLE001 - metrics never break the pipeline
            _log.warning("metrics backend failed", metric=metric, error=str(e))

    def timing(self, metric: str, value_ms: float, **tags: str) -> None:
        try:
            self.backend.timing(metric, value_ms, tags or None)
        except Exception as e:  # noqa: BLE001
            _log.warning("metrics backend failed", metric=metric, error=str(e))
