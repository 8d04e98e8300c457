"""Tests for structured logging and metrics emission."""

from __future__ import annotations

import io

import orjson
import pytest

from sheetbridge.runtime.observability import (
    CaptureRenderer,
    ConsoleRenderer,
    InMemoryMetricsBackend,
    Metrics,
    configure_logging,
    get_logger,
    log_context,
)


class TestLogging:
    def test_scoped_context_merges_into_entries(self) -> None:
        capture = configure_logging(renderer=CaptureRenderer())
        log = get_logger("sheetbridge.test", component="executor")
        with log_context(item_id="wb1"):
            log.info("operation failed", index=2)
        log.info("after")

        first, second = capture.entries
        assert first.event == "operation failed"
        assert first.context == {"item_id": "wb1", "component": "executor", "logger": "sheetbridge.test", "index": 2}
        assert "item_id" not in second.context

    def test_bind_returns_new_logger(self) -> None:
        capture = configure_logging(renderer=CaptureRenderer())
        base = get_logger("sheetbridge.test")
        bound = base.bind(session_id="s1")
        bound.info("bound")
        base.info("base")
        assert capture.entries[0].context["session_id"] == "s1"
        assert "session_id" not in capture.entries[1].context

    def test_level_filtering(self) -> None:
        capture = configure_logging(level="WARNING", renderer=CaptureRenderer())
        log = get_logger("sheetbridge.test")
        log.info("hidden")
        log.warning("shown")
        assert capture.events() == ["shown"]
        assert capture.events("warning") == ["shown"]

    def test_json_renderer(self) -> None:
        out = io.StringIO()
        configure_logging(format="json", output=out)
        get_logger("sheetbridge.test").info("session created", session_id="s1")
        line = orjson.loads(out.getvalue())
        assert line["event"] == "session created"
        assert line["level"] == "info"
        assert line["session_id"] == "s1"
        assert "timestamp" in line

    def test_console_renderer_without_colors(self) -> None:
        out = io.StringIO()
        configure_logging(renderer=ConsoleRenderer(output=out, colors=False, show_timestamp=False))
        get_logger().warning("circuit opened", name="createSession", failures=5)
        assert out.getvalue().strip() == '[warning] circuit opened failures=5 name="createSession"'

    def test_unknown_format(self) -> None:
        with pytest.raises(ValueError, match="Unknown format"):
            configure_logging(format="xml")


class TestMetrics:
    def test_in_memory_counts_by_tag(self) -> None:
        backend = InMemoryMetricsBackend()
        metrics = Metrics(backend)
        metrics.increment("remote.calls", name="createSession")
        metrics.increment("remote.calls", name="applyRange")
        metrics.increment("remote.calls", 2, name="applyRange")
        metrics.timing("remote.duration_ms", 12.5, name="applyRange")
        assert backend.count("remote.calls") == 4
        assert backend.count("remote.calls", name="applyRange") == 3
        assert backend.timings["remote.duration_ms"] == [12.5]

    def test_failing_backend_is_logged_not_raised(self) -> None:
        class Broken:
            def increment(self, metric: str, value: int = 1, tags: dict[str, str] | None = None) -> None:
                raise ConnectionError("collector down")

            def timing(self, metric: str, value_ms: float, tags: dict[str, str] | None = None) -> None:
                raise ConnectionError("collector down")

        capture = configure_logging(renderer=CaptureRenderer())
        metrics = Metrics(Broken())
        metrics.increment("remote.calls")
        metrics.timing("remote.duration_ms", 1.0)
        assert capture.events("warning") == ["metrics backend failed", "metrics backend failed"]
