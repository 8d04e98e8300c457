"""Tests for sequential operation execution."""

from __future__ import annotations

from typing import Any

import pytest
from conftest import FakeClock, FakeGraph, RecordingSleep, status

from sheetbridge.foundation.errors import ErrorCode
from sheetbridge.runtime.observability import InMemoryMetricsBackend, Metrics
from sheetbridge.runtime.resilience import BreakerRegistry, RemoteGuard
from sheetbridge.runtime.retry import ConstantBackoff, RetryPolicy
from sheetbridge.workbook import (
    BREAKER_NAMES,
    DocumentHandle,
    OperationBatch,
    OperationExecutor,
    OperationType,
    Session,
    WorkbookClient,
)

HANDLE = DocumentHandle(item_id="wb1")
WORKBOOK = "/v1.0/me/drive/items/wb1/workbook"


@pytest.fixture
def breakers(clock: FakeClock) -> BreakerRegistry:
    return BreakerRegistry(clock=clock)


@pytest.fixture
def executor(
    breakers: BreakerRegistry, sleeps: RecordingSleep, metrics_backend: InMemoryMetricsBackend,
) -> OperationExecutor:
    guard = RemoteGuard(breakers, RetryPolicy(backoff=ConstantBackoff(0.0)), sleep=sleeps)
    return OperationExecutor(guard, metrics=Metrics(metrics_backend))


@pytest.fixture
def client(graph: FakeGraph) -> WorkbookClient:
    return WorkbookClient(graph.client(), "remote-token")


@pytest.fixture
def session(clock: FakeClock) -> Session:
    return Session(session_id="session-9", handle=HANDLE, created_at=clock(), expires_at=clock() + 300)


def ops(*raw: dict[str, Any]) -> tuple:
    return OperationBatch.parse({"documentHandle": {"itemId": "wb1"}, "operations": list(raw)}).operations


UPDATE = {"type": "update", "target": "A1", "data": [[1]]}
FORMAT = {"type": "format", "target": "A1", "data": {"font": {"bold": True}}}


class TestDispatch:
    @pytest.mark.asyncio
    async def test_every_type_hits_its_endpoint(
        self, executor: OperationExecutor, session: Session, client: WorkbookClient, graph: FakeGraph,
    ) -> None:
        batch = ops(
            {"type": "insert", "target": "A1:B2", "data": [["Name", "Value"], ["Test", 123]]},
            {"type": "update", "target": "C1", "data": [[0.5]],
             "options": {"worksheet": "Data", "numberFormat": [["0.00%"]]}},
            FORMAT,
            {"type": "delete", "target": "D1:D9"},
            {"type": "table", "target": "A1:B2", "options": {"hasHeaders": False}},
            {"type": "chart", "target": "A1:B2", "options": {"chartType": "Line"}},
        )
        result = await executor.apply(HANDLE, session, batch, client)

        assert result.ok
        assert result.session_id == "session-9"
        assert [op.type for op in result.applied] == ["insert", "update", "format", "delete", "table", "chart"]
        insert, update, fmt, clear, table, chart = graph.requests
        assert (insert.method, insert.url.path) == (
            "PATCH", f"{WORKBOOK}/worksheets('Sheet1')/range(address='A1:B2')")
        assert graph.body(insert) == {"values": [["Name", "Value"], ["Test", 123]]}
        assert update.url.path == f"{WORKBOOK}/worksheets('Data')/range(address='C1')"
        assert graph.body(update) == {"values": [[0.5]], "numberFormat": [["0.00%"]]}
        assert (fmt.method, fmt.url.path) == ("PATCH", f"{WORKBOOK}/worksheets('Sheet1')/range(address='A1')/format")
        assert graph.body(fmt) == {"font": {"bold": True}}
        assert (clear.method, graph.body(clear)) == ("POST", {"applyTo": "Contents"})
        assert table.url.path == f"{WORKBOOK}/worksheets('Sheet1')/tables/add"
        assert graph.body(table) == {"address": "A1:B2", "hasHeaders": False}
        assert graph.body(chart) == {"type": "Line", "sourceData": "A1:B2", "seriesBy": "Auto"}
        assert all(r.headers["workbook-session-id"] == "session-9" for r in graph.requests)
        assert all(r.headers["authorization"] == "Bearer remote-token" for r in graph.requests)

    @pytest.mark.asyncio
    async def test_breaker_names_per_type(
        self, executor: OperationExecutor, session: Session, client: WorkbookClient, breakers: BreakerRegistry,
    ) -> None:
        await executor.apply(HANDLE, session, ops(UPDATE, FORMAT, {"type": "delete", "target": "A1"}), client)
        assert set(breakers.names()) == {"applyRange", "formatRange", "clearRange"}
        assert BREAKER_NAMES[OperationType.INSERT] == BREAKER_NAMES[OperationType.UPDATE] == "applyRange"
        assert BREAKER_NAMES[OperationType.TABLE] == "addTable"
        assert BREAKER_NAMES[OperationType.CHART] == "addChart"

    @pytest.mark.asyncio
    async def test_worksheet_names_are_quoted(
        self, executor: OperationExecutor, session: Session, client: WorkbookClient, graph: FakeGraph,
    ) -> None:
        batch = ops({"type": "insert", "target": "A1", "data": [["x"]], "options": {"worksheet": "Bob's"}})
        await executor.apply(HANDLE, session, batch, client)
        assert graph.requests[0].url.path == f"{WORKBOOK}/worksheets('Bob''s')/range(address='A1')"

    @pytest.mark.asyncio
    async def test_counts_applied_operations(
        self, executor: OperationExecutor, session: Session, client: WorkbookClient,
        metrics_backend: InMemoryMetricsBackend,
    ) -> None:
        await executor.apply(HANDLE, session, ops(UPDATE, UPDATE, FORMAT), client)
        assert metrics_backend.count("workbook.operations") == 3
        assert metrics_backend.count("workbook.operations", type="update") == 2


class TestFailures:
    @pytest.mark.asyncio
    async def test_failure_stops_batch(
        self, executor: OperationExecutor, session: Session, client: WorkbookClient, graph: FakeGraph,
    ) -> None:
        graph.fail("range", status(423, message="locked by another user"))
        result = await executor.apply(HANDLE, session, ops(UPDATE, FORMAT), client)

        assert result.applied == ()
        [failure] = result.errors
        assert failure.index == 0
        assert failure.code == ErrorCode.REMOTE_LOCKED
        assert failure.status == 423
        assert "locked by another user" in failure.error
        assert graph.calls("format") == []
        assert '"errors":[{"index":0' in result.to_json()

    @pytest.mark.asyncio
    async def test_applied_is_prefix(
        self, executor: OperationExecutor, session: Session, client: WorkbookClient, graph: FakeGraph,
    ) -> None:
        graph.fail("format", status(400, message="bad style"))
        result = await executor.apply(HANDLE, session, ops(UPDATE, FORMAT, UPDATE), client)
        assert [op.type for op in result.applied] == ["update"]
        assert [f.index for f in result.errors] == [1]
        assert len(graph.calls("range")) == 1

    @pytest.mark.asyncio
    async def test_continue_on_error_keeps_going(
        self, executor: OperationExecutor, session: Session, client: WorkbookClient, graph: FakeGraph,
    ) -> None:
        graph.fail("format", status(400, message="bad style"))
        tolerant = {**FORMAT, "options": {"continueOnError": True}}
        result = await executor.apply(HANDLE, session, ops(UPDATE, tolerant, UPDATE), client)
        assert [op.type for op in result.applied] == ["update", "update"]
        assert [f.index for f in result.errors] == [1]
        assert len(graph.calls("range")) == 2

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried_within_operation(
        self, executor: OperationExecutor, session: Session, client: WorkbookClient, graph: FakeGraph,
        sleeps: RecordingSleep,
    ) -> None:
        graph.fail("range", status(503), status(429, retry_after="1"))
        result = await executor.apply(HANDLE, session, ops(UPDATE), client)
        assert result.ok
        assert len(graph.calls("range")) == 3
        assert sleeps.delays == [0.0, 1.0]

    @pytest.mark.asyncio
    async def test_open_breaker_fails_operation_without_call(
        self, executor: OperationExecutor, session: Session, client: WorkbookClient, graph: FakeGraph,
        breakers: BreakerRegistry,
    ) -> None:
        breaker = breakers.get("formatRange")
        for _ in range(10):
            breaker.record_failure()
        result = await executor.apply(HANDLE, session, ops(UPDATE, FORMAT), client)
        assert [op.type for op in result.applied] == ["update"]
        assert result.errors[0].code == ErrorCode.REMOTE_UNAVAILABLE
        assert graph.calls("format") == []
