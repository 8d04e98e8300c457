"""Tests for batch parsing and result serialization."""

from __future__ import annotations

import pytest

from sheetbridge.foundation.errors import ValidationError
from sheetbridge.workbook import (
    ChartOperation,
    DeleteOperation,
    DocumentHandle,
    FormatOperation,
    InsertOperation,
    OperationBatch,
    OperationFailure,
    OperationResult,
    Session,
    TableOperation,
    UpdateOperation,
)


def parse(*operations: dict, **extra: object) -> OperationBatch:
    return OperationBatch.parse({"documentHandle": {"itemId": "wb1"}, "operations": list(operations), **extra})


class TestOperationUnion:
    def test_each_tag_selects_its_model(self) -> None:
        batch = parse(
            {"type": "insert", "target": "A1", "data": [[1]]},
            {"type": "update", "target": "A1", "data": [[1]], "options": {"numberFormat": [["0"]]}},
            {"type": "delete", "target": "A1"},
            {"type": "format", "target": "A1", "data": {"fill": {"color": "#FF0000"}}},
            {"type": "table", "target": "A1:B2"},
            {"type": "chart", "target": "A1:B2", "options": {"chartType": "Pie"}},
        )
        assert [type(op) for op in batch.operations] == [
            InsertOperation, UpdateOperation, DeleteOperation, FormatOperation, TableOperation, ChartOperation,
        ]
        assert batch.operations[1].options.number_format == [["0"]]
        assert batch.operations[4].options.has_headers
        assert batch.operations[5].options.chart_type == "Pie"

    def test_options_ignore_unknown_keys(self) -> None:
        [op] = parse({"type": "delete", "target": "A1", "options": {"continueOnError": True, "color": "red"}}).operations
        assert op.continue_on_error

    @pytest.mark.parametrize("raw", [
        {"type": "pivot", "target": "A1"},
        {"target": "A1", "data": [[1]]},
        {"type": "insert", "target": "", "data": [[1]]},
        {"type": "insert", "target": "A1"},
        {"type": "insert", "target": "A1", "data": []},
        {"type": "insert", "target": "A1:B2", "data": [[1, 2], [3]]},
        {"type": "format", "target": "A1", "data": {}},
    ])
    def test_malformed_operations_rejected(self, raw: dict) -> None:
        with pytest.raises(ValidationError) as info:
            parse(raw)
        assert info.value.message.startswith("Invalid batch")

    def test_missing_document_rejected(self) -> None:
        with pytest.raises(ValidationError):
            OperationBatch.parse({"operations": []})

    def test_parse_json_bytes(self) -> None:
        batch = OperationBatch.parse(b'{"documentHandle": {"itemId": "wb1", "containerId": "c1"}, '
                                     b'"operations": [], "idempotencyKey": "k1"}')
        assert batch.document.container_id == "c1"
        assert batch.idempotency_key == "k1"


class TestDocumentHandle:
    def test_cache_key_and_path(self) -> None:
        plain = DocumentHandle(item_id="wb1")
        scoped = DocumentHandle.model_validate({"itemId": "wb1", "driveId": "d1"})
        assert plain.cache_key == "workbookSession:default:wb1"
        assert scoped.cache_key == "workbookSession:d1:wb1"
        assert plain.workbook_path == "/me/drive/items/wb1/workbook"
        assert scoped.workbook_path == "/drives/d1/items/wb1/workbook"


class TestSession:
    def test_expiry_must_not_precede_creation(self) -> None:
        handle = DocumentHandle(item_id="wb1")
        with pytest.raises(ValueError):
            Session(session_id="s", handle=handle, created_at=10.0, expires_at=5.0)

    def test_extended_never_shortens(self) -> None:
        session = Session(session_id="s", handle=DocumentHandle(item_id="wb1"), created_at=0.0, expires_at=300.0)
        assert session.extended(400.0).expires_at == 400.0
        assert session.extended(100.0).expires_at == 300.0


class TestResult:
    def test_empty_errors_become_none(self) -> None:
        assert OperationResult(errors=()).errors is None
        assert OperationResult().ok

    def test_wire_shape(self) -> None:
        result = OperationResult(
            applied=(InsertOperation(target="A1", data=[["x"]]),),
            errors=(OperationFailure(index=1, error="boom", status=409),),
            session_id="s1",
        )
        assert result.to_json() == (
            '{"applied":[{"target":"A1","options":{"continueOnError":false},"data":[["x"]],"type":"insert"}],'
            '"errors":[{"index":1,"error":"boom","code":"UNKNOWN","status":409}],"sessionId":"s1"}'
        )
