"""Sequential application of a batch's operations against one session.

Operations are applied strictly in order, because later operations may
address ranges changed by earlier ones. Each remote call goes through the
breaker named for its kind of edit:

    insert, update → applyRange
    format         → formatRange
    delete         → clearRange
    table          → addTable
    chart          → addChart

A failing operation is recorded as {index, error} and, unless its options
set continueOnError, stops the batch, so `applied` is a prefix of the
operations. Operation failures are never raised to the caller.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, assert_never

from sheetbridge.foundation.errors import SheetbridgeError
from sheetbridge.runtime.observability import Metrics, get_logger

from .models import (
    ChartOperation,
    DeleteOperation,
    FormatOperation,
    InsertOperation,
    OperationFailure,
    OperationResult,
    OperationType,
    TableOperation,
    UpdateOperation,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sheetbridge.runtime.resilience import RemoteGuard

    from .client import WorkbookClient
    from .models import DocumentHandle, Operation, Session

log = get_logger("sheetbridge.executor")

BREAKER_NAMES: dict[OperationType, str] = {
    OperationType.INSERT: "applyRange",
    OperationType.UPDATE: "applyRange",
    OperationType.FORMAT: "formatRange",
    OperationType.DELETE: "clearRange",
    OperationType.TABLE: "addTable",
    OperationType.CHART: "addChart",
}


@dataclass(slots=True)
class OperationExecutor:
    """Applies typed operations through the remote client.

    Args:
        guard: Breaker/retry/timeout protection for every remote call
        default_worksheet: Worksheet used when an operation names none (default: "Sheet1")
        metrics: Metrics sink (workbook.operations counter per applied operation)
    """

    guard: RemoteGuard
    default_worksheet: str = "Sheet1"
    metrics: Metrics = field(default_factory=Metrics)

    async def apply(
        self, handle: DocumentHandle, session: Session, operations: Sequence[Operation], client: WorkbookClient,
    ) -> OperationResult:
        applied: list[Operation] = []
        errors: list[OperationFailure] = []
        oplog = log.bind(session_id=session.session_id)
        for index, op in enumerate(operations):
            start = time.perf_counter()
            try:
                await self._dispatch(handle, session.session_id, op, client)
            except SheetbridgeError as e:
                oplog.warning("operation failed", index=index, type=op.type, target=op.target,
                              code=e.info().code, error=e.message)
                errors.append(OperationFailure(index=index, error=e.message, code=e.info().code, status=e.status))
                if not op.continue_on_error:
                    break
                continue
            applied.append(op)
            self.metrics.increment("workbook.operations", type=op.type)
            oplog.debug("operation applied", index=index, type=op.type, target=op.target,
                        duration_ms=round((time.perf_counter() - start) * 1000, 2))
        return OperationResult(applied=tuple(applied), errors=tuple(errors) or None, session_id=session.session_id)

    def _worksheet(self, op: Operation) -> str:
        return op.options.worksheet or self.default_worksheet

    async def _dispatch(self, handle: DocumentHandle, session_id: str, op: Operation, client: WorkbookClient) -> Any:
        name = BREAKER_NAMES[OperationType(op.type)]
        ws = self._worksheet(op)
        match op:
            case InsertOperation():
                return await self.guard.call(
                    name, lambda: client.write_range(handle, session_id, ws, op.target, op.data))
            case UpdateOperation():
                return await self.guard.call(
                    name, lambda: client.write_range(handle, session_id, ws, op.target, op.data,
                                                     op.options.number_format))
            case FormatOperation():
                return await self.guard.call(
                    name, lambda: client.format_range(handle, session_id, ws, op.target, op.data))
            case DeleteOperation():
                return await self.guard.call(
                    name, lambda: client.clear_range(handle, session_id, ws, op.target))
            case TableOperation():
                return await self.guard.call(
                    name, lambda: client.add_table(handle, session_id, ws, op.target,
                                                   has_headers=op.options.has_headers))
            case ChartOperation():
                return await self.guard.call(
                    name, lambda: client.add_chart(handle, session_id, ws, op.target,
                                                   chart_type=op.options.chart_type))
            case _:
                assert_never(op)
