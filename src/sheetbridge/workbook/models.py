"""Domain models for batched workbook edits.

All models are frozen pydantic models with camelCase wire aliases; Python
code uses snake_case field names (populate_by_name=True).

Operations form a closed tagged union over `type`. An unknown tag, a missing
required field or a ragged value grid fails at parse time with a
ValidationError, before any remote call is made.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from enum import StrEnum
from typing import Annotated, Any, Literal, Self

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    SecretStr,
    Tag,
    field_validator,
    model_validator,
)
from pydantic import ValidationError as PydanticValidationError

from sheetbridge.foundation.errors import ErrorCode, ValidationError

CellValue = str | int | float | bool | None
ValueGrid = list[list[CellValue]]

_WIRE = ConfigDict(frozen=True, populate_by_name=True, extra="forbid", revalidate_instances="never")


# ─────────────────────────────────────────────────────────────────────────────
# Document & Session
# ─────────────────────────────────────────────────────────────────────────────


class DocumentHandle(BaseModel):
    """Identity of a remote workbook: item id plus optional container (drive) id."""

    model_config = _WIRE

    item_id: Annotated[str, Field(min_length=1, alias="itemId")]
    container_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("containerId", "driveId", "container_id"),
        serialization_alias="containerId",
    )

    @property
    def cache_key(self) -> str:
        return f"workbookSession:{self.container_id or 'default'}:{self.item_id}"

    @property
    def workbook_path(self) -> str:
        if self.container_id:
            return f"/drives/{self.container_id}/items/{self.item_id}/workbook"
        return f"/me/drive/items/{self.item_id}/workbook"


class Session(BaseModel):
    """Remote workbook session as held by the session cache. Times are epoch seconds."""

    model_config = _WIRE

    session_id: str = Field(min_length=1, alias="sessionId")
    handle: DocumentHandle
    created_at: float = Field(alias="createdAt")
    expires_at: float = Field(alias="expiresAt")

    @model_validator(mode="after")
    def _expiry_after_creation(self) -> Self:
        if self.expires_at < self.created_at:
            raise ValueError("expiresAt must not precede createdAt")
        return self

    def extended(self, expires_at: float) -> Session:
        """Copy with a later expiry (keep-alive on read)."""
        return self.model_copy(update={"expires_at": max(self.expires_at, expires_at)})


# ─────────────────────────────────────────────────────────────────────────────
# Operations
# ─────────────────────────────────────────────────────────────────────────────


class OperationType(StrEnum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    FORMAT = "format"
    CHART = "chart"
    TABLE = "table"


class OperationOptions(BaseModel):
    """Options shared by every operation type. Unrecognized keys are ignored."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    worksheet: str | None = None
    continue_on_error: bool = Field(default=False, alias="continueOnError")


class UpdateOptions(OperationOptions):
    number_format: list[list[str]] | None = Field(default=None, alias="numberFormat")


class TableOptions(OperationOptions):
    has_headers: bool = Field(default=True, alias="hasHeaders")


class ChartOptions(OperationOptions):
    chart_type: str = Field(default="ColumnClustered", alias="chartType", min_length=1)


class _Operation(BaseModel):
    model_config = _WIRE

    target: str = Field(min_length=1, description="Range address or object source range, e.g. A1:B2")
    options: OperationOptions = Field(default_factory=OperationOptions)

    @property
    def continue_on_error(self) -> bool:
        return self.options.continue_on_error


class _GridOperation(_Operation):
    data: ValueGrid

    @field_validator("data", mode="after")
    @classmethod
    def _rectangular(cls, v: ValueGrid) -> ValueGrid:
        if not v or not v[0]:
            raise ValueError("data must be a non-empty grid of rows")
        if any(len(row) != len(v[0]) for row in v):
            raise ValueError("data rows must all have the same length")
        return v


class InsertOperation(_GridOperation):
    """Write a value grid into the target range."""
    type: Literal["insert"] = "insert"


class UpdateOperation(_GridOperation):
    """Overwrite the target range, optionally with a number format."""
    type: Literal["update"] = "update"
    options: UpdateOptions = Field(default_factory=UpdateOptions)


class DeleteOperation(_Operation):
    """Clear the contents (not formatting) of the target range."""
    type: Literal["delete"] = "delete"
    data: Any = None


class FormatOperation(_Operation):
    """Apply a partial style object to the target range."""
    type: Literal["format"] = "format"
    data: dict[str, Any] = Field(min_length=1)


class TableOperation(_Operation):
    """Create a table over the target range."""
    type: Literal["table"] = "table"
    data: Any = None
    options: TableOptions = Field(default_factory=TableOptions)


class ChartOperation(_Operation):
    """Create a chart sourced from the target range."""
    type: Literal["chart"] = "chart"
    data: Any = None
    options: ChartOptions = Field(default_factory=ChartOptions)


def _operation_tag(v: Mapping[str, object] | BaseModel) -> str | None:
    """Discriminator for the operation union."""
    tag = v.get("type") if isinstance(v, Mapping) else getattr(v, "type", None)
    return tag if isinstance(tag, str) else None


Operation = Annotated[
    Annotated[InsertOperation, Tag("insert")]
    | Annotated[UpdateOperation, Tag("update")]
    | Annotated[DeleteOperation, Tag("delete")]
    | Annotated[FormatOperation, Tag("format")]
    | Annotated[TableOperation, Tag("table")]
    | Annotated[ChartOperation, Tag("chart")],
    Discriminator(_operation_tag),
]


# ─────────────────────────────────────────────────────────────────────────────
# Batch & Result
# ─────────────────────────────────────────────────────────────────────────────


class OperationBatch(BaseModel):
    """An ordered list of operations against one document.

    Example:
        >>> batch = OperationBatch.parse({
        ...     "documentHandle": {"itemId": "wb1"},
        ...     "operations": [{"type": "insert", "target": "A1:B2",
        ...                     "data": [["Name", "Value"], ["Test", 123]]}],
        ... })
        >>> batch.operations[0].type
        'insert'
    """

    model_config = _WIRE

    document: DocumentHandle = Field(alias="documentHandle")
    operations: tuple[Operation, ...]
    idempotency_key: Annotated[str, Field(min_length=1, max_length=256)] | None = Field(
        default=None, alias="idempotencyKey",
    )

    @classmethod
    def parse(cls, data: Mapping[str, Any] | str | bytes) -> OperationBatch:
        """Validate raw input, raising ValidationError (never pydantic's) on malformed batches."""
        try:
            if isinstance(data, (str, bytes)):
                return cls.model_validate_json(data)
            return cls.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid batch: {_summarize(e)}") from e


class OperationFailure(BaseModel):
    """A single operation's failure, recorded by position in the batch."""

    model_config = _WIRE

    index: int = Field(ge=0)
    error: str
    code: ErrorCode = ErrorCode.UNKNOWN
    status: int | None = None


class OperationResult(BaseModel):
    """Outcome of one batch.

    `applied` is always a prefix of the batch's operations when execution
    stopped early, and `errors` is None unless at least one operation failed.
    """

    model_config = _WIRE

    applied: tuple[Operation, ...] = ()
    errors: tuple[OperationFailure, ...] | None = None
    session_id: str | None = Field(default=None, alias="sessionId")

    @field_validator("errors", mode="after")
    @classmethod
    def _empty_is_none(cls, v: tuple[OperationFailure, ...] | None) -> tuple[OperationFailure, ...] | None:
        return v or None

    @property
    def ok(self) -> bool:
        return self.errors is None

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


class WorksheetInfo(BaseModel):
    """Worksheet metadata as reported by the remote API."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str
    name: str
    position: int = 0
    visibility: str = "Visible"


class IdempotencyRecord(BaseModel):
    """Stored result for an idempotency key, retained for a fixed window."""

    model_config = _WIRE

    key: str
    result: OperationResult
    stored_at: float = Field(default_factory=time.time, alias="storedAt")


class CallerIdentity(BaseModel):
    """Who is submitting a batch: rate-limit identity plus the inbound credential to exchange."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    user_id: str = Field(min_length=1)
    credential: SecretStr


def _summarize(e: PydanticValidationError, limit: int = 3) -> str:
    errs = e.errors(include_url=False)
    parts = [f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}" for err in errs[:limit]]
    return "; ".join(parts) + (f" (+{len(errs) - limit} more)" if len(errs) > limit else "")
