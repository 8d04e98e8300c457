"""Workbook - Batched edits against the remote workbook API.

Contains: domain models, the HTTP client, credential exchange, the session
cache, idempotent replay, the operation executor and the batch orchestrator.
"""

from .client import WorkbookClient
from .credentials import CredentialExchange, OnBehalfOfExchange, StaticCredentialExchange
from .executor import BREAKER_NAMES, OperationExecutor
from .factory import build_orchestrator
from .idempotency import IdempotencyStore
from .models import (
    CallerIdentity,
    ChartOperation,
    DeleteOperation,
    DocumentHandle,
    FormatOperation,
    IdempotencyRecord,
    InsertOperation,
    Operation,
    OperationBatch,
    OperationFailure,
    OperationResult,
    OperationType,
    Session,
    TableOperation,
    UpdateOperation,
    WorksheetInfo,
)
from .orchestrator import Applied, AuthFailed, BatchFailed, BatchOrchestrator, BatchOutcome, RateLimited
from .sessions import SessionCache

__all__ = [
    # Models
    "DocumentHandle", "Session", "OperationType", "Operation",
    "InsertOperation", "UpdateOperation", "DeleteOperation", "FormatOperation", "TableOperation", "ChartOperation",
    "OperationBatch", "OperationFailure", "OperationResult", "IdempotencyRecord", "WorksheetInfo", "CallerIdentity",
    # Remote
    "WorkbookClient", "CredentialExchange", "OnBehalfOfExchange", "StaticCredentialExchange",
    # Pipeline
    "SessionCache", "IdempotencyStore", "OperationExecutor", "BREAKER_NAMES",
    "BatchOrchestrator", "BatchOutcome", "Applied", "RateLimited", "AuthFailed", "BatchFailed",
    "build_orchestrator",
]
