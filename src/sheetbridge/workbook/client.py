"""Remote workbook API client over httpx.

One WorkbookClient is bound to one remote access credential (the exchanged
bearer token) and shares a pooled httpx.AsyncClient with every other client.
Each method performs exactly one HTTP request; protection (breaker, retry,
timeout) is applied by the caller through RemoteGuard.

Paths, relative to the client's base URL:
    {workbook}                  /drives/{containerId}/items/{itemId}/workbook
                                or /me/drive/items/{itemId}/workbook
    createSession               POST  {workbook}/createSession
    closeSession                POST  {workbook}/closeSession
    range write                 PATCH {workbook}/worksheets('{ws}')/range(address='{addr}')
    range format                PATCH .../range(address='{addr}')/format
    range clear                 POST  .../range(address='{addr}')/clear
    table add                   POST  {workbook}/worksheets('{ws}')/tables/add
    chart add                   POST  {workbook}/worksheets('{ws}')/charts/add
    worksheets                  GET   {workbook}/worksheets

Every session-scoped call carries the `workbook-session-id` header.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx
import orjson

from sheetbridge.foundation.errors import (
    RemoteTimeoutError,
    RemoteTransientError,
    SheetbridgeError,
    parse_retry_after,
    remote_error_from_status,
)
from sheetbridge.runtime.observability import get_logger

from .models import WorksheetInfo

if TYPE_CHECKING:
    from .models import DocumentHandle, ValueGrid

log = get_logger("sheetbridge.client")

SESSION_HEADER = "workbook-session-id"


def _quote(value: str) -> str:
    """OData string literal escaping: single quotes are doubled."""
    return value.replace("'", "''")


def _error_message(response: httpx.Response) -> str:
    """Best-effort extraction of the remote error message."""
    try:
        body = orjson.loads(response.content)
    except orjson.JSONDecodeError:
        return response.text[:200] or response.reason_phrase
    if isinstance(body, dict) and isinstance(err := body.get("error"), dict):
        return str(err.get("message") or err.get("code") or response.reason_phrase)
    return response.reason_phrase


class WorkbookClient:
    """Remote workbook API bound to one access token.

    Args:
        http: Shared async HTTP client, configured with the API base URL
        token: Remote access credential (bearer token)

    Example:
        >>> async with httpx.AsyncClient(base_url="https://graph.microsoft.com/v1.0") as http:
        ...     client = WorkbookClient(http, token)
        ...     session_id = await client.create_session(DocumentHandle(item_id="wb1"))
        ...     await client.write_range(handle, session_id, "Sheet1", "A1:B1", [["a", "b"]])
    """

    __slots__ = ("_http", "_token")

    def __init__(self, http: httpx.AsyncClient, token: str) -> None:
        self._http = http
        self._token = token

    # ─────────────────────────────────────────────────────────────────
    # Transport
    # ─────────────────────────────────────────────────────────────────

    async def _request(
        self, method: str, path: str, *, json: Any = None, session_id: str | None = None,
    ) -> Any:
        headers = {"Authorization": f"Bearer {self._token}", "Accept": "application/json"}
        if session_id is not None:
            headers[SESSION_HEADER] = session_id
        content: bytes | None = None
        if json is not None:
            content = orjson.dumps(json)
            headers["Content-Type"] = "application/json"
        try:
            response = await self._http.request(method, path, headers=headers, content=content)
        except httpx.TimeoutException as e:
            raise RemoteTimeoutError(f"{method} {path} timed out: {e}") from e
        except httpx.TransportError as e:
            raise RemoteTransientError(f"{method} {path} failed: {type(e).__name__}: {e}") from e
        if response.is_success:
            if not response.content:
                return None
            try:
                return orjson.loads(response.content)
            except orjson.JSONDecodeError as e:
                raise RemoteTransientError(
                    f"{method} {path} returned {response.status_code} with an undecodable body: {e}"
                ) from e
        raise remote_error_from_status(
            response.status_code,
            f"{method} {path} returned {response.status_code}: {_error_message(response)}",
            parse_retry_after(response.headers.get("Retry-After")),
        )

    @staticmethod
    def _range_path(handle: DocumentHandle, worksheet: str, address: str) -> str:
        return f"{handle.workbook_path}/worksheets('{_quote(worksheet)}')/range(address='{_quote(address)}')"

    # ─────────────────────────────────────────────────────────────────
    # Sessions
    # ─────────────────────────────────────────────────────────────────

    async def create_session(self, handle: DocumentHandle, *, persist_changes: bool = True) -> str:
        """Create a remote session and return its id."""
        body = await self._request("POST", f"{handle.workbook_path}/createSession",
                                   json={"persistChanges": persist_changes})
        if not isinstance(body, dict) or not body.get("id"):
            raise RemoteTransientError(f"createSession for {handle.item_id} returned no session id")
        return str(body["id"])

    async def close_session(self, handle: DocumentHandle, session_id: str) -> bool:
        """Close a remote session. Best-effort: failures are logged, never raised."""
        try:
            await self._request("POST", f"{handle.workbook_path}/closeSession", json={}, session_id=session_id)
        except SheetbridgeError as e:
            log.warning("session close failed", item_id=handle.item_id, session_id=session_id, error=e.message)
            return False
        log.info("session closed", item_id=handle.item_id, session_id=session_id)
        return True

    # ─────────────────────────────────────────────────────────────────
    # Ranges & Objects
    # ─────────────────────────────────────────────────────────────────

    async def write_range(
        self, handle: DocumentHandle, session_id: str, worksheet: str, address: str,
        values: ValueGrid, number_format: list[list[str]] | None = None,
    ) -> Any:
        body: dict[str, Any] = {"values": values}
        if number_format is not None:
            body["numberFormat"] = number_format
        return await self._request("PATCH", self._range_path(handle, worksheet, address),
                                   json=body, session_id=session_id)

    async def format_range(
        self, handle: DocumentHandle, session_id: str, worksheet: str, address: str, style: dict[str, Any],
    ) -> Any:
        return await self._request("PATCH", f"{self._range_path(handle, worksheet, address)}/format",
                                   json=style, session_id=session_id)

    async def clear_range(self, handle: DocumentHandle, session_id: str, worksheet: str, address: str) -> Any:
        """Clear contents only; formatting is preserved."""
        return await self._request("POST", f"{self._range_path(handle, worksheet, address)}/clear",
                                   json={"applyTo": "Contents"}, session_id=session_id)

    async def add_table(
        self, handle: DocumentHandle, session_id: str, worksheet: str, address: str, *, has_headers: bool = True,
    ) -> Any:
        return await self._request("POST", f"{handle.workbook_path}/worksheets('{_quote(worksheet)}')/tables/add",
                                   json={"address": address, "hasHeaders": has_headers}, session_id=session_id)

    async def add_chart(
        self, handle: DocumentHandle, session_id: str, worksheet: str, source: str,
        *, chart_type: str = "ColumnClustered",
    ) -> Any:
        return await self._request(
            "POST", f"{handle.workbook_path}/worksheets('{_quote(worksheet)}')/charts/add",
            json={"type": chart_type, "sourceData": source, "seriesBy": "Auto"}, session_id=session_id,
        )

    # ─────────────────────────────────────────────────────────────────
    # Metadata
    # ─────────────────────────────────────────────────────────────────

    async def list_worksheets(self, handle: DocumentHandle) -> list[WorksheetInfo]:
        body = await self._request("GET", f"{handle.workbook_path}/worksheets")
        items = body.get("value", []) if isinstance(body, dict) else []
        return [WorksheetInfo.model_validate(item) for item in items]
