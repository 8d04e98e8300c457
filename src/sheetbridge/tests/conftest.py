"""Shared fakes: controllable clock and sleep, and a scripted remote workbook API."""

from __future__ import annotations

from collections import defaultdict, deque
from typing import Any, Callable

import httpx
import orjson
import pytest

from sheetbridge.foundation.config import LoggingSettings, RetrySettings, SheetbridgeSettings
from sheetbridge.io.store import MemoryStore
from sheetbridge.runtime.observability import InMemoryMetricsBackend, Metrics, configure_logging
from sheetbridge.workbook import BatchOrchestrator, CallerIdentity, StaticCredentialExchange, build_orchestrator

BASE_URL = "https://graph.test/v1.0"


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep that returns immediately and records requested delays."""

    def __init__(self, clock: FakeClock | None = None) -> None:
        self.delays: list[float] = []
        self._clock = clock

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self._clock is not None:
            self._clock.advance(delay)


def _kind(request: httpx.Request) -> str:
    path = request.url.path
    if path.endswith("/createSession"):
        return "createSession"
    if path.endswith("/closeSession"):
        return "closeSession"
    if path.endswith("/tables/add"):
        return "table"
    if path.endswith("/charts/add"):
        return "chart"
    if path.endswith("/format"):
        return "format"
    if path.endswith("/clear"):
        return "clear"
    if path.endswith("/worksheets"):
        return "worksheets"
    if "/range(address=" in path:
        return "range"
    return "other"


class FakeGraph:
    """Scripted remote workbook API for httpx.MockTransport.

    Requests succeed by default. Queue failures per request kind with fail();
    each queued response is used once, in order.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._scripted: dict[str, deque[httpx.Response | Exception]] = defaultdict(deque)
        self._sessions = 0
        self.worksheets: list[dict[str, Any]] = [
            {"id": "{00000000-0001}", "name": "Sheet1", "position": 0, "visibility": "Visible"},
        ]

    def fail(self, kind: str, *responses: httpx.Response | Exception) -> None:
        self._scripted[kind].extend(responses)

    def calls(self, kind: str | None = None) -> list[httpx.Request]:
        return [r for r in self.requests if kind is None or _kind(r) == kind]

    def body(self, request: httpx.Request) -> Any:
        return orjson.loads(request.content) if request.content else None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        kind = _kind(request)
        if self._scripted[kind]:
            scripted = self._scripted[kind].popleft()
            if isinstance(scripted, Exception):
                raise scripted
            return scripted
        match kind:
            case "createSession":
                self._sessions += 1
                return httpx.Response(201, json={"id": f"session-{self._sessions}", "persistChanges": True})
            case "worksheets":
                return httpx.Response(200, json={"value": self.worksheets})
            case "closeSession":
                return httpx.Response(204)
            case _:
                return httpx.Response(200, json={})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(self.handler))


def status(code: int, retry_after: str | None = None, message: str = "remote error") -> httpx.Response:
    headers = {"Retry-After": retry_after} if retry_after is not None else {}
    return httpx.Response(code, headers=headers, json={"error": {"code": str(code), "message": message}})


@pytest.fixture(autouse=True)
def quiet_logs() -> None:
    configure_logging(format="none")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeps() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def graph() -> FakeGraph:
    return FakeGraph()


@pytest.fixture
def metrics_backend() -> InMemoryMetricsBackend:
    return InMemoryMetricsBackend()


@pytest.fixture
def caller() -> CallerIdentity:
    return CallerIdentity(user_id="user-1", credential="inbound-token")


@pytest.fixture
def build(graph: FakeGraph, sleeps: RecordingSleep, metrics_backend: InMemoryMetricsBackend) -> Callable[..., BatchOrchestrator]:
    """Factory for orchestrators wired to the fake API, an in-memory store and no jitter."""

    def _build(**settings_overrides: Any) -> BatchOrchestrator:
        defaults: dict[str, Any] = {"logging": LoggingSettings(format="none"), "retry": RetrySettings(max_jitter=0.0)}
        settings = SheetbridgeSettings(**(defaults | settings_overrides))
        return build_orchestrator(
            settings,
            http=graph.client(),
            store=MemoryStore(),
            credentials=StaticCredentialExchange("remote-token"),
            metrics=Metrics(metrics_backend),
            sleep=sleeps,
            configure_logs=False,
        )

    return _build
