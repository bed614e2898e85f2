"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest
import pytest_asyncio
from starlette.types import ASGIApp, Message

from moralis_mcp_server import ServerConfig, create_app
from moralis_mcp_server.capabilities import CapabilityRegistry, RequestContext
from moralis_mcp_server.protocol import CapabilityError, JsonRpcErrorCode
from moralis_mcp_server.sdk import ServerSentEvent, SseDecoder


class SseConnection:
    """Drives one GET /sse request against an ASGI app in-process.

    httpx's ASGITransport buffers the whole response body before returning,
    which never happens for a live event stream, so the stream is driven
    with raw ASGI messages instead.
    """

    def __init__(self, app: ASGIApp, path: str = "/sse") -> None:
        self.app = app
        self.path = path
        self.status: int | None = None
        self.headers: dict[str, str] = {}
        self.raw = ""
        self.ended = False
        self.announcements: list[ServerSentEvent] = []
        self.endpoint: str | None = None
        self.session_id: str | None = None
        self._inbound: asyncio.Queue[Message] = asyncio.Queue()
        self._events: asyncio.Queue[ServerSentEvent] = asyncio.Queue()
        self._decoder = SseDecoder()
        self._task: asyncio.Task[None] | None = None

    async def open(self) -> SseConnection:
        """Start the request and consume the endpoint and session events."""
        scope = {
            "type": "http",
            "asgi": {"version": "3.0"},
            "http_version": "1.1",
            "method": "GET",
            "scheme": "http",
            "path": self.path,
            "raw_path": self.path.encode(),
            "root_path": "",
            "query_string": b"",
            "headers": [(b"host", b"testserver"), (b"accept", b"text/event-stream")],
            "client": ("127.0.0.1", 50000),
            "server": ("testserver", 80),
        }
        self._inbound.put_nowait({"type": "http.request", "body": b"", "more_body": False})
        self._task = asyncio.create_task(self.app(scope, self._receive, self._send))

        self.announcements = [await self.next_event(), await self.next_event()]
        self.endpoint = self.announcements[0].data
        self.session_id = parse_qs(urlsplit(self.endpoint).query)["sessionId"][0]
        return self

    async def next_event(self, timeout: float = 2.0) -> ServerSentEvent:
        return await asyncio.wait_for(self._events.get(), timeout)

    async def next_message(self, timeout: float = 2.0) -> dict[str, Any]:
        """Wait for the next ``message`` event and decode its payload."""
        while True:
            event = await self.next_event(timeout)
            if event.event == "message":
                return json.loads(event.data)

    def pending_events(self) -> list[ServerSentEvent]:
        events = []
        while not self._events.empty():
            events.append(self._events.get_nowait())
        return events

    async def disconnect(self) -> None:
        """Simulate the client dropping the connection."""
        self._inbound.put_nowait({"type": "http.disconnect"})
        await self.wait_done()

    async def wait_done(self, timeout: float = 2.0) -> None:
        if self._task is not None:
            await asyncio.wait_for(asyncio.shield(self._task), timeout)

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    async def _receive(self) -> Message:
        return await self._inbound.get()

    async def _send(self, message: Message) -> None:
        if message["type"] == "http.response.start":
            self.status = message["status"]
            self.headers = {
                key.decode("latin-1"): value.decode("latin-1")
                for key, value in message.get("headers", [])
            }
        elif message["type"] == "http.response.body":
            chunk = message.get("body", b"").decode("utf-8")
            self.raw += chunk
            for event in self._decoder.feed(chunk):
                self._events.put_nowait(event)
            if not message.get("more_body", False):
                self.ended = True


def make_test_capabilities() -> CapabilityRegistry:
    """Capabilities with controllable timing and failure modes."""
    registry = CapabilityRegistry()

    @registry.capability("echo")
    async def echo(params: Any, context: RequestContext) -> Any:
        return params

    @registry.capability("whoami")
    async def whoami(params: Any, context: RequestContext) -> dict[str, Any]:
        return {"sessionId": context.session_id, "requestId": context.request_id}

    @registry.capability("slow")
    async def slow(params: Any, context: RequestContext) -> dict[str, Any]:
        await asyncio.sleep((params or {}).get("delay", 0.3))
        return {"speed": "slow"}

    @registry.capability("fast")
    async def fast(params: Any, context: RequestContext) -> dict[str, Any]:
        return {"speed": "fast"}

    @registry.capability("hang")
    async def hang(params: Any, context: RequestContext) -> None:
        await asyncio.Event().wait()

    @registry.capability("boom")
    async def boom(params: Any, context: RequestContext) -> None:
        raise RuntimeError("capability exploded")

    @registry.capability("reject")
    async def reject(params: Any, context: RequestContext) -> None:
        raise CapabilityError(JsonRpcErrorCode.INVALID_PARAMS, "bad params", {"field": "x"})

    @registry.capability("unserializable")
    async def unserializable(params: Any, context: RequestContext) -> dict[str, Any]:
        return {"value": object()}

    @registry.capability("not_a_number")
    async def not_a_number(params: Any, context: RequestContext) -> dict[str, Any]:
        return {"value": float("inf")}

    return registry


@pytest.fixture
def config() -> ServerConfig:
    """Config with keep-alive disabled so streams only carry what tests send."""
    return ServerConfig(request_timeout=5.0, keepalive_interval=None)


@pytest.fixture
def capabilities() -> CapabilityRegistry:
    return make_test_capabilities()


@pytest.fixture
def app(config: ServerConfig, capabilities: CapabilityRegistry):
    return create_app(config, capabilities)


@pytest_asyncio.fixture
async def client(app) -> AsyncIterator[httpx.AsyncClient]:
    """HTTP client for the non-streaming endpoints."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest_asyncio.fixture
async def connect(app) -> AsyncIterator[Callable[..., Awaitable[SseConnection]]]:
    """Factory opening event streams; open streams are dropped at teardown."""
    connections: list[SseConnection] = []

    async def _connect(target: ASGIApp | None = None) -> SseConnection:
        connection = SseConnection(target or app)
        connections.append(connection)
        return await connection.open()

    yield _connect

    for connection in connections:
        if not connection.done:
            await connection.disconnect()
