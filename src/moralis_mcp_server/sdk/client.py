"""SDK Client - talks to an MCP server over the SSE session transport.

Opens the event stream, waits for the announced submission endpoint and
correlates responses arriving on the stream with the requests that were
POSTed out-of-band.

Usage:
    async with McpSseClient("http://localhost:3000") as client:
        await client.initialize()
        tools = await client.list_tools()
        result = await client.call_tool("getNativeBalance", {"address": "0x..."})
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import json
import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qs, urlsplit

import httpx

from ..protocol import JsonRpcErrorCode

logger = logging.getLogger(__name__)

CLIENT_PROTOCOL_VERSION = "2024-11-05"


@dataclass
class ServerSentEvent:
    """One decoded SSE frame."""

    event: str = "message"
    data: str = ""
    id: str | None = None


class SseDecoder:
    """Incremental SSE parser.

    Feed it lines (``feed_line``) or raw text chunks (``feed``); it returns
    events as their terminating blank line arrives. Comment lines are
    dropped.
    """

    def __init__(self) -> None:
        self._event: str | None = None
        self._data: list[str] = []
        self._id: str | None = None
        self._buffer = ""

    def feed(self, chunk: str) -> list[ServerSentEvent]:
        self._buffer += chunk.replace("\r\n", "\n").replace("\r", "\n")
        *lines, self._buffer = self._buffer.split("\n")
        events = []
        for line in lines:
            event = self.feed_line(line)
            if event is not None:
                events.append(event)
        return events

    def feed_line(self, line: str) -> ServerSentEvent | None:
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None

        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if name == "event":
            self._event = value
        elif name == "data":
            self._data.append(value)
        elif name == "id":
            self._id = value
        return None

    def _dispatch(self) -> ServerSentEvent | None:
        if not self._data:
            self._event = None
            return None
        event = ServerSentEvent(
            event=self._event or "message",
            data="\n".join(self._data),
            id=self._id,
        )
        self._event = None
        self._data = []
        return event


class JsonRpcClientError(Exception):
    """Error envelope or rejected submission returned by the server."""

    def __init__(self, code: int, message: str, data: Any | None = None) -> None:
        super().__init__(f"[{code}] {message}")
        self.code = code
        self.message = message
        self.data = data


class McpSseClient:
    """Client for the SSE session transport."""

    def __init__(
        self,
        base_url: str,
        *,
        sse_path: str = "/sse",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url
        self._sse_path = sse_path
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._reader: asyncio.Task[None] | None = None
        self._endpoint_ready: asyncio.Future[str] | None = None
        self._pending: dict[str | int, asyncio.Future[Any]] = {}
        self._ids = itertools.count(1)
        self._stream_error: BaseException | None = None

        self.endpoint: str | None = None
        self.session_id: str | None = None
        self.server_info: dict[str, Any] | None = None
        self.notifications: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

    async def __aenter__(self) -> McpSseClient:
        try:
            await self.connect()
        except BaseException:
            await self.close()
            raise
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def connect(self) -> str:
        """Open the event stream and wait for the endpoint announcement.

        Returns:
            The session id assigned by the server
        """
        if self._client is not None:
            raise RuntimeError("Client already connected")

        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(self._timeout, read=None),  # No read timeout for SSE
            transport=self._transport,
        )
        self._endpoint_ready = asyncio.get_running_loop().create_future()
        self._reader = asyncio.create_task(self._read_loop(self._client))

        await asyncio.wait_for(asyncio.shield(self._endpoint_ready), timeout=self._timeout)
        if self.session_id is None:
            raise ConnectionError(f"Endpoint event carries no sessionId: {self.endpoint!r}")
        return self.session_id

    async def close(self) -> None:
        if self._reader is not None:
            self._reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader
            self._reader = None
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        self._fail_pending(ConnectionError("Client closed"))

    async def request(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        """Send a request and wait for its response on the stream.

        Raises:
            JsonRpcClientError: On an error envelope or a rejected submission
            TimeoutError: If no response arrives in time
        """
        if self._stream_error is not None:
            raise self._stream_error
        request_id = next(self._ids)
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        envelope: dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
        if params is not None:
            envelope["params"] = params

        try:
            await self._post(envelope)
            return await asyncio.wait_for(future, timeout=timeout or self._timeout)
        finally:
            self._pending.pop(request_id, None)

    async def notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        envelope: dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            envelope["params"] = params
        await self._post(envelope)

    async def initialize(
        self, client_name: str = "moralis-mcp-sdk", client_version: str = "0.1.0"
    ) -> dict[str, Any]:
        """Run the MCP initialize handshake."""
        result = await self.request(
            "initialize",
            {
                "protocolVersion": CLIENT_PROTOCOL_VERSION,
                "capabilities": {},
                "clientInfo": {"name": client_name, "version": client_version},
            },
        )
        await self.notify("notifications/initialized")
        return result

    async def list_tools(self) -> list[dict[str, Any]]:
        result = await self.request("tools/list", {})
        return result.get("tools", [])

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> dict[str, Any]:
        return await self.request("tools/call", {"name": name, "arguments": arguments or {}})

    async def _post(self, envelope: dict[str, Any]) -> None:
        if self._client is None or self.endpoint is None:
            raise RuntimeError("Client not connected")
        response = await self._client.post(self.endpoint, json=envelope)
        if response.status_code == 202:
            return
        try:
            error = response.json().get("error", {})
        except ValueError:
            error = {}
        raise JsonRpcClientError(
            error.get("code", JsonRpcErrorCode.INTERNAL_ERROR),
            error.get("message", f"Submission rejected with HTTP {response.status_code}"),
        )

    async def _read_loop(self, client: httpx.AsyncClient) -> None:
        decoder = SseDecoder()
        error: BaseException = ConnectionError("Event stream closed")
        try:
            async with client.stream(
                "GET", self._sse_path, headers={"Accept": "text/event-stream"}
            ) as response:
                response.raise_for_status()
                async for line in response.aiter_lines():
                    event = decoder.feed_line(line)
                    if event is not None:
                        self.handle_event(event)
        except httpx.HTTPError as e:
            logger.warning(f"SSE connection lost: {e}")
            error = ConnectionError(f"Event stream failed: {e}")
        finally:
            if self._endpoint_ready is not None and not self._endpoint_ready.done():
                self._endpoint_ready.set_exception(error)
            self._stream_error = error
            self._fail_pending(error)

    def handle_event(self, event: ServerSentEvent) -> None:
        """Apply one decoded event to the client state."""
        if event.event == "endpoint":
            self.endpoint = event.data
            query = parse_qs(urlsplit(event.data).query)
            self.session_id = query.get("sessionId", [None])[0]
            if self._endpoint_ready is not None and not self._endpoint_ready.done():
                self._endpoint_ready.set_result(event.data)
        elif event.event == "session":
            self.server_info = json.loads(event.data).get("server")
        elif event.event == "message":
            try:
                message = json.loads(event.data)
            except json.JSONDecodeError:
                logger.warning(f"Failed to parse SSE data: {event.data}")
                return
            self._handle_message(message)

    def _handle_message(self, message: dict[str, Any]) -> None:
        if "method" in message:
            self.notifications.put_nowait(message)
            return

        future = self._pending.pop(message.get("id"), None)
        if future is None or future.done():
            logger.warning(f"Received response for unknown request: {message.get('id')!r}")
            return

        if "error" in message:
            error = message["error"]
            future.set_exception(
                JsonRpcClientError(
                    code=error.get("code", JsonRpcErrorCode.INTERNAL_ERROR),
                    message=error.get("message", "Unknown error"),
                    data=error.get("data"),
                )
            )
        else:
            future.set_result(message.get("result"))

    def _fail_pending(self, error: BaseException) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()
