"""Unit tests for the SSE client SDK.

The server side is a ``httpx.MockTransport`` that streams frames from a
queue and answers POSTs by pushing responses onto it.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Any

import httpx
import pytest

from moralis_mcp_server.sdk import JsonRpcClientError, McpSseClient, SseDecoder
from moralis_mcp_server.transport import format_comment, format_event


class FakeServer:
    """Minimal scripted SSE server."""

    def __init__(self, endpoint: str = "/messages?sessionId=abc") -> None:
        self.frames: asyncio.Queue[str | None] = asyncio.Queue()
        self.posted: list[dict[str, Any]] = []
        self.frames.put_nowait(format_event("endpoint", endpoint))
        self.frames.put_nowait(
            format_event("session", json.dumps({"sessionId": "abc", "server": {"name": "s"}}))
        )

    async def _stream(self) -> AsyncIterator[bytes]:
        while True:
            frame = await self.frames.get()
            if frame is None:
                return
            yield frame.encode()

    def reply(self, message: dict[str, Any]) -> None:
        self.frames.put_nowait(format_event("message", json.dumps(message)))

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(
                200, headers={"content-type": "text/event-stream"}, content=self._stream()
            )

        if request.url.params.get("sessionId") != "abc":
            return httpx.Response(
                404, json={"jsonrpc": "2.0", "id": None, "error": {"code": -32001, "message": "x"}}
            )

        envelope = json.loads(request.content)
        self.posted.append(envelope)
        method = envelope.get("method")
        if "id" in envelope:
            if method == "tools/list":
                self.reply({"jsonrpc": "2.0", "id": envelope["id"], "result": {"tools": []}})
            elif method == "fail":
                self.reply(
                    {
                        "jsonrpc": "2.0",
                        "id": envelope["id"],
                        "error": {"code": -32601, "message": "Unknown method: fail"},
                    }
                )
            elif method != "never":
                self.reply({"jsonrpc": "2.0", "id": envelope["id"], "result": {"m": method}})
        return httpx.Response(202, text="Accepted")


def make_client(server: FakeServer) -> McpSseClient:
    return McpSseClient("http://server.test", transport=httpx.MockTransport(server), timeout=1.0)


class TestSseDecoder:
    """Tests for incremental SSE decoding."""

    def test_split_chunks(self) -> None:
        decoder = SseDecoder()

        assert decoder.feed("event: mess") == []
        assert decoder.feed("age\ndata: {\"a\"") == []
        events = decoder.feed(": 1}\n\n")

        assert len(events) == 1
        assert events[0].event == "message"
        assert events[0].data == '{"a": 1}'

    def test_default_event_name_and_id(self) -> None:
        events = SseDecoder().feed("id: 7\ndata:x\n\n")

        assert events[0].event == "message"
        assert events[0].data == "x"
        assert events[0].id == "7"

    def test_comments_and_empty_frames(self) -> None:
        decoder = SseDecoder()

        assert decoder.feed(format_comment("ping")) == []
        assert decoder.feed("event: endpoint\n\n") == []
        assert decoder.feed("data: y\n\n")[0].event == "message"

    def test_crlf(self) -> None:
        events = SseDecoder().feed("event: endpoint\r\ndata: /m\r\n\r\n")

        assert events[0].event == "endpoint"
        assert events[0].data == "/m"


class TestMcpSseClient:
    """Tests for McpSseClient against a scripted server."""

    @pytest.mark.asyncio
    async def test_connect_reads_endpoint_and_session(self) -> None:
        server = FakeServer()

        async with make_client(server) as client:
            assert client.session_id == "abc"
            assert client.endpoint == "/messages?sessionId=abc"
            await asyncio.sleep(0.01)
            assert client.server_info == {"name": "s"}

    @pytest.mark.asyncio
    async def test_endpoint_without_session_id(self) -> None:
        """An endpoint the client cannot address fails the connect and cleans up."""
        client = make_client(FakeServer(endpoint="/messages"))

        with pytest.raises(ConnectionError, match="sessionId"):
            async with client:
                pass

        assert client._client is None
        assert client._reader is None

    @pytest.mark.asyncio
    async def test_request_round_trip(self) -> None:
        server = FakeServer()

        async with make_client(server) as client:
            assert await client.request("ping") == {"m": "ping"}
            assert await client.list_tools() == []

        assert [p["id"] for p in server.posted] == [1, 2]

    @pytest.mark.asyncio
    async def test_initialize_sends_initialized_notification(self) -> None:
        server = FakeServer()

        async with make_client(server) as client:
            result = await client.initialize()

        assert result == {"m": "initialize"}
        assert server.posted[1] == {"jsonrpc": "2.0", "method": "notifications/initialized"}

    @pytest.mark.asyncio
    async def test_call_tool(self) -> None:
        server = FakeServer()

        async with make_client(server) as client:
            await client.call_tool("getBlock", {"block_number_or_hash": "1"})

        assert server.posted[0]["params"] == {
            "name": "getBlock",
            "arguments": {"block_number_or_hash": "1"},
        }

    @pytest.mark.asyncio
    async def test_error_response_raises(self) -> None:
        server = FakeServer()

        async with make_client(server) as client:
            with pytest.raises(JsonRpcClientError) as exc_info:
                await client.request("fail")

        assert exc_info.value.code == -32601
        assert "Unknown method" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_rejected_submission_raises(self) -> None:
        server = FakeServer()

        async with make_client(server) as client:
            client.endpoint = "/messages?sessionId=stale"
            with pytest.raises(JsonRpcClientError) as exc_info:
                await client.request("ping")

        assert exc_info.value.code == -32001

    @pytest.mark.asyncio
    async def test_request_timeout(self) -> None:
        server = FakeServer()

        async with make_client(server) as client:
            with pytest.raises(asyncio.TimeoutError):
                await client.request("never", timeout=0.05)

    @pytest.mark.asyncio
    async def test_stream_end_fails_pending(self) -> None:
        server = FakeServer()

        async with make_client(server) as client:
            pending = asyncio.create_task(client.request("never"))
            await asyncio.sleep(0.01)
            server.frames.put_nowait(None)

            with pytest.raises(ConnectionError):
                await pending
            with pytest.raises(ConnectionError):
                await client.request("ping")

    @pytest.mark.asyncio
    async def test_server_notifications_queued(self) -> None:
        server = FakeServer()

        async with make_client(server) as client:
            server.reply({"jsonrpc": "2.0", "method": "notifications/tools/list_changed"})
            notification = await asyncio.wait_for(client.notifications.get(), 1.0)

        assert notification["method"] == "notifications/tools/list_changed"
