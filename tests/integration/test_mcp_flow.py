"""End-to-end MCP flow over the SSE transport with a mocked data API."""

from __future__ import annotations

import httpx
import pytest

from moralis_mcp_server import ServerConfig, create_app
from moralis_mcp_server.capabilities import build_capabilities
from moralis_mcp_server.tools import MoralisApiClient, ToolRegistry, register_moralis_tools


def moralis_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path.endswith("/balance"):
        return httpx.Response(200, json={"balance": "1000000000000000000"})
    return httpx.Response(404, text="not found")


@pytest.fixture
def mcp_app():
    config = ServerConfig(keepalive_interval=None)
    api_client = MoralisApiClient(
        api_key="test-key",
        base_url="https://api.test/v2.2",
        transport=httpx.MockTransport(moralis_handler),
    )
    tools = ToolRegistry()
    register_moralis_tools(tools, api_client)
    return create_app(config, build_capabilities(config, tools))


class TestMcpFlow:
    """initialize -> tools/list -> tools/call over one session."""

    @pytest.mark.asyncio
    async def test_full_session(self, mcp_app, connect) -> None:
        connection = await connect(mcp_app)
        transport = httpx.ASGITransport(app=mcp_app)

        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
            response = await client.post(
                connection.endpoint,
                json={
                    "jsonrpc": "2.0",
                    "id": 1,
                    "method": "initialize",
                    "params": {
                        "protocolVersion": "2024-11-05",
                        "capabilities": {},
                        "clientInfo": {"name": "test", "version": "1.0"},
                    },
                },
            )
            assert response.status_code == 202
            initialized = await connection.next_message()
            assert initialized["result"]["protocolVersion"] == "2024-11-05"
            assert initialized["result"]["serverInfo"]["name"] == "moralis-mcp-server"
            assert initialized["result"]["capabilities"] == {"tools": {"listChanged": False}}

            await client.post(
                connection.endpoint,
                json={"jsonrpc": "2.0", "method": "notifications/initialized"},
            )
            await client.post(
                connection.endpoint,
                json={"jsonrpc": "2.0", "id": 2, "method": "tools/list"},
            )
            listing = await connection.next_message()
            names = [tool["name"] for tool in listing["result"]["tools"]]
            assert listing["id"] == 2
            assert "getNativeBalance" in names

            await client.post(
                connection.endpoint,
                json={
                    "jsonrpc": "2.0",
                    "id": 3,
                    "method": "tools/call",
                    "params": {"name": "getNativeBalance", "arguments": {"address": "0xabc"}},
                },
            )
            called = await connection.next_message()

        assert called["id"] == 3
        assert called["result"]["isError"] is False
        assert "1000000000000000000" in called["result"]["content"][0]["text"]

    @pytest.mark.asyncio
    async def test_unknown_tool(self, mcp_app, connect) -> None:
        connection = await connect(mcp_app)
        transport = httpx.ASGITransport(app=mcp_app)

        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
            await client.post(
                connection.endpoint,
                json={
                    "jsonrpc": "2.0",
                    "id": 1,
                    "method": "tools/call",
                    "params": {"name": "getEverything", "arguments": {}},
                },
            )
            message = await connection.next_message()

        assert message["error"]["code"] == -32602
        assert message["error"]["message"] == "Unknown tool: getEverything"
