"""Moralis MCP Server Application.

Creates the Starlette ASGI application with all routes.

Route organization:
- /health - Health check
- /sse - Session event stream (GET, long-lived)
- /messages, /api/messages - Envelope submission (POST, ?sessionId=...)

Every application instance owns its own session table, transport and
router (on ``app.state``), so several servers can run in one process.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import AsyncIterator

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.routing import Route

from .capabilities import CapabilityRegistry, build_capabilities
from .config import ServerConfig
from .router import RequestRouter
from .routes import create_message_routes, health_routes, sse_routes
from .tools import MoralisApiClient, ToolRegistry, register_moralis_tools
from .transport import SessionTable, SessionTransport

logger = logging.getLogger(__name__)


def create_app(
    config: ServerConfig | None = None,
    capabilities: CapabilityRegistry | None = None,
) -> Starlette:
    """Create the MCP server application.

    Args:
        config: Server configuration (defaults to ``ServerConfig.from_env()``)
        capabilities: Method registry to serve; defaults to the MCP surface
            backed by the Moralis data tools

    Returns:
        Configured Starlette application
    """
    config = config or ServerConfig.from_env()

    api_client: MoralisApiClient | None = None
    if capabilities is None:
        api_client = MoralisApiClient(
            api_key=config.api_key,
            base_url=config.api_base_url,
            timeout=config.api_timeout,
        )
        tools = ToolRegistry()
        register_moralis_tools(tools, api_client)
        capabilities = build_capabilities(config, tools)
        logger.info(f"Loaded {tools.count} Moralis tools")

    transport = SessionTransport(
        SessionTable(),
        message_path=config.message_path,
        server_name=config.server_name,
        server_version=config.server_version,
    )
    router = RequestRouter(transport, capabilities, request_timeout=config.request_timeout)

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        logger.info(f"{config.server_name} v{config.server_version} ready")
        try:
            yield
        finally:
            closed = transport.close_all("server shutdown")
            await router.aclose()
            if api_client is not None:
                await api_client.aclose()
            logger.info(f"Shut down ({closed} session(s) closed)")

    routes: list[Route] = []
    routes.extend(health_routes)
    routes.extend(sse_routes)
    routes.extend(create_message_routes(config.message_path))

    # Browser-based MCP clients connect cross-origin
    middleware = [
        Middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["*"],
        ),
    ]

    app = Starlette(routes=routes, middleware=middleware, lifespan=lifespan)
    app.state.config = config
    app.state.transport = transport
    app.state.router = router
    app.state.capabilities = capabilities
    return app
