"""Capability registry.

Maps JSON-RPC method names to async handlers. The request router only
ever uses the public ``resolve`` lookup; it knows nothing about what a
method does.

Handlers receive the raw ``params`` payload and a ``RequestContext``:

    registry = CapabilityRegistry()

    @registry.capability("ping")
    async def ping(params, context):
        return {}
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from .config import ServerConfig
from .protocol import CapabilityError, JsonRpcErrorCode, RequestId
from .tools import ToolRegistry

logger = logging.getLogger(__name__)

# Newest first; the SSE transport was introduced with 2024-11-05
SUPPORTED_PROTOCOL_VERSIONS = ("2025-03-26", "2024-11-05")


@dataclass(frozen=True)
class RequestContext:
    """Per-call context handed to capability handlers."""

    session_id: str
    request_id: RequestId | None = None


CapabilityHandler = Callable[[Any, RequestContext], Awaitable[Any]]
NotificationHandler = Callable[[Any, RequestContext], Awaitable[None]]


class CapabilityRegistry:
    """Method name -> handler lookup for requests and notifications."""

    def __init__(self) -> None:
        self._handlers: dict[str, CapabilityHandler] = {}
        self._notification_handlers: dict[str, NotificationHandler] = {}

    def register(self, method: str, handler: CapabilityHandler) -> None:
        """Register a request handler.

        Raises:
            ValueError: If the method is already registered
        """
        if method in self._handlers:
            raise ValueError(f"Capability '{method}' already registered")
        self._handlers[method] = handler

    def register_notification(self, method: str, handler: NotificationHandler) -> None:
        """Register a notification handler.

        Raises:
            ValueError: If the notification is already registered
        """
        if method in self._notification_handlers:
            raise ValueError(f"Notification '{method}' already registered")
        self._notification_handlers[method] = handler

    def capability(self, method: str) -> Callable[[CapabilityHandler], CapabilityHandler]:
        """Decorator form of ``register``."""

        def decorator(handler: CapabilityHandler) -> CapabilityHandler:
            self.register(method, handler)
            return handler

        return decorator

    def resolve(self, method: str) -> CapabilityHandler | None:
        return self._handlers.get(method)

    def resolve_notification(self, method: str) -> NotificationHandler | None:
        return self._notification_handlers.get(method)

    def methods(self) -> list[str]:
        return list(self._handlers)


def _params_object(params: Any) -> dict[str, Any]:
    if params is None:
        return {}
    if not isinstance(params, dict):
        raise CapabilityError(JsonRpcErrorCode.INVALID_PARAMS, "params must be an object")
    return params


def negotiate_protocol_version(requested: str | None) -> str:
    """Echo a supported version, otherwise offer the newest we speak."""
    if requested in SUPPORTED_PROTOCOL_VERSIONS:
        return requested
    return SUPPORTED_PROTOCOL_VERSIONS[0]


def build_capabilities(config: ServerConfig, tools: ToolRegistry) -> CapabilityRegistry:
    """Build the MCP method surface on top of a tool registry."""
    registry = CapabilityRegistry()
    server_info = {"name": config.server_name, "version": config.server_version}

    @registry.capability("initialize")
    async def initialize(params: Any, context: RequestContext) -> dict[str, Any]:
        params = _params_object(params)
        client_info = params.get("clientInfo") or {}
        logger.info(
            f"Session {context.session_id} initialized by "
            f"{client_info.get('name', 'unknown client')} {client_info.get('version', '')}".rstrip()
        )
        return {
            "protocolVersion": negotiate_protocol_version(params.get("protocolVersion")),
            "capabilities": {"tools": {"listChanged": False}},
            "serverInfo": server_info,
        }

    @registry.capability("ping")
    async def ping(params: Any, context: RequestContext) -> dict[str, Any]:
        return {}

    @registry.capability("tools/list")
    async def list_tools(params: Any, context: RequestContext) -> dict[str, Any]:
        return {"tools": [tool.to_listing() for tool in tools.list_tools()]}

    @registry.capability("tools/call")
    async def call_tool(params: Any, context: RequestContext) -> dict[str, Any]:
        params = _params_object(params)
        name = params.get("name")
        if not isinstance(name, str) or not name:
            raise CapabilityError(JsonRpcErrorCode.INVALID_PARAMS, "Tool name is required")
        arguments = params.get("arguments") or {}
        if not isinstance(arguments, dict):
            raise CapabilityError(JsonRpcErrorCode.INVALID_PARAMS, "arguments must be an object")
        logger.debug(f"Session {context.session_id} calling tool {name}")
        return await tools.call(name, arguments)

    async def initialized(params: Any, context: RequestContext) -> None:
        logger.debug(f"Session {context.session_id} completed initialization")

    registry.register_notification("notifications/initialized", initialized)
    return registry
