"""Tool registry.

Tools are the externally visible operations behind ``tools/list`` and
``tools/call``. The transport never looks inside them; it only asks the
registry to list or call a tool by name.

Usage:
    registry = ToolRegistry()

    async def echo(arguments: dict) -> ToolResult:
        return ToolResult(output=arguments["text"])

    registry.register(ToolDefinition(
        name="echo",
        description="Echo the input",
        input_schema={
            "type": "object",
            "properties": {"text": {"type": "string"}},
            "required": ["text"],
        },
        handler=echo,
    ))
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from ..protocol import CapabilityError, JsonRpcErrorCode

logger = logging.getLogger(__name__)


@dataclass
class ToolResult:
    """Result from a tool execution.

    Attributes:
        success: Whether the tool executed successfully
        output: The tool's output (any JSON-serializable value)
        error: Error message if success is False
    """

    success: bool = True
    output: Any = None
    error: str | None = None

    def to_content(self) -> dict[str, Any]:
        """Convert to an MCP ``tools/call`` result."""
        if not self.success:
            text = self.error or "Tool execution failed"
        elif isinstance(self.output, str):
            text = self.output
        else:
            text = json.dumps(self.output, indent=2, ensure_ascii=False, default=str)
        return {"content": [{"type": "text", "text": text}], "isError": not self.success}


ToolHandler = Callable[[dict[str, Any]], Awaitable[ToolResult]]


@dataclass
class ToolDefinition:
    """Definition of a callable tool.

    Attributes:
        name: Unique identifier for the tool
        description: Human-readable description shown to clients
        input_schema: JSON Schema for the tool's arguments
        handler: Async function that implements the tool
    """

    name: str
    description: str
    handler: ToolHandler
    input_schema: dict[str, Any] = field(default_factory=lambda: {"type": "object"})

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Tool name cannot be empty")
        if not self.description:
            raise ValueError("Tool description cannot be empty")
        if not callable(self.handler):
            raise ValueError("Tool handler must be callable")

    def to_listing(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }


class ToolRegistry:
    """Registry of tools keyed by name."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolDefinition] = {}

    def register(self, tool: ToolDefinition) -> None:
        """Register a tool.

        Raises:
            ValueError: If a tool with the same name is already registered
        """
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' already registered")
        self._tools[tool.name] = tool
        logger.debug(f"Registered tool: {tool.name}")

    def get(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def list_tools(self) -> list[ToolDefinition]:
        return list(self._tools.values())

    def names(self) -> list[str]:
        return list(self._tools)

    @property
    def count(self) -> int:
        """Number of registered tools."""
        return len(self._tools)

    async def call(self, name: str, arguments: dict[str, Any] | None) -> dict[str, Any]:
        """Call a tool and return its MCP content result.

        Raises:
            CapabilityError: INVALID_PARAMS for an unknown tool or missing
                required arguments
        """
        tool = self._tools.get(name)
        if tool is None:
            raise CapabilityError(JsonRpcErrorCode.INVALID_PARAMS, f"Unknown tool: {name}")

        arguments = arguments or {}
        missing = [key for key in tool.input_schema.get("required", []) if key not in arguments]
        if missing:
            raise CapabilityError(
                JsonRpcErrorCode.INVALID_PARAMS,
                f"Missing required argument(s) for {name}: {', '.join(missing)}",
            )

        result = await tool.handler(arguments)
        return result.to_content()
