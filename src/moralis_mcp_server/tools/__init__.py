"""Tools exposed through ``tools/list`` and ``tools/call``."""

from .moralis import MORALIS_TOOLS, MoralisApiClient, register_moralis_tools
from .registry import ToolDefinition, ToolHandler, ToolRegistry, ToolResult

__all__ = [
    "MORALIS_TOOLS",
    "MoralisApiClient",
    "ToolDefinition",
    "ToolHandler",
    "ToolRegistry",
    "ToolResult",
    "register_moralis_tools",
]
