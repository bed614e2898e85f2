"""Moralis MCP Server.

Exposes blockchain data queries as MCP tools over a session-addressed
SSE transport: clients hold one event stream open and submit JSON-RPC
requests out-of-band, receiving responses on their stream.
"""

__version__ = "0.3.0"

from .app import create_app
from .config import ServerConfig

__all__ = ["__version__", "ServerConfig", "create_app"]
