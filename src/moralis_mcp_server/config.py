"""Server configuration.

All settings have defaults suitable for local development and can be
overridden through environment variables (see ``ServerConfig.from_env``)
or CLI options.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from . import __version__

DEFAULT_API_BASE_URL = "https://deep-index.moralis.io/api/v2.2"
DEFAULT_MESSAGE_PATH = "/messages"


def _env_float(env: Mapping[str, str], name: str, default: float | None) -> float | None:
    """Read an optional non-negative float; empty or 0 means disabled."""
    raw = env.get(name)
    if raw is None:
        return default
    raw = raw.strip()
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e
    if value < 0:
        raise ValueError(f"{name} must not be negative, got {raw!r}")
    return value or None


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


@dataclass
class ServerConfig:
    """Server configuration."""

    # Identity reported by /health, the session event and initialize
    server_name: str = "moralis-mcp-server"
    server_version: str = __version__

    # Listening surface
    host: str = "127.0.0.1"
    port: int = 3000
    message_path: str = DEFAULT_MESSAGE_PATH

    # Transport behaviour
    request_timeout: float | None = 120.0
    keepalive_interval: float | None = 15.0

    # Upstream data API; the key is forwarded as-is, never validated here
    api_base_url: str = DEFAULT_API_BASE_URL
    api_key: str | None = field(default=None, repr=False)
    api_timeout: float = 30.0

    def __post_init__(self) -> None:
        if not self.message_path.startswith("/"):
            raise ValueError(f"message_path must start with '/', got {self.message_path!r}")

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> ServerConfig:
        """Build a config from environment variables.

        Args:
            env: Mapping to read from (defaults to ``os.environ``)

        Raises:
            ValueError: If a numeric variable cannot be parsed
        """
        env = os.environ if env is None else env
        defaults = cls()
        return cls(
            server_name=env.get("MCP_SERVER_NAME", defaults.server_name),
            server_version=env.get("MCP_SERVER_VERSION", defaults.server_version),
            host=env.get("MCP_HOST", defaults.host),
            port=_env_int(env, "MCP_PORT", defaults.port),
            message_path=env.get("MCP_MESSAGE_PATH", defaults.message_path),
            request_timeout=_env_float(env, "MCP_REQUEST_TIMEOUT", defaults.request_timeout),
            keepalive_interval=_env_float(
                env, "MCP_KEEPALIVE_INTERVAL", defaults.keepalive_interval
            ),
            api_base_url=env.get("MORALIS_API_BASE_URL", defaults.api_base_url),
            api_key=env.get("MORALIS_API_KEY") or None,
            api_timeout=_env_float(env, "MORALIS_API_TIMEOUT", defaults.api_timeout)
            or defaults.api_timeout,
        )
