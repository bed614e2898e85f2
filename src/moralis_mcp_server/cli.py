"""Moralis MCP Server CLI.

Usage:
    moralis-mcp-server                      # Serve on 127.0.0.1:3000
    moralis-mcp-server --port 8080          # Custom port
    moralis-mcp-server --log-level debug    # Verbose logging
    moralis-mcp-server --health             # Check a running server and exit

Environment variables (see ``ServerConfig.from_env``) supply the defaults;
command-line options override them.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from dataclasses import replace

import click
import httpx

from .app import create_app
from .config import ServerConfig

LOG_LEVELS = ["debug", "info", "warning", "error"]


@click.command()
@click.option("--host", default=None, help="Host to bind to [env: MCP_HOST]")
@click.option("--port", type=int, default=None, help="Port to bind to [env: MCP_PORT]")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="info",
    show_default=True,
    help="Log level (logs go to stderr)",
)
@click.option("--health", "health_check", is_flag=True, help="Check server health and exit")
@click.option(
    "--health-url",
    default=None,
    help="Server URL for health check [default: http://<host>:<port>]",
)
def main(
    host: str | None,
    port: int | None,
    log_level: str,
    health_check: bool,
    health_url: str | None,
) -> None:
    """Moralis MCP Server - blockchain data tools over an SSE session transport."""
    try:
        config = ServerConfig.from_env()
    except ValueError as e:
        raise click.UsageError(str(e)) from e

    overrides = {}
    if host is not None:
        overrides["host"] = host
    if port is not None:
        overrides["port"] = port
    config = replace(config, **overrides)

    if health_check:
        _do_health_check(health_url or f"http://{config.host}:{config.port}")
        return

    _configure_logging(log_level)
    _run_http_server(config, log_level)


def _configure_logging(level: str) -> None:
    """Send logs to stderr; stdout stays free for tooling."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _do_health_check(url: str) -> None:
    """Check server health."""

    async def check() -> None:
        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.get(f"{url.rstrip('/')}/health")
                if response.status_code == 200:
                    data = response.json()
                    click.echo(f"Server is healthy: {data}")
                else:
                    click.echo(f"Server returned {response.status_code}", err=True)
                    sys.exit(1)
        except httpx.ConnectError:
            click.echo(f"Cannot connect to server at {url}", err=True)
            sys.exit(1)

    asyncio.run(check())


def _run_http_server(config: ServerConfig, log_level: str) -> None:
    """Run the HTTP server until interrupted."""
    import uvicorn

    base = f"http://{config.host}:{config.port}"
    click.echo(f"{config.server_name} v{config.server_version} running at {base}", err=True)
    click.echo(f"  SSE endpoint:      {base}/sse", err=True)
    click.echo(f"  Messages endpoint: {base}{config.message_path}?sessionId=<id>", err=True)
    click.echo(f"  Health check:      {base}/health", err=True)
    if not config.api_key:
        click.echo("  Warning: MORALIS_API_KEY is not set; data API calls will fail", err=True)
    click.echo("Press Ctrl+C to stop", err=True)

    uvicorn.run(create_app(config), host=config.host, port=config.port, log_level=log_level)
