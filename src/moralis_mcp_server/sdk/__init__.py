"""Client SDK for the SSE session transport."""

from .client import (
    JsonRpcClientError,
    McpSseClient,
    ServerSentEvent,
    SseDecoder,
)

__all__ = [
    "JsonRpcClientError",
    "McpSseClient",
    "ServerSentEvent",
    "SseDecoder",
]
