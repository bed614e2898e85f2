"""JSON-RPC 2.0 protocol layer."""

from .types import (
    JSONRPC_VERSION,
    CapabilityError,
    InvalidEnvelopeError,
    JsonRpcError,
    JsonRpcErrorCode,
    JsonRpcMessage,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    RequestId,
    parse_message,
)

__all__ = [
    "JSONRPC_VERSION",
    "CapabilityError",
    "InvalidEnvelopeError",
    "JsonRpcError",
    "JsonRpcErrorCode",
    "JsonRpcMessage",
    "JsonRpcNotification",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "RequestId",
    "parse_message",
]
