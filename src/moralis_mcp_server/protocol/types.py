"""JSON-RPC 2.0 envelope types.

Requests, notifications and responses exchanged with MCP clients. Field
names are the JSON-RPC 2.0 wire names.
"""

from __future__ import annotations

import json
from typing import Any, Literal

from pydantic import BaseModel, StrictInt, StrictStr, ValidationError

JSONRPC_VERSION = "2.0"

# Strict so ids are echoed with the type the client sent (no true -> 1)
RequestId = StrictStr | StrictInt


class JsonRpcErrorCode:
    """JSON-RPC 2.0 error codes."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    # Transport-specific error codes
    SESSION_NOT_FOUND = -32001
    REQUEST_TIMEOUT = -32002


class JsonRpcRequest(BaseModel):
    """JSON-RPC 2.0 request (expects a response)."""

    jsonrpc: Literal["2.0"] = "2.0"
    id: RequestId
    method: str
    params: dict[str, Any] | list[Any] | None = None


class JsonRpcNotification(BaseModel):
    """JSON-RPC 2.0 notification (no response expected)."""

    jsonrpc: Literal["2.0"] = "2.0"
    method: str
    params: dict[str, Any] | list[Any] | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class JsonRpcError(BaseModel):
    """JSON-RPC 2.0 error object."""

    code: int
    message: str
    data: Any | None = None


class JsonRpcResponse(BaseModel):
    """JSON-RPC 2.0 response.

    Carries exactly one of ``result`` or ``error``. Use ``success`` and
    ``failure`` to build one, and ``to_wire`` to serialize it: a ``None``
    result is still emitted as ``"result": null``.
    """

    jsonrpc: Literal["2.0"] = "2.0"
    id: RequestId | None
    result: Any | None = None
    error: JsonRpcError | None = None

    @classmethod
    def success(cls, request_id: RequestId, result: Any) -> JsonRpcResponse:
        return cls(id=request_id, result=result)

    @classmethod
    def failure(
        cls,
        request_id: RequestId | None,
        code: int,
        message: str,
        data: Any | None = None,
    ) -> JsonRpcResponse:
        return cls(id=request_id, error=JsonRpcError(code=code, message=message, data=data))

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_wire(self) -> dict[str, Any]:
        wire: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            wire["error"] = self.error.model_dump(exclude_none=True)
        else:
            wire["result"] = self.result
        return wire


JsonRpcMessage = JsonRpcRequest | JsonRpcNotification | JsonRpcResponse


class InvalidEnvelopeError(Exception):
    """Raised when an inbound payload is not a valid JSON-RPC envelope."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def to_error(self) -> JsonRpcError:
        return JsonRpcError(code=self.code, message=self.message)


class CapabilityError(Exception):
    """Raised by capability handlers to reply with a specific error code."""

    def __init__(self, code: int, message: str, data: Any | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data


def parse_message(raw: bytes | str | dict[str, Any]) -> JsonRpcMessage:
    """Decode and validate one JSON-RPC envelope.

    A payload with ``method`` and ``id`` is a request, ``method`` alone a
    notification, and ``result``/``error`` without ``method`` a response
    sent by the client. Batches are not accepted.

    Raises:
        InvalidEnvelopeError: With PARSE_ERROR for undecodable JSON and
            INVALID_REQUEST for anything that fails the schema
    """
    if isinstance(raw, bytes | str):
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise InvalidEnvelopeError(JsonRpcErrorCode.PARSE_ERROR, f"Parse error: {e}") from e
    else:
        data = raw

    if not isinstance(data, dict):
        raise InvalidEnvelopeError(
            JsonRpcErrorCode.INVALID_REQUEST,
            f"Invalid request: expected a JSON object, got {type(data).__name__}",
        )

    # The models default the tag for outbound use; inbound it must be present
    if "jsonrpc" not in data:
        raise InvalidEnvelopeError(
            JsonRpcErrorCode.INVALID_REQUEST, "Invalid request: missing 'jsonrpc' field"
        )

    try:
        if "method" in data:
            if "id" in data:
                return JsonRpcRequest.model_validate(data)
            return JsonRpcNotification.model_validate(data)
        if "result" in data or "error" in data:
            response = JsonRpcResponse.model_validate(data)
            if "result" in data and "error" in data:
                raise InvalidEnvelopeError(
                    JsonRpcErrorCode.INVALID_REQUEST,
                    "Invalid request: response carries both result and error",
                )
            return response
    except ValidationError as e:
        raise InvalidEnvelopeError(
            JsonRpcErrorCode.INVALID_REQUEST, f"Invalid request: {_describe(e)}"
        ) from e

    raise InvalidEnvelopeError(
        JsonRpcErrorCode.INVALID_REQUEST, "Invalid request: missing 'method' field"
    )


def _describe(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item["loc"]) or "message"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)
