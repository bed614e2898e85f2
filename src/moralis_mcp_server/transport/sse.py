"""Server-Sent Events framing and the writable stream handle.

Frames follow the SSE wire format:

    event: message
    data: {"jsonrpc": "2.0", ...}

An ``EventStream`` owns the ASGI ``send`` callable of one open GET
request and is the only thing that writes to it.
"""

from __future__ import annotations

import anyio
from starlette.requests import ClientDisconnect
from starlette.types import Message, Send

SSE_HEADERS: list[tuple[bytes, bytes]] = [
    (b"content-type", b"text/event-stream; charset=utf-8"),
    (b"cache-control", b"no-cache"),
    (b"connection", b"keep-alive"),
    (b"x-accel-buffering", b"no"),  # Disable nginx buffering
]

# Everything a dead peer can surface from ``send``
_WRITE_ERRORS = (
    OSError,
    RuntimeError,
    ClientDisconnect,
    anyio.BrokenResourceError,
    anyio.ClosedResourceError,
)


class StreamClosedError(Exception):
    """Raised when writing to an event stream that is gone."""


def format_event(event: str, data: str) -> str:
    """Format one SSE frame.

    Multi-line data is split across several ``data:`` lines so the
    client reassembles it verbatim.
    """
    if "\n" in event or "\r" in event:
        raise ValueError(f"Event name must be a single line: {event!r}")
    lines = data.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    body = "".join(f"data: {line}\n" for line in lines)
    return f"event: {event}\n{body}\n"


def format_comment(text: str = "") -> str:
    """Format an SSE comment frame (ignored by clients, used for keep-alive)."""
    return f": {text}\n\n"


class EventStream:
    """Writable handle for one server-to-client event stream."""

    def __init__(self, send: Send) -> None:
        self._send = send
        self._started = False
        self._finished = False

    @property
    def started(self) -> bool:
        return self._started

    @property
    def finished(self) -> bool:
        return self._finished

    async def start(self) -> None:
        """Write the response head. Must be called exactly once."""
        if self._started:
            raise RuntimeError("Event stream already started")
        self._started = True
        await self._emit({"type": "http.response.start", "status": 200, "headers": SSE_HEADERS})

    async def write(self, frame: str) -> None:
        """Write one pre-formatted frame.

        Raises:
            StreamClosedError: If the stream is finished or the write fails
        """
        if not self._started:
            raise RuntimeError("Event stream not started")
        if self._finished:
            raise StreamClosedError("Event stream already finished")
        await self._emit(
            {"type": "http.response.body", "body": frame.encode("utf-8"), "more_body": True}
        )

    async def finish(self) -> None:
        """End the response body if it is still open."""
        if not self._started or self._finished:
            return
        await self._emit({"type": "http.response.body", "body": b"", "more_body": False})
        self._finished = True

    async def _emit(self, message: Message) -> None:
        try:
            await self._send(message)
        except _WRITE_ERRORS as e:
            self._finished = True
            raise StreamClosedError(str(e) or type(e).__name__) from e
