"""Session-addressed SSE transport.

Each open event stream is a ``Session`` with a unique id. Sessions live in
a ``SessionTable`` owned by one ``SessionTransport``; the table only ever
holds live sessions. A session leaves the table through its close
callback, fired exactly once when the connection drops, a write fails or
the server shuts down.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from urllib.parse import quote

from ..protocol import JsonRpcNotification, JsonRpcResponse
from .sse import EventStream, StreamClosedError, format_comment, format_event

logger = logging.getLogger(__name__)

ENDPOINT_EVENT = "endpoint"
SESSION_EVENT = "session"
MESSAGE_EVENT = "message"

CloseCallback = Callable[["Session", str], None]
OutboundMessage = JsonRpcResponse | JsonRpcNotification | dict[str, Any]


class SendStatus(str, Enum):
    """Outcome of pushing a message to a session."""

    DELIVERED = "delivered"
    NOT_FOUND = "not_found"  # Never existed, already closed, or died during the write


class Session:
    """One open server-to-client event stream and its identity."""

    def __init__(self, session_id: str, stream: EventStream) -> None:
        self.session_id = session_id
        self.created_at = datetime.now(UTC)
        self.close_reason: str | None = None
        self._stream = stream
        self._alive = True
        self._on_close: CloseCallback | None = None
        self._closed = asyncio.Event()
        self._write_lock = asyncio.Lock()

    @property
    def alive(self) -> bool:
        return self._alive

    def on_close(self, callback: CloseCallback) -> None:
        """Register the close callback. Only one may be registered."""
        if self._on_close is not None:
            raise RuntimeError(f"Session {self.session_id} already has a close callback")
        self._on_close = callback

    def close(self, reason: str = "closed") -> bool:
        """Mark the session dead and fire the close callback.

        Returns:
            True if this call closed the session, False if it was already closed
        """
        if not self._alive:
            return False
        self._alive = False
        self.close_reason = reason
        self._closed.set()

        callback, self._on_close = self._on_close, None
        if callback is not None:
            callback(self, reason)
        return True

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def write(self, frame: str) -> bool:
        """Write a frame; a failed write closes the session.

        Returns:
            True if the frame was written
        """
        async with self._write_lock:
            if not self._alive:
                return False
            try:
                await self._stream.write(frame)
            except StreamClosedError as e:
                self.close(f"write failed: {e}")
                return False
        return True

    async def send_event(self, event: str, data: str) -> bool:
        return await self.write(format_event(event, data))

    async def finish(self) -> None:
        """End the underlying HTTP body (server-initiated teardown)."""
        async with self._write_lock:
            try:
                await self._stream.finish()
            except StreamClosedError:
                logger.debug(f"Stream for session {self.session_id} already gone at finish")


class SessionTable:
    """Live sessions keyed by id.

    One table per server instance. Mutated only by the open and close
    paths; the request path only reads it.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    def add(self, session: Session) -> None:
        if session.session_id in self._sessions:
            raise ValueError(f"Session '{session.session_id}' already registered")
        self._sessions[session.session_id] = session

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def remove(self, session_id: str) -> Session | None:
        return self._sessions.pop(session_id, None)

    def ids(self) -> list[str]:
        return list(self._sessions)

    def sessions(self) -> list[Session]:
        return list(self._sessions.values())

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


class SessionTransport:
    """Opens sessions on event streams and pushes messages down them."""

    def __init__(
        self,
        table: SessionTable,
        *,
        message_path: str = "/messages",
        server_name: str = "moralis-mcp-server",
        server_version: str = "0.0.0",
    ) -> None:
        self._table = table
        self._message_path = message_path
        self._server_info = {"name": server_name, "version": server_version}

    @property
    def table(self) -> SessionTable:
        return self._table

    def new_session_id(self) -> str:
        while True:
            session_id = str(uuid.uuid4())
            if session_id not in self._table:
                return session_id

    def endpoint_for(self, session_id: str, root_path: str = "") -> str:
        """Submission URL a client must POST to for this session."""
        return f"{root_path.rstrip('/')}{self._message_path}?sessionId={quote(session_id)}"

    async def open(self, stream: EventStream, root_path: str = "") -> Session:
        """Start a session on a freshly accepted event stream.

        Writes the response head, registers the session, then announces the
        submission endpoint followed by the server identity. The endpoint
        event is always the first event on the stream.

        Raises:
            RuntimeError: If a session was already opened on this stream
        """
        if stream.started:
            raise RuntimeError("A session is already open on this event stream")

        session = Session(self.new_session_id(), stream)
        try:
            await stream.start()
        except StreamClosedError as e:
            logger.info(f"Event stream dropped before session {session.session_id} opened: {e}")
            session.close(f"open failed: {e}")
            return session

        self._table.add(session)
        session.on_close(self._on_session_closed)
        logger.info(f"SSE session opened: {session.session_id} ({len(self._table)} active)")

        endpoint = self.endpoint_for(session.session_id, root_path)
        if await session.send_event(ENDPOINT_EVENT, endpoint):
            info = {"sessionId": session.session_id, "server": self._server_info}
            await session.send_event(SESSION_EVENT, json.dumps(info))
        return session

    async def send(self, session_id: str, message: OutboundMessage) -> SendStatus:
        """Push one message to a session as a ``message`` event.

        Never raises for a missing or dead session; that is reported as
        ``SendStatus.NOT_FOUND``.

        Raises:
            TypeError: If the payload is not JSON-serializable
            ValueError: If the payload contains NaN or infinity
        """
        session = self._table.get(session_id)
        if session is None or not session.alive:
            return SendStatus.NOT_FOUND

        payload = message if isinstance(message, dict) else message.to_wire()
        data = json.dumps(payload, separators=(",", ":"), ensure_ascii=False, allow_nan=False)
        if await session.send_event(MESSAGE_EVENT, data):
            return SendStatus.DELIVERED
        return SendStatus.NOT_FOUND

    async def ping(self, session_id: str) -> SendStatus:
        """Write a keep-alive comment; detects half-open connections."""
        session = self._table.get(session_id)
        if session is None:
            return SendStatus.NOT_FOUND
        if await session.write(format_comment("ping")):
            return SendStatus.DELIVERED
        return SendStatus.NOT_FOUND

    def close_all(self, reason: str = "server shutdown") -> int:
        """Close every live session. Returns how many were closed."""
        closed = 0
        for session in self._table.sessions():
            if session.close(reason):
                closed += 1
        return closed

    def _on_session_closed(self, session: Session, reason: str) -> None:
        self._table.remove(session.session_id)
        logger.info(
            f"SSE session closed: {session.session_id} ({reason}, {len(self._table)} active)"
        )
