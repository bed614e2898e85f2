"""SSE stream-open endpoint.

GET /sse opens a session. The response stays open until the client
disconnects or the server closes the session; there is no explicit close
message.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from starlette.requests import Request
from starlette.routing import Route
from starlette.types import Receive, Scope, Send

from ..transport import EventStream, Session, SessionTransport

logger = logging.getLogger(__name__)


class EventStreamResponse:
    """ASGI response that holds one session open.

    Unlike ``StreamingResponse`` the stream is written from outside (by the
    transport), so this only opens the session, keeps it alive and waits
    for whichever side ends it first.
    """

    def __init__(
        self,
        transport: SessionTransport,
        keepalive_interval: float | None = None,
    ) -> None:
        self._transport = transport
        self._keepalive_interval = keepalive_interval

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        stream = EventStream(send)
        session = await self._transport.open(stream, root_path=scope.get("root_path", ""))
        if not session.alive:
            return

        disconnect_task = asyncio.create_task(self._listen_for_disconnect(receive))
        closed_task = asyncio.create_task(session.wait_closed())
        tasks = [disconnect_task, closed_task]
        if self._keepalive_interval:
            tasks.append(asyncio.create_task(self._keepalive(session, self._keepalive_interval)))

        client_gone = False
        try:
            done, _ = await asyncio.wait(
                [disconnect_task, closed_task], return_when=asyncio.FIRST_COMPLETED
            )
            client_gone = disconnect_task in done
        finally:
            for task in tasks:
                task.cancel()
            for task in tasks:
                with contextlib.suppress(asyncio.CancelledError):
                    await task
            session.close("client disconnected" if client_gone else "connection closed")

        if not client_gone:
            await session.finish()

    @staticmethod
    async def _listen_for_disconnect(receive: Receive) -> None:
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                return

    async def _keepalive(self, session: Session, interval: float) -> None:
        """Send periodic comments so half-open connections are noticed."""
        while session.alive:
            await asyncio.sleep(interval)
            await self._transport.ping(session.session_id)


async def sse_endpoint(request: Request) -> EventStreamResponse:
    """Open a session-addressed event stream."""
    state = request.app.state
    logger.debug(f"SSE connection request from {request.client.host if request.client else '?'}")
    return EventStreamResponse(
        state.transport,
        keepalive_interval=state.config.keepalive_interval,
    )


sse_routes = [
    Route("/sse", sse_endpoint, methods=["GET"]),
]
