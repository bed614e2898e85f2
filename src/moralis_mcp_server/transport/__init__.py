"""Session-addressed SSE transport.

Clients hold one event stream open per session and submit requests
out-of-band; responses travel back down the stream.
"""

from .session import (
    ENDPOINT_EVENT,
    MESSAGE_EVENT,
    SESSION_EVENT,
    SendStatus,
    Session,
    SessionTable,
    SessionTransport,
)
from .sse import EventStream, StreamClosedError, format_comment, format_event

__all__ = [
    "ENDPOINT_EVENT",
    "MESSAGE_EVENT",
    "SESSION_EVENT",
    "EventStream",
    "SendStatus",
    "Session",
    "SessionTable",
    "SessionTransport",
    "StreamClosedError",
    "format_comment",
    "format_event",
]
