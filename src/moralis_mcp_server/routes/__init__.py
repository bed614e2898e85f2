"""HTTP routes."""

from .health import health_routes
from .messages import create_message_routes
from .sse import EventStreamResponse, sse_routes

__all__ = [
    "EventStreamResponse",
    "create_message_routes",
    "health_routes",
    "sse_routes",
]
