"""Request-submission endpoint.

POST /messages?sessionId=<id> accepts one JSON-RPC envelope. The reply
to this call only says whether the envelope was accepted; the JSON-RPC
response itself arrives later on the session's event stream.
"""

from __future__ import annotations

import logging

from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response
from starlette.routing import Route

from ..router import RejectionReason, RequestRouter

logger = logging.getLogger(__name__)

LEGACY_MESSAGE_PATH = "/api/messages"

REJECTION_STATUS = {
    RejectionReason.MISSING_SESSION_ID: 400,
    RejectionReason.UNKNOWN_SESSION: 404,
    RejectionReason.MALFORMED_REQUEST: 400,
}


async def post_message(request: Request) -> Response:
    """Submit one envelope for a session."""
    router: RequestRouter = request.app.state.router
    session_id = request.query_params.get("sessionId")
    body = await request.body()

    submission = router.submit(session_id, body)
    if submission.accepted:
        return PlainTextResponse("Accepted", status_code=202)

    error = submission.error.model_dump(exclude_none=True) if submission.error else {}
    return JSONResponse(
        {"jsonrpc": "2.0", "id": None, "error": error},
        status_code=REJECTION_STATUS.get(submission.reason, 400),  # type: ignore[arg-type]
    )


def create_message_routes(message_path: str) -> list[Route]:
    """Routes for the configured submission path plus the legacy alias."""
    paths = [message_path]
    if message_path != LEGACY_MESSAGE_PATH:
        paths.append(LEGACY_MESSAGE_PATH)
    return [Route(path, post_message, methods=["POST"]) for path in paths]
