"""Request router.

Validates submitted envelopes, dispatches them to capabilities and sends
the outcome down the session's event stream.

Per request:

    received -> validated -> dispatched -> (succeeded | failed) -> sent | dropped

``submit`` only does the first two steps and returns immediately; the rest
runs in its own task so a slow capability never holds up other requests
or other sessions. Nothing is keyed by request id: the id travels inside
the envelope and is echoed back verbatim.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Coroutine
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .capabilities import CapabilityRegistry, RequestContext
from .protocol import (
    CapabilityError,
    InvalidEnvelopeError,
    JsonRpcError,
    JsonRpcErrorCode,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    parse_message,
)
from .transport import SendStatus, SessionTransport

logger = logging.getLogger(__name__)


class SubmissionStatus(str, Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class RejectionReason(str, Enum):
    MISSING_SESSION_ID = "missing_session_id"
    UNKNOWN_SESSION = "unknown_session"
    MALFORMED_REQUEST = "malformed_request"


@dataclass(frozen=True)
class Submission:
    """Synchronous outcome of ``RequestRouter.submit``."""

    status: SubmissionStatus
    reason: RejectionReason | None = None
    error: JsonRpcError | None = None

    @property
    def accepted(self) -> bool:
        return self.status is SubmissionStatus.ACCEPTED

    @classmethod
    def accept(cls) -> Submission:
        return cls(status=SubmissionStatus.ACCEPTED)

    @classmethod
    def reject(cls, reason: RejectionReason, error: JsonRpcError) -> Submission:
        return cls(status=SubmissionStatus.REJECTED, reason=reason, error=error)


class RequestRouter:
    """Routes submitted envelopes to capabilities and replies via the stream."""

    def __init__(
        self,
        transport: SessionTransport,
        capabilities: CapabilityRegistry,
        *,
        request_timeout: float | None = None,
    ) -> None:
        self._transport = transport
        self._capabilities = capabilities
        self._request_timeout = request_timeout
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def in_flight(self) -> int:
        """Number of dispatches that have not finished yet."""
        return len(self._tasks)

    def submit(
        self, session_id: str | None, raw_payload: bytes | str | dict[str, Any]
    ) -> Submission:
        """Validate a submission and schedule its dispatch.

        Must be called from within a running event loop. Returns before
        the capability runs; acceptance does not promise a response.
        """
        if not session_id:
            return Submission.reject(
                RejectionReason.MISSING_SESSION_ID,
                JsonRpcError(
                    code=JsonRpcErrorCode.INVALID_PARAMS,
                    message="Missing sessionId query parameter",
                ),
            )

        if session_id not in self._transport.table:
            logger.warning(f"Submission for unknown session: {session_id}")
            return Submission.reject(
                RejectionReason.UNKNOWN_SESSION,
                JsonRpcError(
                    code=JsonRpcErrorCode.SESSION_NOT_FOUND,
                    message=f"Session not found: {session_id}",
                ),
            )

        try:
            message = parse_message(raw_payload)
        except InvalidEnvelopeError as e:
            logger.warning(f"Malformed submission for session {session_id}: {e.message}")
            return Submission.reject(RejectionReason.MALFORMED_REQUEST, e.to_error())

        if isinstance(message, JsonRpcRequest):
            logger.debug(f"Session {session_id}: request {message.method} (id={message.id!r})")
            self._spawn(
                self._dispatch_request(session_id, message),
                name=f"dispatch:{session_id}:{message.id}",
            )
        elif isinstance(message, JsonRpcNotification):
            logger.debug(f"Session {session_id}: notification {message.method}")
            self._spawn(
                self._dispatch_notification(session_id, message),
                name=f"notify:{session_id}:{message.method}",
            )
        else:
            # No server-initiated requests are outstanding, so client responses have nowhere to go
            logger.debug(f"Session {session_id}: ignoring client response (id={message.id!r})")

        return Submission.accept()

    async def aclose(self) -> None:
        """Cancel every in-flight dispatch (server shutdown)."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def _spawn(self, coro: Coroutine[Any, Any, None], name: str) -> None:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Dispatch task {task.get_name()} failed", exc_info=exc)

    async def _dispatch_request(self, session_id: str, request: JsonRpcRequest) -> None:
        context = RequestContext(session_id=session_id, request_id=request.id)
        response = await self._invoke(request, context)

        try:
            status = await self._transport.send(session_id, response)
        except (TypeError, ValueError) as e:
            logger.error(f"Result of {request.method} (id={request.id!r}) is not serializable: {e}")
            status = await self._transport.send(
                session_id,
                JsonRpcResponse.failure(
                    request.id,
                    JsonRpcErrorCode.INTERNAL_ERROR,
                    f"Result is not JSON serializable: {e}",
                ),
            )

        if status is SendStatus.NOT_FOUND:
            logger.info(
                f"Dropped response to {request.method} (id={request.id!r}): "
                f"session {session_id} is gone"
            )
        else:
            logger.debug(
                f"Session {session_id}: sent response to {request.method} (id={request.id!r})"
            )

    async def _invoke(self, request: JsonRpcRequest, context: RequestContext) -> JsonRpcResponse:
        handler = self._capabilities.resolve(request.method)
        if handler is None:
            return JsonRpcResponse.failure(
                request.id,
                JsonRpcErrorCode.METHOD_NOT_FOUND,
                f"Unknown method: {request.method}",
            )

        try:
            async with asyncio.timeout(self._request_timeout) as deadline:
                result = await handler(request.params, context)
        except TimeoutError as e:
            if deadline.expired():
                logger.warning(
                    f"{request.method} (id={request.id!r}) timed out "
                    f"after {self._request_timeout:g}s"
                )
                return JsonRpcResponse.failure(
                    request.id,
                    JsonRpcErrorCode.REQUEST_TIMEOUT,
                    f"Request timed out after {self._request_timeout:g}s",
                )
            logger.exception(f"Capability {request.method} failed")
            return JsonRpcResponse.failure(
                request.id, JsonRpcErrorCode.INTERNAL_ERROR, str(e) or "Timed out"
            )
        except CapabilityError as e:
            return JsonRpcResponse.failure(request.id, e.code, e.message, e.data)
        except Exception as e:
            logger.exception(f"Capability {request.method} failed")
            return JsonRpcResponse.failure(
                request.id, JsonRpcErrorCode.INTERNAL_ERROR, str(e) or type(e).__name__
            )

        return JsonRpcResponse.success(request.id, result)

    async def _dispatch_notification(
        self, session_id: str, notification: JsonRpcNotification
    ) -> None:
        handler = self._capabilities.resolve_notification(notification.method)
        if handler is None:
            logger.debug(f"Ignoring unhandled notification {notification.method}")
            return
        try:
            await handler(notification.params, RequestContext(session_id=session_id))
        except Exception:
            logger.exception(f"Notification handler {notification.method} failed")
