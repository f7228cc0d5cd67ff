"""Request ID middleware for the casgate API.

Every request gets an ID that is echoed in the X-Request-Id response header,
copied into error envelopes and attached to every log record emitted while
the request is being handled (via RequestIdLogFilter).
"""

import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from contextvars import ContextVar

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

REQUEST_ID_HEADER = "X-Request-Id"
MAX_REQUEST_ID_LENGTH = 128

current_request_id: ContextVar[str | None] = ContextVar("casgate_request_id", default=None)

logger = logging.getLogger(__name__)


def _accept_incoming(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    if not value or len(value) > MAX_REQUEST_ID_LENGTH or not value.isprintable():
        return None
    return value


class RequestIdLogFilter(logging.Filter):
    """Adds ``request_id`` to log records ("-" outside a request)."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = current_request_id.get() or "-"
        return True


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Middleware that attaches a request ID to every request.

    Behavior:
    - Reuse a printable incoming X-Request-Id of at most 128 characters.
    - Else generate uuid4.
    - Store it on request.state and in the logging context for the duration
      of the request, add it to the response and log one access line.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = _accept_incoming(request.headers.get(REQUEST_ID_HEADER)) or str(uuid.uuid4())
        request.state.request_id = request_id
        token = current_request_id.set(request_id)
        started = time.perf_counter()

        try:
            response: Response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            logger.info(
                "%s %s -> %d (%.1f ms)",
                request.method,
                request.url.path,
                response.status_code,
                (time.perf_counter() - started) * 1000,
            )
            return response
        finally:
            current_request_id.reset(token)
