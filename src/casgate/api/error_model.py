"""Shared error response builder for the casgate API.

Every middleware and exception handler uses make_error_response() so all
errors share one envelope:

- code: str - machine-readable error code (e.g., "INVALID_CID", "NOT_FOUND")
- message: str - human-readable error message
- details: dict | None - optional additional context
- request_id: str - request correlation ID (always present)
"""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from casgate.api.middleware.request_id import REQUEST_ID_HEADER, current_request_id


def _get_request_id(request: Request) -> str:
    """Return the request ID assigned by RequestIdMiddleware.

    Falls back to the logging context, then to a fresh UUID for errors
    raised outside the middleware (e.g. by ServerErrorMiddleware).
    """
    request_id: str | None = getattr(request.state, "request_id", None)
    if request_id is None:
        request_id = current_request_id.get()
    return request_id or str(uuid.uuid4())


def make_error_response(
    request: Request,
    *,
    code: str,
    message: str,
    http_status: int,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    """Build an error JSON response.

    Args:
        request: The FastAPI request object (for request_id extraction).
        code: Machine-readable error code.
        message: Human-readable error message.
        http_status: HTTP status code.
        details: Optional dict with additional context.

    Returns:
        JSONResponse with the error envelope and X-Request-Id header.
    """
    request_id = _get_request_id(request)

    body: dict[str, Any] = {
        "code": code,
        "message": message,
        "details": details,
        "request_id": request_id,
    }

    response = JSONResponse(status_code=http_status, content=body)
    response.headers[REQUEST_ID_HEADER] = request_id

    return response


HTTP_STATUS_TO_CODE: dict[int, str] = {
    400: "BAD_REQUEST",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    413: "PAYLOAD_TOO_LARGE",
    422: "UNPROCESSABLE_ENTITY",
    500: "INTERNAL_ERROR",
    502: "BAD_GATEWAY",
    503: "SERVICE_UNAVAILABLE",
    504: "GATEWAY_TIMEOUT",
}


def get_error_code_for_status(status_code: int) -> str:
    """Get standard error code for HTTP status code."""
    return HTTP_STATUS_TO_CODE.get(status_code, "ERROR")
