"""casgate API error handling.

Provides CasHttpError, the mapping from pipeline failures to HTTP errors,
and FastAPI exception handlers producing the shared error envelope.

Failure mapping:
- invalid_cid       -> 404 INVALID_CID (bad identifiers are not-found class)
- not_found         -> 404 NOT_FOUND
- store_unavailable -> 502 STORE_UNAVAILABLE
- too_large         -> 413 UPLOAD_TOO_LARGE
- anything else     -> 500 INTERNAL_ERROR (no stack traces leaked)
"""

import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from casgate.api.error_model import get_error_code_for_status, make_error_response
from casgate.errors import CasError, FailureKind, classify

logger = logging.getLogger(__name__)


class CasHttpError(Exception):
    """Application-level HTTP error with structured error envelope.

    Attributes:
        status_code: HTTP status code (e.g., 404, 502).
        code: Machine-readable error code (e.g., "INVALID_CID").
        message: Human-readable error message.
        details: Optional dict with additional error context.
    """

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details


_KIND_TO_HTTP: dict[FailureKind, tuple[int, str]] = {
    FailureKind.INVALID_CID: (404, "INVALID_CID"),
    FailureKind.NOT_FOUND: (404, "NOT_FOUND"),
    FailureKind.STORE_UNAVAILABLE: (502, "STORE_UNAVAILABLE"),
    FailureKind.TOO_LARGE: (413, "UPLOAD_TOO_LARGE"),
}


def http_error_for(exc: CasError) -> CasHttpError:
    """Translate a casgate error into a CasHttpError.

    Backend details (keys, causes) stay in the logs; clients get the kind
    and, when known, the CID.
    """
    kind = getattr(exc, "kind", None)
    if not isinstance(kind, FailureKind):
        kind = classify(exc)

    status_code, code = _KIND_TO_HTTP.get(kind, (500, "INTERNAL_ERROR"))
    if kind is FailureKind.STORE_UNAVAILABLE:
        message = "Block store unavailable"
    elif kind is FailureKind.INVALID_CID:
        message = "Invalid CID"
    elif kind is FailureKind.NOT_FOUND:
        message = "Content not found"
    elif kind is FailureKind.TOO_LARGE:
        message = str(exc.message)
    else:
        message = "An internal error occurred"

    details = {"cid": exc.cid} if exc.cid else None
    return CasHttpError(status_code, code, message, details)


async def cas_http_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """FastAPI exception handler for CasHttpError."""
    assert isinstance(exc, CasHttpError)

    return make_error_response(
        request,
        code=exc.code,
        message=exc.message,
        http_status=exc.status_code,
        details=exc.details,
    )


async def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """FastAPI exception handler for HTTPException."""
    assert isinstance(exc, HTTPException)

    code = get_error_code_for_status(exc.status_code)
    message = str(exc.detail) if exc.detail else f"HTTP {exc.status_code}"

    return make_error_response(
        request,
        code=code,
        message=message,
        http_status=exc.status_code,
        details=None,
    )


async def request_validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """FastAPI exception handler for RequestValidationError."""
    assert isinstance(exc, RequestValidationError)

    safe_details: list[dict[str, Any]] = []
    for error in exc.errors():
        loc = error.get("loc", ())
        safe_loc = [str(part) for part in loc if part not in ("body", "query", "path")]
        safe_details.append(
            {
                "field": ".".join(safe_loc) if safe_loc else "request",
                "message": error.get("msg", "Validation error"),
            }
        )

    return make_error_response(
        request,
        code="REQUEST_VALIDATION_FAILED",
        message="Request validation failed",
        http_status=422,
        details={"errors": safe_details} if safe_details else None,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler for unhandled exceptions.

    Returns 500 with a generic message; the exception is only logged.
    """
    request_id = getattr(request.state, "request_id", None)

    logger.exception(
        "Unhandled exception: %s",
        type(exc).__name__,
        extra={"request_id": request_id},
    )

    return make_error_response(
        request,
        code="INTERNAL_ERROR",
        message="An internal error occurred",
        http_status=500,
        details=None,
    )
