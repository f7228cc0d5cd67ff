"""Health check and banner endpoints for the casgate API."""

from datetime import UTC, datetime

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from casgate import __version__

router = APIRouter(tags=["Health"])

SERVICE_BANNER = "casgate content-addressed storage API"


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: str
    time: str
    version: str


@router.get("/health", response_model=HealthResponse)
def get_health() -> HealthResponse:
    """Liveness probe.

    Returns:
        HealthResponse with status "ok", current time and service version.
    """
    return HealthResponse(
        status="ok",
        time=datetime.now(UTC).isoformat(),
        version=__version__,
    )


@router.get("/", response_class=PlainTextResponse)
def get_banner() -> str:
    return SERVICE_BANNER
