"""casgate FastAPI application factory.

This module provides the create_app() factory for bootstrapping the API.
"""

import logging

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException

from casgate import __version__
from casgate.api.errors import (
    CasHttpError,
    cas_http_error_handler,
    generic_exception_handler,
    http_exception_handler,
    request_validation_error_handler,
)
from casgate.api.middleware.request_id import RequestIdMiddleware
from casgate.api.routes.content import router as content_router
from casgate.api.routes.health import router as health_router
from casgate.bootstrap import build_content_service
from casgate.config import Settings, load_settings
from casgate.observability.tracing import configure_tracing, instrument_fastapi, instrument_httpx
from casgate.services.content import ContentService

logger = logging.getLogger(__name__)


def create_app(
    content_service: ContentService | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """Create and configure the casgate FastAPI application.

    This factory:
    - Creates a FastAPI app with casgate metadata
    - Wires the ContentService (built from settings unless injected)
    - Registers the request ID middleware and error handlers
    - Mounts the health and content routers

    Args:
        content_service: Optional pre-built ContentService (tests inject one
            over in-memory tiers). If None, one is built from settings.
        settings: Optional Settings. If None, read from the environment.

    Returns:
        Configured FastAPI application instance.
    """
    app = FastAPI(
        title="casgate API",
        description="Content-addressed block storage with a tiered cache",
        version=__version__,
    )

    if content_service is None:
        content_service = build_content_service(settings or load_settings())
    app.state.content_service = content_service

    configure_tracing()
    instrument_httpx()

    app.add_middleware(RequestIdMiddleware)

    instrument_fastapi(app)

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        """Release block store resources on app shutdown."""
        await content_service.store.aclose()
        logger.info("casgate API stopped")

    app.add_exception_handler(CasHttpError, cas_http_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(health_router)
    app.include_router(content_router)

    logger.info("casgate API configured: store=%s", content_service.store.backend_name)
    return app
