"""OpenTelemetry tracing configuration for casgate.

Tracing is off by default. When enabled, block store operations emit
``casgate.block_store.*`` spans and the FastAPI app plus httpx (used by the
HTTP blob backend) are instrumented.

Environment Variables:
    CASGATE_OTEL_ENABLED: Set to "1" to enable tracing (default: disabled)
    CASGATE_REQUIRE_OTEL: Set to "1" to fail startup if tracing cannot initialize
    CASGATE_OTEL_SERVICE_NAME: Service name for spans (default: "casgate")
    CASGATE_OTEL_EXPORTER: Exporter type - "otlp" or "console" (default: "otlp")
    CASGATE_OTEL_EXPORTER_OTLP_ENDPOINT: OTLP endpoint URL (optional)
    CASGATE_OTEL_TEST_CAPTURE: Set to "1" to use in-memory exporter for tests
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from opentelemetry.sdk.trace import ReadableSpan, TracerProvider

logger = logging.getLogger(__name__)

_tracer_provider: TracerProvider | None = None
_is_configured: bool = False
_test_exporter: Any = None


class TracingConfigError(Exception):
    """Raised when tracing configuration fails and CASGATE_REQUIRE_OTEL=1."""


def _get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    val = os.environ.get(key, "").strip().lower()
    if val in ("1", "true", "yes"):
        return True
    return default


def _get_env_str(key: str, default: str = "") -> str:
    """Get string from environment variable."""
    return os.environ.get(key, default).strip()


def configure_tracing() -> bool:
    """Configure OpenTelemetry tracing for casgate.

    Idempotent - safe to call multiple times.

    Returns:
        True if tracing is enabled and configured, False otherwise.

    Raises:
        TracingConfigError: If CASGATE_REQUIRE_OTEL=1 and configuration fails.
    """
    global _tracer_provider, _is_configured, _test_exporter

    enabled = _get_env_bool("CASGATE_OTEL_ENABLED", False)
    require_otel = _get_env_bool("CASGATE_REQUIRE_OTEL", False)
    test_capture = _get_env_bool("CASGATE_OTEL_TEST_CAPTURE", False)

    if not enabled:
        _is_configured = True
        logger.debug("OpenTelemetry tracing disabled (CASGATE_OTEL_ENABLED not set)")
        return False

    if _test_exporter is not None and test_capture:
        return True

    if _is_configured and _tracer_provider is not None:
        return True

    _is_configured = True

    try:
        from opentelemetry import trace
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor

        service_name = _get_env_str("CASGATE_OTEL_SERVICE_NAME", "casgate")
        exporter_type = _get_env_str("CASGATE_OTEL_EXPORTER", "otlp")
        endpoint = _get_env_str("CASGATE_OTEL_EXPORTER_OTLP_ENDPOINT", "")

        provider = TracerProvider(resource=Resource.create({"service.name": service_name}))

        if test_capture:
            from opentelemetry.sdk.trace.export.in_memory_span_exporter import (
                InMemorySpanExporter,
            )

            _test_exporter = InMemorySpanExporter()
            provider.add_span_processor(SimpleSpanProcessor(_test_exporter))
        elif exporter_type == "console":
            from opentelemetry.sdk.trace.export import ConsoleSpanExporter

            provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
        else:
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

            kwargs: dict[str, Any] = {"endpoint": endpoint} if endpoint else {}
            provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(**kwargs)))

        trace.set_tracer_provider(provider)
        _tracer_provider = provider

        logger.info(
            "OpenTelemetry tracing configured: service=%s, exporter=%s",
            service_name,
            exporter_type if not test_capture else "in-memory",
        )
        return True

    except Exception as e:
        logger.error("Failed to configure OpenTelemetry tracing: %s", e)
        if require_otel:
            raise TracingConfigError(
                f"OpenTelemetry tracing required but configuration failed: {e}"
            ) from e
        return False


def instrument_fastapi(app: Any) -> None:
    """Instrument FastAPI application with OpenTelemetry."""
    if not _get_env_bool("CASGATE_OTEL_ENABLED", False):
        return

    try:
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

        FastAPIInstrumentor.instrument_app(app, excluded_urls="health")
        logger.debug("FastAPI instrumented with OpenTelemetry")
    except Exception as e:
        logger.warning("Failed to instrument FastAPI: %s", e)


def instrument_httpx() -> None:
    """Instrument httpx clients used by the HTTP blob backend."""
    if not _get_env_bool("CASGATE_OTEL_ENABLED", False):
        return

    try:
        from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

        HTTPXClientInstrumentor().instrument()
        logger.debug("httpx instrumented with OpenTelemetry")
    except Exception as e:
        logger.warning("Failed to instrument httpx: %s", e)


def get_test_spans() -> list[ReadableSpan]:
    """Get captured spans from in-memory exporter (for testing)."""
    if _test_exporter is not None and hasattr(_test_exporter, "get_finished_spans"):
        return list(_test_exporter.get_finished_spans())
    return []


def clear_test_spans() -> None:
    """Clear captured spans from in-memory exporter (for testing)."""
    if _test_exporter is not None and hasattr(_test_exporter, "clear"):
        _test_exporter.clear()


def reset_tracing() -> None:
    """Reset tracing configuration (for testing).

    The global TracerProvider cannot be replaced once set, so the test
    exporter is kept and only its spans are cleared.
    """
    global _is_configured

    clear_test_spans()
    _is_configured = False
