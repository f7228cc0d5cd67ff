"""casgate block store OpenTelemetry tracing integration.

Provides a tracing decorator for async block store operations.

Span attributes are limited to the CID text, the tier name and block
sizes. Backend locations (directories, URLs, tokens) are never exported.
"""

from __future__ import annotations

import functools
import logging
import os
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar, cast

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Awaitable[Any]])


def _get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    val = os.environ.get(key, "").strip().lower()
    if val in ("1", "true", "yes"):
        return True
    return default


def _is_otel_enabled() -> bool:
    """Check if OpenTelemetry tracing is enabled."""
    return _get_env_bool("CASGATE_OTEL_ENABLED", False)


def traced_block_operation(operation: str) -> Callable[[F], F]:
    """Decorator to trace block store operations with OpenTelemetry.

    Args:
        operation: Operation name (e.g., "put", "get", "has").

    Returns:
        Decorated coroutine function that emits spans when tracing is enabled.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(self: Any, cid: Any, *args: Any, **kwargs: Any) -> Any:
            if not _is_otel_enabled():
                return await func(self, cid, *args, **kwargs)

            try:
                from opentelemetry import trace
            except ImportError:
                return await func(self, cid, *args, **kwargs)

            tracer = trace.get_tracer("casgate.block_store")
            span_name = f"casgate.block_store.{operation}"

            with tracer.start_as_current_span(span_name) as span:
                span.set_attribute("casgate.cid", str(cid))
                span.set_attribute("storage.backend", getattr(self, "backend_name", "unknown"))
                if operation == "put" and args:
                    span.set_attribute("casgate.block_size_bytes", len(args[0]))

                try:
                    result = await func(self, cid, *args, **kwargs)
                except Exception as e:
                    span.set_attribute("error", True)
                    span.set_attribute("error.type", type(e).__name__)
                    raise

                if operation == "get" and isinstance(result, bytes):
                    span.set_attribute("casgate.block_size_bytes", len(result))
                elif operation == "has":
                    span.set_attribute("casgate.block_exists", bool(result))
                return result

        return cast(F, wrapper)

    return decorator
