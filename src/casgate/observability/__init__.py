"""casgate observability module.

Provides opt-in OpenTelemetry tracing.
"""

from casgate.observability.tracing import configure_tracing

__all__ = ["configure_tracing"]
