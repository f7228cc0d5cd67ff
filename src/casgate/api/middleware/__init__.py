"""casgate API middleware package."""

from casgate.api.middleware.request_id import RequestIdLogFilter, RequestIdMiddleware

__all__ = ["RequestIdLogFilter", "RequestIdMiddleware"]
