"""
FastAPI middleware for request correlation IDs.

Every request gets a correlation ID (taken from ``X-Correlation-ID`` when the
caller sends one) that is bound into all log entries written while serving it.
"""
import time
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from docgraph.utils.logging import (
    get_logger,
    set_correlation_id,
    generate_correlation_id,
)
from docgraph.utils.metrics import http_requests_total, http_request_duration_seconds

logger = get_logger(__name__)


def _endpoint_label(request: Request) -> str:
    # Use the route template so per-document paths share one label
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """Binds a correlation ID per request, echoes it back and records HTTP metrics."""

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get("X-Correlation-ID") or generate_correlation_id()
        set_correlation_id(correlation_id)
        start_time = time.time()

        logger.info(
            "request_started",
            method=request.method,
            path=request.url.path,
            client_host=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.time() - start_time
            endpoint = _endpoint_label(request)
            http_requests_total.labels(method=request.method, endpoint=endpoint, status_code=500).inc()
            http_request_duration_seconds.labels(method=request.method, endpoint=endpoint).observe(duration)
            logger.error(
                "request_error",
                method=request.method,
                path=request.url.path,
                error_type=type(e).__name__,
                error_message=str(e),
                duration_seconds=round(duration, 3),
                exc_info=True,
            )
            raise

        duration = time.time() - start_time
        endpoint = _endpoint_label(request)
        http_requests_total.labels(
            method=request.method, endpoint=endpoint, status_code=response.status_code
        ).inc()
        http_request_duration_seconds.labels(method=request.method, endpoint=endpoint).observe(duration)
        response.headers["X-Correlation-ID"] = correlation_id

        logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_seconds=round(duration, 3),
        )
        return response
