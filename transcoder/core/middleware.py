"""HTTP middleware: correlation IDs, access logging and request metrics."""

import logging
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from transcoder.core.logging import clear_correlation_id, set_correlation_id
from transcoder.core.metrics import (
    HTTP_REQUEST_DURATION_SECONDS,
    HTTP_REQUESTS_IN_PROGRESS,
    HTTP_REQUESTS_TOTAL,
)

CORRELATION_ID_HEADER = "X-Correlation-ID"
UNMATCHED_ROUTE = "<unmatched>"

access_logger = logging.getLogger("transcoder.requests")


def route_template(request: Request) -> str:
    """Path template of the matched route, e.g. ``/api/jobs/{job_id}/status``.

    Keeps metric label cardinality bounded regardless of ids and filenames
    in the URL.
    """
    route = request.scope.get("route")
    return getattr(route, "path", None) or UNMATCHED_ROUTE


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Adopt the caller's correlation ID or mint one, and echo it back."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get(CORRELATION_ID_HEADER) or uuid.uuid4().hex
        set_correlation_id(correlation_id)
        try:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = correlation_id
            return response
        finally:
            clear_correlation_id()


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One access log line per request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        context = {
            "method": request.method,
            "path": request.url.path,
            "client_ip": request.client.host if request.client else None,
        }
        try:
            response = await call_next(request)
        except Exception:
            access_logger.exception(
                "Request failed",
                extra={**context, "duration_ms": _elapsed_ms(started)},
            )
            raise

        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        access_logger.log(
            level,
            "%s %s %d",
            request.method,
            request.url.path,
            response.status_code,
            extra={
                **context,
                "status_code": response.status_code,
                "duration_ms": _elapsed_ms(started),
            },
        )
        return response


class MetricsMiddleware(BaseHTTPMiddleware):
    """Count and time requests per method and route template."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        method = request.method
        HTTP_REQUESTS_IN_PROGRESS.labels(method=method).inc()
        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            # Routing happens inside call_next, so the template is known only now
            endpoint = route_template(request)
            HTTP_REQUEST_DURATION_SECONDS.labels(method=method, endpoint=endpoint).observe(
                time.perf_counter() - started
            )
            HTTP_REQUESTS_TOTAL.labels(
                method=method, endpoint=endpoint, status_code=str(status_code)
            ).inc()
            HTTP_REQUESTS_IN_PROGRESS.labels(method=method).dec()


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


__all__ = [
    "CORRELATION_ID_HEADER",
    "CorrelationIdMiddleware",
    "MetricsMiddleware",
    "RequestLoggingMiddleware",
]
