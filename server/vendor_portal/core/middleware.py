"""Custom middleware for request correlation and access logging."""

import logging
import time
import uuid
from typing import Callable, Optional

from fastapi import Request, Response
from opentelemetry import trace
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from .config import settings
from .observability import REQUEST_COUNT, REQUEST_DURATION

logger = logging.getLogger(__name__)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Middleware that adds a unique request ID to each request.

    The request ID is either taken from the X-Request-ID header or generated,
    stored on ``request.state`` and echoed back in the response headers.
    """

    def __init__(self, app: ASGIApp, header_name: str = "X-Request-ID"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(self.header_name) or str(uuid.uuid4())
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers[self.header_name] = request_id
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware that logs each HTTP request with timing and correlation IDs,
    and feeds the request count/duration Prometheus metrics.
    """

    def __init__(self, app: ASGIApp, skip_paths: Optional[list] = None):
        super().__init__(app)
        self.skip_paths = skip_paths or ["/health", "/metrics", "/favicon.ico"]

    def _get_client_ip(self, request: Request) -> str:
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()

        if request.client:
            return request.client.host

        return "unknown"

    def _trace_id(self) -> Optional[str]:
        span = trace.get_current_span()
        ctx = span.get_span_context()
        if ctx.is_valid:
            return format(ctx.trace_id, "032x")
        return None

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if path in self.skip_paths:
            return await call_next(request)

        start_time = time.perf_counter()
        log_data = {
            "request_id": getattr(request.state, "request_id", "unknown"),
            "trace_id": self._trace_id(),
            "method": request.method,
            "path": path,
            "client_ip": self._get_client_ip(request),
        }

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.perf_counter() - start_time
            log_data.update({"status_code": 500, "duration_ms": round(duration * 1000, 2), "error": str(e)})
            logger.error("HTTP request failed with unhandled exception", extra=log_data)
            REQUEST_COUNT.labels(method=request.method, endpoint=path, status_code="500").inc()
            raise

        duration = time.perf_counter() - start_time
        log_data.update({
            "status_code": response.status_code,
            "duration_ms": round(duration * 1000, 2),
        })

        REQUEST_COUNT.labels(
            method=request.method, endpoint=path, status_code=str(response.status_code)
        ).inc()
        REQUEST_DURATION.labels(method=request.method, endpoint=path).observe(duration)

        if response.status_code >= 500:
            logger.error("HTTP request completed with server error", extra=log_data)
        elif response.status_code >= 400:
            logger.warning("HTTP request completed with client error", extra=log_data)
        else:
            logger.info("HTTP request completed successfully", extra=log_data)

        return response


def setup_middleware(app, enable_logging: bool = True) -> None:
    """
    Setup all middleware on the FastAPI app.

    Last added runs first, so the request ID is assigned before logging reads it.
    """
    if enable_logging:
        app.add_middleware(LoggingMiddleware)

    app.add_middleware(RequestIDMiddleware)

    logger.debug("Middleware configured", extra={"environment": settings.environment})
