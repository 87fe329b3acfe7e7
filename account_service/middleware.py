"""
Custom middleware for account_service

Includes:
- Request ID tracking for request tracing
- HTTP metrics collection for Prometheus monitoring
"""
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from account_service import metrics


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Adds X-Request-ID to every request and response.

    A client-supplied X-Request-ID is reused, otherwise a new UUID is generated.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class HTTPMetricsMiddleware(BaseHTTPMiddleware):
    """Request count, duration and in-progress gauges per method and endpoint"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        method = request.method
        endpoint = self._normalize_path(request.url.path)

        metrics.http_requests_in_progress.labels(method=method, endpoint=endpoint).inc()
        start_time = time.time()

        try:
            response = await call_next(request)

            metrics.http_requests_total.labels(
                method=method,
                endpoint=endpoint,
                status=response.status_code
            ).inc()
            metrics.http_request_duration_seconds.labels(
                method=method,
                endpoint=endpoint
            ).observe(time.time() - start_time)

            return response

        finally:
            metrics.http_requests_in_progress.labels(method=method, endpoint=endpoint).dec()

    def _normalize_path(self, path: str) -> str:
        """Replace numeric ids with a placeholder to bound label cardinality"""
        if path in ["/", "/health", "/metrics", "/docs", "/openapi.json", "/redoc"]:
            return path

        parts = [
            "{id}" if part.isdigit() else part
            for part in path.split("/")
            if part
        ]
        return "/" + "/".join(parts)
