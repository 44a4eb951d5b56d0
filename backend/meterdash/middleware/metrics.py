"""
Metrics collection middleware for Prometheus.
"""
import re
import time
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from meterdash.core.metrics import (
    http_requests_total,
    http_request_duration_seconds,
    http_requests_in_progress
)

# GSRNs are 18-digit identifiers
GSRN_PATTERN = re.compile(r"^\d{18}$")


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to collect HTTP metrics for Prometheus."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        method = request.method
        endpoint = self._normalize_path(request.url.path)

        http_requests_in_progress.labels(method=method, endpoint=endpoint).inc()
        start_time = time.time()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            http_requests_total.labels(
                method=method,
                endpoint=endpoint,
                status_code=status_code
            ).inc()
            http_request_duration_seconds.labels(
                method=method,
                endpoint=endpoint
            ).observe(time.time() - start_time)
            http_requests_in_progress.labels(method=method, endpoint=endpoint).dec()

    def _normalize_path(self, path: str) -> str:
        """
        Replace metering point identifiers with a placeholder so each
        GSRN does not become its own label value.
        """
        parts = path.split('/')
        normalized_parts = []
        for part in parts:
            if GSRN_PATTERN.match(part):
                normalized_parts.append('{gsrn}')
            elif part.isdigit():
                normalized_parts.append('{id}')
            else:
                normalized_parts.append(part)
        return '/'.join(normalized_parts)
