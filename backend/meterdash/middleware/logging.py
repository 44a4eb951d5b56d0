"""
Request/response logging middleware.
"""
from typing import Callable
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
import time

from meterdash.core.logging import get_logger

logger = get_logger(__name__)

# Probes hit these constantly; log them at debug only
QUIET_PATHS = {"/health", "/metrics"}


class LoggingMiddleware(BaseHTTPMiddleware):
    """Request/response logging middleware."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()
        path = request.url.path

        request_log = {
            "method": request.method,
            "path": path,
            "query_params": dict(request.query_params),
            "client_host": request.client.host if request.client else None,
        }

        response = await call_next(request)

        duration_ms = (time.time() - start_time) * 1000
        response_log = {
            "status_code": response.status_code,
            "duration_ms": round(duration_ms, 2),
        }

        if response.status_code >= 500:
            log_level = "error"
        elif response.status_code >= 400:
            log_level = "warning"
        elif path in QUIET_PATHS:
            log_level = "debug"
        else:
            log_level = "info"

        getattr(logger, log_level)(
            f"{request.method} {path} - {response.status_code} ({duration_ms:.2f}ms)",
            extra={"request": request_log, "response": response_log}
        )

        return response
