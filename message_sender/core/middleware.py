"""
Request middleware — correlation IDs and access logging for the control API.

Every response carries X-Request-ID (taken from the request when the
caller supplies one) and X-Process-Time. Health probes are logged at
DEBUG so orchestrator polling does not flood the log.
"""

from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from message_sender.core.logging_config import set_request_context

logger = logging.getLogger(__name__)

QUIET_PREFIXES = ("/health", "/docs", "/redoc", "/openapi", "/favicon")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Attach a request id, time the call, and emit one log line per request."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:16]
        client_ip = request.client.host if request.client else "unknown"
        path = request.url.path

        set_request_context(request_id=request_id, client_ip=client_ip, endpoint=path)
        start = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers["X-Request-ID"] = request_id
            response.headers["X-Process-Time"] = f"{(time.perf_counter() - start) * 1000:.1f}ms"
            return response
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            if path.startswith(QUIET_PREFIXES):
                level = logging.DEBUG
            elif status_code >= 500:
                level = logging.ERROR
            elif status_code >= 400:
                level = logging.WARNING
            else:
                level = logging.INFO
            logger.log(
                level,
                "%s %s → %d (%.1fms) [%s]",
                request.method, path, status_code, duration_ms, client_ip,
                extra={"duration_ms": duration_ms, "status_code": status_code,
                       "endpoint": path},
            )
            set_request_context()
