"""
Correlation ID Middleware
Adds unique request ID for distributed tracing
"""
from __future__ import annotations

import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from src.shared.logging import (
    bind_request_context,
    clear_request_context,
    get_logger,
    set_correlation_id,
)

logger = get_logger(__name__)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Extracts or generates X-Request-ID, binds it to the logging context and
    `request.state.request_id` (error bodies echo it as `correlation_id`),
    and reports the request duration.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        correlation_id = set_correlation_id(request.headers.get("X-Request-ID") or None)
        request.state.request_id = correlation_id
        bind_request_context(method=request.method, path=request.url.path)

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
            duration_ms = int((time.perf_counter() - start_time) * 1000)
            response.headers["X-Request-ID"] = correlation_id
            response.headers["X-Response-Time"] = f"{duration_ms}ms"
            logger.info("request_completed", status_code=response.status_code, duration_ms=duration_ms)
            return response
        except Exception as e:
            duration_ms = int((time.perf_counter() - start_time) * 1000)
            logger.error("request_failed", error=str(e), duration_ms=duration_ms, exc_info=True)
            raise
        finally:
            clear_request_context()
