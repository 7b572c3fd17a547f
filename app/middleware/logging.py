"""Request logging middleware."""

import logging
import time
from typing import Callable
from uuid import uuid4

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
QUIET_PATHS = {"/health"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log each request with its id, status and duration."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Reuse the caller's id so a request can be traced across services
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
        request.state.request_id = request_id

        path = request.url.path
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.error(f"[{request_id}] {request.method} {path} failed after {elapsed_ms:.1f}ms")
            raise

        elapsed_ms = (time.perf_counter() - started) * 1000
        if path not in QUIET_PATHS:
            logger.info(
                f"[{request_id}] {request.method} {path} -> {response.status_code} ({elapsed_ms:.1f}ms)",
                extra={
                    "request_id": request_id,
                    "client_ip": request.client.host if request.client else None,
                },
            )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
