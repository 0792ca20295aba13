"""
Request logging middleware.

Every response carries X-Request-ID (echoed from the caller when present) and
X-Process-Time, so a slow status poll can be matched to its log lines.
"""
import logging
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestLoggingMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        request.state.request_id = request_id
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"[{request_id}] {request.method} {request.url.path} raised {type(e).__name__} "
                f"after {time.perf_counter() - started:.4f}s"
            )
            raise

        elapsed = time.perf_counter() - started
        logger.info(
            f"[{request_id}] {request.method} {request.url.path} -> {response.status_code} "
            f"({elapsed:.4f}s)"
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Process-Time"] = f"{elapsed:.4f}"
        return response
