"""
Request ID tracking middleware for log correlation.
"""
import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Tags each request with an ID (the caller's X-Request-ID, or a fresh
    one), echoes it on the response and logs the request's duration.
    Routes read it back with ``get_request_id``.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                f"{request.method} {request.url.path} failed",
                extra={"request_id": request_id, "duration_ms": _elapsed_ms(started)},
            )
            raise

        response.headers[REQUEST_ID_HEADER] = request_id
        logger.info(
            f"{request.method} {request.url.path}",
            extra={
                "request_id": request_id,
                "status": response.status_code,
                "duration_ms": _elapsed_ms(started),
                "user_id": getattr(request.state, "user_id", None),
            },
        )
        return response


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def get_request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")
