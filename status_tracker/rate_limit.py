"""
Per-client request limits, shared across workers through Redis when
REDIS_URL is set.
"""
import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from status_tracker.config import settings
from status_tracker.exceptions import error_response

logger = logging.getLogger(__name__)

AUTH_RATE_LIMIT = "5/minute"
UPLOAD_RATE_LIMIT = "10/minute"
AI_RATE_LIMIT = f"{settings.RATE_LIMIT_AI_PER_MINUTE}/minute"


def _storage_uri() -> str:
    if settings.REDIS_URL:
        return settings.REDIS_URL
    if settings.RATE_LIMIT_ENABLED:
        logger.warning("REDIS_URL not set, rate limit counters are per process")
    return "memory://"


limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["100/minute"],
    storage_uri=_storage_uri(),
    strategy="fixed-window",
    enabled=settings.RATE_LIMIT_ENABLED,
)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    client = get_remote_address(request)
    logger.warning(
        f"Rate limit {exc.detail} hit by {client} on {request.method} {request.url.path}",
        extra={"status": 429, "user_id": getattr(request.state, "user_id", None)},
    )
    return error_response(
        429,
        "RATE_LIMIT_EXCEEDED",
        "Too many requests. Please try again later.",
        {"limit": str(exc.detail)},
    )
