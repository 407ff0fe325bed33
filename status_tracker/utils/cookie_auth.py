"""
The session cookie that carries the login JWT for browser clients.

API clients send the same token as ``Authorization: Bearer``; the
cookie is only a convenience for the contractor chat page.
"""
import logging
from typing import Optional

from fastapi import Request, Response

from status_tracker.auth import create_access_token
from status_tracker.config import settings

logger = logging.getLogger(__name__)

COOKIE_NAME = "access_token"


def _cookie_options() -> dict:
    return {
        "httponly": True,
        "secure": settings.ENVIRONMENT == "production",
        "samesite": "lax",
        "path": "/",
    }


def set_auth_cookie(response: Response, email: str) -> str:
    """Issue a token for ``email``, attach it as a cookie and return it."""
    token = create_access_token(data={"sub": email})
    response.set_cookie(
        COOKIE_NAME,
        token,
        max_age=settings.ACCESS_TOKEN_EXPIRE_HOURS * 3600,
        **_cookie_options(),
    )
    logger.info("Session cookie issued", extra={"user_id": email})
    return token


def get_token_from_cookie(request: Request) -> Optional[str]:
    return request.cookies.get(COOKIE_NAME) or None


def clear_auth_cookie(response: Response) -> None:
    response.delete_cookie(COOKIE_NAME, path="/")
