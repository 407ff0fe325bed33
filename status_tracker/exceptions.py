"""
Application errors and the handlers that render every failure as
``{"error_code", "message", "details"}``.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from status_tracker.middleware.request_id import get_request_id

logger = logging.getLogger(__name__)

HTTP_ERROR_CODES = {
    status.HTTP_401_UNAUTHORIZED: "NOT_AUTHENTICATED",
    status.HTTP_403_FORBIDDEN: "FORBIDDEN",
    status.HTTP_404_NOT_FOUND: "NOT_FOUND",
    status.HTTP_503_SERVICE_UNAVAILABLE: "SERVICE_UNAVAILABLE",
}


class AppException(Exception):
    """Base for errors raised on purpose by routes and services."""

    error_code = "APP_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(AppException):
    """Bad form input, e.g. a blank project name or an unsupported schedule file."""

    error_code = "VALIDATION_ERROR"


class NotFoundError(AppException):
    error_code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, identifier: Optional[str] = None):
        message = f"{resource} not found" + (f": {identifier}" if identifier else "")
        super().__init__(message, details={"resource": resource, "identifier": identifier})


class ExternalServiceError(AppException):
    """A collaborator (storage, record store) rejected a write the request depends on."""

    error_code = "EXTERNAL_SERVICE_ERROR"
    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, message: str, service_name: Optional[str] = None):
        super().__init__(message, details={"service": service_name} if service_name else None)


def error_response(
    status_code: int,
    error_code: str,
    message: Any,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error_code": error_code, "message": message, "details": details or {}},
        headers=headers,
    )


def _log_extra(request: Request, status_code: int) -> Dict[str, Any]:
    return {
        "request_id": get_request_id(request),
        "status": status_code,
        "user_id": getattr(request.state, "user_id", None),
    }


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    logger.warning(
        f"{exc.error_code} on {request.method} {request.url.path}: {exc.message}",
        extra=_log_extra(request, exc.status_code),
    )
    return error_response(exc.status_code, exc.error_code, exc.message, exc.details)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """FastAPI/Starlette HTTPExceptions (auth failures, unknown routes) in the same shape."""
    logger.warning(
        f"HTTP {exc.status_code} on {request.method} {request.url.path}: {exc.detail}",
        extra=_log_extra(request, exc.status_code),
    )
    error_code = HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR")
    if isinstance(exc.detail, dict):
        return error_response(exc.status_code, error_code, error_code.replace("_", " ").lower(),
                              exc.detail, getattr(exc, "headers", None))
    return error_response(exc.status_code, error_code, exc.detail, headers=getattr(exc, "headers", None))


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled error on {request.method} {request.url.path}: {exc}",
        exc_info=True,
        extra=_log_extra(request, status.HTTP_500_INTERNAL_SERVER_ERROR),
    )
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR", "An unexpected error occurred")
