"""Application error taxonomy and the FastAPI handlers that render it."""

import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base for user-visible, non-retryable errors."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Bad request"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Conflict"


class UnauthorizedError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized"


class ForbiddenError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Forbidden"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


def _error_body(status_code: int, message: str, request: Request) -> dict:
    return {
        "status_code": status_code,
        "message": message,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "path": request.url.path,
    }


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    logger.info(
        "%s %s -> %s: %s",
        request.method,
        request.url.path,
        exc.status_code,
        exc.message,
    )
    headers = None
    if isinstance(exc, UnauthorizedError):
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.status_code, exc.message, request),
        headers=headers,
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    # Store and signer details stay in the server log only.
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return JSONResponse(
        status_code=code,
        content=_error_body(code, "Internal server error", request),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
