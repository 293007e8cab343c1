import logging
from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ValidationFailed(Exception):
    """Request is missing required fields or carries an unusable upload; the job never starts."""

    status_code = 400

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class TransferFailed(Exception):
    """A store or filesystem operation failed during a job. The whole job was aborted and an *-error event emitted."""

    status_code = 500

    def __init__(self, message: str, collection: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.collection = collection


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def validation_failed_handler(request: Request, exc: ValidationFailed) -> JSONResponse:
    return error_response(exc.status_code, exc.message)


async def transfer_failed_handler(request: Request, exc: TransferFailed) -> JSONResponse:
    return error_response(exc.status_code, exc.message)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render HTTPException (404, 429, ...) with the same {"error": ...} shape as job failures."""
    response = error_response(exc.status_code, str(exc.detail))
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log exception and return a generic 500 (no internal details leaked).
    Why available: Centralized error handling so the API never leaks stack traces or internal state to clients."""
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return error_response(500, "Internal server error")
