"""
Centralized API Error Handling
Maps sync-engine errors to consistent JSON error responses
"""

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from typing import Dict, Any, Optional
import logging

from shelfsync.core.exceptions import (
    AlreadySyncingError, ConflictError, InvalidDataError, NetworkError,
    ServiceUnavailableError, SyncError
)

logger = logging.getLogger(__name__)

# Most specific classes first
SYNC_ERROR_STATUS = (
    (AlreadySyncingError, status.HTTP_409_CONFLICT),
    (ConflictError, status.HTTP_409_CONFLICT),
    (InvalidDataError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (NetworkError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (ServiceUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


class APIError(Exception):
    """API error carrying an HTTP status and error code"""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
                 error_code: str = "INTERNAL_ERROR"):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(message)


class NotFoundAPIError(APIError):
    """Resource not found API error"""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            message=f"{resource} with identifier '{identifier}' not found",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="NOT_FOUND"
        )


def status_for_sync_error(exc: SyncError) -> int:
    for error_class, status_code in SYNC_ERROR_STATUS:
        if isinstance(exc, error_class):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def create_error_response(
    message: str,
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
    error_code: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None
) -> JSONResponse:
    """Create standardized error response"""
    error_payload = {
        "detail": message,
        "status_code": status_code
    }

    if error_code:
        error_payload["error_code"] = error_code

    if details:
        error_payload["details"] = details

    return JSONResponse(
        status_code=status_code,
        content=error_payload
    )


async def sync_error_handler(request: Request, exc: SyncError) -> JSONResponse:
    status_code = status_for_sync_error(exc)
    logger.warning(f"Sync error on {request.method} {request.url.path}: {exc.message} "
                   f"(code: {exc.error_code})")

    details = None
    record_sequence = getattr(exc, 'record_sequence', None)
    if record_sequence is not None:
        details = {"record_sequence": record_sequence}

    return create_error_response(exc.message, status_code, exc.error_code, details)


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    logger.warning(f"API Error: {exc.message} (code: {exc.error_code})")
    return create_error_response(exc.message, exc.status_code, exc.error_code)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "status_code": exc.status_code},
        headers=getattr(exc, 'headers', None)
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return create_error_response("Internal server error", error_code="INTERNAL_ERROR")


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(SyncError, sync_error_handler)
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
