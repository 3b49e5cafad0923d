import uuid
from datetime import UTC, datetime
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

from pkp.config.logging import get_logger

logger = get_logger(__name__)


class PKPException(Exception):
    """Base exception for the enrichment service."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(PKPException):
    """Raised when a job payload or other input fails validation."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, status.HTTP_422_UNPROCESSABLE_ENTITY, details)


class NotFoundError(PKPException):
    """Raised when a resource is not found."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, status.HTTP_404_NOT_FOUND, details)


class UnauthorizedError(PKPException):
    """Raised when the run trigger is called without a valid secret."""

    def __init__(
        self, message: str = "Unauthorized", details: dict[str, Any] | None = None
    ):
        super().__init__(message, status.HTTP_401_UNAUTHORIZED, details)


class ProviderError(PKPException):
    """Raised when a remote collaborator (AI model, blob storage) fails."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, status.HTTP_502_BAD_GATEWAY, details)


class JobTimeoutError(PKPException):
    """Raised when a job exceeds its execution ceiling."""

    def __init__(self, timeout_s: float, details: dict[str, Any] | None = None):
        super().__init__(
            f"Job timed out after {timeout_s:g}s",
            status.HTTP_504_GATEWAY_TIMEOUT,
            details,
        )


def create_error_response(
    status_code: int,
    message: str,
    details: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> dict[str, Any]:
    """Create standardized error response envelope."""
    return {
        "ok": False,
        "error": {
            "message": message,
            "code": status_code,
            "details": details or {},
        },
        "request_id": request_id,
        "timestamp": datetime.now(UTC).isoformat(),
    }


def create_success_response(
    data: Any, message: str | None = None, request_id: str | None = None
) -> dict[str, Any]:
    """Create standardized success response envelope."""
    return {
        "ok": True,
        "data": data,
        "message": message,
        "request_id": request_id,
        "timestamp": datetime.now(UTC).isoformat(),
    }


async def pkp_exception_handler(request: Request, exc: PKPException) -> JSONResponse:
    """Handle service specific exceptions."""
    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))

    logger.error(
        "Application exception",
        exception=exc.__class__.__name__,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
        request_id=request_id,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(
            status_code=exc.status_code,
            message=exc.message,
            details=exc.details,
            request_id=request_id,
        ),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle FastAPI HTTP exceptions."""
    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))

    logger.warning(
        "HTTP exception",
        status_code=exc.status_code,
        detail=exc.detail,
        request_id=request_id,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(
            status_code=exc.status_code,
            message=str(exc.detail),
            request_id=request_id,
        ),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))

    logger.error(
        "Unhandled exception",
        exception=exc.__class__.__name__,
        message=str(exc),
        request_id=request_id,
        exc_info=True,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=create_error_response(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            message="Internal server error",
            request_id=request_id,
        ),
    )
