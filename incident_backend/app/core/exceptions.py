"""
Custom exceptions and error handlers for consistent error responses.

Provides the error taxonomy of the incident pipeline and global exception handlers.
"""

import logging
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class PermissionDeniedError(AppException):
    """Raised when the caller lacks the capability for an operation."""

    def __init__(self, message: str = "Insufficient permissions", capability: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="PERMISSION_DENIED",
            status_code=status.HTTP_403_FORBIDDEN,
            details={"capability": capability} if capability else None
        )
        self.capability = capability


class ValidationFailedError(AppException):
    """Raised when a submission is missing required input."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="VALIDATION_FAILED",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"field": field} if field else None
        )


class InvalidImageFormatError(AppException):
    """Raised when an image value is not a decodable image data URL."""

    def __init__(self, message: str = "Invalid image format", index: Optional[int] = None):
        super().__init__(
            message=message,
            error_code="INVALID_IMAGE_FORMAT",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"index": index} if index is not None else None
        )


class QuotaExceededError(AppException):
    """Raised when a local-backend write would exceed its storage capacity."""

    def __init__(self, used_bytes: int = 0, capacity_bytes: int = 0):
        super().__init__(
            message="Storage is full. Delete old records to free space before saving again.",
            error_code="QUOTA_EXCEEDED",
            status_code=status.HTTP_507_INSUFFICIENT_STORAGE,
            details={"used_bytes": used_bytes, "capacity_bytes": capacity_bytes}
        )


class BackendUnavailableError(AppException):
    """Raised when the storage backend cannot be read or written."""

    def __init__(self, message: str = "Storage backend unavailable", operation: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="BACKEND_UNAVAILABLE",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details={"operation": operation} if operation else None
        )


class NotificationFailedError(AppException):
    """Raised when the webhook is unreachable or rejects the message."""

    def __init__(self, message: str = "Notification delivery failed", status_code_received: Optional[int] = None):
        super().__init__(
            message=message,
            error_code="NOTIFICATION_FAILED",
            status_code=status.HTTP_502_BAD_GATEWAY,
            details={"webhook_status": status_code_received} if status_code_received else None
        )


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="NOT_FOUND",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class AuthenticationError(AppException):
    """Raised for authentication failures."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(
            message=message,
            error_code="AUTHENTICATION_FAILED",
            status_code=status.HTTP_401_UNAUTHORIZED
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    error_code_map = {
        400: "VALIDATION_FAILED",
        401: "AUTHENTICATION_FAILED",
        403: "PERMISSION_DENIED",
        404: "NOT_FOUND",
        500: "INTERNAL_ERROR"
    }

    error_code = error_code_map.get(exc.status_code, "UNKNOWN_ERROR")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        },
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "VALIDATION_FAILED",
            "message": "Validation error",
            "details": {
                "errors": jsonable_errors(exc)
            }
        }
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may carry exception instances that are not JSON serializable
    return [
        {key: value for key, value in error.items() if key != "ctx"}
        for error in exc.errors()
    ]


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception: %s: %s", type(exc).__name__, exc)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "INTERNAL_ERROR",
            "message": "An internal server error occurred",
            "details": {}
        }
    )
