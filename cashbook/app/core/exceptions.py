"""
Ledger exceptions and error handlers for consistent error responses.

Every engine failure is an AppException subclass carrying a stable error code
and the HTTP status a caller should translate it to.
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException
from typing import Any, Dict
import logging

logger = logging.getLogger("cashbook.errors")


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ValidationError(AppException):
    """Raised when input is rejected before anything is written."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_VALIDATION_001",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details
        )


class InvalidAmountError(ValidationError, ValueError):
    """Raised when a balance delta is requested for a non-positive or over-precise amount."""

    def __init__(self, amount: Any):
        super().__init__(
            message=f"Invalid ledger amount: {amount!r}",
            details={"amount": str(amount)}
        )


class NotFoundError(AppException):
    """Raised when an entry, cash account, week or person does not resolve."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class ConflictError(AppException):
    """Raised when a concurrent operation or a reference constraint defeats the unit of work."""

    def __init__(self, message: str = "Conflicting concurrent update, retry", details: Dict[str, Any] = None,
                 error_code: str = "ERR_CONFLICT_001", status_code: int = status.HTTP_409_CONFLICT):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status_code,
            details=details
        )


class LockTimeoutError(ConflictError):
    """Raised when a unit of work cannot acquire its locks in time."""

    def __init__(self, message: str = "Ledger temporarily unavailable, retry", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            details=details,
            error_code="ERR_CONFLICT_002",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE
        )


class StoreError(AppException):
    """Raised for connectivity or transaction-infrastructure failures."""

    def __init__(self, message: str = "Ledger store failure", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_STORE_001",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details=details
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
    """Handler for routing errors (unknown path, wrong method) with standardized format."""
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        404: "ERR_NOT_FOUND",
        405: "ERR_METHOD_NOT_ALLOWED",
        409: "ERR_CONFLICT",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        }
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception: %s", type(exc).__name__)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )
