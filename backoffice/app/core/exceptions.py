"""
Custom exceptions and error handlers for consistent error responses.

Provides standardized error codes and global exception handlers. Every
4xx raised from the ledger means the request was rejected before anything
was written; a 500 means the transaction was rolled back.
"""

import logging

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from typing import Any, Dict

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class InsufficientPermissionsError(AppException):
    """Raised when user doesn't have permission to perform an action."""

    def __init__(self, message: str = "Insufficient permissions", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_PERM_001",
            status_code=status.HTTP_403_FORBIDDEN,
            details=details
        )


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class AuthenticationError(AppException):
    """Raised for authentication failures."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(
            message=message,
            error_code="ERR_AUTH_001",
            status_code=status.HTTP_401_UNAUTHORIZED
        )


class TenantAccessError(AppException):
    """Raised when a resource belongs to another agency."""

    def __init__(self, resource: str, resource_id: Any = None):
        super().__init__(
            message=f"{resource} does not belong to your agency",
            error_code="ERR_TENANT_001",
            status_code=status.HTTP_403_FORBIDDEN,
            details={"resource": resource, "id": resource_id}
        )


# Ledger errors

class LedgerValidationError(AppException):
    """Invalid ledger input. Nothing was written."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_LEDGER_VALIDATION",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class CurrencyMismatchError(AppException):
    """Entry currency differs from the account currency."""

    def __init__(self, entry_currency: str, account_currency: str):
        super().__init__(
            message=(
                f"Entry currency ({entry_currency}) does not match "
                f"account currency ({account_currency})"
            ),
            error_code="ERR_LEDGER_CURRENCY",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"entry_currency": entry_currency, "account_currency": account_currency}
        )


class UnknownDocumentTypeError(AppException):
    """Document type has no entry in the sign table."""

    def __init__(self, document_type: str):
        super().__init__(
            message=f"Unknown document type: {document_type!r}",
            error_code="ERR_LEDGER_DOC_TYPE",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"document_type": document_type}
        )


class AccountDisabledError(AppException):
    """New documents cannot target a disabled credit account."""

    def __init__(self, account_id: int):
        super().__init__(
            message="Credit account is disabled",
            error_code="ERR_LEDGER_ACCOUNT_DISABLED",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"account_id": account_id}
        )


class LinkedEntryError(AppException):
    """Entry belongs to a source document and must be reversed through it."""

    def __init__(self, entry_id: int, links: Dict[str, Any]):
        super().__init__(
            message=(
                "Entry is linked to another document. Reverse it from the "
                "source document or post a counter entry."
            ),
            error_code="ERR_LEDGER_LINKED",
            status_code=status.HTTP_409_CONFLICT,
            details={"entry_id": entry_id, "links": links}
        )


class AccountHasEntriesError(AppException):
    """Account cannot be deleted while it has entries."""

    def __init__(self, account_id: int, entry_count: int):
        super().__init__(
            message="Credit account has entries; disable it instead",
            error_code="ERR_LEDGER_ACCOUNT_IN_USE",
            status_code=status.HTTP_409_CONFLICT,
            details={"account_id": account_id, "entries": entry_count}
        )


class LedgerConsistencyError(AppException):
    """The ledger invariant cannot be preserved; the transaction is aborted."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_LEDGER_CONSISTENCY",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details=details
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    if exc.status_code >= 500:
        logger.error("%s: %s", exc.error_code, exc.message, extra={"details": exc.details})
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": jsonable_encoder(exc.details)
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        403: "ERR_FORBIDDEN",
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
        },
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": jsonable_encoder(exc.errors())
            }
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
