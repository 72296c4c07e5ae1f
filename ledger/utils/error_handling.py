"""
Centralized Error Handling for the Journal Ledger

This module provides:
- Custom exception hierarchy with stable error codes
- Standardized error responses
- Error logging
- Database error mapping
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union
from uuid import UUID
import logging

from fastapi import FastAPI, Request, HTTPException, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import (
    SQLAlchemyError,
    IntegrityError,
    OperationalError,
    DataError,
)
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("ledger.errors")


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class ErrorCode(str, Enum):
    """Standardized error codes for the application"""

    # Validation Errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"

    # Authentication/Authorization Errors (401/403)
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"

    # Resource Errors (404/409)
    NOT_FOUND = "NOT_FOUND"
    TRANSACTION_NOT_FOUND = "TRANSACTION_NOT_FOUND"
    FISCAL_YEAR_NOT_FOUND = "FISCAL_YEAR_NOT_FOUND"
    PERIOD_NOT_FOUND = "PERIOD_NOT_FOUND"
    ACCOUNT_NOT_FOUND = "ACCOUNT_NOT_FOUND"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"

    # Journal Edit Errors (400)
    TRANSACTION_ALREADY_POSTED = "TRANSACTION_ALREADY_POSTED"
    TRANSACTION_MUST_CONTAIN_ROWS = "TRANSACTION_MUST_CONTAIN_ROWS"
    DUPLICATE_JOURNAL_ROW = "DUPLICATE_JOURNAL_ROW"
    CLOSED_FISCAL_YEAR = "CLOSED_FISCAL_YEAR"
    EDIT_INVALID_ACCOUNT = "EDIT_INVALID_ACCOUNT"
    EDIT_INVALID_ENTITY = "EDIT_INVALID_ENTITY"
    EDIT_INVALID_REFERENCE = "EDIT_INVALID_REFERENCE"
    MISSING_EXCHANGE_RATE = "MISSING_EXCHANGE_RATE"
    TRANSACTION_NOT_BALANCED = "TRANSACTION_NOT_BALANCED"
    MULTIPLE_CANCELLING = "MULTIPLE_CANCELLING"

    # Rate Limiting (429)
    RATE_LIMITED = "RATE_LIMITED"

    # External Service Errors (502/503)
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"

    # Database Errors (500)
    DATABASE_ERROR = "DATABASE_ERROR"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    DATA_INTEGRITY_ERROR = "DATA_INTEGRITY_ERROR"

    # Internal Errors (500)
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AppException(Exception):
    """Base exception for all application exceptions"""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
        field: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.field = field
        self.original_error = original_error
        self.timestamp = _utc_timestamp()
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response"""
        result = {
            "code": self.code.value,
            "message": self.message,
            "timestamp": self.timestamp,
        }
        if self.field:
            result["field"] = self.field
        if self.details:
            result["details"] = self.details
        return result


# ============================================================================
# Resource Exceptions
# ============================================================================

class NotFoundException(AppException):
    """Resource not found exception"""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[Union[str, UUID]] = None,
        message: Optional[str] = None,
        code: ErrorCode = ErrorCode.NOT_FOUND,
    ):
        if message is None:
            if resource_id:
                message = f"{resource_type} with ID '{resource_id}' not found"
            else:
                message = f"{resource_type} not found"
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": str(resource_id) if resource_id else None},
        )


class TransactionNotFoundException(NotFoundException):
    """No journal or ledger row carries the record uuid"""

    def __init__(self, record_uuid: Union[str, UUID]):
        super().__init__(
            resource_type="Transaction",
            resource_id=record_uuid,
            code=ErrorCode.TRANSACTION_NOT_FOUND,
        )


class FiscalYearNotFoundException(NotFoundException):
    """No fiscal year contains the date"""

    def __init__(self, for_date: Any):
        super().__init__(
            resource_type="FiscalYear",
            message=f"No fiscal year covers {for_date}",
            code=ErrorCode.FISCAL_YEAR_NOT_FOUND,
        )


class PeriodNotFoundException(NotFoundException):
    """No period contains the date"""

    def __init__(self, for_date: Any):
        super().__init__(
            resource_type="Period",
            message=f"No period covers {for_date}",
            code=ErrorCode.PERIOD_NOT_FOUND,
        )


class AccountNotFoundException(NotFoundException):
    def __init__(self, account_id: Union[str, UUID]):
        super().__init__(
            resource_type="Account",
            resource_id=account_id,
            code=ErrorCode.ACCOUNT_NOT_FOUND,
        )


# ============================================================================
# Journal Edit Exceptions
# ============================================================================

class BadRequestException(AppException):
    """
    A request the ledger refuses to apply.

    Raised before any write begins; never retried.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INVALID_INPUT,
        details: Optional[Dict[str, Any]] = None,
        field: Optional[str] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details,
            field=field,
        )


class TransactionAlreadyPostedException(BadRequestException):
    def __init__(self, record_uuid: Union[str, UUID]):
        super().__init__(
            message="Posted transactions cannot be edited",
            code=ErrorCode.TRANSACTION_ALREADY_POSTED,
            details={"record_uuid": str(record_uuid)},
        )


class TransactionMustContainRowsException(BadRequestException):
    def __init__(self, remaining_rows: int):
        super().__init__(
            message="A transaction must contain at least two rows",
            code=ErrorCode.TRANSACTION_MUST_CONTAIN_ROWS,
            details={"remaining_rows": remaining_rows},
        )


class DuplicateJournalRowException(BadRequestException):
    def __init__(self, row_uuid: Union[str, UUID]):
        super().__init__(
            message="Added rows must carry distinct uuids not already in the transaction",
            code=ErrorCode.DUPLICATE_JOURNAL_ROW,
            details={"uuid": str(row_uuid)},
            field="added",
        )



class ClosedFiscalYearException(BadRequestException):
    def __init__(self, fiscal_year_label: str, for_date: Any):
        super().__init__(
            message=f"Fiscal year '{fiscal_year_label}' is locked",
            code=ErrorCode.CLOSED_FISCAL_YEAR,
            details={"fiscal_year": fiscal_year_label, "date": str(for_date)},
        )


class InvalidAccountException(BadRequestException):
    def __init__(self, account_number: Optional[str]):
        super().__init__(
            message=f"Invalid account: {account_number!r}",
            code=ErrorCode.EDIT_INVALID_ACCOUNT,
            field="account_number",
            details={"account_number": account_number},
        )


class InvalidEntityException(BadRequestException):
    def __init__(self, hr_entity: str):
        super().__init__(
            message=f"Invalid entity: {hr_entity!r}",
            code=ErrorCode.EDIT_INVALID_ENTITY,
            field="hr_entity",
            details={"hr_entity": hr_entity},
        )


class InvalidReferenceException(BadRequestException):
    def __init__(self, hr_reference: str):
        super().__init__(
            message=f"Invalid reference: {hr_reference!r}",
            code=ErrorCode.EDIT_INVALID_REFERENCE,
            field="hr_reference",
            details={"hr_reference": hr_reference},
        )


class MissingExchangeRateException(BadRequestException):
    def __init__(self, currency_id: str, for_date: Any):
        super().__init__(
            message=f"No exchange rate for {currency_id} on {for_date}",
            code=ErrorCode.MISSING_EXCHANGE_RATE,
            details={"currency_id": currency_id, "date": str(for_date)},
        )


class TransactionNotBalancedException(BadRequestException):
    def __init__(self, total_debit: Any, total_credit: Any):
        super().__init__(
            message="Transaction debits and credits do not balance",
            code=ErrorCode.TRANSACTION_NOT_BALANCED,
            details={"total_debit": str(total_debit), "total_credit": str(total_credit)},
        )


class MultipleCancellingException(BadRequestException):
    def __init__(self, record_uuid: Union[str, UUID]):
        super().__init__(
            message="This transaction has already been reversed",
            code=ErrorCode.MULTIPLE_CANCELLING,
            details={"record_uuid": str(record_uuid)},
        )


# ============================================================================
# Exception Handlers
# ============================================================================

def create_error_response(
    code: ErrorCode,
    message: str,
    status_code: int,
    details: Optional[Dict[str, Any]] = None,
    field: Optional[str] = None,
) -> JSONResponse:
    """Create a standardized error response"""
    content = {
        "detail": {
            "code": code.value,
            "message": message,
            "timestamp": _utc_timestamp(),
        }
    }
    if field:
        content["detail"]["field"] = field
    if details:
        content["detail"]["details"] = details

    return JSONResponse(status_code=status_code, content=content)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle AppException"""
    # Client errors are expected traffic
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        f"AppException: {exc.code.value} - {exc.message}",
        extra={
            "code": exc.code.value,
            "path": request.url.path,
            "method": request.method,
            "details": exc.details,
        },
        exc_info=exc.original_error,
    )

    return create_error_response(
        code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
        field=exc.field,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTPException"""
    code_map = {
        400: ErrorCode.INVALID_INPUT,
        401: ErrorCode.UNAUTHORIZED,
        403: ErrorCode.FORBIDDEN,
        404: ErrorCode.NOT_FOUND,
        409: ErrorCode.RESOURCE_CONFLICT,
        422: ErrorCode.VALIDATION_ERROR,
        429: ErrorCode.RATE_LIMITED,
        500: ErrorCode.INTERNAL_ERROR,
        502: ErrorCode.EXTERNAL_SERVICE_ERROR,
        503: ErrorCode.EXTERNAL_SERVICE_ERROR,
    }

    error_code = code_map.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)

    logger.warning(
        f"HTTPException: {exc.status_code} - {message}",
        extra={"path": request.url.path, "method": request.method},
    )

    return create_error_response(
        code=error_code,
        message=message,
        status_code=exc.status_code,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle Pydantic validation errors"""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })

    logger.warning(
        f"ValidationError: {len(errors)} validation errors",
        extra={"path": request.url.path, "method": request.method, "errors": errors},
    )

    return create_error_response(
        code=ErrorCode.VALIDATION_ERROR,
        message="Request validation failed",
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        details={"errors": errors},
    )


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Handle SQLAlchemy errors"""
    error_message = "A database error occurred"
    error_code = ErrorCode.DATABASE_ERROR
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    if isinstance(exc, IntegrityError):
        error_message = "Data integrity constraint violated"
        error_code = ErrorCode.DATA_INTEGRITY_ERROR
        error_str = str(exc.orig).lower() if exc.orig else ""
        if "unique" in error_str or "duplicate" in error_str:
            error_message = "A record with this value already exists"
            error_code = ErrorCode.DUPLICATE_ENTRY
            status_code = status.HTTP_409_CONFLICT
        elif "foreign key" in error_str:
            error_message = "Referenced record does not exist"
            status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(exc, OperationalError):
        error_message = "Database operation failed"
        error_code = ErrorCode.CONNECTION_ERROR
    elif isinstance(exc, DataError):
        error_message = "Invalid data format for database"
        status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    logger.error(
        f"SQLAlchemyError: {type(exc).__name__} - {str(exc)}",
        extra={"path": request.url.path, "method": request.method},
        exc_info=True,
    )

    return create_error_response(
        code=error_code,
        message=error_message,
        status_code=status_code,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions"""
    logger.critical(
        f"UnhandledException: {type(exc).__name__} - {str(exc)}",
        extra={"path": request.url.path, "method": request.method},
        exc_info=True,
    )

    return create_error_response(
        code=ErrorCode.INTERNAL_ERROR,
        message="An unexpected error occurred. Please try again later.",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application"""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


__all__ = [
    # Base
    "AppException",
    "ErrorCode",

    # Resource
    "NotFoundException",
    "TransactionNotFoundException",
    "FiscalYearNotFoundException",
    "PeriodNotFoundException",
    "AccountNotFoundException",

    # Journal edits
    "BadRequestException",
    "TransactionAlreadyPostedException",
    "TransactionMustContainRowsException",
    "DuplicateJournalRowException",
    "ClosedFiscalYearException",
    "InvalidAccountException",
    "InvalidEntityException",
    "InvalidReferenceException",
    "MissingExchangeRateException",
    "TransactionNotBalancedException",
    "MultipleCancellingException",

    # Handlers
    "setup_exception_handlers",
    "create_error_response",
]
