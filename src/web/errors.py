"""
API Error Response System.

Maps settlement engine exceptions onto one response format:

    {
        "error": true,
        "code": "COMPLIANCE_BLOCKED",
        "message": "W-9 required for payouts. ...",
        "status_code": 403,
        "timestamp": "2026-01-29T12:00:00Z",
        "request_id": "550e8400-e29b-41d4-a716-446655440000",
        "path": "/api/payouts",
        "details": {"current_earnings": "600.00", "threshold": "600.00"}
    }

SECURITY: Internal error details never reach the client, and no message ever
contains a TIN.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List, Optional, Type

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.exceptions import (
    AuditWriteError,
    ComplianceBlocked,
    ConfigurationError,
    DecryptionError,
    InvalidStateTransition,
    NotFoundError,
    SecurityAuditFailure,
    SettlementError,
    TransferFailure,
    ValidationError,
)
from core.money import utcnow

logger = logging.getLogger(__name__)


# =============================================================================
# EXCEPTION TO HTTP STATUS MAPPING
# =============================================================================

ERROR_STATUS_MAP: Dict[Type[SettlementError], int] = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidStateTransition: status.HTTP_409_CONFLICT,
    ComplianceBlocked: status.HTTP_403_FORBIDDEN,
    TransferFailure: status.HTTP_502_BAD_GATEWAY,
    SecurityAuditFailure: status.HTTP_500_INTERNAL_SERVER_ERROR,
    AuditWriteError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    DecryptionError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ConfigurationError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

# Server-side failures whose message stays in the logs
_OPAQUE_ERRORS = (AuditWriteError, DecryptionError, ConfigurationError)


def status_for(exc: SettlementError) -> int:
    for error_type in type(exc).__mro__:
        if error_type in ERROR_STATUS_MAP:
            return ERROR_STATUS_MAP[error_type]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


# =============================================================================
# ERROR RESPONSE MODELS
# =============================================================================


class FieldError(BaseModel):
    """Individual field validation error."""
    field: str = Field(..., description="Field name that caused the error")
    message: str = Field(..., description="Error message for this field")
    code: str = Field(default="invalid", description="Error code for this field")


class ErrorResponse(BaseModel):
    """Standardized API error response."""
    error: bool = Field(default=True, description="Always true for errors")
    code: str = Field(..., description="Exception code, e.g. RESOURCE_NOT_FOUND")
    message: str = Field(..., description="Human-readable error message")
    status_code: int = Field(..., description="HTTP status code")
    timestamp: str = Field(..., description="ISO 8601 timestamp")
    request_id: str = Field(..., description="Unique request identifier for tracking")
    path: Optional[str] = Field(None, description="Request path that caused the error")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error context")
    field_errors: Optional[List[FieldError]] = Field(None, description="Field-specific validation errors")


def _details_for(exc: SettlementError) -> Optional[Dict[str, Any]]:
    if isinstance(exc, ComplianceBlocked):
        return {
            "current_earnings": str(exc.current_earnings),
            "threshold": str(exc.threshold),
        }
    if isinstance(exc, InvalidStateTransition):
        return {"current_status": exc.current_status, "target_status": exc.target_status}
    if isinstance(exc, ValidationError) and exc.field:
        return {"field": exc.field}
    if isinstance(exc, NotFoundError):
        return {"resource": exc.resource, "resource_id": exc.resource_id}
    return None


def _timestamp() -> str:
    return utcnow().isoformat() + "Z"


def get_request_id(request: Request) -> str:
    """Get or generate request ID for tracking."""
    request_id = request.headers.get("X-Request-ID")
    if not request_id:
        request_id = getattr(request.state, "request_id", None)
    if not request_id:
        request_id = str(uuid.uuid4())
    return request_id


# =============================================================================
# GLOBAL EXCEPTION HANDLERS
# =============================================================================


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app."""

    @app.exception_handler(SettlementError)
    async def settlement_error_handler(request: Request, exc: SettlementError) -> JSONResponse:
        request_id = get_request_id(request)
        status_code = status_for(exc)

        if isinstance(exc, SecurityAuditFailure):
            log_level = logging.CRITICAL
        elif status_code >= 500:
            log_level = logging.ERROR
        else:
            log_level = logging.WARNING
        logger.log(
            log_level,
            f"[{request_id}] {exc.code} - {exc.message}",
            extra={
                "request_id": request_id,
                "error_code": exc.code,
                "status_code": status_code,
                "path": request.url.path,
                "method": request.method,
            },
        )

        message = exc.message
        if isinstance(exc, _OPAQUE_ERRORS):
            message = "An internal error occurred. Please try again later."

        response = ErrorResponse(
            code=exc.code,
            message=message,
            status_code=status_code,
            timestamp=_timestamp(),
            request_id=request_id,
            path=request.url.path,
            details=_details_for(exc),
        )
        return JSONResponse(
            status_code=status_code,
            content=response.model_dump(),
            headers={"X-Request-ID": request_id},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Handle request body and parameter validation errors."""
        request_id = get_request_id(request)

        field_errors = []
        for error in exc.errors():
            field_path = ".".join(str(loc) for loc in error["loc"] if loc != "body")
            field_errors.append(FieldError(
                field=field_path or "body",
                message=error["msg"],
                code=error["type"],
            ))

        logger.warning(
            f"[{request_id}] Validation error: {len(field_errors)} field(s)",
            extra={"request_id": request_id, "path": request.url.path, "method": request.method},
        )

        response = ErrorResponse(
            code=ValidationError.code,
            message="Request validation failed",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            timestamp=_timestamp(),
            request_id=request_id,
            path=request.url.path,
            field_errors=field_errors,
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=response.model_dump(),
            headers={"X-Request-ID": request_id},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Handle standard HTTP exceptions."""
        request_id = get_request_id(request)

        status_to_code = {
            400: ValidationError.code,
            404: NotFoundError.code,
            409: InvalidStateTransition.code,
        }
        response = ErrorResponse(
            code=status_to_code.get(exc.status_code, "HTTP_ERROR"),
            message=str(exc.detail) if exc.detail else "An error occurred",
            status_code=exc.status_code,
            timestamp=_timestamp(),
            request_id=request_id,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=response.model_dump(),
            headers={"X-Request-ID": request_id},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Global catch-all exception handler.

        SECURITY: Never expose internal error details to clients.
        """
        request_id = get_request_id(request)

        logger.error(
            f"[{request_id}] Unhandled exception: {type(exc).__name__}",
            extra={
                "request_id": request_id,
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__,
            },
            exc_info=True,
        )

        response = ErrorResponse(
            code="SERVER_INTERNAL_ERROR",
            message="An unexpected error occurred. Please try again later.",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            timestamp=_timestamp(),
            request_id=request_id,
            path=request.url.path,
            details={"support": f"Reference ID: {request_id}"},
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=response.model_dump(),
            headers={"X-Request-ID": request_id},
        )
