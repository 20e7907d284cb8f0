"""Unified response envelope and the ledger's error codes."""

from contextvars import ContextVar, Token
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from utils.tenant_context import _current_tenant_id
from utils.timezone import now_utc

# Set by RequestIDMiddleware so every envelope carries the X-Request-ID value.
_current_request_id: ContextVar[str | None] = ContextVar("current_request_id", default=None)


def bind_request_id(request_id: str) -> Token:
    return _current_request_id.set(request_id)


def release_request_id(token: Token) -> None:
    _current_request_id.reset(token)


class APIError(BaseModel):
    """Error details in API response."""

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")


class APIMeta(BaseModel):
    """Metadata included in every API response."""

    timestamp: datetime = Field(..., description="Response timestamp (UTC)")
    request_id: str = Field(..., description="Request identifier, same as the X-Request-ID header")
    tenant_id: UUID | None = Field(None, description="Tenant the request was bound to")


class APIResponse(BaseModel):
    """
    Unified response format for all API endpoints.

    Every endpoint returns this structure, making client parsing predictable.
    """

    success: bool
    data: Any | None = None
    error: APIError | None = None
    meta: APIMeta


def _meta() -> APIMeta:
    return APIMeta(
        timestamp=now_utc(),
        request_id=_current_request_id.get() or str(uuid4()),
        tenant_id=_current_tenant_id.get(),
    )


def success_response(data: Any) -> APIResponse:
    """Create a success response."""
    return APIResponse(
        success=True,
        data=data,
        error=None,
        meta=_meta(),
    )


def error_response(code: str, message: str) -> APIResponse:
    """Create an error response."""
    return APIResponse(
        success=False,
        data=None,
        error=APIError(code=code, message=message),
        meta=_meta(),
    )


class ErrorCodes:
    """Standard error codes for consistent error handling."""

    # Tenant binding
    TENANT_REQUIRED = "TENANT_REQUIRED"

    # Resource Errors
    NOT_FOUND = "NOT_FOUND"

    # Validation Errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_REQUEST = "INVALID_REQUEST"

    # Invoice
    DUPLICATE_INVOICE = "DUPLICATE_INVOICE"
    INVALID_JOB_STATE = "INVALID_JOB_STATE"
    NO_BILLABLE_ITEMS = "NO_BILLABLE_ITEMS"
    INVOICE_ALREADY_PAID = "INVOICE_ALREADY_PAID"
    OVERPAYMENT_REJECTED = "OVERPAYMENT_REJECTED"
    INVOICE_CLOSED = "INVOICE_CLOSED"
    INVALID_STATUS_TRANSITION = "INVALID_STATUS_TRANSITION"
    STATE_CONFLICT = "STATE_CONFLICT"

    # Stock
    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"

    # Infrastructure
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"
