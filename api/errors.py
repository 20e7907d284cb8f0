"""Global exception handlers for FastAPI."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from core.exceptions import (
    AlreadySettledError,
    ConfigurationError,
    DuplicateInvoiceError,
    EntityNotFoundError,
    InsufficientStockError,
    InvalidJobStateError,
    InvalidStatusTransitionError,
    InvoiceClosedError,
    NoBillableItemsError,
    OverpaymentRejectedError,
    StateConflictError,
)

logger = logging.getLogger(__name__)

# Most specific first; the first isinstance match wins.
_CONFLICT_CODES = (
    (DuplicateInvoiceError, ErrorCodes.DUPLICATE_INVOICE),
    (InvalidJobStateError, ErrorCodes.INVALID_JOB_STATE),
    (NoBillableItemsError, ErrorCodes.NO_BILLABLE_ITEMS),
    (AlreadySettledError, ErrorCodes.INVOICE_ALREADY_PAID),
    (OverpaymentRejectedError, ErrorCodes.OVERPAYMENT_REJECTED),
    (InvoiceClosedError, ErrorCodes.INVOICE_CLOSED),
    (InvalidStatusTransitionError, ErrorCodes.INVALID_STATUS_TRANSITION),
)


def _error(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_response(code, message).model_dump(mode="json"),
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    @app.exception_handler(EntityNotFoundError)
    async def not_found_handler(request: Request, exc: EntityNotFoundError):
        return _error(404, ErrorCodes.NOT_FOUND, str(exc))

    @app.exception_handler(StateConflictError)
    async def conflict_handler(request: Request, exc: StateConflictError):
        code = next(
            (code for cls, code in _CONFLICT_CODES if isinstance(exc, cls)),
            ErrorCodes.STATE_CONFLICT,
        )
        return _error(409, code, str(exc))

    @app.exception_handler(InsufficientStockError)
    async def insufficient_stock_handler(request: Request, exc: InsufficientStockError):
        return _error(409, ErrorCodes.INSUFFICIENT_STOCK, str(exc))

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError):
        logger.error("Configuration error: %s", exc)
        return _error(500, ErrorCodes.CONFIGURATION_ERROR, str(exc))

    @app.exception_handler(ValidationError)
    async def model_validation_handler(request: Request, exc: ValidationError):
        return _error(422, ErrorCodes.VALIDATION_ERROR, str(exc.errors(include_url=False)))

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return _error(400, ErrorCodes.INVALID_REQUEST, str(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return _error(422, ErrorCodes.VALIDATION_ERROR, str(exc.errors()))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return _error(500, ErrorCodes.INTERNAL_ERROR, "An internal error occurred")
