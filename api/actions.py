"""POST /api/actions - unified mutation endpoint."""

from datetime import date
from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Request
from pydantic import BaseModel

from api.base import success_response
from core.models import (
    InvoiceStatusUpdate,
    PaymentCreate,
    StockInvoiceCreate,
)


class ActionRequest(BaseModel):
    domain: str
    action: str
    data: dict


class PayrollRunRequest(BaseModel):
    period_start: date
    period_end: date
    staff_ids: list[UUID] | None = None

    model_config = {"extra": "forbid"}


class StockReturnRequest(BaseModel):
    stock_id: UUID
    quantity: Decimal

    model_config = {"extra": "forbid"}


def create_actions_router(services: dict) -> APIRouter:
    router = APIRouter()

    handlers = {
        "invoice": InvoiceHandler(services["invoice"], services["delivery"]),
        "payroll": PayrollHandler(services["payroll"]),
        "stock": StockHandler(services["stock"]),
    }

    @router.post("/actions")
    async def perform_action(request: Request, body: ActionRequest):
        handler = handlers.get(body.domain)
        if handler is None:
            raise ValueError(
                f"Unknown domain '{body.domain}'. "
                f"Valid domains: {', '.join(sorted(handlers.keys()))}"
            )

        if body.action not in handler.ALLOWED_ACTIONS:
            raise ValueError(
                f"Action '{body.action}' not allowed on '{body.domain}'. "
                f"Allowed: {', '.join(sorted(handler.ALLOWED_ACTIONS))}"
            )

        method = getattr(handler, f"_handle_{body.action}")
        result = method(body.data)
        return success_response(result).model_dump(mode="json")

    return router


# =============================================================================
# HANDLER CLASSES
# =============================================================================


def _required_id(data: dict, key: str = "id") -> UUID:
    if key not in data:
        raise ValueError(f"'{key}' is required")
    return UUID(str(data.pop(key)))


class InvoiceHandler:
    ALLOWED_ACTIONS = {"create_from_stock", "create_from_job", "record_payment", "set_status", "send"}

    def __init__(self, service, delivery):
        self.service = service
        self.delivery = delivery

    def _handle_create_from_stock(self, data: dict):
        invoice = self.service.create_stock_invoice(StockInvoiceCreate(**data))
        return invoice.model_dump(mode="json")

    def _handle_create_from_job(self, data: dict):
        invoice = self.service.create_job_invoice(_required_id(data, "job_id"))
        return invoice.model_dump(mode="json")

    def _handle_record_payment(self, data: dict):
        invoice_id = _required_id(data)
        invoice = self.service.record_payment(invoice_id, PaymentCreate(**data))
        return invoice.model_dump(mode="json")

    def _handle_set_status(self, data: dict):
        invoice_id = _required_id(data)
        invoice = self.service.set_status(invoice_id, InvoiceStatusUpdate(**data))
        return invoice.model_dump(mode="json")

    def _handle_send(self, data: dict):
        invoice_id = _required_id(data)
        return {"id": str(invoice_id), "sent": self.delivery.send_invoice(invoice_id)}


class PayrollHandler:
    ALLOWED_ACTIONS = {"calculate"}

    def __init__(self, service):
        self.service = service

    def _handle_calculate(self, data: dict):
        run = PayrollRunRequest(**data)
        payslips = self.service.calculate_payroll(run.period_start, run.period_end, run.staff_ids)
        return [p.model_dump(mode="json") for p in payslips]


class StockHandler:
    ALLOWED_ACTIONS = {"return"}

    def __init__(self, ledger):
        self.ledger = ledger

    def _handle_return(self, data: dict):
        request = StockReturnRequest(**data)
        item = self.ledger.return_to_stock(request.stock_id, request.quantity)
        return item.model_dump(mode="json")
