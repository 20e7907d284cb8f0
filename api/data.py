"""GET /api/data - unified read endpoint."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, Request

from api.base import success_response
from core.exceptions import InvoiceNotFoundError, PayslipNotFoundError


VALID_TYPES = {"invoices", "payslips", "payroll_report"}


def create_data_router(services: dict) -> APIRouter:
    router = APIRouter()

    invoice_svc = services["invoice"]
    payroll_svc = services["payroll"]
    report_svc = services["payroll_report"]

    @router.get("/data")
    async def get_data(
        request: Request,
        type: str | None = Query(None),
        id: str | None = Query(None),
        customer_id: str | None = Query(None),
        staff_id: str | None = Query(None),
        staff_ids: str | None = Query(None),
        period_start: date | None = Query(None),
        period_end: date | None = Query(None),
        filter: str | None = Query(None),
        limit: int = Query(50, ge=1, le=500),
    ):
        if type is None:
            raise ValueError("'type' query parameter is required")

        if type not in VALID_TYPES:
            raise ValueError(f"Unknown type '{type}'. Valid types: {', '.join(sorted(VALID_TYPES))}")

        if type == "invoices":
            return _handle_invoices(invoice_svc, id, customer_id, filter, limit)

        if type == "payslips":
            return _handle_payslips(payroll_svc, id, staff_id, limit)

        if type == "payroll_report":
            return _handle_payroll_report(report_svc, period_start, period_end, staff_ids)

    return router


def _handle_invoices(invoice_svc, id, customer_id, filter, limit):
    if id:
        invoice = invoice_svc.get_by_id(UUID(id))
        if invoice is None:
            raise InvoiceNotFoundError(UUID(id))
        return success_response(invoice.model_dump(mode="json")).model_dump(mode="json")

    if filter == "unpaid":
        invoices = invoice_svc.list_unpaid(limit)
    elif filter is not None:
        raise ValueError(f"Unknown invoice filter '{filter}'. Valid filters: unpaid")
    elif customer_id:
        invoices = invoice_svc.list_for_customer(UUID(customer_id), limit)
    else:
        raise ValueError("Invoices require 'id', 'customer_id' or filter=unpaid")

    return success_response(
        [i.model_dump(mode="json") for i in invoices]
    ).model_dump(mode="json")


def _handle_payslips(payroll_svc, id, staff_id, limit):
    if id:
        payslip = payroll_svc.get_payslip(UUID(id))
        if payslip is None:
            raise PayslipNotFoundError(UUID(id))
        return success_response(payslip.model_dump(mode="json")).model_dump(mode="json")

    if not staff_id:
        raise ValueError("Payslips require 'id' or 'staff_id'")

    payslips = payroll_svc.list_for_staff(UUID(staff_id), limit)
    return success_response(
        [p.model_dump(mode="json") for p in payslips]
    ).model_dump(mode="json")


def _handle_payroll_report(report_svc, period_start, period_end, staff_ids):
    if period_start is None or period_end is None:
        raise ValueError("payroll_report requires 'period_start' and 'period_end'")

    ids = [UUID(s) for s in staff_ids.split(",") if s] if staff_ids else None
    report = report_svc.summarize(period_start, period_end, ids)
    return success_response(report.model_dump(mode="json")).model_dump(mode="json")
