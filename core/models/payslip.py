"""Payslip and payroll report models.

Payslips are immutable. A new calculation run writes new payslips under a
new run_id instead of editing old ones.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class PayslipStatus(str, Enum):
    """Payslip workflow status. This engine only ever writes GENERATED."""

    GENERATED = "generated"
    APPROVED = "approved"
    PAID = "paid"


class PayLine(BaseModel):
    """An earning or deduction line."""

    description: str
    amount: Decimal

    model_config = {"frozen": True}


class Payslip(BaseModel):
    """Full payslip entity as stored."""

    id: UUID
    tenant_id: UUID
    staff_id: UUID
    run_id: UUID
    pay_rate_type: str | None
    period_start: datetime
    period_end: datetime
    gross_pay: Decimal = Field(..., ge=0)
    earnings: list[PayLine]
    deductions: list[PayLine]
    total_deductions: Decimal
    net_pay: Decimal
    pay_details_breakdown: dict[str, Any]
    status: PayslipStatus = PayslipStatus.GENERATED
    created_at: datetime

    model_config = {"from_attributes": True, "frozen": True}


class StaffPayrollSummary(BaseModel):
    """Per-staff totals in a payroll report."""

    staff_id: UUID
    staff_name: str | None
    payslip_count: int
    gross_pay: Decimal
    total_deductions: Decimal
    net_pay: Decimal


class PayrollReport(BaseModel):
    """Accountant summary of payslips within a period."""

    period_start: datetime
    period_end: datetime
    total_gross_pay: Decimal
    total_deductions: Decimal
    total_net_pay: Decimal
    staff_summaries: list[StaffPayrollSummary]
    earnings_breakdown: list[PayLine]
    deductions_breakdown: list[PayLine]
