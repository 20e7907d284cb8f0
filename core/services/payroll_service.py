"""
Payroll service.

A calculation run produces one new payslip per matched staff member. The
whole run is one transaction: if any staff member's calculation raises,
nothing from the run persists. Payslips are never edited afterwards; a
re-run over the same period writes a fresh set under a new run_id.
"""

import logging
from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable
from uuid import UUID, uuid4

from core.audit import AuditLogger, AuditAction
from core.config import LedgerConfig
from core.event_bus import EventBus
from core.events import PayrollCalculated
from core.exceptions import InvalidPayPeriodError
from core.models import (
    PayLine,
    Payslip,
    PayslipStatus,
    PayrollReport,
    Staff,
    StaffPayrollSummary,
)
from core.money import ZERO, money_sum, round_money
from core.payroll import JOB_BASED, TIME_BASED, calculate_pay, is_configured
from core.store import LedgerStore, LedgerTransaction
from utils.timezone import end_of_day_utc, now_utc, start_of_day_utc

logger = logging.getLogger(__name__)


def pay_period_bounds(period_start: date, period_end: date) -> tuple[datetime, datetime]:
    """
    Convert pay period dates to UTC datetimes.

    The period runs from the start of period_start to the last instant of
    period_end, both in UTC.

    Raises:
        InvalidPayPeriodError: If period_start is after period_end
    """
    if period_start > period_end:
        raise InvalidPayPeriodError(
            f"Pay period start {period_start.isoformat()} is after end {period_end.isoformat()}"
        )
    return start_of_day_utc(period_start), end_of_day_utc(period_end)


class PayrollService:
    """Service for payroll calculation runs."""

    def __init__(
        self,
        store: LedgerStore,
        audit: AuditLogger,
        event_bus: EventBus,
        config: LedgerConfig | None = None,
    ):
        self.store = store
        self.audit = audit
        self.event_bus = event_bus
        self.config = config or LedgerConfig()

    def _build_payslip(
        self,
        txn: LedgerTransaction,
        staff: Staff,
        run_id: UUID,
        start: datetime,
        end: datetime,
        now: datetime,
    ) -> Payslip:
        if not is_configured(staff):
            logger.warning(
                "Staff %s (%s) has no recognised pay rate type (%r), payslip will be zero",
                staff.id, staff.name, staff.pay_rate_type,
            )
        pay_rate_type = staff.pay_rate_type or ""
        time_records = (
            txn.list_time_records(staff.id, start, end) if pay_rate_type in TIME_BASED else []
        )
        jobs = (
            txn.list_completed_jobs(staff.id, start, end) if pay_rate_type in JOB_BASED else []
        )
        calculation = calculate_pay(staff, time_records, jobs)

        gross_pay = round_money(calculation.gross_pay)
        deductions = [PayLine(description=self.config.payroll_tax_placeholder_label, amount=ZERO)]
        total_deductions = round_money(money_sum(d.amount for d in deductions))

        return Payslip(
            id=uuid4(),
            tenant_id=txn.tenant_id,
            staff_id=staff.id,
            run_id=run_id,
            pay_rate_type=staff.pay_rate_type,
            period_start=start,
            period_end=end,
            gross_pay=gross_pay,
            earnings=[
                PayLine(description=e.description, amount=round_money(e.amount))
                for e in calculation.earnings
            ],
            deductions=deductions,
            total_deductions=total_deductions,
            net_pay=gross_pay - total_deductions,
            pay_details_breakdown={
                **calculation.breakdown,
                "unrounded_gross_pay": str(calculation.gross_pay),
            },
            status=PayslipStatus.GENERATED,
            created_at=now,
        )

    def calculate_payroll(
        self,
        period_start: date,
        period_end: date,
        staff_ids: Iterable[UUID] | None = None,
    ) -> list[Payslip]:
        """
        Calculate payslips for a pay period.

        Args:
            period_start: First day of the period
            period_end: Last day of the period (inclusive)
            staff_ids: Only these staff members; None or empty means all staff.
                Ids not in this tenant are ignored.

        Returns:
            New payslips, one per matched staff member

        Raises:
            InvalidPayPeriodError: If period_start is after period_end
        """
        start, end = pay_period_bounds(period_start, period_end)
        wanted = list(staff_ids) if staff_ids else None

        run_id = uuid4()
        now = now_utc()
        payslips = []

        with self.store.transaction() as txn:
            for staff in txn.list_staff(wanted):
                payslip = self._build_payslip(txn, staff, run_id, start, end, now)
                txn.insert_payslip(payslip)
                self.audit.log_change(
                    txn,
                    entity_type="payslip",
                    entity_id=payslip.id,
                    action=AuditAction.CREATE,
                    changes={"created": payslip.model_dump(mode="json")},
                )
                payslips.append(payslip)

        logger.info(
            "Payroll run %s for %s..%s produced %d payslips",
            run_id, period_start.isoformat(), period_end.isoformat(), len(payslips),
        )
        self.event_bus.publish(
            PayrollCalculated.create(tenant_id=txn.tenant_id, run_id=run_id, payslips=payslips)
        )
        return payslips

    def get_payslip(self, payslip_id: UUID) -> Payslip | None:
        """Get payslip by ID, None if not in this tenant."""
        with self.store.transaction() as txn:
            return txn.get_payslip(payslip_id)

    def list_for_staff(self, staff_id: UUID, limit: int = 50) -> list[Payslip]:
        """Payslips of one staff member, newest first."""
        with self.store.transaction() as txn:
            payslips = txn.list_payslips(staff_ids=[staff_id])
        return payslips[:limit]


class PayrollReportService:
    """Accountant summary of payslips within a period."""

    def __init__(self, store: LedgerStore):
        self.store = store

    def summarize(
        self,
        period_start: date,
        period_end: date,
        staff_ids: Iterable[UUID] | None = None,
    ) -> PayrollReport:
        """
        Summarize payslips whose pay period lies inside [period_start, period_end].

        Totals are accumulated unrounded and rounded once for presentation.

        Raises:
            InvalidPayPeriodError: If period_start is after period_end
        """
        start, end = pay_period_bounds(period_start, period_end)
        wanted = list(staff_ids) if staff_ids else None

        with self.store.transaction() as txn:
            payslips = txn.list_payslips(staff_ids=wanted, period_start=start, period_end=end)
            names = {s.id: s.name for s in txn.list_staff({p.staff_id for p in payslips})}

        per_staff: dict[UUID, list[Payslip]] = defaultdict(list)
        earnings: dict[str, Decimal] = defaultdict(Decimal)
        deductions: dict[str, Decimal] = defaultdict(Decimal)

        for payslip in payslips:
            per_staff[payslip.staff_id].append(payslip)
            for line in payslip.earnings:
                earnings[line.description] += line.amount
            for line in payslip.deductions:
                deductions[line.description] += line.amount

        summaries = [
            StaffPayrollSummary(
                staff_id=staff_id,
                staff_name=names.get(staff_id),
                payslip_count=len(slips),
                gross_pay=round_money(money_sum(p.gross_pay for p in slips)),
                total_deductions=round_money(money_sum(p.total_deductions for p in slips)),
                net_pay=round_money(money_sum(p.net_pay for p in slips)),
            )
            for staff_id, slips in per_staff.items()
        ]
        summaries.sort(key=lambda s: s.staff_name or "")

        return PayrollReport(
            period_start=start,
            period_end=end,
            total_gross_pay=round_money(money_sum(p.gross_pay for p in payslips)),
            total_deductions=round_money(money_sum(p.total_deductions for p in payslips)),
            total_net_pay=round_money(money_sum(p.net_pay for p in payslips)),
            staff_summaries=summaries,
            earnings_breakdown=[
                PayLine(description=d, amount=round_money(a)) for d, a in sorted(earnings.items())
            ],
            deductions_breakdown=[
                PayLine(description=d, amount=round_money(a)) for d, a in sorted(deductions.items())
            ],
        )
