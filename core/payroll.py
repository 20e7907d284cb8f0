"""
Pay-rate calculators.

One calculator per pay-rate model, dispatched on the staff member's
pay_rate_type. Calculators are pure: they receive the staff record and the
already-filtered time and job records for the period, and return the gross
pay with its single earnings line and an audit breakdown.

Accumulation is unrounded. Rounding happens when the payslip is built.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Sequence

from core.models.job import Job
from core.models.payslip import PayLine
from core.models.staff import PayRateType, Staff, TimeRecord
from core.money import ZERO, money_sum, non_negative, to_money

MINUTES_PER_HOUR = Decimal(60)
HUNDRED = Decimal(100)

UNCONFIGURED_LABEL = "Unconfigured Pay"


@dataclass(frozen=True)
class PayCalculation:
    """Result of one staff member's pay calculation."""

    gross_pay: Decimal
    earnings: list[PayLine]
    breakdown: dict[str, Any] = field(default_factory=dict)


Calculator = Callable[[Staff, Sequence[TimeRecord], Sequence[Job]], PayCalculation]


def _result(description: str, gross: Decimal, breakdown: dict[str, Any]) -> PayCalculation:
    gross = non_negative(gross)
    return PayCalculation(
        gross_pay=gross,
        earnings=[PayLine(description=description, amount=gross)],
        breakdown=breakdown,
    )


def _record_summary(records: Sequence[TimeRecord]) -> list[dict[str, Any]]:
    return [
        {"id": str(r.id), "date": r.date.isoformat(), "minutes": r.total_minutes}
        for r in records
    ]


def calculate_hourly(staff: Staff, time_records: Sequence[TimeRecord], jobs: Sequence[Job]) -> PayCalculation:
    """(sum of minutes on complete records / 60) x hourly rate."""
    records = [r for r in time_records if r.is_complete]
    total_minutes = sum(r.total_minutes for r in records)
    hours = Decimal(total_minutes) / MINUTES_PER_HOUR
    rate = to_money(staff.hourly_rate)
    return _result("Hourly Wages", hours * rate, {
        "type": PayRateType.HOURLY.value,
        "total_minutes": total_minutes,
        "total_hours": str(hours),
        "rate": str(rate),
        "records": _record_summary(records),
    })


def calculate_fixed_per_job(staff: Staff, time_records: Sequence[TimeRecord], jobs: Sequence[Job]) -> PayCalculation:
    """Number of completed jobs x fixed amount per job."""
    amount = to_money(staff.job_fixed_amount)
    return _result("Fixed Job Payments", len(jobs) * amount, {
        "type": PayRateType.FIXED_PER_JOB.value,
        "total_jobs": len(jobs),
        "amount_per_job": str(amount),
        "job_ids": [str(j.id) for j in jobs],
    })


def calculate_percentage_per_job(staff: Staff, time_records: Sequence[TimeRecord], jobs: Sequence[Job]) -> PayCalculation:
    """Sum of completed job prices x percentage / 100."""
    total_value = money_sum(to_money(j.price) for j in jobs)
    percentage = to_money(staff.job_percentage)
    return _result("Job Commission", total_value * (percentage / HUNDRED), {
        "type": PayRateType.PERCENTAGE_PER_JOB.value,
        "total_job_value": str(total_value),
        "percentage": str(percentage),
        "job_ids": [str(j.id) for j in jobs],
    })


def calculate_daily_rate(staff: Staff, time_records: Sequence[TimeRecord], jobs: Sequence[Job]) -> PayCalculation:
    """Complete days at or above the clock-in threshold x daily amount (job_fixed_amount)."""
    threshold = staff.daily_clock_in_threshold_mins or 0
    records = [r for r in time_records if r.is_complete and r.total_minutes >= threshold]
    rate = to_money(staff.job_fixed_amount)
    return _result("Daily Rate Pay", len(records) * rate, {
        "type": PayRateType.DAILY_RATE.value,
        "total_days": len(records),
        "rate_per_day": str(rate),
        "threshold_minutes": threshold,
        "records": _record_summary(records),
    })


def calculate_unconfigured(staff: Staff, time_records: Sequence[TimeRecord], jobs: Sequence[Job]) -> PayCalculation:
    return _result(UNCONFIGURED_LABEL, ZERO, {
        "type": "N/A",
        "configured_type": staff.pay_rate_type,
        "message": "Unknown pay rate type or not configured.",
    })


CALCULATORS: dict[str, Calculator] = {
    PayRateType.HOURLY.value: calculate_hourly,
    PayRateType.FIXED_PER_JOB.value: calculate_fixed_per_job,
    PayRateType.PERCENTAGE_PER_JOB.value: calculate_percentage_per_job,
    PayRateType.DAILY_RATE.value: calculate_daily_rate,
}

# Models that need time records / completed jobs loaded.
TIME_BASED = frozenset({PayRateType.HOURLY.value, PayRateType.DAILY_RATE.value})
JOB_BASED = frozenset({PayRateType.FIXED_PER_JOB.value, PayRateType.PERCENTAGE_PER_JOB.value})


def is_configured(staff: Staff) -> bool:
    return staff.pay_rate_type in CALCULATORS


def calculate_pay(staff: Staff, time_records: Sequence[TimeRecord], jobs: Sequence[Job]) -> PayCalculation:
    """Dispatch to the calculator for the staff member's pay-rate model."""
    calculator = CALCULATORS.get(staff.pay_rate_type or "", calculate_unconfigured)
    return calculator(staff, time_records, jobs)
