"""Staff and time records consulted by payroll."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel


class PayRateType(str, Enum):
    """Supported pay-rate models."""

    HOURLY = "Hourly"
    FIXED_PER_JOB = "Fixed per Job"
    PERCENTAGE_PER_JOB = "Percentage per Job"
    DAILY_RATE = "Daily Rate"


class Staff(BaseModel):
    """
    Staff member with pay configuration.

    pay_rate_type is kept as the raw stored string so that unknown values
    reach payroll and are reported as unconfigured rather than failing to load.
    Daily Rate pays job_fixed_amount per qualifying day.
    """

    id: UUID
    tenant_id: UUID
    name: str
    email: str | None = None
    pay_rate_type: str | None = None
    hourly_rate: Decimal | None = None
    job_fixed_amount: Decimal | None = None
    job_percentage: Decimal | None = None
    daily_clock_in_threshold_mins: int | None = None

    model_config = {"from_attributes": True}


class TimeRecord(BaseModel):
    """One day's clock-in/clock-out for a staff member."""

    id: UUID
    tenant_id: UUID
    staff_id: UUID
    date: datetime
    clock_in_at: datetime | None = None
    clock_out_at: datetime | None = None
    total_minutes: int = 0

    model_config = {"from_attributes": True}

    @property
    def is_complete(self) -> bool:
        """Both clock-in and clock-out were recorded."""
        return self.clock_in_at is not None and self.clock_out_at is not None
