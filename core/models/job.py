"""Job records consulted by invoicing and payroll."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    """Job lifecycle status."""

    BOOKED = "Booked"
    CONFIRMED = "Confirmed"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    INVOICED = "Invoiced"
    INVOICE_PAID = "Invoice Paid"
    CANCELLED = "Cancelled"
    PENDING = "Pending"
    ON_HOLD = "On Hold"


class UsedStockItem(BaseModel):
    """Stock consumed while doing the job."""

    stock_id: UUID
    quantity_used: Decimal = Field(..., ge=0)


class Job(BaseModel):
    """Job entity (owned by scheduling, read here; invoicing sets status=Invoiced)."""

    id: UUID
    tenant_id: UUID
    customer_id: UUID
    service_type: str
    description: str | None = None
    date: datetime
    price: Decimal = Decimal("0")
    status: JobStatus
    assigned_staff: list[UUID] = Field(default_factory=list)
    used_stock_items: list[UsedStockItem] = Field(default_factory=list)

    model_config = {"from_attributes": True}
