"""Customer records as consulted by invoicing."""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class InvoiceEmailTrigger(str, Enum):
    """When a customer's invoices are emailed."""

    ON_COMPLETION = "On Completion"
    WEEKLY = "Weekly"
    BI_WEEKLY = "Bi-Weekly"
    FOUR_WEEKLY = "4-Weekly"
    MONTHLY = "Monthly"

    @property
    def is_patterned(self) -> bool:
        """Whether sending waits for the scheduled sweep."""
        return self != InvoiceEmailTrigger.ON_COMPLETION


class Customer(BaseModel):
    """Customer entity (maintained elsewhere, read-only here)."""

    id: UUID
    tenant_id: UUID
    name: str = Field(..., max_length=255)
    email: str | None = None
    send_invoice_email: bool = True
    invoice_email_trigger: InvoiceEmailTrigger = InvoiceEmailTrigger.ON_COMPLETION
    pattern_start_date: date | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}

    @property
    def sends_on_completion(self) -> bool:
        """Whether a new invoice should be emailed straight away."""
        return self.send_invoice_email and not self.invoice_email_trigger.is_patterned
