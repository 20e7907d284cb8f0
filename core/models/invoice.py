"""Invoice domain models.

subtotal, tax_amount, total, amount_paid and balance_due are derived
fields. They are only ever produced by core.invoicing and are never taken
from caller input.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field

from core.models.ledger import LineItem, PaymentRecord
from core.models.settings import Currency


class InvoiceStatus(str, Enum):
    """Invoice lifecycle status."""

    DRAFT = "draft"
    SENT = "sent"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    OVERDUE = "overdue"
    VOID = "void"
    REFUNDED = "refunded"


# Terminal statuses are never re-derived.
TERMINAL_STATUSES = frozenset({InvoiceStatus.VOID, InvoiceStatus.REFUNDED})

# The only statuses an operator may set directly. paid/partially_paid come
# from payments, overdue from the due date.
OPERATOR_STATUSES = frozenset({
    InvoiceStatus.DRAFT, InvoiceStatus.SENT, InvoiceStatus.VOID, InvoiceStatus.REFUNDED,
})


class StockSelection(BaseModel):
    """One stock item and quantity requested on a manual invoice."""

    stock_id: UUID
    quantity: Decimal

    model_config = {"extra": "forbid"}


class StockInvoiceCreate(BaseModel):
    """Data required to create an invoice from a manual stock selection."""

    customer_id: UUID
    items: list[StockSelection] = Field(default_factory=list)
    notes: str | None = Field(None, max_length=2000)

    model_config = {"extra": "forbid"}


class InvoiceStatusUpdate(BaseModel):
    """Explicit status change requested by an operator."""

    status: InvoiceStatus

    model_config = {"extra": "forbid"}


class Invoice(BaseModel):
    """Full invoice entity as stored."""

    id: UUID
    tenant_id: UUID
    customer_id: UUID
    job_id: UUID | None = None
    invoice_number: str
    status: InvoiceStatus
    issue_date: datetime
    due_date: datetime
    line_items: list[LineItem]
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total: Decimal
    payments: list[PaymentRecord] = Field(default_factory=list)
    amount_paid: Decimal = Decimal("0")
    balance_due: Decimal
    currency: Currency
    notes: str | None = None
    sent_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @property
    def is_terminal(self) -> bool:
        """Whether the invoice is void or refunded."""
        return self.status in TERMINAL_STATUSES

    @property
    def is_paid(self) -> bool:
        """Whether invoice is fully paid."""
        return self.status == InvoiceStatus.PAID
