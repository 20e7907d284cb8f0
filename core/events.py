"""
Domain events for the ledger.

Immutable event objects that represent committed financial changes.
Services publish after the transaction commits; handlers react (email
dispatch, notifications) without the publisher knowing who's listening.

Event Categories:
- InvoiceEvent: Invoice lifecycle (create, payment, paid, status change)
- PayrollEvent: Payroll runs

Events carry the full domain object so handlers don't need to re-fetch state.
Each event also carries the tenant it belongs to, because handlers may run
outside the request that published it.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from utils.timezone import now_utc


@dataclass(frozen=True, kw_only=True)
class LedgerEvent:
    """Base class for all ledger domain events."""
    event_id: str = field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = field(default_factory=now_utc)
    tenant_id: UUID | None = None


# =============================================================================
# INVOICE EVENTS
# =============================================================================


@dataclass(frozen=True, kw_only=True)
class InvoiceEvent(LedgerEvent):
    """Events related to invoice lifecycle."""
    invoice: Any = None  # Invoice; Any avoids a circular import


@dataclass(frozen=True, kw_only=True)
class InvoiceCreated(InvoiceEvent):
    """A new invoice was committed (stock selection or completed job)."""
    customer: Any = None

    @classmethod
    def create(cls, invoice: Any, customer: Any) -> "InvoiceCreated":
        return cls(tenant_id=invoice.tenant_id, invoice=invoice, customer=customer)


@dataclass(frozen=True, kw_only=True)
class InvoicePaymentRecorded(InvoiceEvent):
    """A payment was applied to an invoice."""
    payment: Any = None

    @classmethod
    def create(cls, invoice: Any, payment: Any) -> "InvoicePaymentRecorded":
        return cls(tenant_id=invoice.tenant_id, invoice=invoice, payment=payment)


@dataclass(frozen=True, kw_only=True)
class InvoicePaid(InvoiceEvent):
    """Invoice was fully paid."""

    @classmethod
    def create(cls, invoice: Any) -> "InvoicePaid":
        return cls(tenant_id=invoice.tenant_id, invoice=invoice)


@dataclass(frozen=True, kw_only=True)
class InvoiceStatusChanged(InvoiceEvent):
    """An operator changed the invoice status."""
    old_status: str = ""
    new_status: str = ""

    @classmethod
    def create(cls, invoice: Any, old_status: str) -> "InvoiceStatusChanged":
        return cls(
            tenant_id=invoice.tenant_id,
            invoice=invoice,
            old_status=old_status,
            new_status=invoice.status.value,
        )


# =============================================================================
# PAYROLL EVENTS
# =============================================================================


@dataclass(frozen=True, kw_only=True)
class PayrollEvent(LedgerEvent):
    """Events related to payroll runs."""
    pass


@dataclass(frozen=True, kw_only=True)
class PayrollCalculated(PayrollEvent):
    """A payroll run committed its payslips."""
    run_id: UUID | None = None
    payslips: tuple = ()

    @classmethod
    def create(cls, tenant_id: UUID, run_id: UUID, payslips: list) -> "PayrollCalculated":
        return cls(tenant_id=tenant_id, run_id=run_id, payslips=tuple(payslips))
