"""
Unit of work for the ledger.

Every financial operation runs inside one LedgerStore.transaction(). The
transaction commits when the block exits normally and rolls back when it
raises, so a numbering increment, a stock decrement and an invoice write
either all persist or none do.

Reads that precede a write on the same record pass for_update=True. The
store guarantees that a record read this way cannot be changed by another
transaction until this one finishes.

All queries are scoped to the tenant bound in utils.tenant_context at the
moment the transaction is opened.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable
from uuid import UUID

from core.models import (
    Customer,
    Invoice,
    InvoiceStatus,
    Job,
    JobStatus,
    Payslip,
    Staff,
    StockItem,
    TenantSettings,
    TimeRecord,
)


class LedgerTransaction(ABC):
    """Operations available inside an open transaction."""

    tenant_id: UUID

    # Tenant settings

    @abstractmethod
    def get_settings(self, for_update: bool = False) -> TenantSettings | None:
        ...

    @abstractmethod
    def set_next_invoice_seq(self, seq: int) -> None:
        """Store the next invoice sequence. Only the numbering authority calls this."""

    # Consulted records

    @abstractmethod
    def get_customer(self, customer_id: UUID) -> Customer | None:
        ...

    @abstractmethod
    def list_customers(self) -> list[Customer]:
        ...

    @abstractmethod
    def get_stock_item(self, stock_id: UUID, for_update: bool = False) -> StockItem | None:
        ...

    @abstractmethod
    def set_stock_quantity(self, stock_id: UUID, quantity: Decimal) -> None:
        ...

    @abstractmethod
    def get_job(self, job_id: UUID, for_update: bool = False) -> Job | None:
        ...

    @abstractmethod
    def set_job_status(self, job_id: UUID, status: JobStatus) -> None:
        ...

    @abstractmethod
    def list_completed_jobs(self, staff_id: UUID, start: datetime, end: datetime) -> list[Job]:
        """Completed jobs assigned to staff_id dated within [start, end]."""

    @abstractmethod
    def list_time_records(self, staff_id: UUID, start: datetime, end: datetime) -> list[TimeRecord]:
        """Time records of staff_id dated within [start, end]."""

    @abstractmethod
    def list_staff(self, staff_ids: Iterable[UUID] | None = None) -> list[Staff]:
        """All tenant staff, or only those whose id is in staff_ids."""

    # Invoices

    @abstractmethod
    def get_invoice(self, invoice_id: UUID, for_update: bool = False) -> Invoice | None:
        ...

    @abstractmethod
    def find_invoice_for_job(self, job_id: UUID) -> Invoice | None:
        ...

    @abstractmethod
    def insert_invoice(self, invoice: Invoice) -> None:
        """
        Persist a new invoice.

        Raises:
            DuplicateInvoiceError: If the job already has an invoice
        """

    @abstractmethod
    def update_invoice(self, invoice: Invoice) -> None:
        ...

    @abstractmethod
    def list_invoices(
        self,
        customer_id: UUID | None = None,
        statuses: Iterable[InvoiceStatus] | None = None,
        limit: int | None = None,
    ) -> list[Invoice]:
        """Invoices newest first, optionally filtered by customer and status."""

    # Payslips

    @abstractmethod
    def insert_payslip(self, payslip: Payslip) -> None:
        ...

    @abstractmethod
    def get_payslip(self, payslip_id: UUID) -> Payslip | None:
        ...

    @abstractmethod
    def list_payslips(
        self,
        staff_ids: Iterable[UUID] | None = None,
        period_start: datetime | None = None,
        period_end: datetime | None = None,
    ) -> list[Payslip]:
        """Payslips newest first whose period lies within [period_start, period_end]."""

    # Audit

    @abstractmethod
    def insert_audit_entry(self, entry: dict[str, Any]) -> None:
        ...

    @abstractmethod
    def list_audit_entries(self, entity_type: str, entity_id: UUID) -> list[dict[str, Any]]:
        """Audit entries for one entity, newest first."""


class LedgerStore(ABC):
    """Factory for transactions against the ledger."""

    @abstractmethod
    def transaction(self) -> AbstractContextManager[LedgerTransaction]:
        """
        Open a unit of work for the current tenant.

        Raises:
            RuntimeError: If no tenant context is set
        """
