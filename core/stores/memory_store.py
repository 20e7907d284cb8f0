"""
In-process LedgerStore.

Each tenant's records live in a _TenantData. A transaction holds that
tenant's lock for its whole duration and works on a deep copy; the copy
replaces the committed data only when the block exits normally. Per-tenant
serialization makes every for_update read trivially safe.

Transactions must not be nested on the same thread: the inner commit would
be overwritten by the outer one.
"""

import copy
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, Iterator
from uuid import UUID

from core.exceptions import DuplicateInvoiceError
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
from core.store import LedgerStore, LedgerTransaction
from utils.tenant_context import get_current_tenant_id

logger = logging.getLogger(__name__)


@dataclass
class _TenantData:
    settings: TenantSettings | None = None
    customers: dict[UUID, Customer] = field(default_factory=dict)
    stock_items: dict[UUID, StockItem] = field(default_factory=dict)
    jobs: dict[UUID, Job] = field(default_factory=dict)
    staff: dict[UUID, Staff] = field(default_factory=dict)
    time_records: dict[UUID, TimeRecord] = field(default_factory=dict)
    invoices: dict[UUID, Invoice] = field(default_factory=dict)
    payslips: dict[UUID, Payslip] = field(default_factory=dict)
    audit_log: list[dict[str, Any]] = field(default_factory=list)


class MemoryLedgerTransaction(LedgerTransaction):
    """Transaction over a private copy of one tenant's records."""

    def __init__(self, tenant_id: UUID, data: _TenantData):
        self.tenant_id = tenant_id
        self._data = data

    # Tenant settings

    def get_settings(self, for_update: bool = False) -> TenantSettings | None:
        settings = self._data.settings
        return settings.model_copy(deep=True) if settings else None

    def set_next_invoice_seq(self, seq: int) -> None:
        self._data.settings = self._data.settings.model_copy(update={"next_invoice_seq": seq})

    # Consulted records

    def get_customer(self, customer_id: UUID) -> Customer | None:
        return _copy(self._data.customers.get(customer_id))

    def list_customers(self) -> list[Customer]:
        return [c.model_copy(deep=True) for c in self._data.customers.values()]

    def get_stock_item(self, stock_id: UUID, for_update: bool = False) -> StockItem | None:
        return _copy(self._data.stock_items.get(stock_id))

    def set_stock_quantity(self, stock_id: UUID, quantity: Decimal) -> None:
        item = self._data.stock_items[stock_id]
        self._data.stock_items[stock_id] = item.model_copy(update={"stock_quantity": quantity})

    def get_job(self, job_id: UUID, for_update: bool = False) -> Job | None:
        return _copy(self._data.jobs.get(job_id))

    def set_job_status(self, job_id: UUID, status: JobStatus) -> None:
        job = self._data.jobs[job_id]
        self._data.jobs[job_id] = job.model_copy(update={"status": status})

    def list_completed_jobs(self, staff_id: UUID, start: datetime, end: datetime) -> list[Job]:
        return [
            job.model_copy(deep=True)
            for job in self._data.jobs.values()
            if job.status == JobStatus.COMPLETED
            and staff_id in job.assigned_staff
            and start <= job.date <= end
        ]

    def list_time_records(self, staff_id: UUID, start: datetime, end: datetime) -> list[TimeRecord]:
        return sorted(
            (
                record.model_copy(deep=True)
                for record in self._data.time_records.values()
                if record.staff_id == staff_id and start <= record.date <= end
            ),
            key=lambda r: r.date,
        )

    def list_staff(self, staff_ids: Iterable[UUID] | None = None) -> list[Staff]:
        wanted = set(staff_ids) if staff_ids is not None else None
        return [
            member.model_copy(deep=True)
            for member in self._data.staff.values()
            if wanted is None or member.id in wanted
        ]

    # Invoices

    def get_invoice(self, invoice_id: UUID, for_update: bool = False) -> Invoice | None:
        return _copy(self._data.invoices.get(invoice_id))

    def find_invoice_for_job(self, job_id: UUID) -> Invoice | None:
        for invoice in self._data.invoices.values():
            if invoice.job_id == job_id:
                return invoice.model_copy(deep=True)
        return None

    def insert_invoice(self, invoice: Invoice) -> None:
        for existing in self._data.invoices.values():
            if existing.invoice_number == invoice.invoice_number:
                raise ValueError(f"Invoice number {invoice.invoice_number} already exists")
            if invoice.job_id is not None and existing.job_id == invoice.job_id:
                raise DuplicateInvoiceError(invoice.job_id, existing.invoice_number)
        self._data.invoices[invoice.id] = invoice.model_copy(deep=True)

    def update_invoice(self, invoice: Invoice) -> None:
        if invoice.id not in self._data.invoices:
            raise KeyError(invoice.id)
        self._data.invoices[invoice.id] = invoice.model_copy(deep=True)

    def list_invoices(
        self,
        customer_id: UUID | None = None,
        statuses: Iterable[InvoiceStatus] | None = None,
        limit: int | None = None,
    ) -> list[Invoice]:
        wanted = set(statuses) if statuses is not None else None
        invoices = [
            invoice.model_copy(deep=True)
            for invoice in self._data.invoices.values()
            if (customer_id is None or invoice.customer_id == customer_id)
            and (wanted is None or invoice.status in wanted)
        ]
        invoices.sort(key=lambda i: i.created_at, reverse=True)
        return invoices[:limit] if limit is not None else invoices

    # Payslips

    def insert_payslip(self, payslip: Payslip) -> None:
        self._data.payslips[payslip.id] = payslip.model_copy(deep=True)

    def get_payslip(self, payslip_id: UUID) -> Payslip | None:
        return _copy(self._data.payslips.get(payslip_id))

    def list_payslips(
        self,
        staff_ids: Iterable[UUID] | None = None,
        period_start: datetime | None = None,
        period_end: datetime | None = None,
    ) -> list[Payslip]:
        wanted = set(staff_ids) if staff_ids is not None else None
        payslips = [
            payslip.model_copy(deep=True)
            for payslip in self._data.payslips.values()
            if (wanted is None or payslip.staff_id in wanted)
            and (period_start is None or payslip.period_start >= period_start)
            and (period_end is None or payslip.period_end <= period_end)
        ]
        payslips.sort(key=lambda p: p.created_at, reverse=True)
        return payslips

    # Audit

    def insert_audit_entry(self, entry: dict[str, Any]) -> None:
        self._data.audit_log.append(copy.deepcopy(entry))

    def list_audit_entries(self, entity_type: str, entity_id: UUID) -> list[dict[str, Any]]:
        return [
            copy.deepcopy(entry)
            for entry in reversed(self._data.audit_log)
            if entry["entity_type"] == entity_type and entry["entity_id"] == entity_id
        ]


def _copy(model):
    return model.model_copy(deep=True) if model is not None else None


class MemoryLedgerStore(LedgerStore):
    """
    LedgerStore kept in process memory.

    Used for tests and local runs. The put_* methods seed consulted records
    (settings, customers, stock, jobs, staff, time records) that other
    systems own in production; each record is filed under its tenant_id.

    Usage:
        store = MemoryLedgerStore()
        store.put_settings(TenantSettings(tenant_id=tenant_id, tax_rate=Decimal("0.2")))

        with tenant_context(tenant_id):
            with store.transaction() as txn:
                settings = txn.get_settings(for_update=True)
    """

    def __init__(self):
        self._tenants: dict[UUID, _TenantData] = {}
        self._locks: dict[UUID, threading.RLock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, tenant_id: UUID) -> threading.RLock:
        with self._registry_lock:
            if tenant_id not in self._locks:
                self._locks[tenant_id] = threading.RLock()
                self._tenants[tenant_id] = _TenantData()
            return self._locks[tenant_id]

    @contextmanager
    def transaction(self) -> Iterator[MemoryLedgerTransaction]:
        tenant_id = get_current_tenant_id()
        with self._lock_for(tenant_id):
            working = copy.deepcopy(self._tenants[tenant_id])
            yield MemoryLedgerTransaction(tenant_id, working)
            # Reached only when the block did not raise
            self._tenants[tenant_id] = working

    # Seeding

    def _seed(self, tenant_id: UUID, attr: str, key: UUID, record: Any) -> None:
        with self._lock_for(tenant_id):
            getattr(self._tenants[tenant_id], attr)[key] = record.model_copy(deep=True)

    def put_settings(self, settings: TenantSettings) -> None:
        with self._lock_for(settings.tenant_id):
            self._tenants[settings.tenant_id].settings = settings.model_copy(deep=True)

    def put_customer(self, customer: Customer) -> None:
        self._seed(customer.tenant_id, "customers", customer.id, customer)

    def put_stock_item(self, item: StockItem) -> None:
        self._seed(item.tenant_id, "stock_items", item.id, item)

    def put_job(self, job: Job) -> None:
        self._seed(job.tenant_id, "jobs", job.id, job)

    def put_staff(self, staff: Staff) -> None:
        self._seed(staff.tenant_id, "staff", staff.id, staff)

    def put_time_record(self, record: TimeRecord) -> None:
        self._seed(record.tenant_id, "time_records", record.id, record)

    def put_invoice(self, invoice: Invoice) -> None:
        self._seed(invoice.tenant_id, "invoices", invoice.id, invoice)
