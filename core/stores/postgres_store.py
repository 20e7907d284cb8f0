"""
PostgreSQL LedgerStore.

One connection per transaction (PostgresClient.transaction()). Rows that
are read before being written are locked with SELECT ... FOR UPDATE, which
serializes numbering, stock decrements and payments per row. The partial
unique index on invoices (tenant_id, job_id) backs the one-invoice-per-job
rule; a violation is reported as DuplicateInvoiceError.

Schema: schema/ledger.sql
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, Iterator
from uuid import UUID

import psycopg2.errors
import psycopg2.extras

from clients.postgres_client import PostgresClient, TransactionCursor
from core.exceptions import DuplicateInvoiceError
from core.models import (
    Currency,
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

_JOB_UNIQUE_INDEX = "invoices_tenant_job_key"

_INVOICE_COLUMNS = (
    "id", "tenant_id", "customer_id", "job_id", "invoice_number", "status",
    "issue_date", "due_date", "line_items", "subtotal", "tax_rate", "tax_amount",
    "total", "payments", "amount_paid", "balance_due", "currency", "notes",
    "sent_at", "created_at", "updated_at",
)

_PAYSLIP_COLUMNS = (
    "id", "tenant_id", "staff_id", "run_id", "pay_rate_type", "period_start",
    "period_end", "gross_pay", "earnings", "deductions", "total_deductions",
    "net_pay", "pay_details_breakdown", "status", "created_at",
)

# Invoice columns a later update may change. id, tenant, customer, job,
# number and issue date are fixed at creation.
_INVOICE_UPDATABLE = (
    "status", "due_date", "line_items", "subtotal", "tax_rate", "tax_amount",
    "total", "payments", "amount_paid", "balance_due", "notes", "sent_at", "updated_at",
)

_JSON_COLUMNS = {"line_items", "payments", "currency", "earnings", "deductions", "pay_details_breakdown"}


def _row_values(model, columns: tuple[str, ...]) -> dict[str, Any]:
    """Dump a model into column values, wrapping JSONB columns."""
    plain = model.model_dump()
    as_json = model.model_dump(mode="json", include=_JSON_COLUMNS & set(columns))
    values = {}
    for column in columns:
        if column in _JSON_COLUMNS:
            values[column] = psycopg2.extras.Json(as_json[column])
        elif hasattr(plain[column], "value"):
            values[column] = plain[column].value
        else:
            values[column] = plain[column]
    return values


class PostgresLedgerTransaction(LedgerTransaction):
    """Transaction bound to one open database connection."""

    def __init__(self, tenant_id: UUID, cur: TransactionCursor):
        self.tenant_id = tenant_id
        self.cur = cur

    def _lock(self, for_update: bool) -> str:
        return " FOR UPDATE" if for_update else ""

    # Tenant settings

    def get_settings(self, for_update: bool = False) -> TenantSettings | None:
        row = self.cur.execute_single(
            "SELECT * FROM tenant_settings WHERE tenant_id = %s" + self._lock(for_update),
            (self.tenant_id,),
        )
        if not row:
            return None
        row["currency"] = Currency(code=row.pop("currency_code"), symbol=row.pop("currency_symbol"))
        return TenantSettings.model_validate(row)

    def set_next_invoice_seq(self, seq: int) -> None:
        self.cur.execute(
            "UPDATE tenant_settings SET next_invoice_seq = %s, updated_at = now() WHERE tenant_id = %s",
            (seq, self.tenant_id),
        )

    # Consulted records

    def get_customer(self, customer_id: UUID) -> Customer | None:
        row = self.cur.execute_single(
            "SELECT * FROM customers WHERE tenant_id = %s AND id = %s",
            (self.tenant_id, customer_id),
        )
        return Customer.model_validate(row) if row else None

    def list_customers(self) -> list[Customer]:
        rows = self.cur.execute(
            "SELECT * FROM customers WHERE tenant_id = %s ORDER BY name",
            (self.tenant_id,),
        )
        return [Customer.model_validate(r) for r in rows]

    def get_stock_item(self, stock_id: UUID, for_update: bool = False) -> StockItem | None:
        row = self.cur.execute_single(
            "SELECT * FROM stock_items WHERE tenant_id = %s AND id = %s" + self._lock(for_update),
            (self.tenant_id, stock_id),
        )
        return StockItem.model_validate(row) if row else None

    def set_stock_quantity(self, stock_id: UUID, quantity: Decimal) -> None:
        self.cur.execute(
            "UPDATE stock_items SET stock_quantity = %s, updated_at = now() WHERE tenant_id = %s AND id = %s",
            (quantity, self.tenant_id, stock_id),
        )

    def get_job(self, job_id: UUID, for_update: bool = False) -> Job | None:
        row = self.cur.execute_single(
            "SELECT * FROM jobs WHERE tenant_id = %s AND id = %s" + self._lock(for_update),
            (self.tenant_id, job_id),
        )
        return Job.model_validate(row) if row else None

    def set_job_status(self, job_id: UUID, status: JobStatus) -> None:
        self.cur.execute(
            "UPDATE jobs SET status = %s WHERE tenant_id = %s AND id = %s",
            (status.value, self.tenant_id, job_id),
        )

    def list_completed_jobs(self, staff_id: UUID, start: datetime, end: datetime) -> list[Job]:
        rows = self.cur.execute(
            """
            SELECT * FROM jobs
            WHERE tenant_id = %s AND status = %s AND %s::uuid = ANY(assigned_staff)
              AND date >= %s AND date <= %s
            ORDER BY date
            """,
            (self.tenant_id, JobStatus.COMPLETED.value, staff_id, start, end),
        )
        return [Job.model_validate(r) for r in rows]

    def list_time_records(self, staff_id: UUID, start: datetime, end: datetime) -> list[TimeRecord]:
        rows = self.cur.execute(
            """
            SELECT * FROM daily_time_records
            WHERE tenant_id = %s AND staff_id = %s AND date >= %s AND date <= %s
            ORDER BY date
            """,
            (self.tenant_id, staff_id, start, end),
        )
        return [TimeRecord.model_validate(r) for r in rows]

    def list_staff(self, staff_ids: Iterable[UUID] | None = None) -> list[Staff]:
        if staff_ids is None:
            rows = self.cur.execute(
                "SELECT * FROM staff WHERE tenant_id = %s ORDER BY name",
                (self.tenant_id,),
            )
        else:
            rows = self.cur.execute(
                "SELECT * FROM staff WHERE tenant_id = %s AND id = ANY(%s::uuid[]) ORDER BY name",
                (self.tenant_id, list(staff_ids)),
            )
        return [Staff.model_validate(r) for r in rows]

    # Invoices

    def get_invoice(self, invoice_id: UUID, for_update: bool = False) -> Invoice | None:
        row = self.cur.execute_single(
            "SELECT * FROM invoices WHERE tenant_id = %s AND id = %s" + self._lock(for_update),
            (self.tenant_id, invoice_id),
        )
        return Invoice.model_validate(row) if row else None

    def find_invoice_for_job(self, job_id: UUID) -> Invoice | None:
        row = self.cur.execute_single(
            "SELECT * FROM invoices WHERE tenant_id = %s AND job_id = %s",
            (self.tenant_id, job_id),
        )
        return Invoice.model_validate(row) if row else None

    def insert_invoice(self, invoice: Invoice) -> None:
        values = _row_values(invoice, _INVOICE_COLUMNS)
        columns = ", ".join(_INVOICE_COLUMNS)
        placeholders = ", ".join(f"%({c})s" for c in _INVOICE_COLUMNS)
        try:
            self.cur.execute(f"INSERT INTO invoices ({columns}) VALUES ({placeholders})", values)
        except psycopg2.errors.UniqueViolation as e:
            if invoice.job_id is not None and e.diag.constraint_name == _JOB_UNIQUE_INDEX:
                raise DuplicateInvoiceError(invoice.job_id, invoice.invoice_number) from e
            raise

    def update_invoice(self, invoice: Invoice) -> None:
        values = _row_values(invoice, _INVOICE_UPDATABLE)
        assignments = ", ".join(f"{c} = %({c})s" for c in _INVOICE_UPDATABLE)
        values["id"] = invoice.id
        values["tenant_id"] = self.tenant_id
        self.cur.execute(
            f"UPDATE invoices SET {assignments} WHERE tenant_id = %(tenant_id)s AND id = %(id)s",
            values,
        )

    def list_invoices(
        self,
        customer_id: UUID | None = None,
        statuses: Iterable[InvoiceStatus] | None = None,
        limit: int | None = None,
    ) -> list[Invoice]:
        conditions = ["tenant_id = %s"]
        params: list[Any] = [self.tenant_id]
        if customer_id is not None:
            conditions.append("customer_id = %s")
            params.append(customer_id)
        if statuses is not None:
            conditions.append("status = ANY(%s)")
            params.append([s.value for s in statuses])
        query = f"SELECT * FROM invoices WHERE {' AND '.join(conditions)} ORDER BY created_at DESC"
        if limit is not None:
            query += " LIMIT %s"
            params.append(limit)
        return [Invoice.model_validate(r) for r in self.cur.execute(query, tuple(params))]

    # Payslips

    def insert_payslip(self, payslip: Payslip) -> None:
        values = _row_values(payslip, _PAYSLIP_COLUMNS)
        columns = ", ".join(_PAYSLIP_COLUMNS)
        placeholders = ", ".join(f"%({c})s" for c in _PAYSLIP_COLUMNS)
        self.cur.execute(f"INSERT INTO payslips ({columns}) VALUES ({placeholders})", values)

    def get_payslip(self, payslip_id: UUID) -> Payslip | None:
        row = self.cur.execute_single(
            "SELECT * FROM payslips WHERE tenant_id = %s AND id = %s",
            (self.tenant_id, payslip_id),
        )
        return Payslip.model_validate(row) if row else None

    def list_payslips(
        self,
        staff_ids: Iterable[UUID] | None = None,
        period_start: datetime | None = None,
        period_end: datetime | None = None,
    ) -> list[Payslip]:
        conditions = ["tenant_id = %s"]
        params: list[Any] = [self.tenant_id]
        if staff_ids is not None:
            conditions.append("staff_id = ANY(%s::uuid[])")
            params.append(list(staff_ids))
        if period_start is not None:
            conditions.append("period_start >= %s")
            params.append(period_start)
        if period_end is not None:
            conditions.append("period_end <= %s")
            params.append(period_end)
        rows = self.cur.execute(
            f"SELECT * FROM payslips WHERE {' AND '.join(conditions)} ORDER BY created_at DESC",
            tuple(params),
        )
        return [Payslip.model_validate(r) for r in rows]

    # Audit

    def insert_audit_entry(self, entry: dict[str, Any]) -> None:
        self.cur.execute(
            """
            INSERT INTO audit_log (id, tenant_id, entity_type, entity_id, action, changes, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            """,
            (
                entry["id"],
                entry["tenant_id"],
                entry["entity_type"],
                entry["entity_id"],
                entry["action"],
                psycopg2.extras.Json(entry["changes"]),
                entry["created_at"],
            ),
        )

    def list_audit_entries(self, entity_type: str, entity_id: UUID) -> list[dict[str, Any]]:
        return self.cur.execute(
            """
            SELECT id, tenant_id, entity_type, entity_id, action, changes, created_at
            FROM audit_log
            WHERE tenant_id = %s AND entity_type = %s AND entity_id = %s
            ORDER BY created_at DESC
            """,
            (self.tenant_id, entity_type, entity_id),
        )


class PostgresLedgerStore(LedgerStore):
    """
    LedgerStore backed by PostgreSQL.

    Usage:
        store = PostgresLedgerStore(PostgresClient(get_database_url()))

        with tenant_context(tenant_id):
            with store.transaction() as txn:
                invoice = txn.get_invoice(invoice_id, for_update=True)
    """

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres
        # uuid and uuid[] columns come back as UUID objects
        psycopg2.extras.register_uuid()

    @contextmanager
    def transaction(self) -> Iterator[PostgresLedgerTransaction]:
        tenant_id = get_current_tenant_id()
        with self.postgres.transaction() as cur:
            yield PostgresLedgerTransaction(tenant_id, cur)
