"""Tests for PostgresLedgerStore (requires LEDGER_TEST_DATABASE_URL)."""

import pytest
import threading
from datetime import date
from decimal import Decimal
from uuid import uuid4

from core.audit import AuditLogger
from core.event_bus import EventBus
from core.exceptions import DuplicateInvoiceError, InsufficientStockError
from core.models import (
    InvoiceStatus, JobStatus, PaymentCreate, StockInvoiceCreate, StockSelection,
)
from core.services.invoice_service import InvoiceService
from core.services.payroll_service import PayrollService
from core.stores.postgres_store import PostgresLedgerStore
from utils.tenant_context import tenant_context


@pytest.fixture
def pg_store(clean_db):
    return PostgresLedgerStore(clean_db)


@pytest.fixture
def seeded(clean_db, tenant_id):
    """Settings, one customer, one stock item and one completed job."""
    customer_id, stock_id, job_id = uuid4(), uuid4(), uuid4()
    clean_db.execute(
        "INSERT INTO tenant_settings (tenant_id, tax_rate) VALUES (%s, 0.2)", (tenant_id,)
    )
    clean_db.execute(
        "INSERT INTO customers (id, tenant_id, name, email) VALUES (%s, %s, 'Acme', 'a@acme.test')",
        (customer_id, tenant_id),
    )
    clean_db.execute(
        "INSERT INTO stock_items (id, tenant_id, name, stock_quantity, sale_price) VALUES (%s, %s, 'Squeegee', 5, 10.00)",
        (stock_id, tenant_id),
    )
    clean_db.execute(
        "INSERT INTO jobs (id, tenant_id, customer_id, service_type, date, price, status) "
        "VALUES (%s, %s, %s, 'Gutters', '2025-03-10T09:00:00Z', 100, 'Completed')",
        (job_id, tenant_id, customer_id),
    )
    return {"customer_id": customer_id, "stock_id": stock_id, "job_id": job_id}


@pytest.fixture
def pg_invoice_service(pg_store):
    return InvoiceService(pg_store, AuditLogger(pg_store), EventBus())


class TestPostgresInvoices:

    def test_stock_invoice_round_trip(self, as_tenant, pg_store, pg_invoice_service, seeded):
        invoice = pg_invoice_service.create_stock_invoice(StockInvoiceCreate(
            customer_id=seeded["customer_id"],
            items=[StockSelection(stock_id=seeded["stock_id"], quantity=Decimal("2"))],
        ))

        fetched = pg_invoice_service.get_by_id(invoice.id)
        assert fetched.invoice_number == "INV-0001"
        assert fetched.total == Decimal("24")
        assert fetched.line_items[0].description == "Squeegee"
        with pg_store.transaction() as txn:
            assert txn.get_stock_item(seeded["stock_id"]).stock_quantity == Decimal("3")

    def test_insufficient_stock_rolls_back(self, as_tenant, pg_store, pg_invoice_service, seeded):
        with pytest.raises(InsufficientStockError):
            pg_invoice_service.create_stock_invoice(StockInvoiceCreate(
                customer_id=seeded["customer_id"],
                items=[StockSelection(stock_id=seeded["stock_id"], quantity=Decimal("6"))],
            ))

        with pg_store.transaction() as txn:
            assert txn.get_settings().next_invoice_seq == 1
            assert txn.list_invoices() == []

    def test_job_invoice_and_payment(self, as_tenant, pg_store, pg_invoice_service, seeded):
        invoice = pg_invoice_service.create_job_invoice(seeded["job_id"])
        paid = pg_invoice_service.record_payment(invoice.id, PaymentCreate(amount=Decimal("120")))

        assert paid.status == InvoiceStatus.PAID
        with pg_store.transaction() as txn:
            assert txn.get_job(seeded["job_id"]).status == JobStatus.INVOICED
        with pytest.raises(DuplicateInvoiceError):
            pg_invoice_service.create_job_invoice(seeded["job_id"])

    def test_other_tenant_sees_nothing(self, as_tenant, pg_store, pg_invoice_service, seeded, tenant_b_id):
        invoice = pg_invoice_service.create_job_invoice(seeded["job_id"])

        with tenant_context(tenant_b_id):
            assert pg_invoice_service.get_by_id(invoice.id) is None

    def test_reversed_selections_run_concurrently(self, pg_store, pg_invoice_service, seeded, clean_db, tenant_id):
        """Two invoices over the same two rows in opposite order both complete."""
        other_id = uuid4()
        clean_db.execute(
            "INSERT INTO stock_items (id, tenant_id, name, stock_quantity, sale_price) VALUES (%s, %s, 'Ladder', 5, 20.00)",
            (other_id, tenant_id),
        )
        orders = ([seeded["stock_id"], other_id], [other_id, seeded["stock_id"]])
        barrier = threading.Barrier(len(orders))
        outcomes = []

        def create(order):
            with tenant_context(tenant_id):
                barrier.wait()
                try:
                    pg_invoice_service.create_stock_invoice(StockInvoiceCreate(
                        customer_id=seeded["customer_id"],
                        items=[StockSelection(stock_id=s, quantity=Decimal("2")) for s in order],
                    ))
                    outcomes.append("created")
                except InsufficientStockError:
                    outcomes.append("insufficient")
                except Exception as exc:
                    outcomes.append(type(exc).__name__)

        threads = [threading.Thread(target=create, args=(order,)) for order in orders]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert sorted(outcomes) == ["created", "created"]
        with tenant_context(tenant_id):
            with pg_store.transaction() as txn:
                assert txn.get_stock_item(seeded["stock_id"]).stock_quantity == Decimal("1")
                assert txn.get_stock_item(other_id).stock_quantity == Decimal("1")


class TestPostgresPayroll:

    def test_hourly_payslip_persisted(self, as_tenant, clean_db, pg_store, tenant_id):
        staff_id = uuid4()
        clean_db.execute(
            "INSERT INTO staff (id, tenant_id, name, pay_rate_type, hourly_rate) VALUES (%s, %s, 'Sam', 'Hourly', 15)",
            (staff_id, tenant_id),
        )
        for day, minutes in (("2025-03-03", 240), ("2025-03-04", 180)):
            clean_db.execute(
                "INSERT INTO daily_time_records (id, tenant_id, staff_id, date, clock_in_at, clock_out_at, total_minutes) "
                "VALUES (%s, %s, %s, %s, %s, %s, %s)",
                (uuid4(), tenant_id, staff_id, f"{day}T00:00:00Z", f"{day}T08:00:00Z", f"{day}T16:00:00Z", minutes),
            )
        service = PayrollService(pg_store, AuditLogger(pg_store), EventBus())

        [payslip] = service.calculate_payroll(date(2025, 3, 1), date(2025, 3, 31))

        stored = service.get_payslip(payslip.id)
        assert stored.gross_pay == Decimal("105.00")
        assert stored.earnings[0].description == "Hourly Wages"
