"""Shared test fixtures for the ledger test suite."""

import os
import pytest
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import UUID, uuid4
from pathlib import Path
from unittest.mock import Mock

from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
# override=True ensures .env takes precedence over shell env vars
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

# Reset vault client singleton to pick up env vars
import clients.vault_client as vault_module
vault_module.reset_vault_client()

from core.audit import AuditLogger
from core.config import LedgerConfig
from core.event_bus import EventBus
from core.models import (
    Customer, InvoiceEmailTrigger, Job, JobStatus, Staff, StockItem,
    TenantSettings, TimeRecord,
)
from core.notifier import EmailNotifier
from core.services.invoice_delivery_service import InvoiceDeliveryService
from core.services.invoice_service import InvoiceService
from core.services.payroll_service import PayrollReportService, PayrollService
from core.services.stock_ledger import StockLedger
from core.stores.memory_store import MemoryLedgerStore
from utils.tenant_context import tenant_context, clear_current_tenant_id


# =============================================================================
# TEST TENANT CONSTANTS
# =============================================================================

# Primary test tenant - use for single-tenant tests
TEST_TENANT_ID = UUID("00000000-0000-0000-0000-000000000001")

# Secondary test tenant - use for isolation tests
TEST_TENANT_B_ID = UUID("00000000-0000-0000-0000-000000000002")

def utc(year, month, day, hour=9, minute=0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


# =============================================================================
# TENANT CONTEXT FIXTURES
# =============================================================================


@pytest.fixture(autouse=True)
def reset_tenant_context():
    """Ensure clean tenant context before and after each test."""
    clear_current_tenant_id()
    yield
    clear_current_tenant_id()


@pytest.fixture
def tenant_id() -> UUID:
    """The primary test tenant's ID."""
    return TEST_TENANT_ID


@pytest.fixture
def tenant_b_id() -> UUID:
    """The secondary test tenant's ID (for isolation tests)."""
    return TEST_TENANT_B_ID


@pytest.fixture
def as_tenant(tenant_id):
    """Bind the primary test tenant for the duration of the test."""
    with tenant_context(tenant_id):
        yield tenant_id


@pytest.fixture
def as_tenant_b(tenant_b_id):
    """Context manager that sets secondary test tenant context."""
    with tenant_context(tenant_b_id):
        yield tenant_b_id


# =============================================================================
# STORE AND SERVICE FIXTURES
# =============================================================================


@pytest.fixture
def config():
    return LedgerConfig()


@pytest.fixture
def store(tenant_id, tenant_b_id):
    """In-memory store with settings for both test tenants."""
    store = MemoryLedgerStore()
    store.put_settings(TenantSettings(
        tenant_id=tenant_id, invoice_prefix="INV-", next_invoice_seq=1, tax_rate=Decimal("0.2"),
    ))
    store.put_settings(TenantSettings(
        tenant_id=tenant_b_id, invoice_prefix="B-", next_invoice_seq=1, tax_rate=Decimal("0"),
    ))
    return store


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def audit(store):
    return AuditLogger(store)


@pytest.fixture
def stock_ledger(store, audit):
    return StockLedger(store, audit)


@pytest.fixture
def invoice_service(store, audit, event_bus, config, stock_ledger):
    return InvoiceService(store, audit, event_bus, config, stock_ledger=stock_ledger)


@pytest.fixture
def payroll_service(store, audit, event_bus, config):
    return PayrollService(store, audit, event_bus, config)


@pytest.fixture
def report_service(store):
    return PayrollReportService(store)


@pytest.fixture
def notifier():
    """Notifier stub that accepts every email."""
    mock = Mock(spec=EmailNotifier)
    mock.send.return_value = True
    return mock


@pytest.fixture
def delivery_service(store, invoice_service, notifier, config):
    service = InvoiceDeliveryService(store, invoice_service, notifier, config)
    yield service
    service.shutdown(wait=True)


# =============================================================================
# RECORD FACTORIES: seed consulted records straight into the store
# =============================================================================


@pytest.fixture
def make_customer(store, tenant_id):
    def make(**overrides) -> Customer:
        fields = dict(
            id=uuid4(), tenant_id=tenant_id, name="Acme Cleaning",
            email="billing@acme.test", send_invoice_email=True,
            invoice_email_trigger=InvoiceEmailTrigger.ON_COMPLETION,
        )
        fields.update(overrides)
        customer = Customer(**fields)
        store.put_customer(customer)
        return customer
    return make


@pytest.fixture
def make_stock_item(store, tenant_id):
    def make(**overrides) -> StockItem:
        fields = dict(
            id=uuid4(), tenant_id=tenant_id, name="Window Cleaner 5L",
            stock_quantity=Decimal("5"), sale_price=Decimal("10.00"),
            purchase_price=Decimal("4.00"),
        )
        fields.update(overrides)
        item = StockItem(**fields)
        store.put_stock_item(item)
        return item
    return make


@pytest.fixture
def make_job(store, tenant_id):
    def make(customer, **overrides) -> Job:
        fields = dict(
            id=uuid4(), tenant_id=tenant_id, customer_id=customer.id,
            service_type="Window Cleaning", date=utc(2025, 3, 10),
            price=Decimal("100"), status=JobStatus.COMPLETED,
        )
        fields.update(overrides)
        job = Job(**fields)
        store.put_job(job)
        return job
    return make


@pytest.fixture
def make_staff(store, tenant_id):
    def make(**overrides) -> Staff:
        fields = dict(id=uuid4(), tenant_id=tenant_id, name="Sam Taylor")
        fields.update(overrides)
        staff = Staff(**fields)
        store.put_staff(staff)
        return staff
    return make


@pytest.fixture
def make_time_record(store, tenant_id):
    def make(staff, day: date, minutes: int, complete: bool = True) -> TimeRecord:
        clock_in = utc(day.year, day.month, day.day, 8)
        record = TimeRecord(
            id=uuid4(), tenant_id=tenant_id, staff_id=staff.id,
            date=utc(day.year, day.month, day.day, 0),
            clock_in_at=clock_in,
            clock_out_at=clock_in if complete else None,
            total_minutes=minutes,
        )
        store.put_time_record(record)
        return record
    return make



# =============================================================================
# POSTGRES FIXTURES: only when a test database is configured
# =============================================================================

LEDGER_TABLES = (
    "audit_log", "payslips", "invoices", "daily_time_records", "staff",
    "jobs", "stock_items", "customers", "tenant_settings",
)


@pytest.fixture(scope="session")
def db():
    """
    PostgresClient on the test database with schema/ledger.sql applied.

    Skips unless LEDGER_TEST_DATABASE_URL is set.
    """
    url = os.getenv("LEDGER_TEST_DATABASE_URL")
    if not url:
        pytest.skip("LEDGER_TEST_DATABASE_URL not set")

    from clients.postgres_client import PostgresClient

    client = PostgresClient(url)
    client.execute((Path(__file__).parent.parent / "schema" / "ledger.sql").read_text())
    yield client
    client.close()


@pytest.fixture
def clean_db(db):
    """Empty every ledger table before and after the test."""
    truncate = f"TRUNCATE {', '.join(LEDGER_TABLES)} CASCADE"
    db.execute(truncate)
    yield db
    db.execute(truncate)
