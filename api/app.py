"""Application factory: wires store, services, event handlers and routes."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from api.actions import create_actions_router
from api.data import create_data_router
from api.errors import register_error_handlers
from api.middleware import RequestIDMiddleware, TenantContextMiddleware
from core.audit import AuditLogger
from core.config import LedgerConfig
from core.event_bus import EventBus
from core.handlers.invoice_email_handler import handle_invoice_created
from core.notifier import EmailNotifier
from core.services.invoice_delivery_service import InvoiceDeliveryService
from core.services.invoice_service import InvoiceService
from core.services.payroll_service import PayrollReportService, PayrollService
from core.services.stock_ledger import StockLedger
from core.store import LedgerStore

logger = logging.getLogger(__name__)


def build_services(
    store: LedgerStore,
    notifier: EmailNotifier,
    config: LedgerConfig | None = None,
    event_bus: EventBus | None = None,
) -> dict:
    """
    Construct every service over one store and subscribe event handlers.

    Returns:
        Dict of services keyed the way the routers expect
    """
    config = config or LedgerConfig()
    event_bus = event_bus or EventBus()
    audit = AuditLogger(store)

    stock = StockLedger(store, audit)
    invoice = InvoiceService(store, audit, event_bus, config, stock_ledger=stock)
    delivery = InvoiceDeliveryService(store, invoice, notifier, config)

    event_bus.subscribe("InvoiceCreated", handle_invoice_created(delivery))

    return {
        "audit": audit,
        "event_bus": event_bus,
        "stock": stock,
        "invoice": invoice,
        "delivery": delivery,
        "payroll": PayrollService(store, audit, event_bus, config),
        "payroll_report": PayrollReportService(store),
    }


def create_app(services: dict) -> FastAPI:
    """FastAPI app with tenant binding, error handlers and data/actions routes."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        services["delivery"].shutdown(wait=True)

    app = FastAPI(title="Field-Service Ledger", lifespan=lifespan)
    # Last added runs first: request ids are bound before tenant rejection.
    app.add_middleware(TenantContextMiddleware)
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    app.include_router(create_data_router(services), prefix="/api")
    app.include_router(create_actions_router(services), prefix="/api")

    return app


def create_production_app() -> FastAPI:
    """Build the app from Vault-held secrets (database, email gateway)."""
    from clients.email_client import EmailGatewayClient
    from clients.postgres_client import PostgresClient
    from clients.vault_client import get_database_url, get_email_config
    from core.stores.postgres_store import PostgresLedgerStore

    store = PostgresLedgerStore(PostgresClient(get_database_url()))
    notifier = EmailNotifier(EmailGatewayClient(**get_email_config()))
    logger.info("Ledger app configured with PostgreSQL store")
    return create_app(build_services(store, notifier))
