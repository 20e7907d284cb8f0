"""
Invoice email delivery.

Sending is best-effort and happens after the invoice has committed:
- dispatch() hands the send to a background thread and returns at once,
  carrying the caller's tenant context along.
- run_patterned_sweep() is called by an external scheduler once a day and
  sends the drafts of customers whose weekly/monthly cadence falls today.

A failed send leaves the invoice untouched (still draft, no sent_at) and
is only logged.
"""

import contextvars
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import date
from typing import Any
from uuid import UUID

from core.config import LedgerConfig
from core.exceptions import CustomerNotFoundError, InvoiceNotFoundError
from core.models import Customer, Invoice, InvoiceEmailTrigger, InvoiceStatus
from core.notifier import EmailNotifier
from core.services.invoice_service import InvoiceService
from core.store import LedgerStore

logger = logging.getLogger(__name__)

INVOICE_TEMPLATE = "invoice"

# Invoices in these statuses are never emailed.
UNDELIVERABLE_STATUSES = frozenset({InvoiceStatus.PAID, InvoiceStatus.VOID, InvoiceStatus.REFUNDED})

# Anchor for Bi-Weekly/4-Weekly customers without a pattern_start_date (a Monday).
PATTERN_EPOCH = date(2024, 1, 1)

_WEEKS_BETWEEN_SENDS = {
    InvoiceEmailTrigger.WEEKLY: 1,
    InvoiceEmailTrigger.BI_WEEKLY: 2,
    InvoiceEmailTrigger.FOUR_WEEKLY: 4,
}


def is_send_day(customer: Customer, today: date, config: LedgerConfig) -> bool:
    """
    Whether a patterned customer's drafts go out today.

    Weekly cadences send on the configured weekday; Bi-Weekly and 4-Weekly
    additionally count whole weeks from pattern_start_date. Monthly sends on
    the configured day of the month.
    """
    trigger = customer.invoice_email_trigger
    if trigger == InvoiceEmailTrigger.MONTHLY:
        return today.day == config.patterned_monthly_send_day

    weeks = _WEEKS_BETWEEN_SENDS.get(trigger)
    if weeks is None or today.weekday() != config.patterned_weekly_send_weekday:
        return False
    if weeks == 1:
        return True

    days = (today - (customer.pattern_start_date or PATTERN_EPOCH)).days
    if days < 0:
        return False
    return (days // 7) % weeks == 0


class InvoiceDeliveryService:
    """Emails invoices to customers."""

    def __init__(
        self,
        store: LedgerStore,
        invoice_service: InvoiceService,
        notifier: EmailNotifier,
        config: LedgerConfig | None = None,
    ):
        self.store = store
        self.invoice_service = invoice_service
        self.notifier = notifier
        self.config = config or LedgerConfig()
        self._executor = ThreadPoolExecutor(
            max_workers=self.config.delivery_max_workers,
            thread_name_prefix="invoice-delivery",
        )

    def _email_data(self, invoice: Invoice, customer: Customer) -> dict[str, Any]:
        symbol = invoice.currency.symbol
        return {
            "customer_name": customer.name,
            "invoice_number": invoice.invoice_number,
            "issue_date": invoice.issue_date.date().isoformat(),
            "due_date": invoice.due_date.date().isoformat(),
            "total": f"{symbol}{invoice.total:.2f}",
            "balance_due": f"{symbol}{invoice.balance_due:.2f}",
            "currency": invoice.currency.code,
            "line_items": [
                {
                    "description": item.description,
                    "quantity": str(item.quantity),
                    "unit_price": f"{symbol}{item.unit_price:.2f}",
                    "total_price": f"{symbol}{item.total_price:.2f}",
                }
                for item in invoice.line_items
            ],
            "link": f"{self.config.invoice_link_base_url.rstrip('/')}/invoices/{invoice.id}",
        }

    def _deliver(self, invoice: Invoice, customer: Customer) -> str:
        """Send one invoice. Returns "sent", "failed" or "skipped"."""
        if invoice.status in UNDELIVERABLE_STATUSES:
            logger.info("Invoice %s is %s, not sending", invoice.invoice_number, invoice.status.value)
            return "skipped"
        if not customer.email:
            logger.warning(
                "Customer %s has no email, invoice %s not sent", customer.id, invoice.invoice_number
            )
            return "skipped"

        if not self.notifier.send(INVOICE_TEMPLATE, customer.email, self._email_data(invoice, customer)):
            logger.error("Invoice %s could not be emailed to %s", invoice.invoice_number, customer.email)
            return "failed"

        self.invoice_service.mark_delivered(invoice.id)
        logger.info("Invoice %s emailed to %s", invoice.invoice_number, customer.email)
        return "sent"

    def send_invoice(self, invoice_id: UUID) -> bool:
        """
        Email an invoice to its customer now.

        Returns:
            True if the email went out

        Raises:
            InvoiceNotFoundError: If the invoice is not in this tenant
            CustomerNotFoundError: If its customer is gone
        """
        invoice = self.invoice_service.get_by_id(invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id)

        with self.store.transaction() as txn:
            customer = txn.get_customer(invoice.customer_id)
        if customer is None:
            raise CustomerNotFoundError(invoice.customer_id)

        return self._deliver(invoice, customer) == "sent"

    def _send_detached(self, invoice_id: UUID) -> bool:
        try:
            return self.send_invoice(invoice_id)
        except Exception:
            logger.exception("Background delivery of invoice %s failed", invoice_id)
            return False

    def dispatch(self, invoice_id: UUID) -> Future:
        """
        Send an invoice in the background.

        The current context (tenant) is copied into the worker. The returned
        future resolves to the send result and never raises.
        """
        ctx = contextvars.copy_context()
        return self._executor.submit(ctx.run, self._send_detached, invoice_id)

    def run_patterned_sweep(self, today: date) -> dict[str, int]:
        """
        Send drafts of every patterned customer whose send day is today.

        Args:
            today: Date the sweep runs for

        Returns:
            Dict with counts: {"sent": N, "failed": N, "skipped": N}
        """
        results = {"sent": 0, "failed": 0, "skipped": 0}

        with self.store.transaction() as txn:
            customers = txn.list_customers()

        for customer in customers:
            if not customer.send_invoice_email or not customer.invoice_email_trigger.is_patterned:
                continue
            if not is_send_day(customer, today, self.config):
                continue

            for invoice in self.invoice_service.list_drafts_for_customer(customer.id):
                try:
                    outcome = self._deliver(invoice, customer)
                except Exception:
                    logger.exception("Sweep failed on invoice %s", invoice.invoice_number)
                    outcome = "failed"
                results[outcome] += 1

        logger.info("Patterned invoice sweep for %s: %s", today.isoformat(), results)
        return results

    def shutdown(self, wait: bool = True) -> None:
        """Stop the background workers."""
        self._executor.shutdown(wait=wait)
