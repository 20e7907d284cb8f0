"""
Handler for InvoiceCreated events.

Emails a new invoice in the background when the customer wants invoice
emails. Job invoices of customers on a weekly/monthly cadence are left for
the patterned sweep.
"""

import logging
from typing import Callable

from core.events import InvoiceCreated

logger = logging.getLogger(__name__)


def handle_invoice_created(delivery_service) -> Callable:
    """
    Factory that returns an InvoiceCreated handler.

    Args:
        delivery_service: InvoiceDeliveryService instance

    Returns:
        Handler callable that dispatches the invoice email
    """

    def handler(event: InvoiceCreated):
        invoice = event.invoice
        customer = event.customer

        if not customer.send_invoice_email:
            return
        if invoice.job_id is not None and not customer.sends_on_completion:
            logger.info(
                "Invoice %s waits for %s sweep", invoice.invoice_number,
                customer.invoice_email_trigger.value,
            )
            return

        delivery_service.dispatch(invoice.id)

    return handler
