"""
Invoice arithmetic and status derivation.

Pure functions only: nothing here touches storage, the clock or the event
bus. Services call derive_invoice_state() explicitly after every mutation
so the derived fields are always recomputed the same way.
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, NamedTuple

from core.exceptions import (
    AlreadySettledError,
    InvalidAmountError,
    InvoiceClosedError,
    OverpaymentRejectedError,
)
from core.models.invoice import Invoice, InvoiceStatus, TERMINAL_STATUSES
from core.models.ledger import LineItem, PaymentRecord
from core.money import EPSILON, ZERO, is_settled, money_sum, to_money


class InvoiceTotals(NamedTuple):
    """Derived monetary fields of an invoice."""

    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal
    amount_paid: Decimal
    balance_due: Decimal


def build_line_item(description: str, quantity: Decimal, unit_price: Decimal | None) -> LineItem:
    """Build a line item; total_price is always quantity x unit_price."""
    return LineItem.build(description, to_money(quantity), to_money(unit_price))


def compute_totals(
    line_items: Iterable[LineItem],
    tax_rate: Decimal,
    payments: Iterable[PaymentRecord] = (),
) -> InvoiceTotals:
    """
    Compute subtotal, tax, total, amount paid and balance due.

    Values are left unrounded so that the invariants hold exactly:
    subtotal == sum(line totals), total == subtotal + tax_amount,
    balance_due == total - sum(payments).
    """
    subtotal = money_sum(item.total_price for item in line_items)
    tax_amount = subtotal * to_money(tax_rate)
    total = subtotal + tax_amount
    amount_paid = money_sum(payment.amount for payment in payments)
    return InvoiceTotals(
        subtotal=subtotal,
        tax_amount=tax_amount,
        total=total,
        amount_paid=amount_paid,
        balance_due=total - amount_paid,
    )


def derive_status(
    current: InvoiceStatus,
    amount_paid: Decimal,
    balance_due: Decimal,
    due_date: datetime,
    now: datetime,
    epsilon: Decimal = EPSILON,
) -> InvoiceStatus:
    """
    Derive invoice status from its balances.

    void and refunded are terminal and returned unchanged. A draft is never
    promoted to sent by derivation.
    """
    if current in TERMINAL_STATUSES:
        return current
    if is_settled(balance_due, epsilon):
        return InvoiceStatus.PAID
    if amount_paid > ZERO and balance_due > ZERO:
        return InvoiceStatus.PARTIALLY_PAID
    if due_date < now:
        return InvoiceStatus.OVERDUE
    if current == InvoiceStatus.DRAFT:
        return InvoiceStatus.DRAFT
    return InvoiceStatus.SENT


def derive_invoice_state(invoice: Invoice, now: datetime, epsilon: Decimal = EPSILON) -> Invoice:
    """
    Recompute every derived field of an invoice.

    Args:
        invoice: Invoice with current line items, payments and status
        now: Reference time for the overdue check
        epsilon: Settlement tolerance

    Returns:
        New Invoice with totals, balances and status recomputed.
    """
    totals = compute_totals(invoice.line_items, invoice.tax_rate, invoice.payments)
    status = derive_status(
        invoice.status,
        totals.amount_paid,
        totals.balance_due,
        invoice.due_date,
        now,
        epsilon,
    )
    return invoice.model_copy(update={**totals._asdict(), "status": status})


def apply_payment(
    invoice: Invoice,
    payment: PaymentRecord,
    now: datetime,
    epsilon: Decimal = EPSILON,
) -> Invoice:
    """
    Append a payment and re-derive the invoice.

    Raises:
        InvalidAmountError: If the payment amount is not positive
        InvoiceClosedError: If the invoice is void or refunded
        AlreadySettledError: If nothing is left to pay
        OverpaymentRejectedError: If the amount exceeds balance due + epsilon
    """
    if payment.amount <= ZERO:
        raise InvalidAmountError(f"Payment amount must be positive, got {payment.amount}")
    if invoice.status in TERMINAL_STATUSES:
        raise InvoiceClosedError(
            f"Invoice {invoice.invoice_number} is {invoice.status.value}, payments are not accepted"
        )

    current = derive_invoice_state(invoice, now, epsilon)
    if is_settled(current.balance_due, epsilon):
        raise AlreadySettledError(f"Invoice {invoice.invoice_number} is already settled")
    if payment.amount > current.balance_due + epsilon:
        raise OverpaymentRejectedError(payment.amount, current.balance_due)

    updated = current.model_copy(update={"payments": [*current.payments, payment]})
    return derive_invoice_state(updated, now, epsilon)
