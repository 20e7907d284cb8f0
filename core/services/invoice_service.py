"""
Invoice service for billing and payments.

Invoices are created from a manual stock selection or from a completed job.
Each creation runs in one transaction: the invoice number, any stock
decrements, the invoice row, the job status change and the audit entries
commit together or not at all. Emails go out after commit through the
InvoiceCreated event and never affect the outcome.

amount_paid, balance_due and status are never set directly. They are
recomputed by core.invoicing after every change.
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

from core.audit import AuditLogger, AuditAction, compute_changes
from core.config import LedgerConfig
from core.event_bus import EventBus
from core.events import InvoiceCreated, InvoicePaid, InvoicePaymentRecorded, InvoiceStatusChanged
from core.exceptions import (
    CustomerNotFoundError,
    DuplicateInvoiceError,
    EmptySelectionError,
    InvalidAmountError,
    InvalidJobStateError,
    InvalidStatusTransitionError,
    InvoiceNotFoundError,
    JobNotFoundError,
    NoBillableItemsError,
    StockItemNotFoundError,
)
from core.invoicing import apply_payment, build_line_item, derive_invoice_state
from core.models import (
    Customer,
    Invoice,
    InvoiceStatus,
    InvoiceStatusUpdate,
    Job,
    JobStatus,
    LineItem,
    OPERATOR_STATUSES,
    PaymentCreate,
    PaymentRecord,
    StockInvoiceCreate,
    StockItem,
)
from core.money import ZERO, to_money
from core.services.numbering_service import InvoiceNumberingAuthority
from core.services.stock_ledger import StockLedger
from core.store import LedgerStore, LedgerTransaction
from utils.timezone import now_utc, to_utc

logger = logging.getLogger(__name__)

UNPAID_STATUSES = (InvoiceStatus.SENT, InvoiceStatus.PARTIALLY_PAID, InvoiceStatus.OVERDUE)


class InvoiceService:
    """Service for invoice operations."""

    def __init__(
        self,
        store: LedgerStore,
        audit: AuditLogger,
        event_bus: EventBus,
        config: LedgerConfig | None = None,
        numbering: InvoiceNumberingAuthority | None = None,
        stock_ledger: StockLedger | None = None,
    ):
        self.store = store
        self.audit = audit
        self.event_bus = event_bus
        self.config = config or LedgerConfig()
        self.numbering = numbering or InvoiceNumberingAuthority()
        self.stock_ledger = stock_ledger or StockLedger(store, audit)

    # =========================================================================
    # CREATION
    # =========================================================================

    def create_stock_invoice(self, data: StockInvoiceCreate) -> Invoice:
        """
        Create a draft invoice from a manual stock selection.

        Stock for every selected item is decremented in the same transaction
        that numbers and writes the invoice. Repeated selections of one item
        are checked against stock as a single quantity but keep their own lines.

        Args:
            data: Customer, selected stock items and quantities, notes

        Returns:
            Created invoice in DRAFT status

        Raises:
            EmptySelectionError: If no items were selected
            InvalidAmountError: If any quantity is not positive
            CustomerNotFoundError: If the customer is not in this tenant
            StockItemNotFoundError: If a selected item is not in this tenant
            InsufficientStockError: If a quantity exceeds stock on hand
            TenantSettingsMissingError: If the tenant has no settings
        """
        if not data.items:
            raise EmptySelectionError("Select at least one stock item to invoice")
        for selection in data.items:
            if to_money(selection.quantity) <= ZERO:
                raise InvalidAmountError(
                    f"Quantity for stock item {selection.stock_id} must be positive"
                )

        now = now_utc()
        with self.store.transaction() as txn:
            customer = txn.get_customer(data.customer_id)
            if customer is None:
                raise CustomerNotFoundError(data.customer_id)

            requested: dict[UUID, Decimal] = defaultdict(Decimal)
            for selection in data.items:
                requested[selection.stock_id] += to_money(selection.quantity)

            # Rows are locked in id order so overlapping selections cannot deadlock.
            reserved = {
                stock_id: self.stock_ledger.reserve(txn, stock_id, requested[stock_id])
                for stock_id in sorted(requested)
            }
            line_items = [
                self._stock_line(reserved[s.stock_id], to_money(s.quantity)) for s in data.items
            ]

            invoice = self._insert_new(
                txn, customer, line_items, InvoiceStatus.DRAFT, now, notes=data.notes
            )

        logger.info(
            "Created stock invoice %s for customer %s (%d lines, total %s)",
            invoice.invoice_number, customer.id, len(line_items), invoice.total,
        )
        self.event_bus.publish(InvoiceCreated.create(invoice=invoice, customer=customer))
        return invoice

    def create_job_invoice(self, job_id: UUID) -> Invoice:
        """
        Create the invoice for a completed job and mark the job Invoiced.

        The job row is locked for the whole transaction so concurrent
        requests for the same job see each other's invoice. Stock used on
        the job is billed at its current sale price but not decremented
        again.

        Invoices start SENT, except for customers whose emails wait for a
        weekly/monthly sweep: those start as DRAFT so the sweep finds them.

        Args:
            job_id: Job to invoice

        Returns:
            Created invoice

        Raises:
            JobNotFoundError: If the job is not in this tenant
            DuplicateInvoiceError: If the job already has an invoice
            InvalidJobStateError: If the job is not Completed
            NoBillableItemsError: If neither price nor stock yields a line
            TenantSettingsMissingError: If the tenant has no settings
        """
        now = now_utc()
        with self.store.transaction() as txn:
            job = txn.get_job(job_id, for_update=True)
            if job is None:
                raise JobNotFoundError(job_id)

            existing = txn.find_invoice_for_job(job.id)
            if existing is not None:
                raise DuplicateInvoiceError(job.id, existing.invoice_number)

            if job.status != JobStatus.COMPLETED:
                raise InvalidJobStateError(job.id, job.status.value)

            customer = txn.get_customer(job.customer_id)
            if customer is None:
                raise CustomerNotFoundError(job.customer_id)

            line_items = self._job_lines(txn, job)
            if not line_items:
                raise NoBillableItemsError(f"Job {job.id} has no price and no used stock to bill")

            awaits_sweep = customer.send_invoice_email and customer.invoice_email_trigger.is_patterned
            status = InvoiceStatus.DRAFT if awaits_sweep else InvoiceStatus.SENT

            invoice = self._insert_new(txn, customer, line_items, status, now, job_id=job.id)

            txn.set_job_status(job.id, JobStatus.INVOICED)
            self.audit.log_change(
                txn,
                entity_type="job",
                entity_id=job.id,
                action=AuditAction.UPDATE,
                changes={
                    "status": {"old": job.status.value, "new": JobStatus.INVOICED.value},
                    "invoice_id": str(invoice.id),
                },
            )

        logger.info(
            "Created job invoice %s for job %s (status %s, total %s)",
            invoice.invoice_number, job_id, invoice.status.value, invoice.total,
        )
        self.event_bus.publish(InvoiceCreated.create(invoice=invoice, customer=customer))
        return invoice

    def _stock_line(self, item: StockItem, quantity: Decimal) -> LineItem:
        price = item.sale_price
        if price is None:
            logger.warning(
                "Stock item %s (%s) has no sale price, billing at 0", item.id, item.name
            )
        return build_line_item(item.name, quantity, price)

    def _job_lines(self, txn: LedgerTransaction, job: Job) -> list[LineItem]:
        lines = []
        price = to_money(job.price)
        if price > ZERO:
            lines.append(build_line_item(job.service_type, Decimal(1), price))

        for used in job.used_stock_items:
            if used.quantity_used <= ZERO:
                continue
            item = txn.get_stock_item(used.stock_id)
            if item is None:
                raise StockItemNotFoundError(used.stock_id)
            lines.append(self._stock_line(item, used.quantity_used))
        return lines

    def _insert_new(
        self,
        txn: LedgerTransaction,
        customer: Customer,
        line_items: list[LineItem],
        status: InvoiceStatus,
        now: datetime,
        job_id: UUID | None = None,
        notes: str | None = None,
    ) -> Invoice:
        """Number, total and insert an invoice inside the open transaction."""
        invoice_number = self.numbering.next_invoice_number(txn)
        settings = txn.get_settings()

        draft = Invoice(
            id=uuid4(),
            tenant_id=txn.tenant_id,
            customer_id=customer.id,
            job_id=job_id,
            invoice_number=invoice_number,
            status=status,
            issue_date=now,
            due_date=now + timedelta(days=self.config.invoice_due_days),
            line_items=line_items,
            subtotal=ZERO,
            tax_rate=settings.tax_rate,
            tax_amount=ZERO,
            total=ZERO,
            balance_due=ZERO,
            currency=settings.currency,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        invoice = derive_invoice_state(draft, now, self.config.money_epsilon)
        txn.insert_invoice(invoice)

        self.audit.log_change(
            txn,
            entity_type="invoice",
            entity_id=invoice.id,
            action=AuditAction.CREATE,
            changes={"created": invoice.model_dump(mode="json")},
        )
        return invoice

    # =========================================================================
    # PAYMENTS AND STATUS
    # =========================================================================

    def record_payment(self, invoice_id: UUID, data: PaymentCreate) -> Invoice:
        """
        Record a payment on an invoice.

        The invoice row is locked, so a concurrent payment sees this one's
        effect on balance_due before its own overpayment check.

        Args:
            invoice_id: Invoice UUID
            data: Amount, method, reference, notes

        Returns:
            Updated invoice (status may become PARTIALLY_PAID or PAID)

        Raises:
            InvalidAmountError: If the amount is not positive
            ValueError: If paid_at is naive
            InvoiceNotFoundError: If the invoice is not in this tenant
            InvoiceClosedError: If the invoice is void or refunded
            AlreadySettledError: If the invoice is already paid
            OverpaymentRejectedError: If the amount exceeds balance due + epsilon
        """
        amount = to_money(data.amount)
        if amount <= ZERO:
            raise InvalidAmountError(f"Payment amount must be positive, got {amount}")

        now = now_utc()
        with self.store.transaction() as txn:
            current = txn.get_invoice(invoice_id, for_update=True)
            if current is None:
                raise InvoiceNotFoundError(invoice_id)

            payment = PaymentRecord(
                amount=amount,
                paid_at=to_utc(data.paid_at) if data.paid_at else now,
                method=data.method,
                external_reference=data.reference,
                notes=data.notes,
            )
            updated = apply_payment(current, payment, now, self.config.money_epsilon)
            updated = updated.model_copy(update={"updated_at": now})
            txn.update_invoice(updated)

            self.audit.log_change(
                txn,
                entity_type="invoice",
                entity_id=invoice_id,
                action=AuditAction.UPDATE,
                changes={
                    "amount_paid": {"old": str(current.amount_paid), "new": str(updated.amount_paid)},
                    "balance_due": {"old": str(current.balance_due), "new": str(updated.balance_due)},
                    "status": {"old": current.status.value, "new": updated.status.value},
                    "payment_recorded": payment.model_dump(mode="json"),
                },
            )

        logger.info(
            "Recorded payment of %s on invoice %s (balance %s, status %s)",
            amount, updated.invoice_number, updated.balance_due, updated.status.value,
        )
        self.event_bus.publish(InvoicePaymentRecorded.create(invoice=updated, payment=payment))
        if updated.status == InvoiceStatus.PAID:
            self.event_bus.publish(InvoicePaid.create(invoice=updated))

        return updated

    def set_status(self, invoice_id: UUID, data: InvoiceStatusUpdate) -> Invoice:
        """
        Apply an operator status change, then re-derive.

        Only draft, sent, void and refunded can be requested. paid and
        partially_paid come from payments, overdue from the due date, so
        the derived status may differ from the one requested.

        Raises:
            InvalidStatusTransitionError: If the target is not operator-settable,
                the invoice is void/refunded, a paid-into invoice is voided, or
                an invoice without payments is refunded
            InvoiceNotFoundError: If the invoice is not in this tenant
        """
        target = data.status
        if target not in OPERATOR_STATUSES:
            raise InvalidStatusTransitionError(
                f"Status '{target.value}' cannot be set directly; it is derived from payments and due date"
            )

        now = now_utc()
        with self.store.transaction() as txn:
            current = txn.get_invoice(invoice_id, for_update=True)
            if current is None:
                raise InvoiceNotFoundError(invoice_id)

            if current.is_terminal:
                if target == current.status:
                    return current
                raise InvalidStatusTransitionError(
                    f"Invoice {current.invoice_number} is {current.status.value} and cannot change status"
                )
            if target == InvoiceStatus.VOID and current.payments:
                raise InvalidStatusTransitionError(
                    f"Invoice {current.invoice_number} has payments; mark it refunded instead of void"
                )
            if target == InvoiceStatus.REFUNDED and current.amount_paid <= ZERO:
                raise InvalidStatusTransitionError(
                    f"Invoice {current.invoice_number} has no payments to refund"
                )

            update = {"status": target, "updated_at": now}
            if target == InvoiceStatus.SENT and current.sent_at is None:
                update["sent_at"] = now
            updated = derive_invoice_state(
                current.model_copy(update=update), now, self.config.money_epsilon
            )
            txn.update_invoice(updated)

            changes = compute_changes(
                current.model_dump(mode="json", include={"status", "sent_at"}),
                updated.model_dump(mode="json", include={"status", "sent_at"}),
            )
            changes["requested_status"] = target.value
            self.audit.log_change(
                txn,
                entity_type="invoice",
                entity_id=invoice_id,
                action=AuditAction.UPDATE,
                changes=changes,
            )

        if updated.status != current.status:
            logger.info(
                "Invoice %s status %s -> %s",
                updated.invoice_number, current.status.value, updated.status.value,
            )
            self.event_bus.publish(InvoiceStatusChanged.create(invoice=updated, old_status=current.status.value))

        return updated

    def mark_delivered(self, invoice_id: UUID) -> Invoice | None:
        """
        Stamp sent_at after a successful email and promote a draft to sent.

        Returns:
            Updated invoice, or None if it disappeared or was closed meanwhile
        """
        now = now_utc()
        with self.store.transaction() as txn:
            current = txn.get_invoice(invoice_id, for_update=True)
            if current is None or current.is_terminal:
                return None

            update = {"sent_at": now, "updated_at": now}
            if current.status == InvoiceStatus.DRAFT:
                update["status"] = InvoiceStatus.SENT
            updated = derive_invoice_state(
                current.model_copy(update=update), now, self.config.money_epsilon
            )
            txn.update_invoice(updated)

            self.audit.log_change(
                txn,
                entity_type="invoice",
                entity_id=invoice_id,
                action=AuditAction.UPDATE,
                changes={
                    "status": {"old": current.status.value, "new": updated.status.value},
                    "sent_at": {"old": None, "new": now.isoformat()},
                },
            )

        if updated.status != current.status:
            self.event_bus.publish(InvoiceStatusChanged.create(invoice=updated, old_status=current.status.value))
        return updated

    # =========================================================================
    # QUERIES
    # =========================================================================

    def _fresh(self, invoices: list[Invoice]) -> list[Invoice]:
        """Re-derive status on read so passed due dates show as overdue."""
        now = now_utc()
        return [derive_invoice_state(i, now, self.config.money_epsilon) for i in invoices]

    def get_by_id(self, invoice_id: UUID) -> Invoice | None:
        """
        Get invoice by ID.

        Args:
            invoice_id: Invoice UUID

        Returns:
            Invoice if found in this tenant, None otherwise.
        """
        with self.store.transaction() as txn:
            invoice = txn.get_invoice(invoice_id)

        if invoice is None:
            return None

        return self._fresh([invoice])[0]

    def list_for_customer(self, customer_id: UUID, limit: int = 50) -> list[Invoice]:
        """
        List invoices for a customer.

        Returns:
            List of invoices ordered by creation time DESC
        """
        with self.store.transaction() as txn:
            invoices = txn.list_invoices(customer_id=customer_id, limit=limit)

        return self._fresh(invoices)

    def list_drafts_for_customer(self, customer_id: UUID) -> list[Invoice]:
        """Draft invoices of a customer, oldest first (the patterned sweep's queue)."""
        with self.store.transaction() as txn:
            invoices = txn.list_invoices(customer_id=customer_id, statuses=[InvoiceStatus.DRAFT])

        return sorted(invoices, key=lambda i: i.created_at)

    def list_unpaid(self, limit: int = 50) -> list[Invoice]:
        """
        List unpaid invoices (sent, partially paid or overdue).

        Returns:
            List of unpaid invoices ordered by due date
        """
        with self.store.transaction() as txn:
            invoices = txn.list_invoices(statuses=UNPAID_STATUSES)

        invoices = sorted(self._fresh(invoices), key=lambda i: i.due_date)
        return invoices[:limit]
