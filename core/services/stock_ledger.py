"""
Stock ledger.

The only code that changes stock_quantity. reserve() and release() run
inside the caller's transaction and read the item with a row lock, so the
check-and-decrement is atomic with respect to other reservations of the
same item.
"""

import logging
from decimal import Decimal
from uuid import UUID

from core.audit import AuditAction, AuditLogger
from core.exceptions import InsufficientStockError, InvalidAmountError, StockItemNotFoundError
from core.models import StockItem
from core.money import ZERO, to_money
from core.store import LedgerStore, LedgerTransaction

logger = logging.getLogger(__name__)


class StockLedger:
    """Reserves and releases inventory quantities."""

    def __init__(self, store: LedgerStore, audit: AuditLogger):
        self.store = store
        self.audit = audit

    def _load(self, txn: LedgerTransaction, stock_id: UUID, quantity: Decimal) -> tuple[StockItem, Decimal]:
        quantity = to_money(quantity)
        if quantity <= ZERO:
            raise InvalidAmountError(f"Stock quantity must be positive, got {quantity}")

        item = txn.get_stock_item(stock_id, for_update=True)
        if item is None:
            raise StockItemNotFoundError(stock_id)
        return item, quantity

    def _write(self, txn: LedgerTransaction, item: StockItem, new_quantity: Decimal, reason: str) -> StockItem:
        txn.set_stock_quantity(item.id, new_quantity)
        self.audit.log_change(
            txn,
            entity_type="stock_item",
            entity_id=item.id,
            action=AuditAction.UPDATE,
            changes={
                "stock_quantity": {"old": str(item.stock_quantity), "new": str(new_quantity)},
                "reason": reason,
            },
        )
        return item.model_copy(update={"stock_quantity": new_quantity})

    def reserve(self, txn: LedgerTransaction, stock_id: UUID, quantity: Decimal) -> StockItem:
        """
        Decrement stock for an invoice line.

        Args:
            txn: Transaction creating the invoice
            stock_id: Stock item to draw from
            quantity: Quantity to take (> 0)

        Returns:
            The stock item as it stands after the decrement

        Raises:
            InvalidAmountError: If quantity is not positive
            StockItemNotFoundError: If the item does not exist in this tenant
            InsufficientStockError: If quantity exceeds the quantity on hand
        """
        item, quantity = self._load(txn, stock_id, quantity)
        if quantity > item.stock_quantity:
            raise InsufficientStockError(item.id, item.name, quantity, item.stock_quantity)

        updated = self._write(txn, item, item.stock_quantity - quantity, "invoice")
        if updated.below_reorder_level:
            logger.info(
                "Stock item %s (%s) at %s, reorder level %s",
                item.id, item.name, updated.stock_quantity, item.reorder_level,
            )
        return updated

    def release(self, txn: LedgerTransaction, stock_id: UUID, quantity: Decimal) -> StockItem:
        """
        Put quantity back into stock.

        Raises:
            InvalidAmountError: If quantity is not positive
            StockItemNotFoundError: If the item does not exist in this tenant
        """
        item, quantity = self._load(txn, stock_id, quantity)
        return self._write(txn, item, item.stock_quantity + quantity, "return")

    def return_to_stock(self, stock_id: UUID, quantity: Decimal) -> StockItem:
        """Standalone return path: release() in its own transaction."""
        with self.store.transaction() as txn:
            updated = self.release(txn, stock_id, quantity)

        logger.info("Returned %s of stock item %s", quantity, stock_id)
        return updated
