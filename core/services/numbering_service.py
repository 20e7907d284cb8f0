"""
Invoice numbering authority.

The tenant settings row holds the next sequence number and is the single
source of truth for it. The number is taken inside the caller's
transaction, after locking the settings row, so the increment commits or
rolls back together with the invoice that uses it: no duplicates, no gaps
from failed creations.
"""

import logging

from core.exceptions import TenantSettingsMissingError
from core.store import LedgerTransaction

logger = logging.getLogger(__name__)

SEQUENCE_WIDTH = 4


def format_invoice_number(prefix: str, seq: int) -> str:
    """
    Format an invoice number as prefix + sequence zero-padded to 4 digits.

    Sequences wider than 4 digits keep all their digits (INV-10000).
    """
    return f"{prefix}{seq:0{SEQUENCE_WIDTH}d}"


class InvoiceNumberingAuthority:
    """Issues per-tenant, strictly increasing invoice numbers."""

    def next_invoice_number(self, txn: LedgerTransaction) -> str:
        """
        Take the next invoice number for the transaction's tenant.

        Args:
            txn: Open transaction that will also write the invoice

        Returns:
            Formatted invoice number

        Raises:
            TenantSettingsMissingError: If the tenant has no settings record
        """
        settings = txn.get_settings(for_update=True)
        if settings is None:
            raise TenantSettingsMissingError(txn.tenant_id)

        seq = settings.next_invoice_seq
        txn.set_next_invoice_seq(seq + 1)
        return format_invoice_number(settings.invoice_prefix, seq)
