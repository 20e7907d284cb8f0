"""
Typed exceptions for ledger failures.

Four families, matching how a caller should react:
- InvalidInputError: fix the request, do not retry as-is.
- StateConflictError: the record is not in a state that allows the operation.
- InsufficientStockError: adjust quantities and retry.
- ConfigurationError: tenant is misconfigured; an operator must intervene.

InvalidInputError also subclasses ValueError so code that treats ValueError
as a bad request keeps working.
"""

from decimal import Decimal
from uuid import UUID


class LedgerError(Exception):
    """Base class for all ledger errors."""


# =============================================================================
# INPUT VALIDATION
# =============================================================================


class InvalidInputError(LedgerError, ValueError):
    """Request is malformed or references something that doesn't exist."""


class EntityNotFoundError(InvalidInputError):
    """Referenced record does not exist in the current tenant."""

    entity_type = "Record"

    def __init__(self, entity_id: UUID):
        self.entity_id = entity_id
        super().__init__(f"{self.entity_type} {entity_id} not found")


class CustomerNotFoundError(EntityNotFoundError):
    entity_type = "Customer"


class JobNotFoundError(EntityNotFoundError):
    entity_type = "Job"


class StockItemNotFoundError(EntityNotFoundError):
    entity_type = "Stock item"


class InvoiceNotFoundError(EntityNotFoundError):
    entity_type = "Invoice"


class PayslipNotFoundError(EntityNotFoundError):
    entity_type = "Payslip"


class EmptySelectionError(InvalidInputError):
    """A stock invoice needs at least one item."""


class InvalidAmountError(InvalidInputError):
    """Amount or quantity must be positive."""


class InvalidPayPeriodError(InvalidInputError):
    """Pay period start is after its end."""


# =============================================================================
# STATE CONFLICTS
# =============================================================================


class StateConflictError(LedgerError):
    """Operation conflicts with the current state of a record."""


class DuplicateInvoiceError(StateConflictError):
    """The job already has an invoice. At most one invoice per job."""

    def __init__(self, job_id: UUID, invoice_number: str):
        self.job_id = job_id
        self.invoice_number = invoice_number
        super().__init__(f"Job {job_id} already has invoice {invoice_number}")


class InvalidJobStateError(StateConflictError):
    """Only completed jobs can be invoiced."""

    def __init__(self, job_id: UUID, status: str):
        self.job_id = job_id
        self.status = status
        super().__init__(f"Job {job_id} is '{status}', only 'Completed' jobs can be invoiced")


class NoBillableItemsError(StateConflictError):
    """Nothing on the job produces a line item."""


class AlreadySettledError(StateConflictError):
    """Invoice has no balance left to pay."""


class OverpaymentRejectedError(StateConflictError):
    """Payment exceeds the balance due by more than the tolerance."""

    def __init__(self, amount: Decimal, balance_due: Decimal):
        self.amount = amount
        self.balance_due = balance_due
        super().__init__(f"Payment of {amount} exceeds balance due of {balance_due}")


class InvalidStatusTransitionError(StateConflictError):
    """Requested status change is not allowed."""


class InvoiceClosedError(StateConflictError):
    """Invoice is void or refunded and accepts no further changes."""


# =============================================================================
# RESOURCE EXHAUSTION
# =============================================================================


class InsufficientStockError(LedgerError):
    """Not enough stock on hand to cover the requested quantity."""

    def __init__(self, stock_id: UUID, name: str, requested: Decimal, available: Decimal):
        self.stock_id = stock_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for {name}: requested {requested}, available {available}"
        )


# =============================================================================
# CONFIGURATION
# =============================================================================


class ConfigurationError(LedgerError):
    """Tenant or deployment is misconfigured. Not retried automatically."""


class TenantSettingsMissingError(ConfigurationError):
    """Tenant has no settings record, so there is no invoice counter."""

    def __init__(self, tenant_id: UUID):
        self.tenant_id = tenant_id
        super().__init__(
            f"Settings not found for tenant {tenant_id}; "
            "invoice numbering and tax rate are not configured"
        )
