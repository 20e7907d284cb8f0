"""Core domain models."""

from core.models.ledger import LineItem, PaymentRecord, PaymentCreate, PaymentMethod
from core.models.settings import TenantSettings, Currency
from core.models.invoice import (
    Invoice, InvoiceStatus, InvoiceStatusUpdate, StockInvoiceCreate, StockSelection,
    TERMINAL_STATUSES, OPERATOR_STATUSES,
)
from core.models.customer import Customer, InvoiceEmailTrigger
from core.models.stock import StockItem
from core.models.job import Job, JobStatus, UsedStockItem
from core.models.staff import Staff, PayRateType, TimeRecord
from core.models.payslip import (
    Payslip, PayslipStatus, PayLine, PayrollReport, StaffPayrollSummary,
)

__all__ = [
    # Ledger primitives
    "LineItem", "PaymentRecord", "PaymentCreate", "PaymentMethod",
    # Tenant settings
    "TenantSettings", "Currency",
    # Invoice
    "Invoice", "InvoiceStatus", "InvoiceStatusUpdate", "StockInvoiceCreate", "StockSelection",
    "TERMINAL_STATUSES", "OPERATOR_STATUSES",
    # Customer
    "Customer", "InvoiceEmailTrigger",
    # Stock
    "StockItem",
    # Job
    "Job", "JobStatus", "UsedStockItem",
    # Staff
    "Staff", "PayRateType", "TimeRecord",
    # Payslip
    "Payslip", "PayslipStatus", "PayLine", "PayrollReport", "StaffPayrollSummary",
]
