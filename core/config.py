"""Ledger configuration."""

from decimal import Decimal

from pydantic import BaseModel, Field


class LedgerConfig(BaseModel):
    """
    Ledger configuration.

    Tenant-specific values (invoice prefix, tax rate, currency) live in each
    tenant's settings record. This holds deployment-wide behaviour.
    """

    # Money
    money_epsilon: Decimal = Field(
        default=Decimal("0.01"),
        description="Tolerance when comparing balances",
        gt=0,
        le=1,
    )

    # Invoices
    invoice_due_days: int = Field(
        default=30,
        description="Days from issue until an invoice is due",
        ge=0,
        le=365,
    )
    invoice_link_base_url: str = Field(
        default="http://localhost:3000",
        description="Base URL used to build invoice links in emails",
    )

    # Delivery
    delivery_max_workers: int = Field(
        default=4,
        description="Background threads used for invoice email delivery",
        ge=1,
        le=32,
    )
    patterned_weekly_send_weekday: int = Field(
        default=4,  # Friday
        description="Weekday (Monday=0) on which Weekly/Bi-Weekly/4-Weekly drafts go out",
        ge=0,
        le=6,
    )
    patterned_monthly_send_day: int = Field(
        default=1,
        description="Day of month on which Monthly drafts go out",
        ge=1,
        le=28,
    )

    # Payroll
    payroll_tax_placeholder_label: str = Field(
        default="Tax (Placeholder)",
        description="Description of the zero-amount tax deduction on payslips",
    )
