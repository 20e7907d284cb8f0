"""Ledger primitives: line items and payment records.

Amounts and quantities are Decimal. A line item's total is always
quantity x unit price; it is computed here, never supplied independently.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field, model_validator


class LineItem(BaseModel):
    """A single billable entry on an invoice."""

    description: str = Field(..., min_length=1, max_length=500)
    quantity: Decimal = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0)
    total_price: Decimal | None = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def enforce_total(self) -> "LineItem":
        """Compute total_price from quantity * unit_price, reject mismatches."""
        expected = self.quantity * self.unit_price
        if self.total_price is None:
            object.__setattr__(self, "total_price", expected)
        elif self.total_price != expected:
            raise ValueError(
                f"total_price {self.total_price} does not equal quantity x unit_price ({expected})"
            )
        return self

    @classmethod
    def build(cls, description: str, quantity: Decimal, unit_price: Decimal) -> "LineItem":
        return cls(description=description, quantity=quantity, unit_price=unit_price)


class PaymentMethod(str, Enum):
    """How a payment was made."""

    CASH = "cash"
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    CHEQUE = "cheque"
    STRIPE = "stripe"
    OTHER = "other"


class PaymentRecord(BaseModel):
    """A payment applied to an invoice. Append-only."""

    amount: Decimal = Field(..., gt=0)
    paid_at: datetime
    method: PaymentMethod
    external_reference: str | None = Field(None, max_length=255)
    notes: str | None = Field(None, max_length=2000)

    model_config = {"frozen": True}


class PaymentCreate(BaseModel):
    """Data accepted when recording a payment. Amount positivity is checked by the service."""

    amount: Decimal
    method: PaymentMethod = PaymentMethod.OTHER
    reference: str | None = Field(None, max_length=255)
    notes: str | None = Field(None, max_length=2000)
    paid_at: datetime | None = None

    model_config = {"extra": "forbid"}
