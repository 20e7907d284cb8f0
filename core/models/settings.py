"""Tenant settings consulted by invoicing."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field


class Currency(BaseModel):
    """Display currency. No conversion is ever performed."""

    code: str = Field("GBP", min_length=3, max_length=3)
    symbol: str = Field("£", max_length=5)

    model_config = {"frozen": True}


class TenantSettings(BaseModel):
    """
    Invoice settings for a tenant.

    next_invoice_seq is owned by the numbering authority. Nothing else may
    write it.
    """

    tenant_id: UUID
    invoice_prefix: str = Field("INV-", max_length=20)
    next_invoice_seq: int = Field(1, ge=1)
    tax_rate: Decimal = Field(Decimal("0"), ge=0, le=1)
    currency: Currency = Field(default_factory=Currency)
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}
