"""Stock item records consulted by the stock ledger."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field


class StockItem(BaseModel):
    """Inventory item. stock_quantity is changed only through StockLedger."""

    id: UUID
    tenant_id: UUID
    name: str = Field(..., max_length=255)
    unit: str = "pcs"
    stock_quantity: Decimal = Field(Decimal("0"), ge=0)
    purchase_price: Decimal = Decimal("0")
    sale_price: Decimal | None = None
    reorder_level: Decimal = Decimal("0")
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}

    @property
    def below_reorder_level(self) -> bool:
        return self.stock_quantity <= self.reorder_level
