from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from backend.app.schemas.reconciliation import ReconciliationForm


class ClientProductRead(BaseModel):
    id: int
    client_id: int
    product_id: int
    custom_price: Decimal | None
    custom_recommended_sale_price: Decimal | None
    initial_stock: int
    current_stock: int  # somme des sous-produits le cas échéant
    display_order: int

    class Config:
        from_attributes = True


class SubProductStockRead(BaseModel):
    sub_product_id: int
    name: str
    current_stock: int


class StockLineRead(BaseModel):
    product_id: int
    product_name: str
    current_stock: int
    display_order: int
    effective_price: Decimal
    effective_recommended_price: Decimal | None
    is_custom_price: bool
    sub_products: list[SubProductStockRead] = Field(default_factory=list)


class StockPositionRead(BaseModel):
    client_id: int
    client_name: str
    lines: list[StockLineRead]
    default_form: ReconciliationForm


class StockUpdateRead(BaseModel):
    id: int
    client_id: int
    product_id: int | None
    sub_product_id: int | None
    invoice_id: int | None

    previous_stock: int
    counted_stock: int
    stock_sold: int
    stock_added: int  # négatif possible (ajustement manuel)
    new_stock: int

    product_info: str | None
    unit_price_ht: Decimal | None
    total_amount_ht: Decimal | None
    created_at: datetime

    class Config:
        from_attributes = True


class ManualAdjustmentRead(BaseModel):
    current_stock: int
    parent_stock: int | None
    stock_updates: list[StockUpdateRead]
