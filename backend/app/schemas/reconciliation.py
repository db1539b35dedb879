from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, Field


# ---------- Formulaire de relevé (aussi le contenu du brouillon) ----------
class ProductLineForm(BaseModel):
    counted_stock: str = ""
    stock_added: str = ""  # nouveau dépôt total, pas un incrément
    product_info: str = ""


class SubProductLineForm(BaseModel):
    counted_stock: str = ""
    stock_added: str = ""


class PendingAdjustment(BaseModel):
    operation_name: str
    unit_price: str  # déjà négatif, ex "-5.00"
    quantity: str


class ReconciliationForm(BaseModel):
    per_product_form: dict[int, ProductLineForm] = Field(default_factory=dict, alias="perProductForm")
    per_sub_product_form: dict[int, SubProductLineForm] = Field(default_factory=dict, alias="perSubProductForm")
    pending_adjustments: list[PendingAdjustment] = Field(default_factory=list, alias="pendingAdjustments")

    class Config:
        populate_by_name = True


class CreditNoteForm(BaseModel):
    invoice_id: str = ""
    operation_name: str = ""
    quantity: str = ""
    unit_price: str = ""


# ---------- Requêtes ----------
class ReconciliationCommit(BaseModel):
    form: ReconciliationForm
    discount_percentage: Decimal | None = Field(default=None, ge=0, le=100)


class AdjustmentCreate(BaseModel):
    operation_name: str
    unit_price: str | Decimal  # saisi positif, virgule acceptée
    quantity: str | int


# ---------- Réponses ----------
class MovementRead(BaseModel):
    previous_stock: int
    counted_stock: int
    stock_sold: int
    stock_added: int
    new_stock: int


class SubProductLineRead(BaseModel):
    sub_product_id: int
    name: str
    touched: bool
    movement: MovementRead


class LineRead(BaseModel):
    product_id: int
    product_name: str
    movement: MovementRead
    unit_price: Decimal
    amount: Decimal
    is_custom_price: bool
    product_info: str
    sub_products: list[SubProductLineRead] = Field(default_factory=list)


class ReconciliationPreview(BaseModel):
    lines: list[LineRead]
    total_stock_sold: int
    total_amount: Decimal
    adjustments_total: Decimal
    total_before_discount: Decimal
    discount_amount: Decimal
    final_total: Decimal


class CommitRead(BaseModel):
    invoice_id: int | None
    invoice_number: str | None
    total_stock_sold: int
    final_total: Decimal
    stock_update_ids: list[int]
    adjustment_ids: list[int]
    warnings: list[str] = Field(default_factory=list)
