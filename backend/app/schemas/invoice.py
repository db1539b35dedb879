from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from backend.app.schemas.stock import StockUpdateRead


class InvoiceAdjustmentRead(BaseModel):
    id: int
    operation_name: str
    unit_price: Decimal
    quantity: int
    amount: Decimal

    class Config:
        from_attributes = True


class DirectSaleRead(BaseModel):
    id: int
    product_id: int
    stock_sold: int
    unit_price_ht: Decimal
    total_amount_ht: Decimal

    class Config:
        from_attributes = True


class CreditNoteRead(BaseModel):
    id: int
    invoice_id: int
    client_id: int
    credit_note_number: str | None
    operation_name: str
    quantity: int
    unit_price: Decimal
    total_amount: Decimal
    credit_note_pdf_path: str | None
    created_at: datetime

    class Config:
        from_attributes = True


class InvoiceRead(BaseModel):
    id: int
    client_id: int
    invoice_number: str | None
    total_stock_sold: int
    total_amount: Decimal
    discount_percentage: Decimal | None
    invoice_pdf_path: str | None
    stock_report_pdf_path: str | None
    deposit_slip_pdf_path: str | None
    created_at: datetime

    class Config:
        from_attributes = True


class InvoiceDetail(InvoiceRead):
    stock_updates: list[StockUpdateRead] = Field(default_factory=list)
    adjustments: list[InvoiceAdjustmentRead] = Field(default_factory=list)
    direct_sales: list[DirectSaleRead] = Field(default_factory=list)
    credit_notes: list[CreditNoteRead] = Field(default_factory=list)


class DocumentsRead(BaseModel):
    invoice: InvoiceRead
    warnings: list[str] = Field(default_factory=list)


class CreditNoteIssued(BaseModel):
    credit_note: CreditNoteRead
    warnings: list[str] = Field(default_factory=list)


class DirectInvoiceRead(BaseModel):
    invoice: InvoiceRead
    sales: list[DirectSaleRead]
    warnings: list[str] = Field(default_factory=list)
