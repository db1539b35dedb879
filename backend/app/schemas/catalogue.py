from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel


class SubProductRead(BaseModel):
    id: int
    product_id: int
    name: str

    class Config:
        from_attributes = True


class ProductRead(BaseModel):
    id: int
    name: str
    price: Decimal | None
    recommended_sale_price: Decimal | None
    barcode: str | None

    class Config:
        from_attributes = True


class ClientRead(BaseModel):
    id: int
    name: str
    email: str | None

    class Config:
        from_attributes = True
