from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.api.deps import get_db
from backend.app.db.models.models_v1 import Product, SubProduct
from backend.app.schemas.catalogue import ProductRead, SubProductRead

router = APIRouter(prefix="/products")


class ProductCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    price: Decimal | None = Field(default=None, ge=0)
    recommended_sale_price: Decimal | None = Field(default=None, ge=0)
    barcode: str | None = Field(default=None, max_length=64)


class SubProductCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)


@router.get("", response_model=list[ProductRead])
def list_products(db: Session = Depends(get_db)):
    return (
        db.execute(select(Product).where(Product.deleted_at.is_(None)).order_by(Product.name))
        .scalars()
        .all()
    )


@router.post("", response_model=ProductRead)
def create_product(payload: ProductCreate, db: Session = Depends(get_db)):
    if payload.barcode:
        exists = db.execute(select(Product).where(Product.barcode == payload.barcode)).scalar_one_or_none()
        if exists:
            raise HTTPException(status_code=409, detail="Barcode already exists")

    p = Product(
        name=payload.name,
        price=payload.price,
        recommended_sale_price=payload.recommended_sale_price,
        barcode=payload.barcode,
    )
    db.add(p)
    db.commit()
    db.refresh(p)
    return p


@router.get("/{product_id}/sub-products", response_model=list[SubProductRead])
def list_sub_products(product_id: int, db: Session = Depends(get_db)):
    return (
        db.execute(
            select(SubProduct)
            .where(SubProduct.product_id == product_id)
            .where(SubProduct.deleted_at.is_(None))
            .order_by(SubProduct.id)
        )
        .scalars()
        .all()
    )


@router.post("/{product_id}/sub-products", response_model=SubProductRead)
def create_sub_product(product_id: int, payload: SubProductCreate, db: Session = Depends(get_db)):
    product = db.get(Product, product_id)
    if not product or product.deleted_at is not None:
        raise HTTPException(status_code=404, detail="Product not found")

    sp = SubProduct(product_id=product_id, name=payload.name)
    db.add(sp)
    db.commit()
    db.refresh(sp)
    return sp
