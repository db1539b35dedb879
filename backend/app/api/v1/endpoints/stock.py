from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from backend.app.api.deps import get_store
from backend.app.db.models.models_v1 import StockUpdate
from backend.app.schemas.stock import (
    ClientProductRead,
    StockLineRead,
    StockPositionRead,
    StockUpdateRead,
    SubProductStockRead,
)
from backend.services.reconciliation import effective_price, effective_recommended_price
from backend.services.row_store import RowStore
from backend.services.stock_positions import (
    associate_product,
    dissociate_product,
    load_stock_position,
    reorder_products,
    require_client,
    update_client_prices,
)

router = APIRouter(prefix="/clients/{client_id}")


# ---------- Schemas ----------
class AssociationCreate(BaseModel):
    product_id: int
    initial_stock: int | None = Field(default=None, ge=0)
    sub_product_stocks: dict[int, int] | None = None
    custom_price: Decimal | None = Field(default=None, ge=0)
    custom_recommended_sale_price: Decimal | None = Field(default=None, ge=0)


class PricesUpdate(BaseModel):
    custom_price: Decimal | None = Field(default=None, ge=0)
    custom_recommended_sale_price: Decimal | None = Field(default=None, ge=0)


class ReorderRequest(BaseModel):
    product_ids: list[int]


# ---------- Endpoints ----------
@router.get("/stock", response_model=StockPositionRead)
def get_stock_position(client_id: int, store: RowStore = Depends(get_store)):
    """
    Position de stock du client (lecture)
    - stock parent = somme des sous-produits
    - default_form reprend l'info produit du dernier relevé
    """
    position = load_stock_position(store, client_id=client_id)
    lines = [
        StockLineRead(
            product_id=line.product.id,
            product_name=line.product.name,
            current_stock=line.client_product.current_stock,
            display_order=line.client_product.display_order,
            effective_price=effective_price(line.client_product, line.product),
            effective_recommended_price=effective_recommended_price(line.client_product, line.product),
            is_custom_price=line.client_product.custom_price is not None,
            sub_products=[
                SubProductStockRead(
                    sub_product_id=sp.sub_product.id,
                    name=sp.sub_product.name,
                    current_stock=sp.client_sub_product.current_stock,
                )
                for sp in line.sub_products
            ],
        )
        for line in position.lines
    ]
    return StockPositionRead(
        client_id=position.client.id,
        client_name=position.client.name,
        lines=lines,
        default_form=position.default_form(),
    )


@router.post("/products", response_model=ClientProductRead)
def associate(client_id: int, payload: AssociationCreate, store: RowStore = Depends(get_store)):
    return associate_product(
        store,
        client_id=client_id,
        product_id=payload.product_id,
        initial_stock=payload.initial_stock,
        sub_product_stocks=payload.sub_product_stocks,
        custom_price=payload.custom_price,
        custom_recommended_sale_price=payload.custom_recommended_sale_price,
    )


@router.delete("/products/{product_id}", status_code=204)
def dissociate(client_id: int, product_id: int, store: RowStore = Depends(get_store)):
    dissociate_product(store, client_id=client_id, product_id=product_id)


@router.put("/products/{product_id}/prices", response_model=ClientProductRead)
def update_prices(client_id: int, product_id: int, payload: PricesUpdate, store: RowStore = Depends(get_store)):
    return update_client_prices(
        store,
        client_id=client_id,
        product_id=product_id,
        custom_price=payload.custom_price,
        custom_recommended_sale_price=payload.custom_recommended_sale_price,
    )


@router.put("/products/order", response_model=list[ClientProductRead])
def reorder(client_id: int, payload: ReorderRequest, store: RowStore = Depends(get_store)):
    return reorder_products(store, client_id=client_id, product_ids=payload.product_ids)


@router.get("/stock-updates", response_model=list[StockUpdateRead])
def list_stock_updates(
    client_id: int,
    product_id: int | None = None,
    sub_product_id: int | None = None,
    store: RowStore = Depends(get_store),
):
    """Historique append-only, plus récent d'abord."""
    require_client(store, client_id)
    filters = {"client_id": client_id}
    if product_id is not None:
        filters["product_id"] = product_id
    if sub_product_id is not None:
        filters["sub_product_id"] = sub_product_id
    return store.get(StockUpdate, order_by=[StockUpdate.id.desc()], **filters)
