from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, model_validator

from backend.app.api.deps import get_store
from backend.app.schemas.stock import ManualAdjustmentRead, StockUpdateRead
from backend.services.row_store import RowStore
from backend.services.stock_positions import adjust_stock

router = APIRouter(prefix="/clients/{client_id}/stock-adjustments")


class StockAdjustmentCreate(BaseModel):
    product_id: int | None = None
    sub_product_id: int | None = None
    new_stock: int = Field(ge=0)

    @model_validator(mode="after")
    def _one_target(self):
        if (self.product_id is None) == (self.sub_product_id is None):
            raise ValueError("exactly one of product_id / sub_product_id is required")
        return self


@router.post("", response_model=ManualAdjustmentRead)
def create_stock_adjustment(client_id: int, payload: StockAdjustmentCreate, store: RowStore = Depends(get_store)):
    """
    Correction manuelle du stock (hors relevé)
    - aucune vente, aucune facture
    - réassort négatif possible
    """
    result = adjust_stock(
        store,
        client_id=client_id,
        product_id=payload.product_id,
        sub_product_id=payload.sub_product_id,
        new_stock=payload.new_stock,
    )
    return ManualAdjustmentRead(
        current_stock=result.current_stock,
        parent_stock=result.parent_stock,
        stock_updates=[StockUpdateRead.model_validate(u) for u in result.stock_updates],
    )
