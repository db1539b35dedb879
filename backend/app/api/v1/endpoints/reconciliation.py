from __future__ import annotations

from fastapi import APIRouter, Depends

from backend.app.api.deps import get_documents, get_draft_registry, get_draft_store, get_store
from backend.app.schemas.reconciliation import (
    CommitRead,
    LineRead,
    MovementRead,
    ReconciliationCommit,
    ReconciliationPreview,
    SubProductLineRead,
)
from backend.services.documents import DocumentGenerator
from backend.services.drafts import DraftSessionRegistry, DraftStore
from backend.services.invoicing import commit_reconciliation, preview_reconciliation
from backend.services.reconciliation import LineMovement, Movement
from backend.services.row_store import RowStore

router = APIRouter(prefix="/clients/{client_id}/reconciliation")


def _movement(m: Movement) -> MovementRead:
    return MovementRead(
        previous_stock=m.previous_stock,
        counted_stock=m.counted_stock,
        stock_sold=m.stock_sold,
        stock_added=m.stock_added,
        new_stock=m.new_stock,
    )


def _line(line: LineMovement) -> LineRead:
    return LineRead(
        product_id=line.product_id,
        product_name=line.product_name,
        movement=_movement(line.movement),
        unit_price=line.unit_price,
        amount=line.amount,
        is_custom_price=line.is_custom_price,
        product_info=line.product_info,
        sub_products=[
            SubProductLineRead(
                sub_product_id=s.sub_product_id,
                name=s.name,
                touched=s.touched,
                movement=_movement(s.movement),
            )
            for s in line.sub_products
        ],
    )


@router.post("/preview", response_model=ReconciliationPreview)
def preview(client_id: int, payload: ReconciliationCommit, store: RowStore = Depends(get_store)):
    """Validation + calcul, aucune écriture."""
    lines, totals = preview_reconciliation(
        store,
        client_id=client_id,
        form=payload.form,
        discount_percentage=payload.discount_percentage,
    )
    return ReconciliationPreview(
        lines=[_line(line) for line in lines],
        total_stock_sold=totals.total_stock_sold,
        total_amount=totals.total_amount,
        adjustments_total=totals.adjustments_total,
        total_before_discount=totals.total_before_discount,
        discount_amount=totals.discount_amount,
        final_total=totals.final_total,
    )


@router.post("/commit", response_model=CommitRead)
def commit(
    client_id: int,
    payload: ReconciliationCommit,
    store: RowStore = Depends(get_store),
    documents: DocumentGenerator = Depends(get_documents),
    drafts: DraftStore = Depends(get_draft_store),
    registry: DraftSessionRegistry = Depends(get_draft_registry),
):
    """
    Soumission du relevé
    - facture + historique + stocks dans une seule transaction
    - documents et suppression du brouillon : échecs renvoyés en warnings
    """
    session = registry.get(client_id)
    result = commit_reconciliation(
        store,
        client_id=client_id,
        form=payload.form,
        discount_percentage=payload.discount_percentage,
        documents=documents,
        drafts=drafts,
        draft_session=session,
    )
    registry.release(session)
    return CommitRead(
        invoice_id=result.invoice.id if result.invoice else None,
        invoice_number=result.invoice.invoice_number if result.invoice else None,
        total_stock_sold=result.totals.total_stock_sold,
        final_total=result.totals.final_total,
        stock_update_ids=[u.id for u in result.stock_updates],
        adjustment_ids=[a.id for a in result.adjustments],
        warnings=result.warnings,
    )
