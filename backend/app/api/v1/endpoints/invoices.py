from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from backend.app.api.deps import get_documents, get_store
from backend.app.db.models.models_v1 import CreditNote, DirectSale, Invoice, InvoiceAdjustment, StockUpdate
from backend.app.schemas.invoice import (
    CreditNoteIssued,
    CreditNoteRead,
    DirectInvoiceRead,
    DirectSaleRead,
    DocumentsRead,
    InvoiceAdjustmentRead,
    InvoiceDetail,
    InvoiceRead,
)
from backend.app.schemas.stock import StockUpdateRead
from backend.services.credit_notes import issue_credit_note
from backend.services.documents import DocumentGenerator
from backend.services.invoicing import DirectSaleLine, create_direct_invoice
from backend.services.row_store import RowStore
from backend.services.stock_positions import require_client

router = APIRouter()


# ---------- Schemas ----------
class DirectSaleLineCreate(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)
    unit_price: Decimal | None = Field(default=None, ge=0)


class DirectInvoiceCreate(BaseModel):
    lines: list[DirectSaleLineCreate] = Field(min_length=1)
    discount_percentage: Decimal | None = Field(default=None, ge=0, le=100)


class CreditNoteCreate(BaseModel):
    operation_name: str
    quantity: str | int
    unit_price: str | Decimal


# ---------- Helpers ----------
def _get_invoice(store: RowStore, invoice_id: int) -> Invoice:
    invoice = store.get_one(Invoice, id=invoice_id)
    if not invoice:
        raise HTTPException(status_code=404, detail="Invoice not found")
    return invoice


# ---------- Endpoints ----------
@router.get("/clients/{client_id}/invoices", response_model=list[InvoiceRead])
def list_client_invoices(client_id: int, store: RowStore = Depends(get_store)):
    require_client(store, client_id)
    return store.get(Invoice, client_id=client_id, order_by=[Invoice.id.desc()])


@router.get("/invoices/{invoice_id}", response_model=InvoiceDetail)
def get_invoice(invoice_id: int, store: RowStore = Depends(get_store)):
    invoice = _get_invoice(store, invoice_id)
    return InvoiceDetail(
        **InvoiceRead.model_validate(invoice).model_dump(),
        stock_updates=[
            StockUpdateRead.model_validate(u)
            for u in store.get(StockUpdate, invoice_id=invoice_id, order_by=[StockUpdate.id.asc()])
        ],
        adjustments=[
            InvoiceAdjustmentRead.model_validate(a)
            for a in store.get(InvoiceAdjustment, invoice_id=invoice_id, order_by=[InvoiceAdjustment.id.asc()])
        ],
        direct_sales=[
            DirectSaleRead.model_validate(d)
            for d in store.get(DirectSale, invoice_id=invoice_id, order_by=[DirectSale.id.asc()])
        ],
        credit_notes=[
            CreditNoteRead.model_validate(c)
            for c in store.get(CreditNote, invoice_id=invoice_id, order_by=[CreditNote.id.asc()])
        ],
    )


@router.post("/clients/{client_id}/invoices/direct", response_model=DirectInvoiceRead)
def create_direct(
    client_id: int,
    payload: DirectInvoiceCreate,
    store: RowStore = Depends(get_store),
    documents: DocumentGenerator = Depends(get_documents),
):
    """Facture hors dépôt : aucun stock modifié."""
    result = create_direct_invoice(
        store,
        client_id=client_id,
        lines=[DirectSaleLine(l.product_id, l.quantity, l.unit_price) for l in payload.lines],
        discount_percentage=payload.discount_percentage,
        documents=documents,
    )
    return DirectInvoiceRead(
        invoice=InvoiceRead.model_validate(result.invoice),
        sales=[DirectSaleRead.model_validate(s) for s in result.sales],
        warnings=result.warnings,
    )


@router.post("/invoices/{invoice_id}/documents", response_model=DocumentsRead)
def generate_documents(
    invoice_id: int,
    store: RowStore = Depends(get_store),
    documents: DocumentGenerator = Depends(get_documents),
):
    """(Re)génère les documents manquants ; un chemin déjà écrit n'est jamais remplacé."""
    invoice = _get_invoice(store, invoice_id)
    warnings = documents.generate_for_invoice(invoice)
    return DocumentsRead(invoice=InvoiceRead.model_validate(_get_invoice(store, invoice_id)), warnings=warnings)


@router.post("/invoices/{invoice_id}/credit-notes", response_model=CreditNoteIssued)
def create_credit_note(
    invoice_id: int,
    payload: CreditNoteCreate,
    store: RowStore = Depends(get_store),
    documents: DocumentGenerator = Depends(get_documents),
):
    result = issue_credit_note(
        store,
        invoice_id=invoice_id,
        operation_name=payload.operation_name,
        quantity=payload.quantity,
        unit_price=payload.unit_price,
        documents=documents,
    )
    return CreditNoteIssued(credit_note=CreditNoteRead.model_validate(result.credit_note), warnings=result.warnings)


@router.get("/clients/{client_id}/credit-notes", response_model=list[CreditNoteRead])
def list_client_credit_notes(client_id: int, store: RowStore = Depends(get_store)):
    require_client(store, client_id)
    return store.get(CreditNote, client_id=client_id, order_by=[CreditNote.id.desc()])
