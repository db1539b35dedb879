"""
Soumission d'un relevé de stock : facture, historique, mise à jour des stocks.

Règle métier :
    total_before_discount = Σ montants lignes + Σ reprises
    remise appliquée seulement si 0 < pct <= 100
    final_total = total_before_discount - remise      (arrondi au centime)
    final_total < 0 -> refus (il faut un avoir)

Ordre des écritures, dans une seule transaction :
    1. facture (si au moins une ligne ou des reprises non nulles)
    2. lignes StockUpdate
    3. lignes InvoiceAdjustment
    4. stocks des sous-produits, puis stocks des produits
Puis, hors transaction : suppression du brouillon, génération des documents.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select

from backend.app.core.errors import (
    NegativeInvoiceTotalError,
    NothingToCommitError,
    PersistenceError,
    ReconciliationValidationError,
)
from backend.app.db.models.models_v1 import (
    ClientProduct,
    ClientSubProduct,
    DirectSale,
    Invoice,
    InvoiceAdjustment,
    StockUpdate,
)
from backend.app.schemas.reconciliation import ReconciliationForm
from backend.services.adjustments import AdjustmentLedger
from backend.services.documents import DocumentGenerator
from backend.services.drafts import DraftSession, DraftStore
from backend.services.reconciliation import LineMovement, effective_price, prepare_lines, to_money
from backend.services.row_store import RowStore
from backend.services.stock_positions import (
    load_stock_position,
    require_client,
    require_product,
    stock_update_row,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InvoiceTotals:
    total_stock_sold: int
    total_amount: Decimal
    adjustments_total: Decimal
    total_before_discount: Decimal
    discount_percentage: Decimal | None
    discount_amount: Decimal
    final_total: Decimal


@dataclass
class CommitResult:
    invoice: Invoice | None
    totals: InvoiceTotals
    stock_updates: list[StockUpdate]
    adjustments: list[InvoiceAdjustment]
    warnings: list[str] = field(default_factory=list)
    form_reset: bool = True


@dataclass
class DirectSaleLine:
    product_id: int
    quantity: int
    unit_price: Decimal | None = None


@dataclass
class DirectInvoiceResult:
    invoice: Invoice
    totals: InvoiceTotals
    sales: list[DirectSale]
    warnings: list[str] = field(default_factory=list)


# ---------- Numérotation ----------
def next_document_number(store: RowStore, column, prefix: str) -> str:
    """Numéro séquentiel par année : {prefix}-YYYY-NNNN."""
    year_prefix = f"{prefix}-{datetime.utcnow():%Y}-"
    count = store.db.execute(select(func.count()).where(column.like(f"{year_prefix}%"))).scalar_one()
    return f"{year_prefix}{count + 1:04d}"


# ---------- Totaux ----------
def compute_totals(
    *,
    total_stock_sold: int,
    total_amount: Decimal,
    adjustments_total: Decimal,
    discount_percentage: Decimal | float | int | None,
) -> InvoiceTotals:
    total_amount = to_money(total_amount)
    adjustments_total = to_money(adjustments_total)
    before = total_amount + adjustments_total

    pct = None
    if discount_percentage is not None:
        value = Decimal(str(discount_percentage))
        if 0 < value <= 100:
            pct = value

    discount = to_money(before * pct / 100) if pct is not None else to_money(0)
    return InvoiceTotals(
        total_stock_sold=total_stock_sold,
        total_amount=total_amount,
        adjustments_total=adjustments_total,
        total_before_discount=to_money(before),
        discount_percentage=pct,
        discount_amount=discount,
        final_total=to_money(before - discount),
    )


def totals_for_lines(
    lines: list[LineMovement],
    ledger: AdjustmentLedger,
    discount_percentage: Decimal | float | int | None,
) -> InvoiceTotals:
    return compute_totals(
        total_stock_sold=sum(line.movement.stock_sold for line in lines),
        total_amount=sum((line.amount for line in lines), Decimal("0")),
        adjustments_total=ledger.total(),
        discount_percentage=discount_percentage,
    )


# ---------- Aperçu ----------
def preview_reconciliation(
    store: RowStore,
    *,
    client_id: int,
    form: ReconciliationForm,
    discount_percentage: Decimal | None = None,
) -> tuple[list[LineMovement], InvoiceTotals]:
    """Passe de validation + totaux, sans aucune écriture."""
    position = load_stock_position(store, client_id=client_id)
    lines = prepare_lines(position.lines, form)
    ledger = AdjustmentLedger.from_pending(form.pending_adjustments)
    return lines, totals_for_lines(lines, ledger, discount_percentage)


# ---------- Soumission ----------
def _rows_for_line(client_id: int, line: LineMovement, invoice: Invoice | None) -> list[dict]:
    invoice_id = invoice.id if invoice is not None else None
    priced = invoice is not None and line.movement.stock_sold > 0
    product_row = stock_update_row(
        client_id,
        line.movement,
        product_id=line.product_id,
        invoice_id=invoice_id,
        product_info=line.product_info or None,
        unit_price_ht=line.unit_price if priced else None,
        total_amount_ht=line.amount if priced else None,
    )
    if not line.has_sub_products:
        return [product_row]

    # prix porté uniquement par la ligne agrégée du parent
    rows = [
        stock_update_row(client_id, sub.movement, sub_product_id=sub.sub_product_id, invoice_id=invoice_id)
        for sub in line.touched_sub_products
    ]
    if line.movement.stock_sold > 0:
        rows.append(product_row)
    return rows


def commit_reconciliation(
    store: RowStore,
    *,
    client_id: int,
    form: ReconciliationForm,
    discount_percentage: Decimal | None = None,
    documents: DocumentGenerator | None = None,
    drafts: DraftStore | None = None,
    draft_session: DraftSession | None = None,
) -> CommitResult:
    """
    Valide puis enregistre un relevé de stock.

    Propriétés :
    - aucune écriture si une ligne est invalide, si rien n'est saisi
      ou si le total final est négatif
    - stock produit parent = Σ stocks sous-produits après soumission
    - échec génération document / suppression brouillon -> avertissement
    """
    position = load_stock_position(store, client_id=client_id)
    lines = prepare_lines(position.lines, form)
    ledger = AdjustmentLedger.from_pending(form.pending_adjustments)
    if not lines and not len(ledger):
        raise NothingToCommitError()

    totals = totals_for_lines(lines, ledger, discount_percentage)
    if totals.final_total < 0:
        raise NegativeInvoiceTotalError()
    needs_invoice = bool(lines) or totals.adjustments_total != 0

    if draft_session is not None:
        draft_session.begin_commit()
    try:
        with store.transaction():
            invoice = None
            if needs_invoice:
                (invoice,) = store.insert(
                    Invoice,
                    [
                        {
                            "client_id": client_id,
                            "invoice_number": next_document_number(store, Invoice.invoice_number, "F"),
                            "total_stock_sold": totals.total_stock_sold,
                            "total_amount": totals.final_total,
                            "discount_percentage": totals.discount_percentage,
                        }
                    ],
                )

            rows: list[dict] = []
            for line in lines:
                rows.extend(_rows_for_line(client_id, line, invoice))
            stock_updates = store.insert(StockUpdate, rows)

            adjustments: list[InvoiceAdjustment] = []
            if invoice is not None:
                adjustments = store.insert(
                    InvoiceAdjustment,
                    [
                        {
                            "invoice_id": invoice.id,
                            "client_id": client_id,
                            "operation_name": a.operation_name,
                            "unit_price": a.unit_price,
                            "quantity": a.quantity,
                            "amount": a.amount,
                        }
                        for a in ledger
                    ],
                )

            for line in lines:
                for sub in line.touched_sub_products:
                    store.update(
                        ClientSubProduct,
                        {"id": sub.client_sub_product_id},
                        {"current_stock": sub.movement.new_stock},
                    )
            for line in lines:
                store.update(
                    ClientProduct,
                    {"id": line.client_product_id},
                    {"current_stock": line.movement.new_stock},
                )
    except Exception:
        if draft_session is not None:
            draft_session.abort_commit()
        raise

    logger.info(
        "Reconciliation committed client=%s invoice=%s lines=%d sold=%d total=%s",
        client_id,
        invoice.invoice_number if invoice else None,
        len(lines),
        totals.total_stock_sold,
        totals.final_total,
    )

    warnings: list[str] = []
    drafts = drafts or DraftStore(store)
    if draft_session is not None:
        warnings.extend(draft_session.finish_commit(drafts))
    else:
        try:
            drafts.delete(client_id)
        except (PersistenceError, OSError) as exc:
            logger.warning("Draft deletion failed for client %s: %s", client_id, exc)
            warnings.append(f"Le brouillon n'a pas pu être supprimé : {exc}")

    if invoice is not None and documents is not None:
        warnings.extend(documents.generate_for_invoice(invoice))

    return CommitResult(
        invoice=invoice,
        totals=totals,
        stock_updates=stock_updates,
        adjustments=adjustments,
        warnings=warnings,
    )


# ---------- Facture directe ----------
def create_direct_invoice(
    store: RowStore,
    *,
    client_id: int,
    lines: list[DirectSaleLine],
    discount_percentage: Decimal | None = None,
    documents: DocumentGenerator | None = None,
) -> DirectInvoiceResult:
    """Facture des produits vendus hors dépôt : aucun stock n'est modifié."""
    require_client(store, client_id)
    if not lines:
        raise NothingToCommitError()

    priced: list[tuple[DirectSaleLine, Decimal, Decimal]] = []
    for line in lines:
        product = require_product(store, line.product_id)
        if line.quantity is None or line.quantity <= 0:
            raise ReconciliationValidationError(f"La quantité doit être un nombre entier positif pour « {product.name} »")
        if line.unit_price is not None:
            if line.unit_price < 0:
                raise ReconciliationValidationError(f"Le prix unitaire ne peut pas être négatif pour « {product.name} »")
            price = to_money(line.unit_price)
        else:
            cp = store.get_one(ClientProduct, client_id=client_id, product_id=product.id)
            price = effective_price(cp, product)
        priced.append((line, price, to_money(price * line.quantity)))

    totals = compute_totals(
        total_stock_sold=sum(line.quantity for line, _, _ in priced),
        total_amount=sum((amount for _, _, amount in priced), Decimal("0")),
        adjustments_total=Decimal("0"),
        discount_percentage=discount_percentage,
    )
    if totals.final_total < 0:
        raise NegativeInvoiceTotalError()

    with store.transaction():
        (invoice,) = store.insert(
            Invoice,
            [
                {
                    "client_id": client_id,
                    "invoice_number": next_document_number(store, Invoice.invoice_number, "F"),
                    "total_stock_sold": totals.total_stock_sold,
                    "total_amount": totals.final_total,
                    "discount_percentage": totals.discount_percentage,
                }
            ],
        )
        sales = store.insert(
            DirectSale,
            [
                {
                    "client_id": client_id,
                    "invoice_id": invoice.id,
                    "product_id": line.product_id,
                    "stock_sold": line.quantity,
                    "unit_price_ht": price,
                    "total_amount_ht": amount,
                }
                for line, price, amount in priced
            ],
        )

    logger.info("Direct invoice %s created for client %s (%s)", invoice.invoice_number, client_id, totals.final_total)

    warnings: list[str] = []
    if documents is not None:
        try:
            documents.generate_invoice(invoice)
        except Exception as exc:
            logger.exception("Document generation failed for direct invoice %s", invoice.id)
            warnings.append(f"Génération du document « facture » impossible : {exc}")

    return DirectInvoiceResult(invoice=invoice, totals=totals, sales=sales, warnings=warnings)
