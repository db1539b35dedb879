"""
Génération des documents PDF (facture, relevé de stock, bon de dépôt, avoir).

Chaque chemin est écrit une seule fois : si la colonne est déjà renseignée
l'appel ne fait rien, et la mise à jour ne s'applique que tant que la
colonne est NULL (le premier qui écrit gagne).
"""
from __future__ import annotations

import logging
import os
import uuid
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Iterable

from fpdf import FPDF
from fpdf.enums import XPos, YPos

from backend.app.core.config import settings
from backend.app.core.errors import DocumentGenerationError
from backend.app.db.models.core_types import DocumentType
from backend.app.db.models.models_v1 import (
    Client,
    ClientProduct,
    ClientSubProduct,
    CreditNote,
    DirectSale,
    Invoice,
    InvoiceAdjustment,
    Product,
    StockUpdate,
    SubProduct,
)
from backend.services.reconciliation import effective_recommended_price, to_money
from backend.services.row_store import RowStore

logger = logging.getLogger(__name__)

INVOICE_PATH_COLUMNS = {
    DocumentType.invoice: "invoice_pdf_path",
    DocumentType.stock_report: "stock_report_pdf_path",
    DocumentType.deposit_slip: "deposit_slip_pdf_path",
}


def _latin1(text: str) -> str:
    # polices standard fpdf : latin-1 uniquement
    return str(text).encode("latin-1", "replace").decode("latin-1")


def _money(value: Decimal | int | None) -> str:
    if value is None:
        return "-"
    return f"{to_money(value):.2f} EUR"


class _Pdf(FPDF):
    def __init__(self, title: str) -> None:
        super().__init__()
        self.doc_title = title
        self.set_auto_page_break(auto=True, margin=15)
        self.add_page()

    def header(self) -> None:
        self.set_font("helvetica", "B", 16)
        self.cell(0, 10, _latin1(self.doc_title), align="C", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        self.ln(4)

    def footer(self) -> None:
        self.set_y(-15)
        self.set_font("helvetica", "I", 8)
        self.cell(0, 10, f"Page {self.page_no()}", align="C")

    def line_text(self, text: str, style: str = "", size: int = 11) -> None:
        self.set_font("helvetica", style, size)
        self.cell(0, 7, _latin1(text), new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    def grid(self, headers: list[str], rows: Iterable[list[str]], widths: list[int]) -> None:
        self.set_font("helvetica", "B", 9)
        for header, width in zip(headers, widths):
            self.cell(width, 7, _latin1(header), border=1)
        self.ln()
        self.set_font("helvetica", "", 9)
        for row in rows:
            for value, width in zip(row, widths):
                self.cell(width, 6, _latin1(value), border=1)
            self.ln()
        self.ln(3)


class DocumentGenerator:
    def __init__(self, store: RowStore, base_dir: Path | str | None = None) -> None:
        self.store = store
        self.base_dir = Path(base_dir) if base_dir is not None else settings.DOCUMENTS_DIR

    # ---------- Helpers ----------
    def _client_name(self, client_id: int) -> str:
        client = self.store.get_one(Client, id=client_id)
        return client.name if client else f"Client #{client_id}"

    def _names(self, model, ids: Iterable[int]) -> dict[int, str]:
        ids = [i for i in set(ids) if i is not None]
        return {row.id: row.name for row in self.store.get(model, id=ids)}

    def _render(self, pdf: _Pdf, relative: str) -> Path:
        """Rendu dans un fichier temporaire propre à cet appel."""
        target = self.base_dir / relative
        tmp = target.with_name(f"{target.stem}.{uuid.uuid4().hex}.tmp")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            pdf.output(str(tmp))
        except OSError as exc:
            tmp.unlink(missing_ok=True)
            raise DocumentGenerationError(f"Écriture impossible de {relative} : {exc}") from exc
        return tmp

    def _publish(self, pdf: _Pdf, relative: str, model, row_id: int, column: str) -> str:
        """
        Réserve la colonne (UPDATE ... WHERE colonne IS NULL) puis place le fichier.

        Un appel perdant ne touche pas au fichier du gagnant.
        """
        tmp = self._render(pdf, relative)
        with self.store.transaction():
            rows = self.store.update(model, {"id": row_id, column: None}, {column: relative})
        if not rows:
            tmp.unlink(missing_ok=True)
            # déjà écrit par un autre appel
            return getattr(self.store.get_one(model, id=row_id), column)

        try:
            os.replace(tmp, self.base_dir / relative)
        except OSError as exc:
            tmp.unlink(missing_ok=True)
            with self.store.transaction():
                self.store.update(model, {"id": row_id, column: relative}, {column: None})
            raise DocumentGenerationError(f"Écriture impossible de {relative} : {exc}") from exc
        return relative

    def _relative_path(self, folder: str, owner_id: int, doc_type: DocumentType, created_at: datetime | None) -> str:
        day = (created_at or datetime.utcnow()).date().isoformat()
        return f"{folder}/{owner_id}/{doc_type.value}_{day}.pdf"

    def _store_invoice_path(self, pdf: _Pdf, invoice: Invoice, doc_type: DocumentType, relative: str) -> str:
        return self._publish(pdf, relative, Invoice, invoice.id, INVOICE_PATH_COLUMNS[doc_type])

    # ---------- Facture ----------
    def generate_invoice(self, invoice: Invoice) -> str | None:
        if invoice.invoice_pdf_path:
            return None

        pdf = _Pdf(f"FACTURE {invoice.invoice_number or invoice.id}")
        pdf.line_text(f"Client : {self._client_name(invoice.client_id)}")
        pdf.line_text(f"Date : {invoice.created_at:%d/%m/%Y}" if invoice.created_at else "Date : -")
        pdf.ln(4)

        rows = []
        updates = [
            u
            for u in self.store.get(StockUpdate, invoice_id=invoice.id, order_by=[StockUpdate.id.asc()])
            if u.product_id is not None and u.stock_sold > 0
        ]
        direct = self.store.get(DirectSale, invoice_id=invoice.id, order_by=[DirectSale.id.asc()])
        names = self._names(Product, [u.product_id for u in updates] + [d.product_id for d in direct])
        for u in updates:
            rows.append([
                names.get(u.product_id, f"Produit #{u.product_id}"),
                str(u.stock_sold),
                _money(u.unit_price_ht),
                _money(u.total_amount_ht),
            ])
        for d in direct:
            rows.append([
                names.get(d.product_id, f"Produit #{d.product_id}"),
                str(d.stock_sold),
                _money(d.unit_price_ht),
                _money(d.total_amount_ht),
            ])
        adjustments = self.store.get(InvoiceAdjustment, invoice_id=invoice.id, order_by=[InvoiceAdjustment.id.asc()])
        for a in adjustments:
            rows.append([f"Reprise : {a.operation_name}", str(a.quantity), _money(a.unit_price), _money(a.amount)])

        pdf.grid(["Désignation", "Qté", "PU HT", "Total HT"], rows, [90, 20, 40, 40])

        if invoice.discount_percentage:
            pdf.line_text(f"Remise : {invoice.discount_percentage} %")
        pdf.line_text(f"Unités vendues : {invoice.total_stock_sold}")
        pdf.line_text(f"TOTAL HT : {_money(invoice.total_amount)}", style="B", size=12)

        relative = self._relative_path("invoices", invoice.id, DocumentType.invoice, invoice.created_at)
        return self._store_invoice_path(pdf, invoice, DocumentType.invoice, relative)

    # ---------- Relevé de stock ----------
    def generate_stock_report(self, invoice: Invoice) -> str | None:
        if invoice.stock_report_pdf_path:
            return None

        updates = self.store.get(StockUpdate, invoice_id=invoice.id, order_by=[StockUpdate.id.asc()])
        products = self._names(Product, [u.product_id for u in updates])
        subs = self._names(SubProduct, [u.sub_product_id for u in updates])

        pdf = _Pdf(f"RELEVÉ DE STOCK {invoice.invoice_number or invoice.id}")
        pdf.line_text(f"Client : {self._client_name(invoice.client_id)}")
        pdf.ln(4)
        rows = []
        for u in updates:
            if u.product_id is not None:
                label = products.get(u.product_id, f"Produit #{u.product_id}")
            else:
                label = "  - " + subs.get(u.sub_product_id, f"Sous-produit #{u.sub_product_id}")
            rows.append([
                label,
                str(u.previous_stock),
                str(u.counted_stock),
                str(u.stock_sold),
                str(u.stock_added),
                str(u.new_stock),
            ])
        pdf.grid(
            ["Produit", "Précédent", "Compté", "Vendu", "Réassort", "Nouveau"],
            rows,
            [70, 24, 24, 24, 24, 24],
        )
        for u in updates:
            if u.product_info:
                pdf.line_text(f"{products.get(u.product_id, '')} : {u.product_info}", size=9)

        relative = self._relative_path("invoices", invoice.id, DocumentType.stock_report, invoice.created_at)
        return self._store_invoice_path(pdf, invoice, DocumentType.stock_report, relative)

    # ---------- Bon de dépôt ----------
    def generate_deposit_slip(self, invoice: Invoice) -> str | None:
        if invoice.deposit_slip_pdf_path:
            return None

        cps = self.store.get(
            ClientProduct,
            client_id=invoice.client_id,
            order_by=[ClientProduct.display_order.asc(), ClientProduct.id.asc()],
        )
        products = {p.id: p for p in self.store.get(Product, id=[cp.product_id for cp in cps])}
        subs = self.store.get(SubProduct, product_id=list(products), order_by=[SubProduct.id.asc()])
        sub_stock = {
            csp.sub_product_id: csp.current_stock
            for csp in self.store.get(ClientSubProduct, client_id=invoice.client_id, sub_product_id=[s.id for s in subs])
        }

        pdf = _Pdf("BON DE DÉPÔT")
        pdf.line_text(f"Client : {self._client_name(invoice.client_id)}")
        pdf.line_text(f"Facture : {invoice.invoice_number or invoice.id}")
        pdf.ln(4)
        rows = []
        for cp in cps:
            product = products.get(cp.product_id)
            if product is None:
                continue
            price = effective_recommended_price(cp, product)
            rows.append([product.name, str(cp.current_stock), _money(price)])
            for sp in subs:
                if sp.product_id == product.id:
                    rows.append([f"  - {sp.name}", str(sub_stock.get(sp.id, 0)), ""])
        pdf.grid(["Produit", "Stock déposé", "Prix de vente conseillé"], rows, [100, 40, 50])

        relative = self._relative_path("invoices", invoice.id, DocumentType.deposit_slip, invoice.created_at)
        return self._store_invoice_path(pdf, invoice, DocumentType.deposit_slip, relative)

    # ---------- Avoir ----------
    def generate_credit_note(self, credit_note: CreditNote) -> str | None:
        if credit_note.credit_note_pdf_path:
            return None

        invoice = self.store.get_one(Invoice, id=credit_note.invoice_id)
        pdf = _Pdf(f"AVOIR {credit_note.credit_note_number or credit_note.id}")
        pdf.line_text(f"Client : {self._client_name(credit_note.client_id)}")
        pdf.line_text(f"Facture d'origine : {invoice.invoice_number if invoice else credit_note.invoice_id}")
        pdf.ln(4)
        pdf.grid(
            ["Opération", "Qté", "PU HT", "Total HT"],
            [[
                credit_note.operation_name,
                str(credit_note.quantity),
                _money(credit_note.unit_price),
                _money(credit_note.total_amount),
            ]],
            [90, 20, 40, 40],
        )
        pdf.line_text(f"TOTAL AVOIR HT : {_money(credit_note.total_amount)}", style="B", size=12)

        relative = self._relative_path("credit_notes", credit_note.id, DocumentType.credit_note, credit_note.created_at)
        return self._publish(pdf, relative, CreditNote, credit_note.id, "credit_note_pdf_path")

    # ---------- Lot ----------
    def generate_for_invoice(self, invoice: Invoice) -> list[str]:
        """Génère les trois documents d'une facture ; chaque échec devient un avertissement."""
        warnings: list[str] = []
        steps = (
            ("facture", self.generate_invoice),
            ("relevé de stock", self.generate_stock_report),
            ("bon de dépôt", self.generate_deposit_slip),
        )
        for label, step in steps:
            try:
                step(invoice)
            except Exception as exc:
                logger.exception("Document generation failed (%s) for invoice %s", label, invoice.id)
                warnings.append(f"Génération du document « {label} » impossible : {exc}")
        return warnings
