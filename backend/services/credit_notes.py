from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from backend.app.core.errors import NotFoundError, ReconciliationValidationError
from backend.app.db.models.models_v1 import CreditNote, Invoice
from backend.services.adjustments import parse_price, parse_quantity
from backend.services.documents import DocumentGenerator
from backend.services.invoicing import next_document_number
from backend.services.reconciliation import to_money
from backend.services.row_store import RowStore

logger = logging.getLogger(__name__)


@dataclass
class CreditNoteResult:
    credit_note: CreditNote
    warnings: list[str] = field(default_factory=list)


def issue_credit_note(
    store: RowStore,
    *,
    invoice_id: int,
    operation_name: str,
    quantity: str | int,
    unit_price: str | Decimal,
    documents: DocumentGenerator | None = None,
) -> CreditNoteResult:
    """
    Émet un avoir rattaché à une facture existante.

    Règle métier :
        total_amount = quantity x unit_price
    Ni les stocks ni la facture ne sont modifiés ; plusieurs avoirs par
    facture sont possibles, sans plafond.
    """
    invoice = store.get_one(Invoice, id=invoice_id)
    if invoice is None:
        raise NotFoundError(f"Facture {invoice_id} introuvable")

    name = (operation_name or "").strip()
    if not name:
        raise ReconciliationValidationError("Veuillez renseigner le nom de l'opération")
    try:
        qty = parse_quantity(quantity)
    except ValueError:
        raise ReconciliationValidationError("La quantité doit être un nombre entier positif") from None
    try:
        price = to_money(parse_price(unit_price))
    except ValueError:
        raise ReconciliationValidationError("Le prix unitaire doit être un nombre positif") from None
    if price <= 0:
        raise ReconciliationValidationError("Le prix unitaire doit être un nombre positif")

    with store.transaction():
        (credit_note,) = store.insert(
            CreditNote,
            [
                {
                    "invoice_id": invoice.id,
                    "client_id": invoice.client_id,
                    "credit_note_number": next_document_number(store, CreditNote.credit_note_number, "A"),
                    "operation_name": name,
                    "quantity": qty,
                    "unit_price": price,
                    "total_amount": to_money(price * qty),
                }
            ],
        )

    logger.info("Credit note %s issued on invoice %s (%s)",
                credit_note.credit_note_number, invoice_id, credit_note.total_amount)

    warnings: list[str] = []
    if documents is not None:
        try:
            documents.generate_credit_note(credit_note)
        except Exception as exc:
            logger.exception("Document generation failed for credit note %s", credit_note.id)
            warnings.append(f"Génération du document « avoir » impossible : {exc}")

    return CreditNoteResult(credit_note=credit_note, warnings=warnings)
