from types import SimpleNamespace

from backend.app.db.models.models_v1 import Invoice
from backend.app.schemas.reconciliation import ReconciliationForm
from backend.services.invoicing import commit_reconciliation


def _commit(store, depot, drafts):
    return commit_reconciliation(
        store,
        client_id=depot.client.id,
        form=ReconciliationForm.model_validate(
            {
                "perProductForm": {depot.savon.id: {"counted_stock": "7", "stock_added": "12", "product_info": "été"}},
                "perSubProductForm": {depot.sub_a.id: {"counted_stock": "2", "stock_added": "5"}},
                "pendingAdjustments": [{"operation_name": "Casse", "unit_price": "-1.00", "quantity": "1"}],
            }
        ),
        drafts=drafts,
    ).invoice


def test_generate_invoice_writes_file_once(store, depot, drafts, documents, tmp_path):
    """
    GIVEN une facture sans document
    THEN le PDF est écrit, le chemin enregistré ; un second appel ne fait rien
    """
    invoice = _commit(store, depot, drafts)

    path = documents.generate_invoice(invoice)
    assert path == f"invoices/{invoice.id}/invoice_{invoice.created_at.date().isoformat()}.pdf"
    target = tmp_path / "documents" / path
    assert target.read_bytes().startswith(b"%PDF")

    assert documents.generate_invoice(store.get_one(Invoice, id=invoice.id)) is None


def test_existing_path_is_never_replaced(store, depot, drafts, documents):
    invoice = _commit(store, depot, drafts)
    with store.transaction():
        store.update(Invoice, {"id": invoice.id}, {"stock_report_pdf_path": "manual/report.pdf"})

    warnings = documents.generate_for_invoice(store.get_one(Invoice, id=invoice.id))

    refreshed = store.get_one(Invoice, id=invoice.id)
    assert warnings == []
    assert refreshed.stock_report_pdf_path == "manual/report.pdf"
    assert refreshed.invoice_pdf_path is not None
    assert refreshed.deposit_slip_pdf_path is not None


def test_losing_generator_leaves_the_winner_file_alone(store, depot, drafts, documents, tmp_path):
    """
    GIVEN deux générations concurrentes de la même facture
    THEN le second appel ne remplace ni le chemin ni le fichier du premier
    """
    invoice = _commit(store, depot, drafts)
    # instantané lu avant que le premier appel n'enregistre son chemin
    stale = SimpleNamespace(**{c.key: getattr(invoice, c.key) for c in Invoice.__table__.columns})

    path = documents.generate_invoice(invoice)
    target = tmp_path / "documents" / path
    target.write_bytes(b"%PDF-winner")

    assert documents.generate_invoice(stale) == path

    assert target.read_bytes() == b"%PDF-winner"
    assert list(target.parent.glob("*.tmp")) == []
