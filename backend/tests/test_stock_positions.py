from decimal import Decimal

import pytest

from backend.app.core.errors import (
    BusinessRuleError,
    DuplicateAssociationError,
    NotFoundError,
    ReconciliationValidationError,
)
from backend.app.db.models.models_v1 import (
    ClientProduct,
    ClientSubProduct,
    Product,
    StockUpdate,
    SubProduct,
)
from backend.app.schemas.reconciliation import ReconciliationForm
from backend.services.invoicing import commit_reconciliation
from backend.services.stock_positions import (
    adjust_stock,
    associate_product,
    dissociate_product,
    load_stock_position,
    reorder_products,
    update_client_prices,
)


# ---------- Association ----------
def test_associate_writes_opening_rows(store, depot):
    """
    GIVEN Bougie associée avec A=4, B=6
    THEN 3 lignes d'ouverture (A, B, parent) avec previous = counted = 0
    """
    rows = store.get(StockUpdate, client_id=depot.client.id, order_by=[StockUpdate.id.asc()])
    bougie_rows = [r for r in rows if r.product_id == depot.bougie.id or r.sub_product_id is not None]

    assert len(bougie_rows) == 3
    assert all(r.previous_stock == 0 and r.counted_stock == 0 for r in bougie_rows)
    parent = [r for r in bougie_rows if r.product_id == depot.bougie.id][0]
    assert parent.new_stock == 10
    assert parent.invoice_id is None

    cps = store.get(ClientProduct, client_id=depot.client.id, order_by=[ClientProduct.display_order.asc()])
    assert [(cp.product_id, cp.display_order) for cp in cps] == [(depot.savon.id, 1), (depot.bougie.id, 2)]


def test_associate_duplicate_is_rejected(store, depot):
    with pytest.raises(DuplicateAssociationError):
        associate_product(store, client_id=depot.client.id, product_id=depot.savon.id, initial_stock=1)


def test_associate_plain_product_requires_initial_stock(db_session, store, depot):
    p = Product(name="Huile", price=Decimal("12"))
    db_session.add(p)
    db_session.commit()

    with pytest.raises(ReconciliationValidationError):
        associate_product(store, client_id=depot.client.id, product_id=p.id)
    with pytest.raises(ReconciliationValidationError):
        associate_product(store, client_id=depot.client.id, product_id=p.id, initial_stock=-1)


def test_associate_unknown_client(store, depot):
    with pytest.raises(NotFoundError):
        associate_product(store, client_id=999_999, product_id=depot.savon.id, initial_stock=1)


def test_dissociate_soft_deletes_rows(store, depot):
    dissociate_product(store, client_id=depot.client.id, product_id=depot.bougie.id)

    assert store.get(ClientProduct, client_id=depot.client.id, product_id=depot.bougie.id) == []
    assert store.get(ClientSubProduct, client_id=depot.client.id) == []
    position = load_stock_position(store, client_id=depot.client.id)
    assert [line.product.id for line in position.lines] == [depot.savon.id]


# ---------- Lecture ----------
def test_new_sub_product_gets_lazy_client_row(db_session, store, depot):
    sub_c = SubProduct(product_id=depot.bougie.id, name="C")
    db_session.add(sub_c)
    db_session.commit()

    position = load_stock_position(store, client_id=depot.client.id)
    line = position.line_for_product(depot.bougie.id)

    assert [sp.sub_product.name for sp in line.sub_products] == ["A", "B", "C"]
    created = store.get_one(ClientSubProduct, client_id=depot.client.id, sub_product_id=sub_c.id)
    assert created is not None
    assert created.current_stock == 0


def test_default_form_keeps_latest_product_info(store, depot, drafts):
    commit_reconciliation(
        store,
        client_id=depot.client.id,
        form=ReconciliationForm.model_validate(
            {"perProductForm": {depot.savon.id: {"counted_stock": "9", "stock_added": "9", "product_info": "vitrine"}}}
        ),
        drafts=drafts,
    )

    form = load_stock_position(store, client_id=depot.client.id).default_form()
    assert form.per_product_form[depot.savon.id].product_info == "vitrine"
    assert form.per_product_form[depot.savon.id].counted_stock == ""
    assert form.per_product_form[depot.bougie.id].product_info == ""


def test_default_form_keeps_cleared_product_info(store, depot, drafts):
    """
    GIVEN un relevé avec l'info "vitrine", puis un relevé où l'info est vidée
    THEN le formulaire par défaut reprend l'info vide
    """
    for counted, info in (("9", "vitrine"), ("8", "")):
        commit_reconciliation(
            store,
            client_id=depot.client.id,
            form=ReconciliationForm.model_validate(
                {"perProductForm": {depot.savon.id: {"counted_stock": counted, "stock_added": "9", "product_info": info}}}
            ),
            drafts=drafts,
        )

    form = load_stock_position(store, client_id=depot.client.id).default_form()
    assert form.per_product_form[depot.savon.id].product_info == ""


# ---------- Prix / ordre ----------
def test_update_client_prices_and_reset(store, depot):
    cp = update_client_prices(
        store,
        client_id=depot.client.id,
        product_id=depot.savon.id,
        custom_price=Decimal("8.00"),
        custom_recommended_sale_price=None,
    )
    assert cp.custom_price == Decimal("8.00")

    cp = update_client_prices(
        store,
        client_id=depot.client.id,
        product_id=depot.savon.id,
        custom_price=None,
        custom_recommended_sale_price=None,
    )
    assert cp.custom_price is None

    with pytest.raises(ReconciliationValidationError):
        update_client_prices(
            store,
            client_id=depot.client.id,
            product_id=depot.savon.id,
            custom_price=Decimal("-1"),
            custom_recommended_sale_price=None,
        )


def test_reorder_products(store, depot):
    cps = reorder_products(store, client_id=depot.client.id, product_ids=[depot.bougie.id])
    assert [(cp.product_id, cp.display_order) for cp in cps] == [(depot.bougie.id, 1), (depot.savon.id, 2)]

    with pytest.raises(NotFoundError):
        reorder_products(store, client_id=depot.client.id, product_ids=[999_999])


# ---------- Ajustement manuel ----------
def test_manual_adjust_plain_product(store, depot):
    """
    GIVEN Savon stock 10
    WHEN correction à 4
    THEN sold=0, added=-6, aucune facture
    """
    result = adjust_stock(store, client_id=depot.client.id, product_id=depot.savon.id, new_stock=4)

    (row,) = result.stock_updates
    assert (row.previous_stock, row.counted_stock, row.stock_sold, row.stock_added, row.new_stock) == (10, 4, 0, -6, 4)
    assert row.invoice_id is None
    assert store.get_one(ClientProduct, client_id=depot.client.id, product_id=depot.savon.id).current_stock == 4


def test_manual_adjust_sub_product_recomputes_parent(store, depot):
    result = adjust_stock(store, client_id=depot.client.id, sub_product_id=depot.sub_b.id, new_stock=1)

    sub_row, parent_row = result.stock_updates
    assert sub_row.sub_product_id == depot.sub_b.id
    assert (sub_row.previous_stock, sub_row.new_stock, sub_row.stock_added) == (6, 1, -5)
    assert parent_row.product_id == depot.bougie.id
    assert (parent_row.previous_stock, parent_row.new_stock) == (10, 5)
    assert result.parent_stock == 5
    assert store.get_one(ClientProduct, client_id=depot.client.id, product_id=depot.bougie.id).current_stock == 5


def test_manual_adjust_rejections(store, depot):
    with pytest.raises(ReconciliationValidationError, match="identique"):
        adjust_stock(store, client_id=depot.client.id, product_id=depot.savon.id, new_stock=10)
    with pytest.raises(ReconciliationValidationError):
        adjust_stock(store, client_id=depot.client.id, product_id=depot.savon.id, new_stock=-2)
    with pytest.raises(BusinessRuleError):
        adjust_stock(store, client_id=depot.client.id, product_id=depot.bougie.id, new_stock=3)
