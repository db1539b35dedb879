"""
Position de stock d'un client en dépôt-vente.

Lecture de la position (produits associés, sous-produits, stocks courants)
et opérations de maintenance : association, dissociation, prix client,
ordre d'affichage, ajustement manuel du stock.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from backend.app.core.errors import (
    BusinessRuleError,
    DuplicateAssociationError,
    NotFoundError,
    ReconciliationValidationError,
)
from backend.app.db.models.models_v1 import (
    Client,
    ClientProduct,
    ClientSubProduct,
    Product,
    StockUpdate,
    SubProduct,
)
from backend.app.schemas.reconciliation import ProductLineForm, ReconciliationForm
from backend.services.reconciliation import Movement, manual_adjustment
from backend.services.row_store import RowStore

logger = logging.getLogger(__name__)


@dataclass
class SubProductPosition:
    sub_product: SubProduct
    client_sub_product: ClientSubProduct


@dataclass
class ProductPosition:
    client_product: ClientProduct
    product: Product
    sub_products: list[SubProductPosition] = field(default_factory=list)

    @property
    def has_sub_products(self) -> bool:
        return bool(self.sub_products)


@dataclass
class ClientStockPosition:
    client: Client
    lines: list[ProductPosition]
    last_product_info: dict[int, str] = field(default_factory=dict)

    def line_for_product(self, product_id: int) -> ProductPosition | None:
        for line in self.lines:
            if line.product.id == product_id:
                return line
        return None

    def default_form(self) -> ReconciliationForm:
        """Formulaire vierge : seule l'info produit du dernier relevé est reprise."""
        return ReconciliationForm(
            per_product_form={
                line.product.id: ProductLineForm(product_info=self.last_product_info.get(line.product.id, ""))
                for line in self.lines
            }
        )


@dataclass
class ManualAdjustmentResult:
    stock_updates: list[StockUpdate]
    current_stock: int
    parent_stock: int | None = None


def require_client(store: RowStore, client_id: int) -> Client:
    client = store.get_one(Client, id=client_id)
    if client is None:
        raise NotFoundError(f"Client {client_id} introuvable")
    return client


def require_product(store: RowStore, product_id: int) -> Product:
    product = store.get_one(Product, id=product_id)
    if product is None:
        raise NotFoundError(f"Produit {product_id} introuvable")
    return product


def require_client_product(store: RowStore, client_id: int, product_id: int) -> ClientProduct:
    cp = store.get_one(ClientProduct, client_id=client_id, product_id=product_id)
    if cp is None:
        raise NotFoundError(f"Produit {product_id} non associé au client {client_id}")
    return cp


def stock_update_row(client_id: int, movement: Movement, **extra) -> dict:
    return {
        "client_id": client_id,
        "previous_stock": movement.previous_stock,
        "counted_stock": movement.counted_stock,
        "stock_sold": movement.stock_sold,
        "stock_added": movement.stock_added,
        "new_stock": movement.new_stock,
        **extra,
    }


# ---------- Lecture ----------
def load_stock_position(store: RowStore, *, client_id: int) -> ClientStockPosition:
    """
    Charge la position de stock complète d'un client.

    Propriétés :
    - lignes triées par display_order
    - un sous-produit apparu depuis l'association reçoit sa ligne client
      (stock 0) au chargement
    - last_product_info = info produit du dernier relevé, par produit
    """
    client = require_client(store, client_id)

    cps = store.get(
        ClientProduct,
        client_id=client_id,
        order_by=[ClientProduct.display_order.asc(), ClientProduct.id.asc()],
    )
    product_ids = [cp.product_id for cp in cps]
    products = {p.id: p for p in store.get(Product, id=product_ids)}
    subs = store.get(SubProduct, product_id=product_ids, order_by=[SubProduct.id.asc()])
    csps = {
        csp.sub_product_id: csp
        for csp in store.get(ClientSubProduct, client_id=client_id, sub_product_id=[s.id for s in subs])
    }

    missing = [sp for sp in subs if sp.id not in csps]
    if missing:
        with store.transaction():
            created = store.insert(
                ClientSubProduct,
                [
                    {"client_id": client_id, "sub_product_id": sp.id, "initial_stock": 0, "current_stock": 0}
                    for sp in missing
                ],
            )
        for csp in created:
            csps[csp.sub_product_id] = csp
        logger.info("Created %d missing client sub-product rows for client %s", len(created), client_id)

    subs_by_product: dict[int, list[SubProductPosition]] = {}
    for sp in subs:
        subs_by_product.setdefault(sp.product_id, []).append(SubProductPosition(sp, csps[sp.id]))

    lines = [
        ProductPosition(cp, products[cp.product_id], subs_by_product.get(cp.product_id, []))
        for cp in cps
        if cp.product_id in products
    ]

    last_info: dict[int, str] = {}
    history = store.get(
        StockUpdate,
        client_id=client_id,
        product_id=product_ids,
        order_by=[StockUpdate.id.desc()],
    )
    # dernier relevé du produit, même si la note a été vidée
    for row in history:
        if row.product_id not in last_info:
            last_info[row.product_id] = row.product_info or ""

    return ClientStockPosition(client=client, lines=lines, last_product_info=last_info)


# ---------- Association ----------
def _check_price(value: Decimal | None, label: str) -> None:
    if value is not None and value < 0:
        raise ReconciliationValidationError(f"Le {label} ne peut pas être négatif")


def associate_product(
    store: RowStore,
    *,
    client_id: int,
    product_id: int,
    initial_stock: int | None = None,
    sub_product_stocks: dict[int, int] | None = None,
    custom_price: Decimal | None = None,
    custom_recommended_sale_price: Decimal | None = None,
) -> ClientProduct:
    """
    Associe un produit au client avec son stock de départ.

    Règle métier :
        - un produit simple exige initial_stock >= 0
        - un produit à sous-produits prend la somme des stocks de ses
          sous-produits (0 par défaut)
        - lignes StockUpdate d'ouverture : previous = counted = 0
    """
    require_client(store, client_id)
    product = require_product(store, product_id)
    if store.get_one(ClientProduct, client_id=client_id, product_id=product_id) is not None:
        raise DuplicateAssociationError(f"Le produit « {product.name} » est déjà associé à ce client")

    _check_price(custom_price, "prix personnalisé")
    _check_price(custom_recommended_sale_price, "prix de vente conseillé")

    subs = store.get(SubProduct, product_id=product_id, order_by=[SubProduct.id.asc()])
    sub_stocks: dict[int, int] = {}
    if subs:
        given = sub_product_stocks or {}
        for sp in subs:
            qty = int(given.get(sp.id, 0))
            if qty < 0:
                raise ReconciliationValidationError(f"Le stock initial de « {sp.name} » doit être positif ou nul")
            sub_stocks[sp.id] = qty
        total = sum(sub_stocks.values())
    else:
        if initial_stock is None or initial_stock < 0:
            raise ReconciliationValidationError(f"Le stock initial de « {product.name} » doit être positif ou nul")
        total = initial_stock

    existing = store.get(ClientProduct, client_id=client_id)
    next_order = max((cp.display_order for cp in existing), default=0) + 1

    with store.transaction():
        audit_rows = [
            stock_update_row(client_id, Movement(0, 0, 0, qty, qty), sub_product_id=sp_id)
            for sp_id, qty in sub_stocks.items()
        ]
        audit_rows.append(stock_update_row(client_id, Movement(0, 0, 0, total, total), product_id=product_id))
        store.insert(StockUpdate, audit_rows)

        if sub_stocks:
            store.insert(
                ClientSubProduct,
                [
                    {"client_id": client_id, "sub_product_id": sp_id, "initial_stock": qty, "current_stock": qty}
                    for sp_id, qty in sub_stocks.items()
                ],
            )
        (cp,) = store.insert(
            ClientProduct,
            [
                {
                    "client_id": client_id,
                    "product_id": product_id,
                    "custom_price": custom_price,
                    "custom_recommended_sale_price": custom_recommended_sale_price,
                    "initial_stock": total,
                    "current_stock": total,
                    "display_order": next_order,
                }
            ],
        )

    logger.info("Associated product %s to client %s (stock=%s)", product_id, client_id, total)
    return cp


def dissociate_product(store: RowStore, *, client_id: int, product_id: int) -> None:
    require_client_product(store, client_id, product_id)
    sub_ids = [sp.id for sp in store.get(SubProduct, product_id=product_id)]
    with store.transaction():
        store.soft_delete(ClientProduct, client_id=client_id, product_id=product_id)
        if sub_ids:
            store.soft_delete(ClientSubProduct, client_id=client_id, sub_product_id=sub_ids)
    logger.info("Dissociated product %s from client %s", product_id, client_id)


def update_client_prices(
    store: RowStore,
    *,
    client_id: int,
    product_id: int,
    custom_price: Decimal | None,
    custom_recommended_sale_price: Decimal | None,
) -> ClientProduct:
    """None remet le prix par défaut du produit."""
    require_client_product(store, client_id, product_id)
    _check_price(custom_price, "prix personnalisé")
    _check_price(custom_recommended_sale_price, "prix de vente conseillé")
    with store.transaction():
        (cp,) = store.update(
            ClientProduct,
            {"client_id": client_id, "product_id": product_id},
            {"custom_price": custom_price, "custom_recommended_sale_price": custom_recommended_sale_price},
        )
    return cp


def reorder_products(store: RowStore, *, client_id: int, product_ids: list[int]) -> list[ClientProduct]:
    """Les produits listés prennent l'ordre 1..n, les autres suivent dans leur ordre actuel."""
    require_client(store, client_id)
    cps = store.get(
        ClientProduct,
        client_id=client_id,
        order_by=[ClientProduct.display_order.asc(), ClientProduct.id.asc()],
    )
    by_product = {cp.product_id: cp for cp in cps}
    unknown = [pid for pid in product_ids if pid not in by_product]
    if unknown:
        raise NotFoundError(f"Produits non associés au client : {unknown}")

    ordered = list(dict.fromkeys(product_ids))
    ordered += [cp.product_id for cp in cps if cp.product_id not in ordered]

    with store.transaction():
        for position, pid in enumerate(ordered, start=1):
            if by_product[pid].display_order != position:
                store.update(ClientProduct, {"id": by_product[pid].id}, {"display_order": position})

    return store.get(
        ClientProduct,
        client_id=client_id,
        order_by=[ClientProduct.display_order.asc(), ClientProduct.id.asc()],
    )


# ---------- Ajustement manuel ----------
def adjust_stock(
    store: RowStore,
    *,
    client_id: int,
    new_stock: int,
    product_id: int | None = None,
    sub_product_id: int | None = None,
) -> ManualAdjustmentResult:
    """
    Correction manuelle du stock, hors relevé et hors facture.

    Règle métier :
        previous = ancien stock, counted = new = nouveau stock,
        stock_sold = 0, stock_added = new - old (peut être négatif)

    Pour un sous-produit, le stock du produit parent est recalculé
    (somme des sous-produits) avec sa propre ligne d'historique.
    """
    if (product_id is None) == (sub_product_id is None):
        raise ReconciliationValidationError("Indiquer soit un produit, soit un sous-produit")
    if new_stock < 0:
        raise ReconciliationValidationError("Le stock ne peut pas être négatif")

    if product_id is not None:
        cp = require_client_product(store, client_id, product_id)
        if store.get(SubProduct, product_id=product_id):
            raise BusinessRuleError(
                "Le stock de ce produit est calculé à partir de ses sous-produits : ajustez les sous-produits"
            )
        if new_stock == cp.current_stock:
            raise ReconciliationValidationError("Le nouveau stock est identique au stock actuel")

        movement = manual_adjustment(cp.current_stock, new_stock)
        with store.transaction():
            rows = store.insert(StockUpdate, [stock_update_row(client_id, movement, product_id=product_id)])
            store.update(ClientProduct, {"id": cp.id}, {"current_stock": new_stock})

        logger.info("Manual stock adjustment client=%s product=%s %s -> %s",
                    client_id, product_id, movement.previous_stock, new_stock)
        return ManualAdjustmentResult(stock_updates=rows, current_stock=new_stock)

    sp = store.get_one(SubProduct, id=sub_product_id)
    if sp is None:
        raise NotFoundError(f"Sous-produit {sub_product_id} introuvable")
    cp = require_client_product(store, client_id, sp.product_id)

    siblings = store.get(SubProduct, product_id=sp.product_id)
    csps = {
        csp.sub_product_id: csp
        for csp in store.get(ClientSubProduct, client_id=client_id, sub_product_id=[s.id for s in siblings])
    }
    csp = csps.get(sp.id)
    old = csp.current_stock if csp is not None else 0
    if new_stock == old:
        raise ReconciliationValidationError("Le nouveau stock est identique au stock actuel")

    parent_total = sum(c.current_stock for sid, c in csps.items() if sid != sp.id) + new_stock
    sub_movement = manual_adjustment(old, new_stock)
    parent_movement = manual_adjustment(cp.current_stock, parent_total)

    with store.transaction():
        rows = store.insert(
            StockUpdate,
            [
                stock_update_row(client_id, sub_movement, sub_product_id=sp.id),
                stock_update_row(client_id, parent_movement, product_id=sp.product_id),
            ],
        )
        if csp is None:
            store.insert(
                ClientSubProduct,
                [{"client_id": client_id, "sub_product_id": sp.id, "initial_stock": new_stock, "current_stock": new_stock}],
            )
        else:
            store.update(ClientSubProduct, {"id": csp.id}, {"current_stock": new_stock})
        store.update(ClientProduct, {"id": cp.id}, {"current_stock": parent_total})

    logger.info("Manual stock adjustment client=%s sub_product=%s %s -> %s (parent=%s)",
                client_id, sp.id, old, new_stock, parent_total)
    return ManualAdjustmentResult(stock_updates=rows, current_stock=new_stock, parent_stock=parent_total)
