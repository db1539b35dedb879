"""
Calcul du relevé de stock (fonctions pures, aucun accès base).

Règles métier, pour une ligne produit ou un agrégat de sous-produits :

    stock_sold  = max(0, previous - counted)
    new_stock   = nouveau dépôt saisi (c'est le nouveau stock, pas un incrément)
    stock_added = max(0, new_stock - counted)          (réassort)
    amount      = stock_sold x prix effectif

Un produit à sous-produits est calculé sous-produit par sous-produit puis
sommé. Un sous-produit non saisi contribue son dernier stock connu
(previous = counted = new) sans générer de mouvement.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import TYPE_CHECKING, Iterable

from backend.app.core.errors import ReconciliationValidationError
from backend.app.schemas.reconciliation import ReconciliationForm

if TYPE_CHECKING:
    from backend.services.stock_positions import ProductPosition

CENT = Decimal("0.01")
_DIGITS = re.compile(r"^\d+$")


@dataclass(frozen=True)
class Movement:
    previous_stock: int
    counted_stock: int
    stock_sold: int
    stock_added: int
    new_stock: int


@dataclass
class SubProductMovement:
    sub_product_id: int
    client_sub_product_id: int
    name: str
    movement: Movement
    touched: bool


@dataclass
class LineMovement:
    product_id: int
    client_product_id: int
    product_name: str
    movement: Movement
    unit_price: Decimal
    amount: Decimal
    is_custom_price: bool
    product_info: str = ""
    sub_products: list[SubProductMovement] = field(default_factory=list)

    @property
    def has_sub_products(self) -> bool:
        return bool(self.sub_products)

    @property
    def touched_sub_products(self) -> list[SubProductMovement]:
        return [s for s in self.sub_products if s.touched]


# ---------- Parsing ----------
def is_filled(raw: str | None) -> bool:
    return raw is not None and raw.strip() != ""


def parse_count(raw: str | None) -> int | None:
    """Entier >= 0, None si vide. ValueError sinon."""
    if not is_filled(raw):
        return None
    text = raw.strip()
    if not _DIGITS.match(text):
        raise ValueError(f"invalid count {raw!r}")
    return int(text)


def to_money(value: Decimal | int | float | str) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


# ---------- Prix ----------
def effective_price(client_product, product) -> Decimal:
    """Prix client personnalisé, sinon prix produit, sinon 0."""
    if client_product is not None and client_product.custom_price is not None:
        return to_money(client_product.custom_price)
    if product is not None and product.price is not None:
        return to_money(product.price)
    return to_money(0)


def effective_recommended_price(client_product, product) -> Decimal | None:
    if client_product is not None and client_product.custom_recommended_sale_price is not None:
        return to_money(client_product.custom_recommended_sale_price)
    if product is not None and product.recommended_sale_price is not None:
        return to_money(product.recommended_sale_price)
    return None


# ---------- Mouvements ----------
def compute_movement(previous_stock: int, counted_stock: int, new_deposit: int) -> Movement:
    new_stock = new_deposit
    return Movement(
        previous_stock=previous_stock,
        counted_stock=counted_stock,
        stock_sold=max(0, previous_stock - counted_stock),
        stock_added=max(0, new_stock - counted_stock),
        new_stock=new_stock,
    )


def unchanged_movement(stock: int) -> Movement:
    return Movement(stock, stock, 0, 0, stock)


def manual_adjustment(previous_stock: int, new_stock: int) -> Movement:
    # toujours présenté comme un réassort/correction : aucune vente
    return Movement(
        previous_stock=previous_stock,
        counted_stock=new_stock,
        stock_sold=0,
        stock_added=new_stock - previous_stock,
        new_stock=new_stock,
    )


def aggregate(movements: Iterable[Movement]) -> Movement:
    previous = counted = sold = added = new = 0
    for m in movements:
        previous += m.previous_stock
        counted += m.counted_stock
        sold += m.stock_sold
        added += m.stock_added
        new += m.new_stock
    return Movement(previous, counted, sold, added, new)


def live_reassort(counted_raw: str | None, added_raw: str | None) -> int | None:
    """Réassort affiché en direct : stock_added - counted_stock."""
    try:
        counted = parse_count(counted_raw)
        added = parse_count(added_raw)
    except ValueError:
        return None
    if counted is None or added is None:
        return None
    return added - counted


def read_entry(
    label: str,
    counted_raw: str | None,
    added_raw: str | None,
    previous_stock: int,
) -> Movement | None:
    """
    Valide une paire (stock compté, nouveau dépôt) et calcule le mouvement.

    None si les deux champs sont vides.
    """
    has_counted = is_filled(counted_raw)
    has_added = is_filled(added_raw)

    if not has_counted and not has_added:
        return None
    if has_counted and not has_added:
        raise ReconciliationValidationError(f"Veuillez renseigner le « Nouveau dépôt » pour {label}")
    if has_added and not has_counted:
        raise ReconciliationValidationError(f"Veuillez renseigner le « Stock compté » pour {label}")

    try:
        counted = parse_count(counted_raw)
    except ValueError:
        raise ReconciliationValidationError(
            f"Le stock compté doit être un nombre entier positif pour {label}"
        ) from None
    try:
        new_deposit = parse_count(added_raw)
    except ValueError:
        raise ReconciliationValidationError(
            f"Le nouveau dépôt doit être un nombre entier positif pour {label}"
        ) from None

    return compute_movement(previous_stock, counted, new_deposit)


def prepare_lines(positions: Iterable["ProductPosition"], form: ReconciliationForm) -> list[LineMovement]:
    """
    Passe de validation complète sur la position de stock d'un client.

    Lève ReconciliationValidationError à la première ligne invalide.
    """
    lines: list[LineMovement] = []

    for pos in positions:
        cp = pos.client_product
        product = pos.product
        price = effective_price(cp, product)
        is_custom = cp.custom_price is not None
        product_form = form.per_product_form.get(product.id)
        product_info = product_form.product_info if product_form else ""

        if pos.has_sub_products:
            sub_movements: list[SubProductMovement] = []
            for sp_pos in pos.sub_products:
                sp = sp_pos.sub_product
                csp = sp_pos.client_sub_product
                sp_form = form.per_sub_product_form.get(sp.id)
                movement = None
                if sp_form is not None:
                    movement = read_entry(
                        f"le sous-produit « {sp.name} » de « {product.name} »",
                        sp_form.counted_stock,
                        sp_form.stock_added,
                        csp.current_stock,
                    )
                sub_movements.append(
                    SubProductMovement(
                        sub_product_id=sp.id,
                        client_sub_product_id=csp.id,
                        name=sp.name,
                        movement=movement or unchanged_movement(csp.current_stock),
                        touched=movement is not None,
                    )
                )

            if not any(s.touched for s in sub_movements):
                continue

            total = aggregate(s.movement for s in sub_movements)
            lines.append(
                LineMovement(
                    product_id=product.id,
                    client_product_id=cp.id,
                    product_name=product.name,
                    movement=total,
                    unit_price=price,
                    amount=to_money(total.stock_sold * price),
                    is_custom_price=is_custom,
                    product_info=product_info,
                    sub_products=sub_movements,
                )
            )
            continue

        if product_form is None:
            continue
        movement = read_entry(
            f"« {product.name} »",
            product_form.counted_stock,
            product_form.stock_added,
            cp.current_stock,
        )
        if movement is None:
            continue
        lines.append(
            LineMovement(
                product_id=product.id,
                client_product_id=cp.id,
                product_name=product.name,
                movement=movement,
                unit_price=price,
                amount=to_money(movement.stock_sold * price),
                is_custom_price=is_custom,
                product_info=product_info,
            )
        )

    return lines
