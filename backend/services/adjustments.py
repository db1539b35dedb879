"""
Reprises de stock : lignes de facture saisies à la main, indépendantes des
produits, toujours en déduction (prix unitaire négatif).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from backend.app.core.errors import ReconciliationValidationError
from backend.app.schemas.reconciliation import PendingAdjustment
from backend.services.reconciliation import parse_count, to_money

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Adjustment:
    operation_name: str
    unit_price: Decimal  # négatif
    quantity: int

    @property
    def amount(self) -> Decimal:
        return to_money(self.unit_price * self.quantity)


def parse_price(raw: str | Decimal | int | float | None) -> Decimal:
    """Montant saisi, virgule acceptée comme séparateur décimal."""
    if raw is None:
        raise ValueError("empty price")
    text = str(raw).strip().replace(",", ".")
    if not text:
        raise ValueError("empty price")
    try:
        value = Decimal(text)
    except InvalidOperation:
        raise ValueError(f"invalid price {raw!r}") from None
    if not value.is_finite():
        raise ValueError(f"invalid price {raw!r}")
    return value


def parse_quantity(raw: str | int | None) -> int:
    """Entier strictement positif."""
    try:
        qty = parse_count(None if raw is None else str(raw))
    except ValueError:
        qty = None
    if qty is None or qty <= 0:
        raise ValueError(f"invalid quantity {raw!r}")
    return qty


class AdjustmentLedger:
    """Liste ordonnée des reprises en attente pour le relevé en cours."""

    def __init__(self, items: list[Adjustment] | None = None) -> None:
        self._items: list[Adjustment] = list(items or [])

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self._items)

    @property
    def items(self) -> list[Adjustment]:
        return list(self._items)

    def add(self, operation_name: str, unit_price: str | Decimal, quantity: str | int) -> Adjustment:
        name = (operation_name or "").strip()
        if not name:
            raise ReconciliationValidationError("Veuillez renseigner le nom de l'opération")
        try:
            price = parse_price(unit_price)
        except ValueError:
            raise ReconciliationValidationError("Le prix unitaire doit être un nombre positif") from None
        if price <= 0:
            raise ReconciliationValidationError("Le prix unitaire doit être un nombre positif")
        try:
            qty = parse_quantity(quantity)
        except ValueError:
            raise ReconciliationValidationError("La quantité doit être un nombre entier positif") from None

        adjustment = Adjustment(operation_name=name, unit_price=-to_money(abs(price)), quantity=qty)
        self._items.append(adjustment)
        logger.debug("Adjustment added: %s x%s at %s", name, qty, adjustment.unit_price)
        return adjustment

    def remove(self, index: int) -> Adjustment:
        if index < 0 or index >= len(self._items):
            raise IndexError(f"no adjustment at index {index}")
        return self._items.pop(index)

    def clear(self) -> None:
        self._items.clear()

    def total(self) -> Decimal:
        return to_money(sum((a.amount for a in self._items), Decimal("0")))

    # ---------- Forme brouillon ----------
    def to_pending(self) -> list[PendingAdjustment]:
        return [
            PendingAdjustment(
                operation_name=a.operation_name,
                unit_price=str(a.unit_price),
                quantity=str(a.quantity),
            )
            for a in self._items
        ]

    @classmethod
    def from_pending(cls, pending: list[PendingAdjustment]) -> "AdjustmentLedger":
        """
        Relit les reprises d'un brouillon. Le prix est déjà signé ;
        il est renormalisé en négatif.
        """
        items = []
        for p in pending:
            try:
                price = parse_price(p.unit_price)
                qty = parse_quantity(p.quantity)
            except ValueError:
                raise ReconciliationValidationError(
                    f"Reprise de stock invalide : « {p.operation_name} »"
                ) from None
            name = (p.operation_name or "").strip()
            if not name or price == 0:
                raise ReconciliationValidationError(f"Reprise de stock invalide : « {p.operation_name} »")
            items.append(Adjustment(operation_name=name, unit_price=-to_money(abs(price)), quantity=qty))
        return cls(items)
