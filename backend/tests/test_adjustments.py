from decimal import Decimal

import pytest

from backend.app.core.errors import ReconciliationValidationError
from backend.services.adjustments import AdjustmentLedger


def test_add_stores_negative_price():
    ledger = AdjustmentLedger()
    adj = ledger.add("  Casse ", "5,50", "2")

    assert adj.operation_name == "Casse"
    assert adj.unit_price == Decimal("-5.50")
    assert adj.quantity == 2
    assert adj.amount == Decimal("-11.00")
    assert ledger.total() == Decimal("-11.00")


def test_add_rejects_negative_price():
    ledger = AdjustmentLedger()
    with pytest.raises(ReconciliationValidationError):
        ledger.add("Casse", "-5", "1")


@pytest.mark.parametrize(
    "name,price,qty",
    [
        ("", "5", "1"),
        ("Casse", "0", "1"),
        ("Casse", "abc", "1"),
        ("Casse", "5", "0"),
        ("Casse", "5", "1.5"),
        ("Casse", "5", ""),
    ],
)
def test_add_validation(name, price, qty):
    ledger = AdjustmentLedger()
    with pytest.raises(ReconciliationValidationError):
        ledger.add(name, price, qty)
    assert len(ledger) == 0


def test_remove_and_clear():
    ledger = AdjustmentLedger()
    ledger.add("Casse", "5", "1")
    ledger.add("Retour", "2", "3")

    removed = ledger.remove(0)
    assert removed.operation_name == "Casse"
    assert [a.operation_name for a in ledger] == ["Retour"]
    assert ledger.total() == Decimal("-6.00")

    with pytest.raises(IndexError):
        ledger.remove(5)

    ledger.clear()
    assert ledger.total() == Decimal("0")


def test_pending_form_round_trip():
    ledger = AdjustmentLedger()
    ledger.add("Casse", "5", "2")

    pending = ledger.to_pending()
    assert pending[0].unit_price == "-5.00"
    assert pending[0].quantity == "2"

    restored = AdjustmentLedger.from_pending(pending)
    assert restored.items == ledger.items
