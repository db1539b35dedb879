"""
Erreurs métier du moteur de relevé de stock.

Les services lèvent ces exceptions ; la couche API les traduit en
HTTPException (voir backend.app.main).
"""
from __future__ import annotations


class ReconciliationValidationError(ValueError):
    """Saisie invalide : bloque la soumission, aucune écriture."""


class NothingToCommitError(ReconciliationValidationError):
    def __init__(self, message: str = "Aucun changement détecté") -> None:
        super().__init__(message)


class BusinessRuleError(ValueError):
    """Règle métier violée : bloque la soumission, aucune écriture."""


class NegativeInvoiceTotalError(BusinessRuleError):
    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message
            or "Une facture ne peut pas avoir un montant négatif. Veuillez créer un avoir."
        )


class DuplicateAssociationError(BusinessRuleError):
    pass


class NotFoundError(LookupError):
    pass


class PersistenceError(RuntimeError):
    """Un appel au stockage a échoué (transaction annulée)."""


class DocumentGenerationError(RuntimeError):
    """Génération PDF en échec : rétrogradée en avertissement."""
