from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterable, Iterator, Sequence, TypeVar

from sqlalchemy import select, update as sa_update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.app.core.errors import PersistenceError

logger = logging.getLogger(__name__)

M = TypeVar("M")

_MULTI_VALUE_TYPES = (list, tuple, set, frozenset)


class RowStore:
    """
    Accès lignes par clé au-dessus d'une Session SQLAlchemy.

    Contrat :
        get(model, **filters)          -> lignes
        insert(model, rows)            -> lignes insérées
        update(model, filters, patch)  -> lignes modifiées
        soft_delete(model, **filters)  -> nombre de lignes

    Toutes les lectures excluent les lignes dont deleted_at est renseigné.
    Un filtre None devient IS NULL, une liste devient IN (...).
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    # ---------- Helpers ----------
    @staticmethod
    def _conditions(model: Any, filters: dict[str, Any], include_deleted: bool = False) -> list:
        conditions = []
        if not include_deleted and hasattr(model, "deleted_at"):
            conditions.append(model.deleted_at.is_(None))
        for name, value in filters.items():
            column = getattr(model, name)
            if value is None:
                conditions.append(column.is_(None))
            elif isinstance(value, _MULTI_VALUE_TYPES):
                conditions.append(column.in_(list(value)))
            else:
                conditions.append(column == value)
        return conditions

    # ---------- Lectures ----------
    def get(self, model: type[M], *, order_by: Sequence[Any] | None = None, **filters: Any) -> list[M]:
        for name, value in filters.items():
            if isinstance(value, _MULTI_VALUE_TYPES) and not value:
                return []
        stmt = select(model).where(*self._conditions(model, filters))
        if order_by:
            stmt = stmt.order_by(*order_by)
        return list(self.db.execute(stmt).scalars().all())

    def get_one(self, model: type[M], *, order_by: Sequence[Any] | None = None, **filters: Any) -> M | None:
        rows = self.get(model, order_by=order_by, **filters)
        return rows[0] if rows else None

    # ---------- Écritures ----------
    def insert(self, model: type[M], rows: Iterable[dict[str, Any]]) -> list[M]:
        objs = [model(**row) for row in rows]
        if not objs:
            return []
        self.db.add_all(objs)
        self.db.flush()
        return objs

    def update(self, model: type[M], filters: dict[str, Any], patch: dict[str, Any]) -> list[M]:
        conditions = self._conditions(model, filters)
        ids = list(self.db.execute(select(model.id).where(*conditions)).scalars().all())
        if not ids:
            return []

        result = self.db.execute(
            sa_update(model)
            .where(model.id.in_(ids), *conditions)
            .values(**patch)
            .execution_options(synchronize_session="fetch")
        )
        # filtre devenu faux entre la lecture et l'écriture
        if result.rowcount == 0:
            return []
        return list(self.db.execute(select(model).where(model.id.in_(ids))).scalars().all())

    def soft_delete(self, model: type[M], **filters: Any) -> int:
        rows = self.update(model, filters, {"deleted_at": datetime.now(timezone.utc)})
        return len(rows)

    # ---------- Transaction ----------
    @contextmanager
    def transaction(self) -> Iterator["RowStore"]:
        """
        Unité de travail : commit en sortie, rollback complet sur erreur.

        Les erreurs SQLAlchemy sont converties en PersistenceError,
        les erreurs métier sont propagées telles quelles.
        """
        try:
            yield self
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Store operation failed, transaction rolled back")
            raise PersistenceError(str(exc)) from exc
        except Exception:
            self.db.rollback()
            raise
