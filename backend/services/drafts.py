"""
Brouillons de relevé (et de formulaire d'avoir).

Deux niveaux de persistance :
    - cache local : un fichier JSON par (type, client), écrit à chaque frappe
    - table drafts : une seule ligne vivante par (client, type), synchronisée
      au plus une fois par intervalle

Cycle de vie d'une session :
    CLEAN -> DIRTY -> (DISCARDED | COMMITTED) -> CLEAN
    PENDING_DECISION : un brouillon existant attend reprise ou abandon
    BUSY             : soumission en cours
    L'autosave est suspendu en PENDING_DECISION, BUSY, DISCARDED et COMMITTED.
"""
from __future__ import annotations

import json
import logging
import os
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from backend.app.core.config import settings
from backend.app.core.errors import PersistenceError
from backend.app.db.models.core_types import DraftKind, DraftState
from backend.app.db.models.models_v1 import Draft
from backend.app.schemas.reconciliation import CreditNoteForm, ReconciliationForm
from backend.services.reconciliation import is_filled
from backend.services.row_store import RowStore

logger = logging.getLogger(__name__)


@dataclass
class DraftRecord:
    client_id: int
    kind: DraftKind
    data: dict[str, Any]
    source: str  # "local" | "remote"


# ---------- Contenu ----------
def is_meaningful(data: dict[str, Any] | None, kind: DraftKind = DraftKind.stock_update) -> bool:
    """Vrai si le brouillon contient au moins une saisie qui mérite d'être reprise."""
    if not data:
        return False
    if kind == DraftKind.credit_note:
        form = CreditNoteForm.model_validate(data)
        return any(is_filled(v) for v in (form.invoice_id, form.operation_name, form.quantity, form.unit_price))

    form = ReconciliationForm.model_validate(data)
    if form.pending_adjustments:
        return True
    for line in form.per_product_form.values():
        if is_filled(line.counted_stock) or is_filled(line.stock_added):
            return True
    for line in form.per_sub_product_form.values():
        if is_filled(line.counted_stock) or is_filled(line.stock_added):
            return True
    return False


def is_empty(data: dict[str, Any] | None, kind: DraftKind = DraftKind.stock_update) -> bool:
    """Comme is_meaningful, mais une info produit seule suffit à rendre le brouillon non vide."""
    if is_meaningful(data, kind):
        return False
    if not data or kind == DraftKind.credit_note:
        return True
    form = ReconciliationForm.model_validate(data)
    return not any(is_filled(line.product_info) for line in form.per_product_form.values())


# ---------- Cache local ----------
class LocalDraftCache:
    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)

    def _path(self, client_id: int, kind: DraftKind) -> Path:
        return self.directory / f"{kind.value}-{client_id}.json"

    def read(self, client_id: int, kind: DraftKind) -> dict[str, Any] | None:
        path = self._path(client_id, kind)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            logger.warning("Unreadable local draft %s, ignored", path)
            return None

    def write(self, client_id: int, kind: DraftKind, data: dict[str, Any]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(client_id, kind)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp, path)

    def remove(self, client_id: int, kind: DraftKind) -> None:
        self._path(client_id, kind).unlink(missing_ok=True)


# ---------- Store ----------
class DraftStore:
    """load / save / delete d'un brouillon, cache local puis table drafts."""

    def __init__(self, store: RowStore, cache: LocalDraftCache | None = None) -> None:
        self.store = store
        self.cache = cache or LocalDraftCache(settings.DRAFT_CACHE_DIR)

    def load(self, client_id: int, kind: DraftKind = DraftKind.stock_update) -> DraftRecord | None:
        data = self.cache.read(client_id, kind)
        if data is not None:
            return DraftRecord(client_id, kind, data, source="local")

        row = self.store.get_one(
            Draft,
            client_id=client_id,
            kind=kind,
            order_by=[Draft.updated_at.desc(), Draft.id.desc()],
        )
        if row is None:
            return None
        return DraftRecord(client_id, kind, dict(row.draft_data), source="remote")

    def save_local(self, client_id: int, data: dict[str, Any], kind: DraftKind = DraftKind.stock_update) -> None:
        self.cache.write(client_id, kind, data)

    def save_remote(self, client_id: int, data: dict[str, Any], kind: DraftKind = DraftKind.stock_update) -> Draft:
        with self.store.transaction():
            rows = self.store.update(Draft, {"client_id": client_id, "kind": kind}, {"draft_data": data})
            if not rows:
                rows = self.store.insert(Draft, [{"client_id": client_id, "kind": kind, "draft_data": data}])
        return rows[0]

    def save(self, client_id: int, data: dict[str, Any], kind: DraftKind = DraftKind.stock_update) -> Draft:
        self.save_local(client_id, data, kind)
        return self.save_remote(client_id, data, kind)

    def delete(self, client_id: int, kind: DraftKind = DraftKind.stock_update) -> None:
        """Supprime cache et ligne ; vérifie la suppression et réessaie une fois."""
        self.cache.remove(client_id, kind)
        for attempt in (1, 2):
            with self.store.transaction():
                self.store.soft_delete(Draft, client_id=client_id, kind=kind)
            if not self.store.get(Draft, client_id=client_id, kind=kind):
                return
            logger.warning("Draft for client %s still present after delete (attempt %d)", client_id, attempt)
        raise PersistenceError(f"Impossible de supprimer le brouillon du client {client_id}")


# ---------- Session ----------
class DraftSession:
    def __init__(
        self,
        client_id: int,
        kind: DraftKind = DraftKind.stock_update,
        *,
        sync_interval: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client_id = client_id
        self.kind = kind
        self.state = DraftState.clean
        self.sync_interval = settings.DRAFT_SYNC_INTERVAL_SECONDS if sync_interval is None else sync_interval
        self._clock = clock
        self._last_sync: float | None = None
        self._unsynced: dict[str, Any] | None = None
        self._pending: DraftRecord | None = None
        # vérification d'état + écriture sous le même verrou
        self._lock = threading.RLock()

    @property
    def autosave_suspended(self) -> bool:
        return self.state in (
            DraftState.pending_decision,
            DraftState.busy,
            DraftState.discarded,
            DraftState.committed,
        )

    def open(self, drafts: DraftStore) -> DraftRecord | None:
        """Ouverture du formulaire : signale un brouillon existant à reprendre."""
        with self._lock:
            if self.state == DraftState.busy:
                return None
            record = drafts.load(self.client_id, self.kind)
            if record is not None and is_meaningful(record.data, self.kind):
                self._pending = record
                self.state = DraftState.pending_decision
                return record
            self._pending = None
            if self.state != DraftState.dirty:
                self.state = DraftState.clean
            return None

    def resume(self, drafts: DraftStore) -> dict[str, Any] | None:
        with self._lock:
            record = self._pending or drafts.load(self.client_id, self.kind)
            self._pending = None
            if record is None:
                self.state = DraftState.clean
                return None
            self.state = DraftState.dirty
        logger.info("Draft resumed for client %s (%s, %s)", self.client_id, self.kind.value, record.source)
        return record.data

    def discard(self, drafts: DraftStore, default_form: dict[str, Any] | None = None) -> dict[str, Any]:
        """Abandon du brouillon : retourne le formulaire par défaut."""
        with self._lock:
            self.state = DraftState.discarded
            try:
                drafts.delete(self.client_id, self.kind)
            finally:
                self._reset()
        logger.info("Draft discarded for client %s (%s)", self.client_id, self.kind.value)
        return default_form or {}

    def autosave(self, drafts: DraftStore, data: dict[str, Any]) -> bool:
        """
        Écrit le cache local immédiatement, la table au plus une fois par intervalle.

        Retourne True si la table a été synchronisée.
        """
        with self._lock:
            if self.autosave_suspended or is_empty(data, self.kind):
                return False

            drafts.save_local(self.client_id, data, self.kind)
            self.state = DraftState.dirty
            self._unsynced = data

            now = self._clock()
            if self._last_sync is not None and now - self._last_sync < self.sync_interval:
                return False
            return self._sync(drafts, now)

    def save_now(self, drafts: DraftStore, data: dict[str, Any]) -> bool:
        """Enregistrement immédiat (cache + table), hors debounce."""
        with self._lock:
            if self.autosave_suspended:
                return False
            drafts.save(self.client_id, data, self.kind)
            self.state = DraftState.dirty
            self._unsynced = None
            self._last_sync = self._clock()
            return True

    def flush(self, drafts: DraftStore) -> bool:
        with self._lock:
            if self._unsynced is None or self.autosave_suspended:
                return False
            return self._sync(drafts, self._clock())

    def _sync(self, drafts: DraftStore, now: float) -> bool:
        drafts.save_remote(self.client_id, self._unsynced, self.kind)
        self._last_sync = now
        self._unsynced = None
        return True

    # ---------- Soumission ----------
    def begin_commit(self) -> None:
        with self._lock:
            self.state = DraftState.busy

    def abort_commit(self) -> None:
        with self._lock:
            self.state = DraftState.dirty

    def finish_commit(self, drafts: DraftStore) -> list[str]:
        """Après soumission réussie : suppression du brouillon, erreurs en avertissements."""
        warnings: list[str] = []
        with self._lock:
            self.state = DraftState.committed
            try:
                drafts.delete(self.client_id, self.kind)
            except (PersistenceError, OSError) as exc:
                logger.warning("Draft deletion failed for client %s: %s", self.client_id, exc)
                warnings.append(f"Le brouillon n'a pas pu être supprimé : {exc}")
            self._reset()
        return warnings

    def _reset(self) -> None:
        self.state = DraftState.clean
        self._pending = None
        self._unsynced = None
        self._last_sync = None


class DraftSessionRegistry:
    """Une session par (client, type), conservée sur app.state."""

    def __init__(self, **session_kwargs: Any) -> None:
        self._sessions: dict[tuple[int, DraftKind], DraftSession] = {}
        self._lock = threading.Lock()
        self._session_kwargs = session_kwargs

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, client_id: int, kind: DraftKind = DraftKind.stock_update) -> DraftSession:
        with self._lock:
            key = (client_id, kind)
            if key not in self._sessions:
                self._sessions[key] = DraftSession(client_id, kind, **self._session_kwargs)
            return self._sessions[key]

    def release(self, session: DraftSession) -> None:
        """Oublie une session revenue à CLEAN (après soumission ou abandon)."""
        with self._lock:
            key = (session.client_id, session.kind)
            if self._sessions.get(key) is session and session.state == DraftState.clean:
                del self._sessions[key]
