from backend.app.db.models.core_types import DraftKind, DraftState
from backend.app.db.models.models_v1 import Draft
from backend.services.drafts import DraftSession, DraftSessionRegistry, DraftStore, is_empty, is_meaningful


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _snapshot(product_id, counted="", added="", info="", adjustments=None):
    return {
        "perProductForm": {str(product_id): {"counted_stock": counted, "stock_added": added, "product_info": info}},
        "perSubProductForm": {},
        "pendingAdjustments": adjustments or [],
    }


# ---------- Contenu ----------
def test_is_meaningful_and_is_empty():
    assert not is_meaningful(None)
    assert not is_meaningful(_snapshot(1))
    assert is_meaningful(_snapshot(1, counted="3"))
    assert is_meaningful(_snapshot(1, adjustments=[{"operation_name": "Casse", "unit_price": "-1", "quantity": "1"}]))

    info_only = _snapshot(1, info="vitrine")
    assert not is_meaningful(info_only)
    assert not is_empty(info_only)
    assert is_empty(_snapshot(1))


def test_credit_note_draft_meaningful():
    assert not is_meaningful({"invoice_id": "", "operation_name": " "}, DraftKind.credit_note)
    assert is_meaningful({"invoice_id": "12"}, DraftKind.credit_note)


# ---------- Store ----------
def test_draft_round_trip(store, depot, drafts):
    data = _snapshot(depot.savon.id, counted="7", added="12", info="rayon 2")
    drafts.save(depot.client.id, data)

    record = drafts.load(depot.client.id)
    assert record.source == "local"
    assert record.data == data


def test_draft_falls_back_to_row_store(store, depot, drafts):
    data = _snapshot(depot.savon.id, counted="7", added="12")
    drafts.save(depot.client.id, data)
    drafts.cache.remove(depot.client.id, DraftKind.stock_update)

    record = drafts.load(depot.client.id)
    assert record.source == "remote"
    assert record.data == data


def test_save_keeps_a_single_live_row(store, depot, drafts):
    drafts.save(depot.client.id, _snapshot(depot.savon.id, counted="1", added="1"))
    drafts.save(depot.client.id, _snapshot(depot.savon.id, counted="2", added="2"))

    rows = store.get(Draft, client_id=depot.client.id)
    assert len(rows) == 1
    assert rows[0].draft_data["perProductForm"][str(depot.savon.id)]["counted_stock"] == "2"


def test_delete_removes_cache_and_row(store, depot, drafts):
    drafts.save(depot.client.id, _snapshot(depot.savon.id, counted="1", added="1"))
    drafts.delete(depot.client.id)

    assert drafts.load(depot.client.id) is None
    assert store.get(Draft, client_id=depot.client.id) == []


def test_kinds_are_independent(store, depot, drafts):
    drafts.save(depot.client.id, {"invoice_id": "3"}, DraftKind.credit_note)
    assert drafts.load(depot.client.id, DraftKind.stock_update) is None
    assert drafts.load(depot.client.id, DraftKind.credit_note).data == {"invoice_id": "3"}


# ---------- Session ----------
def test_open_with_meaningful_draft_waits_for_decision(store, depot, drafts):
    """
    GIVEN un brouillon significatif
    THEN PENDING_DECISION, et l'autosave est suspendu
    """
    drafts.save(depot.client.id, _snapshot(depot.savon.id, counted="7", added="12"))
    session = DraftSession(depot.client.id, sync_interval=0)

    record = session.open(drafts)
    assert record is not None
    assert session.state == DraftState.pending_decision

    # la frappe ne doit pas écraser le brouillon en attente
    assert session.autosave(drafts, _snapshot(depot.savon.id, counted="1", added="1")) is False
    assert drafts.load(depot.client.id).data["perProductForm"][str(depot.savon.id)]["counted_stock"] == "7"

    restored = session.resume(drafts)
    assert session.state == DraftState.dirty
    assert restored["perProductForm"][str(depot.savon.id)]["stock_added"] == "12"


def test_open_without_draft_is_clean(store, depot, drafts):
    session = DraftSession(depot.client.id)
    assert session.open(drafts) is None
    assert session.state == DraftState.clean


def test_discard_returns_default_form(store, depot, drafts):
    drafts.save(depot.client.id, _snapshot(depot.savon.id, counted="7", added="12"))
    session = DraftSession(depot.client.id)
    session.open(drafts)

    default = _snapshot(depot.savon.id, info="vitrine")
    assert session.discard(drafts, default) == default
    assert session.state == DraftState.clean
    assert drafts.load(depot.client.id) is None


def test_autosave_is_debounced(store, depot, drafts):
    """
    GIVEN intervalle de synchro 120 s
    THEN cache local à chaque frappe, table au plus une fois par intervalle
    """
    clock = FakeClock()
    session = DraftSession(depot.client.id, sync_interval=120, clock=clock)

    assert session.autosave(drafts, _snapshot(depot.savon.id, counted="1", added="1")) is True

    clock.now = 30
    assert session.autosave(drafts, _snapshot(depot.savon.id, counted="2", added="2")) is False
    assert drafts.cache.read(depot.client.id, DraftKind.stock_update)["perProductForm"][str(depot.savon.id)][
        "counted_stock"
    ] == "2"
    (row,) = store.get(Draft, client_id=depot.client.id)
    assert row.draft_data["perProductForm"][str(depot.savon.id)]["counted_stock"] == "1"

    # flush force la synchro
    assert session.flush(drafts) is True
    (row,) = store.get(Draft, client_id=depot.client.id)
    assert row.draft_data["perProductForm"][str(depot.savon.id)]["counted_stock"] == "2"

    clock.now = 200
    assert session.autosave(drafts, _snapshot(depot.savon.id, counted="3", added="3")) is True


def test_autosave_ignores_empty_snapshot(store, depot, drafts):
    session = DraftSession(depot.client.id, sync_interval=0)
    assert session.autosave(drafts, _snapshot(depot.savon.id)) is False
    assert drafts.load(depot.client.id) is None
    assert session.state == DraftState.clean


def test_autosave_suspended_while_busy(store, depot, drafts):
    session = DraftSession(depot.client.id, sync_interval=0)
    session.begin_commit()
    assert session.autosave(drafts, _snapshot(depot.savon.id, counted="1", added="1")) is False

    session.abort_commit()
    assert session.state == DraftState.dirty
    assert session.autosave(drafts, _snapshot(depot.savon.id, counted="1", added="1")) is True


def test_resume_restores_the_whole_form(store, depot, drafts):
    """
    GIVEN un brouillon avec produit, sous-produits et reprises
    THEN la reprise restitue exactement le même formulaire
    """
    saved = {
        "perProductForm": {
            str(depot.savon.id): {"counted_stock": "7", "stock_added": "12", "product_info": "vitrine"},
            str(depot.bougie.id): {"counted_stock": "", "stock_added": "", "product_info": ""},
        },
        "perSubProductForm": {
            str(depot.sub_a.id): {"counted_stock": "2", "stock_added": "5"},
            str(depot.sub_b.id): {"counted_stock": "", "stock_added": ""},
        },
        "pendingAdjustments": [
            {"operation_name": "Casse", "unit_price": "-5.00", "quantity": "2"},
            {"operation_name": "Retour", "unit_price": "-1.50", "quantity": "1"},
        ],
    }
    drafts.save(depot.client.id, saved)
    drafts.cache.remove(depot.client.id, DraftKind.stock_update)

    session = DraftSession(depot.client.id)
    session.open(drafts)
    assert session.resume(drafts) == saved


# ---------- Suppression concurrente ----------
class KeystrokeDuringDelete(DraftStore):
    """Une frappe arrive juste après la suppression, avant le retour à CLEAN."""

    def __init__(self, store, cache) -> None:
        super().__init__(store, cache)
        self.session: DraftSession | None = None
        self.results: list[bool] = []

    def delete(self, client_id, kind=DraftKind.stock_update) -> None:
        super().delete(client_id, kind)
        self.results.append(self.session.autosave(self, _snapshot(self.session.client_id, counted="1", added="1")))


def test_discard_is_not_undone_by_late_autosave(store, depot, drafts):
    racing = KeystrokeDuringDelete(store, drafts.cache)
    racing.save(depot.client.id, _snapshot(depot.savon.id, counted="7", added="12"))
    session = DraftSession(depot.client.id, sync_interval=0)
    racing.session = session
    session.open(racing)

    session.discard(racing, {})

    assert racing.results == [False]
    assert racing.load(depot.client.id) is None
    assert store.get(Draft, client_id=depot.client.id) == []
    assert session.state == DraftState.clean


def test_commit_is_not_undone_by_late_autosave(store, depot, drafts):
    racing = KeystrokeDuringDelete(store, drafts.cache)
    session = DraftSession(depot.client.id, sync_interval=0)
    racing.session = session
    session.autosave(racing, _snapshot(depot.savon.id, counted="7", added="12"))

    session.begin_commit()
    assert session.autosave(racing, _snapshot(depot.savon.id, counted="8", added="12")) is False
    assert session.save_now(racing, _snapshot(depot.savon.id, counted="8", added="12")) is False
    assert session.finish_commit(racing) == []

    assert racing.results == [False]
    assert racing.load(depot.client.id) is None
    assert session.state == DraftState.clean


# ---------- Registre ----------
def test_registry_forgets_clean_sessions(store, depot, drafts):
    registry = DraftSessionRegistry(sync_interval=0)
    session = registry.get(depot.client.id)
    assert registry.get(depot.client.id) is session

    session.autosave(drafts, _snapshot(depot.savon.id, counted="1", added="1"))
    registry.release(session)
    assert registry.get(depot.client.id) is session

    session.discard(drafts, {})
    registry.release(session)
    assert len(registry) == 0
    assert registry.get(depot.client.id) is not session
