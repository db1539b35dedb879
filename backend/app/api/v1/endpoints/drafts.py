from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import ValidationError

from backend.app.api.deps import get_draft_registry, get_draft_store, get_store
from backend.app.db.models.core_types import DraftKind
from backend.app.schemas.draft import DraftRead
from backend.app.schemas.reconciliation import AdjustmentCreate, CreditNoteForm, ReconciliationForm
from backend.services.adjustments import AdjustmentLedger
from backend.services.drafts import DraftSession, DraftSessionRegistry, DraftStore
from backend.services.row_store import RowStore
from backend.services.stock_positions import load_stock_position, require_client

router = APIRouter(prefix="/clients/{client_id}/draft")

BUSY_DETAIL = "Un brouillon attend une décision ou une soumission est en cours"


# ---------- Helpers ----------
def _normalize(kind: DraftKind, data: dict[str, Any]) -> dict[str, Any]:
    try:
        if kind == DraftKind.credit_note:
            return CreditNoteForm.model_validate(data).model_dump(mode="json")
        return ReconciliationForm.model_validate(data).model_dump(mode="json", by_alias=True)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors(include_url=False)) from exc


def _read(session: DraftSession, **extra) -> DraftRead:
    return DraftRead(client_id=session.client_id, kind=session.kind, state=session.state, **extra)


def _session(
    client_id: int,
    kind: DraftKind,
    store: RowStore,
    registry: DraftSessionRegistry,
) -> DraftSession:
    require_client(store, client_id)
    return registry.get(client_id, kind)


def _ensure_writable(session: DraftSession) -> None:
    if session.autosave_suspended:
        raise HTTPException(status_code=409, detail=BUSY_DETAIL)


def _current_form(drafts: DraftStore, client_id: int) -> ReconciliationForm:
    record = drafts.load(client_id, DraftKind.stock_update)
    return ReconciliationForm.model_validate(record.data) if record else ReconciliationForm()


# ---------- Endpoints ----------
@router.get("", response_model=DraftRead)
def open_draft(
    client_id: int,
    kind: DraftKind = DraftKind.stock_update,
    store: RowStore = Depends(get_store),
    drafts: DraftStore = Depends(get_draft_store),
    registry: DraftSessionRegistry = Depends(get_draft_registry),
):
    """
    Ouverture du formulaire
    - brouillon significatif -> PENDING_DECISION (reprendre ou abandonner)
    """
    session = _session(client_id, kind, store, registry)
    record = session.open(drafts)
    if record is None:
        return _read(session)
    return _read(session, data=record.data, source=record.source)


@router.post("/resume", response_model=DraftRead)
def resume_draft(
    client_id: int,
    kind: DraftKind = DraftKind.stock_update,
    store: RowStore = Depends(get_store),
    drafts: DraftStore = Depends(get_draft_store),
    registry: DraftSessionRegistry = Depends(get_draft_registry),
):
    session = _session(client_id, kind, store, registry)
    return _read(session, data=session.resume(drafts))


@router.post("/discard", response_model=DraftRead)
def discard_draft(
    client_id: int,
    kind: DraftKind = DraftKind.stock_update,
    store: RowStore = Depends(get_store),
    drafts: DraftStore = Depends(get_draft_store),
    registry: DraftSessionRegistry = Depends(get_draft_registry),
):
    session = _session(client_id, kind, store, registry)
    default = {}
    if kind == DraftKind.stock_update:
        position = load_stock_position(store, client_id=client_id)
        default = position.default_form().model_dump(mode="json", by_alias=True)
    data = session.discard(drafts, default)
    registry.release(session)
    return _read(session, data=data)


@router.put("", response_model=DraftRead)
def autosave_draft(
    client_id: int,
    kind: DraftKind = DraftKind.stock_update,
    data: dict[str, Any] = Body(...),
    store: RowStore = Depends(get_store),
    drafts: DraftStore = Depends(get_draft_store),
    registry: DraftSessionRegistry = Depends(get_draft_registry),
):
    session = _session(client_id, kind, store, registry)
    synced = session.autosave(drafts, _normalize(kind, data))
    return _read(session, synced=synced)


@router.post("/flush", response_model=DraftRead)
def flush_draft(
    client_id: int,
    kind: DraftKind = DraftKind.stock_update,
    store: RowStore = Depends(get_store),
    drafts: DraftStore = Depends(get_draft_store),
    registry: DraftSessionRegistry = Depends(get_draft_registry),
):
    session = _session(client_id, kind, store, registry)
    return _read(session, synced=session.flush(drafts))


@router.post("/adjustments", response_model=DraftRead)
def add_adjustment(
    client_id: int,
    payload: AdjustmentCreate,
    store: RowStore = Depends(get_store),
    drafts: DraftStore = Depends(get_draft_store),
    registry: DraftSessionRegistry = Depends(get_draft_registry),
):
    """Ajoute une reprise de stock au relevé en cours (prix saisi positif, stocké négatif)."""
    session = _session(client_id, DraftKind.stock_update, store, registry)
    _ensure_writable(session)

    form = _current_form(drafts, client_id)
    ledger = AdjustmentLedger.from_pending(form.pending_adjustments)
    ledger.add(payload.operation_name, payload.unit_price, payload.quantity)
    form.pending_adjustments = ledger.to_pending()

    data = form.model_dump(mode="json", by_alias=True)
    if not session.save_now(drafts, data):
        raise HTTPException(status_code=409, detail=BUSY_DETAIL)
    return _read(session, data=data, synced=True)


@router.delete("/adjustments/{index}", response_model=DraftRead)
def remove_adjustment(
    client_id: int,
    index: int,
    store: RowStore = Depends(get_store),
    drafts: DraftStore = Depends(get_draft_store),
    registry: DraftSessionRegistry = Depends(get_draft_registry),
):
    session = _session(client_id, DraftKind.stock_update, store, registry)
    _ensure_writable(session)

    form = _current_form(drafts, client_id)
    ledger = AdjustmentLedger.from_pending(form.pending_adjustments)
    try:
        ledger.remove(index)
    except IndexError:
        raise HTTPException(status_code=404, detail="Adjustment not found")
    form.pending_adjustments = ledger.to_pending()

    data = form.model_dump(mode="json", by_alias=True)
    if not session.save_now(drafts, data):
        raise HTTPException(status_code=409, detail=BUSY_DETAIL)
    return _read(session, data=data, synced=True)
