from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from backend.app.db.models.core_types import DraftKind, DraftState


class DraftRead(BaseModel):
    client_id: int
    kind: DraftKind
    state: DraftState
    data: dict[str, Any] | None = None
    source: str | None = None  # "local" | "remote"
    synced: bool = False
