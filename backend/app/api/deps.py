from __future__ import annotations

from typing import Generator

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from backend.app.db.session import SessionLocal
from backend.services.documents import DocumentGenerator
from backend.services.drafts import DraftSessionRegistry, DraftStore
from backend.services.row_store import RowStore


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_store(db: Session = Depends(get_db)) -> RowStore:
    return RowStore(db)


def get_documents(store: RowStore = Depends(get_store)) -> DocumentGenerator:
    return DocumentGenerator(store)


def get_draft_store(store: RowStore = Depends(get_store)) -> DraftStore:
    return DraftStore(store)


def get_draft_registry(request: Request) -> DraftSessionRegistry:
    return request.app.state.draft_sessions
