"""Configuration statique du backend dépôt-vente."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


def _get_env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value.strip())
    except ValueError:
        return default


def _get_env_path(name: str, default: str) -> Path:
    return Path(os.getenv(name, default)).expanduser()


@dataclass(frozen=True)
class Settings:
    """Paramètres globaux lus depuis l'environnement."""

    DOCUMENTS_DIR: Path = Path("documents")
    DRAFT_CACHE_DIR: Path = Path(".draft_cache")
    DRAFT_SYNC_INTERVAL_SECONDS: int = 120
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Path = Path("logs")


settings = Settings(
    DOCUMENTS_DIR=_get_env_path("DOCUMENTS_DIR", "documents"),
    DRAFT_CACHE_DIR=_get_env_path("DRAFT_CACHE_DIR", ".draft_cache"),
    DRAFT_SYNC_INTERVAL_SECONDS=_get_env_int("DRAFT_SYNC_INTERVAL_SECONDS", 120),
    LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
    LOG_DIR=_get_env_path("LOG_DIR", "logs"),
)
