from __future__ import annotations

import logging
import logging.config

from backend.app.core.config import settings


def configure_logging() -> None:
    """Configure application-wide logging (console + rotating file)."""

    settings.LOG_DIR.mkdir(parents=True, exist_ok=True)
    logging.captureWarnings(True)

    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "verbose": {
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": settings.LOG_LEVEL,
                "formatter": "verbose",
            },
            "backend_file": {
                "class": "logging.handlers.RotatingFileHandler",
                "level": "DEBUG",
                "formatter": "verbose",
                "filename": str(settings.LOG_DIR / "backend.log"),
                "maxBytes": 5 * 1024 * 1024,
                "backupCount": 5,
                "encoding": "utf-8",
            },
        },
        "loggers": {
            "": {
                "handlers": ["console", "backend_file"],
                "level": "DEBUG",
            },
            "uvicorn": {
                "handlers": ["console", "backend_file"],
                "level": "INFO",
                "propagate": False,
            },
            "uvicorn.access": {
                "handlers": ["console", "backend_file"],
                "level": "INFO",
                "propagate": False,
            },
            "sqlalchemy.engine": {
                "level": "WARNING",
            },
        },
    }

    logging.config.dictConfig(logging_config)


__all__ = ["configure_logging"]
