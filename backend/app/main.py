import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from backend.app.api.v1.router import router as v1_router
from backend.app.core.errors import (
    BusinessRuleError,
    NotFoundError,
    PersistenceError,
    ReconciliationValidationError,
)
from backend.app.core.logging_config import configure_logging
from backend.services.drafts import DraftSessionRegistry

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Depot-vente Stock & Facturation", version="0.1.0")
app.state.draft_sessions = DraftSessionRegistry()
app.include_router(v1_router, prefix="/v1")


# ---------- Erreurs métier -> HTTP ----------
@app.exception_handler(ReconciliationValidationError)
async def _validation_error(request: Request, exc: ReconciliationValidationError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(BusinessRuleError)
async def _business_rule_error(request: Request, exc: BusinessRuleError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def _not_found(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(PersistenceError)
async def _persistence_error(request: Request, exc: PersistenceError):
    logger.error("Persistence failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "Erreur d'enregistrement, aucune modification appliquée"})
