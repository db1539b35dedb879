from fastapi import APIRouter

from backend.app.api.v1.endpoints.health import router as health_router
from backend.app.api.v1.endpoints.products import router as products_router
from backend.app.api.v1.endpoints.clients import router as clients_router
from backend.app.api.v1.endpoints.stock import router as stock_router
from backend.app.api.v1.endpoints.stock_adjustments import router as stock_adjustments_router
from backend.app.api.v1.endpoints.drafts import router as drafts_router
from backend.app.api.v1.endpoints.reconciliation import router as reconciliation_router
from backend.app.api.v1.endpoints.invoices import router as invoices_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(products_router, tags=["products"])
router.include_router(clients_router, tags=["clients"])
router.include_router(stock_router, tags=["stock"])
router.include_router(stock_adjustments_router, tags=["stock_adjustments"])
router.include_router(drafts_router, tags=["drafts"])
router.include_router(reconciliation_router, tags=["reconciliation"])
router.include_router(invoices_router, tags=["invoices"])
