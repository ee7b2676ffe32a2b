"""Inventory counter service built with FastAPI.

Exposes the get/set contract of the inventory store over HTTP, as consumed
by ``http_adapters.HttpInventoryClient``. Storage is delegated to
``repo.SqlInventoryStore``. Keys are opaque strings; the service knows
nothing about figures.
"""

import logging

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse

from .config import get_settings
from .errors import InventoryUnavailable
from .logging_filters import configure_logging
from .middleware import add_request_id
from .providers import get_engine
from .repo import SqlInventoryStore
from .schemas import StockIn, StockOut

logger = logging.getLogger(__name__)

app = FastAPI(title="Figures Inventory Service")
app.middleware("http")(add_request_id)


def get_store() -> SqlInventoryStore:
    return SqlInventoryStore(get_engine())


@app.on_event("startup")
def _startup():
    configure_logging(get_settings().log_level)
    get_engine()


@app.exception_handler(InventoryUnavailable)
async def _unavailable(_request, exc: InventoryUnavailable):
    logger.warning("stock store unavailable", extra={"reason": exc.detail})
    return JSONResponse({"detail": exc.code}, status_code=503)


@app.get("/health")
def health():
    """Liveness/health check endpoint."""
    return {"ok": True}


@app.get("/stock/{figure_type}", response_model=StockOut)
def get_stock(figure_type: str, store: SqlInventoryStore = Depends(get_store)):
    """Current stock for ``figure_type`` (0 when never set)."""
    return StockOut(figure_type=figure_type, count=store.get_count(figure_type))


@app.put("/stock/{figure_type}", response_model=StockOut)
def set_stock(figure_type: str, body: StockIn, store: SqlInventoryStore = Depends(get_store)):
    """Overwrite the stock for ``figure_type``."""
    store.set_count(figure_type, body.count)
    logger.info("stock set", extra={"figure_type": figure_type, "count": body.count})
    return StockOut(figure_type=figure_type, count=body.count)
