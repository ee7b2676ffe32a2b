"""Service provider helpers for wiring the fulfillment pipeline.

The functions here build process-wide singletons from ``Settings``:
the database engine, the inventory port selected by
``INVENTORY_BACKEND`` (``sql``, ``http`` or ``memory``), the
``InventoryService`` owning the per-type locks, and the
``FulfillmentService``. They double as FastAPI dependencies, so tests
can swap them through ``app.dependency_overrides``.
"""

from functools import lru_cache

from sqlalchemy.engine import Engine

from .adapters import InMemoryInventory, InMemoryOrderStorage
from .config import get_settings
from .domain import InventoryPort, OrderStoragePort
from .fulfillment import FulfillmentService
from .http_adapters import HttpInventoryClient
from .repo import SqlInventoryStore, SqlOrderStorage, init_db, make_engine
from .reservation import InventoryService


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    engine = make_engine(get_settings().database_url)
    init_db(engine)
    return engine


@lru_cache(maxsize=1)
def get_inventory_port() -> InventoryPort:
    backend = get_settings().inventory_backend
    if backend == "http":
        return HttpInventoryClient()
    if backend == "memory":
        return InMemoryInventory()
    if backend == "sql":
        return SqlInventoryStore(get_engine())
    raise ValueError(f"unknown INVENTORY_BACKEND {backend!r}")


@lru_cache(maxsize=1)
def get_order_storage() -> OrderStoragePort:
    if get_settings().inventory_backend == "memory":
        return InMemoryOrderStorage()
    return SqlOrderStorage(get_engine())


@lru_cache(maxsize=1)
def get_inventory_service() -> InventoryService:
    return InventoryService(get_inventory_port(), cas_retries=get_settings().reserve_cas_retries)


def get_fulfillment_service() -> FulfillmentService:
    """Return a FulfillmentService sharing the process-wide inventory service."""
    settings = get_settings()
    return FulfillmentService(
        inventory=get_inventory_service(),
        orders=get_order_storage(),
        persist_timeout=settings.persist_timeout_secs,
        persist_retry_max=settings.persist_retry_max,
    )
