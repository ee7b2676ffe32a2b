"""Pytest fixtures shared by the figures_store test-suite."""

import pytest

from figures_store.adapters import InMemoryInventory, InMemoryOrderStorage
from figures_store.fulfillment import FulfillmentService
from figures_store.repo import init_db, make_engine
from figures_store.reservation import InventoryService


@pytest.fixture
def inventory() -> InMemoryInventory:
    return InMemoryInventory({"Triangle": 5, "Square": 3, "Circle": 5})


@pytest.fixture
def orders() -> InMemoryOrderStorage:
    return InMemoryOrderStorage()


@pytest.fixture
def service(inventory, orders) -> FulfillmentService:
    return FulfillmentService(InventoryService(inventory), orders, persist_timeout=1.0)


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'figures.db'}")
    init_db(engine)
    yield engine
    engine.dispose()
