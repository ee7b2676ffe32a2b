"""Integration tests for the SQLAlchemy stores and idempotency records.

They run against a temporary SQLite file database created per test.
"""

import asyncio
import time
from decimal import Decimal

import pytest
from sqlalchemy import select

from figures_store.assembly import build_order
from figures_store.domain import Cart, Fulfillment, FulfillmentStatus, Position
from figures_store.errors import InventoryUnavailable, PersistenceFailure
from figures_store.fulfillment import FulfillmentService
from figures_store.idempotency import canonical_hash, finalize, get_or_create_idempotent
from figures_store.repo import OrderModel, SqlInventoryStore, SqlOrderStorage, get_session, make_engine
from figures_store.reservation import InventoryService


def test_stock_get_set_and_default(engine):
    store = SqlInventoryStore(engine)
    assert store.get_count("Triangle") == 0
    store.seed({"Triangle": 5, "Circle": 2})
    store.set_count("Triangle", 4)
    assert store.get_count("Triangle") == 4
    assert store.get_count("Circle") == 2


def test_compare_and_set(engine):
    store = SqlInventoryStore(engine)
    store.set_count("Square", 3)
    assert store.compare_and_set("Square", 3, 2) is True
    assert store.compare_and_set("Square", 3, 1) is False
    assert store.get_count("Square") == 2
    # a missing row counts as 0
    assert store.compare_and_set("Circle", 0, 4) is True
    assert store.get_count("Circle") == 4


def test_reservation_service_over_sql_store(engine):
    store = SqlInventoryStore(engine)
    store.seed({"Triangle": 2})
    service = InventoryService(store)
    assert service.reserve("Triangle", 2) == 0
    assert service.check_available("Triangle", 1) is False
    service.release("Triangle", 1)
    assert store.get_count("Triangle") == 1


def test_unreachable_database_is_inventory_unavailable(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'missing' / 'nope.db'}")
    with pytest.raises(InventoryUnavailable):
        SqlInventoryStore(engine).get_count("Triangle")


def test_order_storage_saves_once_per_id(engine):
    order = build_order(Cart(positions=(Position("Triangle", 3, 4, 5, count=2),)))
    storage = SqlOrderStorage(engine)

    assert asyncio.run(storage.save(order)) == Decimal("14.40")
    assert asyncio.run(storage.save(order)) == Decimal("14.40")

    with get_session(engine) as s:
        rows = s.execute(select(OrderModel)).scalars().all()
    assert len(rows) == 1
    assert rows[0].id == str(order.id)
    assert rows[0].total == Decimal("14.40")
    assert rows[0].lines[0]["type"] == "Triangle"
    assert rows[0].lines[0]["count"] == 2
    assert rows[0].lines[0]["unit_price"] == "7.20"


def test_order_storage_maps_db_errors(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'missing' / 'nope.db'}")
    order = build_order(Cart(positions=(Position("Circle", 1, count=1),)))
    with pytest.raises(PersistenceFailure):
        asyncio.run(SqlOrderStorage(engine).save(order))


class SlowSqlOrderStorage(SqlOrderStorage):
    """Order store whose write only starts after the caller gave up."""

    def _save(self, order, abandoned=None):
        time.sleep(0.3)
        return super()._save(order, abandoned)


class LateCommitSqlOrderStorage(SqlOrderStorage):
    """Order store that commits even though the caller gave up."""

    def _save(self, order, abandoned=None):
        time.sleep(0.3)
        return super()._save(order)


def _slow_fulfillment(engine, storage):
    stock = SqlInventoryStore(engine)
    stock.seed({"Triangle": 5})
    service = FulfillmentService(InventoryService(stock), storage, persist_timeout=0.05, persist_retry_max=1)
    return stock, service, Fulfillment(cart=Cart(positions=(Position("Triangle", 3, 4, 5, count=1),)))


def _order_rows(engine):
    with get_session(engine) as s:
        return s.execute(select(OrderModel)).scalars().all()


def test_timed_out_sql_save_is_abandoned_and_stock_released(engine):
    stock, service, job = _slow_fulfillment(engine, SlowSqlOrderStorage(engine))
    with pytest.raises(PersistenceFailure):
        asyncio.run(service.fulfill(job))
    time.sleep(0.4)
    assert job.status == FulfillmentStatus.FAILED
    assert _order_rows(engine) == []
    assert stock.get_count("Triangle") == 5


def test_sql_save_landing_after_timeout_keeps_stock(engine):
    stock, service, job = _slow_fulfillment(engine, LateCommitSqlOrderStorage(engine))
    assert asyncio.run(service.fulfill(job)) == Decimal("7.20")
    assert job.status == FulfillmentStatus.COMPLETED
    assert len(_order_rows(engine)) == 1
    assert stock.get_count("Triangle") == 4


def test_order_storage_exists(engine):
    order = build_order(Cart(positions=(Position("Circle", 1, count=1),)))
    storage = SqlOrderStorage(engine)
    assert asyncio.run(storage.exists(order.id)) is False
    asyncio.run(storage.save(order))
    assert asyncio.run(storage.exists(order.id)) is True


def test_idempotency_record_lifecycle(engine):
    payload = {"positions": [{"figureType": "Circle", "sideA": 1, "count": 1}]}

    existing, stored = get_or_create_idempotent(engine, "k1", payload)
    assert existing is False

    existing, stored = get_or_create_idempotent(engine, "k1", payload)
    assert existing is True and stored.status_code == 0

    finalize(engine, "k1", 200, {"total": "2.83"})
    existing, stored = get_or_create_idempotent(engine, "k1", payload)
    assert existing is True
    assert (stored.status_code, stored.body) == (200, {"total": "2.83"})


def test_idempotency_conflict_on_different_payload(engine):
    get_or_create_idempotent(engine, "k2", {"positions": []})
    with pytest.raises(ValueError) as e:
        get_or_create_idempotent(engine, "k2", {"positions": None})
    assert str(e.value) == "IDEMPOTENCY_CONFLICT"


def test_canonical_hash_ignores_key_order():
    assert canonical_hash({"a": 1, "b": 2}) == canonical_hash({"b": 2, "a": 1})
