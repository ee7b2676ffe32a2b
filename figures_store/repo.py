"""SQLAlchemy persistence for stock counters, orders and idempotency keys.

The schema has three tables:

- ``stock``: figure type → available quantity. ``SqlInventoryStore``
  implements the inventory port on top of it, including an atomic
  compare-and-set done as a conditional ``UPDATE``.
- ``orders``: finished orders with their total and serialized lines.
  ``SqlOrderStorage`` implements the async order-store port.
- ``idempotency_keys``: stored responses for idempotent submissions (see
  ``idempotency``).

Database errors surface as ``InventoryUnavailable`` or
``PersistenceFailure`` so callers can retry.
"""

import asyncio
import dataclasses
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy import JSON, DateTime, Integer, Numeric, String, create_engine, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, mapped_column

from .domain import FulfillmentStatus, Order
from .errors import InventoryUnavailable, PersistenceFailure
from .pricing import line_total, order_total


def make_engine(url: str) -> Engine:
    """Create an engine for ``url``.

    SQLite connections are shared with worker threads, so thread checks
    are disabled for them.
    """
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, pool_pre_ping=True, connect_args=connect_args)


class Base(DeclarativeBase):
    pass


class Stock(Base):
    """Available stock for a figure type.

    Attributes:
        figure_type: Figure type key (e.g. "Triangle"), primary key.
        quantity: Available quantity (integer, non-null, defaults to 0).
    """
    __tablename__ = "stock"
    figure_type = mapped_column(String(32), primary_key=True)
    quantity = mapped_column(Integer, nullable=False, default=0)


class OrderModel(Base):
    """A persisted order.

    Attributes:
        id: Order UUID as a string; saving the same id twice is a no-op.
        status: Fulfillment status at the time of saving.
        total: Order total in currency units.
        lines: Serialized order lines (type, dimensions, count, price).
        created_at: Insertion time (UTC).
    """
    __tablename__ = "orders"
    id = mapped_column(String(36), primary_key=True)
    status = mapped_column(String(32), nullable=False)
    total = mapped_column(Numeric(20, 2), nullable=False)
    lines = mapped_column(JSON, nullable=False)
    created_at = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))


class IdempotencyKey(Base):
    """Stored outcome of an idempotent order submission.

    Attributes:
        key: Client-provided idempotency key.
        request_hash: Canonical SHA-256 hex digest of the request body.
        response_status: Final HTTP status, 0 while in progress.
        response_body: Final JSON response body.
    """
    __tablename__ = "idempotency_keys"
    key = mapped_column(String(200), primary_key=True)
    request_hash = mapped_column(String(64), nullable=False)
    response_status = mapped_column(Integer, nullable=False, default=0)
    response_body = mapped_column(JSON, nullable=True)


def init_db(engine: Engine) -> None:
    Base.metadata.create_all(engine)


@contextmanager
def get_session(engine: Engine):
    """Context manager that yields a SQLAlchemy session.

    The session is automatically closed when exiting the context.

    Yields:
        Session: Active SQLAlchemy session bound to ``engine``.
    """
    with Session(engine) as s:
        yield s


class SqlInventoryStore:
    """Inventory port backed by the ``stock`` table."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def get_count(self, figure_type: str) -> int:
        """Get current stock for a figure type (0 if unknown)."""
        try:
            with get_session(self.engine) as s:
                obj = s.get(Stock, figure_type)
                return obj.quantity if obj else 0
        except SQLAlchemyError as e:
            raise InventoryUnavailable(str(e)) from e

    def set_count(self, figure_type: str, value: int) -> None:
        """Set stock for a figure type, creating the row if needed."""
        try:
            with get_session(self.engine) as s:
                obj = s.get(Stock, figure_type) or Stock(figure_type=figure_type, quantity=0)
                obj.quantity = value
                s.merge(obj)
                s.commit()
        except SQLAlchemyError as e:
            raise InventoryUnavailable(str(e)) from e

    def compare_and_set(self, figure_type: str, expected: int, value: int) -> bool:
        """Atomically replace ``expected`` with ``value``.

        A missing row counts as 0, matching ``get_count``.

        Returns:
            bool: True if the row held ``expected`` and was updated.
        """
        try:
            with get_session(self.engine) as s:
                res = s.execute(
                    update(Stock)
                    .where(Stock.figure_type == figure_type, Stock.quantity == expected)
                    .values(quantity=value)
                )
                if res.rowcount == 1:
                    s.commit()
                    return True
                if expected == 0 and s.get(Stock, figure_type) is None:
                    s.add(Stock(figure_type=figure_type, quantity=value))
                    try:
                        s.commit()
                    except IntegrityError:
                        # another writer created the row first
                        s.rollback()
                        return False
                    return True
                s.rollback()
                return False
        except SQLAlchemyError as e:
            raise InventoryUnavailable(str(e)) from e

    def seed(self, stock: Dict[str, int]) -> None:
        for figure_type, quantity in stock.items():
            self.set_count(figure_type, quantity)


def serialize_lines(order: Order) -> list:
    return [
        {
            "type": line.figure.figure_type.value,
            "dimensions": dataclasses.asdict(line.figure),
            "count": line.count,
            "unit_price": str(line_total(line.figure)),
        }
        for line in order.lines
    ]


class SqlOrderStorage:
    """Order-store port backed by the ``orders`` table.

    The blocking session work runs in a worker thread so the caller's
    event loop stays free. A cancelled save waits for its thread to
    settle, so once ``save`` has returned or raised, ``exists`` reports
    the final outcome.
    """

    def __init__(self, engine: Engine):
        self.engine = engine

    async def save(self, order: Order) -> Decimal:
        """Persist ``order`` (once per id) and return its total."""
        abandoned = threading.Event()
        task = asyncio.ensure_future(asyncio.to_thread(self._save, order, abandoned))
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            abandoned.set()
            await asyncio.wait({task})
            if not task.cancelled():
                # outcome is read back through exists()
                task.exception()
            raise

    async def exists(self, order_id) -> bool:
        return await asyncio.to_thread(self._exists, str(order_id))

    def _save(self, order: Order, abandoned: Optional[threading.Event] = None) -> Decimal:
        total = order_total(order.figures)
        try:
            with get_session(self.engine) as s:
                if s.get(OrderModel, str(order.id)) is None:
                    s.add(OrderModel(
                        id=str(order.id),
                        status=FulfillmentStatus.PERSISTED.value,
                        total=total,
                        lines=serialize_lines(order),
                    ))
                    if abandoned is not None and abandoned.is_set():
                        s.rollback()
                        raise PersistenceFailure("save abandoned by caller")
                    s.commit()
        except SQLAlchemyError as e:
            raise PersistenceFailure(str(e)) from e
        return total

    def _exists(self, order_id: str) -> bool:
        try:
            with get_session(self.engine) as s:
                return s.get(OrderModel, order_id) is not None
        except SQLAlchemyError as e:
            raise PersistenceFailure(str(e)) from e
