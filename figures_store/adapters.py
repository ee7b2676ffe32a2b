"""In-process adapters for the inventory and order-store ports.

These implementations make no network calls. They back the ``memory``
inventory backend and are convenient in unit tests and local development
where deterministic behavior is useful.
"""

import asyncio
import threading
from decimal import Decimal
from typing import Dict, Optional

from .domain import Order
from .pricing import order_total


class InMemoryInventory:
    """Dict-backed key-counter store with an atomic compare-and-set.

    Each primitive is atomic on its own; sequences of calls are not.
    """

    def __init__(self, stock: Optional[Dict[str, int]] = None):
        self._stock: Dict[str, int] = dict(stock or {})
        self._lock = threading.Lock()

    def get_count(self, figure_type: str) -> int:
        with self._lock:
            return self._stock.get(figure_type, 0)

    def set_count(self, figure_type: str, value: int) -> None:
        with self._lock:
            self._stock[figure_type] = value

    def compare_and_set(self, figure_type: str, expected: int, value: int) -> bool:
        with self._lock:
            if self._stock.get(figure_type, 0) != expected:
                return False
            self._stock[figure_type] = value
            return True

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._stock)


class InMemoryOrderStorage:
    """Order store keeping orders in a dict keyed by order id.

    Saving the same order twice keeps a single entry.
    """

    def __init__(self):
        self.orders: Dict[str, Order] = {}

    async def save(self, order: Order) -> Decimal:
        """Store ``order`` and return its total.

        Returns:
            Decimal: The order total computed by ``pricing.order_total``.
        """
        await asyncio.sleep(0)
        self.orders[str(order.id)] = order
        return order_total(order.figures)

    async def exists(self, order_id) -> bool:
        return str(order_id) in self.orders
