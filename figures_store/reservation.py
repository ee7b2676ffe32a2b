"""Availability checks and stock reservations against the inventory port.

Check-then-write on a type's counter is one critical section: a per-type
lock is held across the read and the write, and when the store supports
``compare_and_set`` the write is conditional and retried from a fresh read
if another writer got in first. The lock covers writers in this process;
the CAS covers writers in other processes.

Multi-line reservations are not atomic at the store. ``reserve_all``
rolls back the lines it already reserved when a later line fails.
"""

import asyncio
import logging
import threading
from typing import Dict, Iterable, List, Sequence, Tuple

from .domain import AtomicInventoryPort, InventoryPort
from .errors import InsufficientStock, InvalidRequest, InventoryUnavailable

logger = logging.getLogger(__name__)


def _require_positive(count: int) -> None:
    if isinstance(count, bool) or not isinstance(count, int) or count <= 0:
        raise InvalidRequest(f"count must be a positive integer, got {count!r}")


def totals_by_type(lines: Iterable[Tuple[str, int]]) -> Dict[str, int]:
    """Sum requested counts per figure type, keeping first-seen order."""
    totals: Dict[str, int] = {}
    for figure_type, count in lines:
        _require_positive(count)
        totals[figure_type] = totals.get(figure_type, 0) + count
    return totals


class InventoryService:
    """Check and reserve stock for figure types.

    One instance owns the lock registry for the inventory it wraps, so a
    process should share a single instance (see ``providers``).
    """

    def __init__(self, inventory: InventoryPort, cas_retries: int = 5):
        """Initialize the service.

        Args:
            inventory: Key-counter store holding stock per figure type.
            cas_retries: Attempts per reservation when the store supports
                compare-and-set. Must be at least 1.
        """
        if cas_retries < 1:
            raise ValueError("cas_retries must be >= 1")
        self.inventory = inventory
        self.cas_retries = cas_retries
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, figure_type: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(figure_type, threading.Lock())

    def check_available(self, figure_type: str, count: int) -> bool:
        """Return True iff the current stock covers ``count``. Read-only.

        Raises:
            InvalidRequest: If ``count`` is not a positive integer.
            InventoryUnavailable: If the store cannot be reached.
        """
        _require_positive(count)
        return self.inventory.get_count(figure_type) >= count

    async def check_all(self, lines: Sequence[Tuple[str, int]]) -> List[str]:
        """Check every requested type concurrently.

        Counts of lines sharing a type are added up before checking.

        Returns:
            The figure types whose stock does not cover the request, in
            first-seen order. Empty when everything is available.
        """
        totals = totals_by_type(lines)
        results = await asyncio.gather(
            *(asyncio.to_thread(self.check_available, t, c) for t, c in totals.items())
        )
        return [t for t, ok in zip(totals, results) if not ok]

    def reserve(self, figure_type: str, count: int) -> int:
        """Take ``count`` units of ``figure_type`` out of stock.

        The stock is re-read inside the critical section; an earlier
        availability check is never trusted.

        Returns:
            The remaining stock.

        Raises:
            InvalidRequest: If ``count`` is not a positive integer.
            InsufficientStock: If the stock does not cover ``count``. Nothing
                is written in that case.
            InventoryUnavailable: If the store cannot be reached or the
                compare-and-set kept losing races.
        """
        _require_positive(count)
        with self._lock_for(figure_type):
            remaining = self._adjust(figure_type, -count)
        logger.info(
            "stock reserved",
            extra={"figure_type": figure_type, "count": count, "remaining": remaining},
        )
        return remaining

    def release(self, figure_type: str, count: int) -> int:
        """Put ``count`` units back into stock. Returns the new stock."""
        _require_positive(count)
        with self._lock_for(figure_type):
            stock = self._adjust(figure_type, count)
        logger.info(
            "stock released",
            extra={"figure_type": figure_type, "count": count, "remaining": stock},
        )
        return stock

    def _adjust(self, figure_type: str, delta: int) -> int:
        atomic = isinstance(self.inventory, AtomicInventoryPort)
        attempts = self.cas_retries if atomic else 1
        for attempt in range(1, attempts + 1):
            current = self.inventory.get_count(figure_type)
            new = current + delta
            if new < 0:
                raise InsufficientStock(f"{figure_type}: have={current}, need={-delta}")
            if not atomic:
                self.inventory.set_count(figure_type, new)
                return new
            if self.inventory.compare_and_set(figure_type, current, new):
                return new
            logger.info(
                "stock changed concurrently, retrying",
                extra={"figure_type": figure_type, "attempt": attempt},
            )
        raise InventoryUnavailable(f"{figure_type}: gave up after {attempts} compare-and-set attempts")

    def reserve_all(self, lines: Sequence[Tuple[str, int]]) -> List[Tuple[str, int]]:
        """Reserve every line in order, rolling back on the first failure.

        Returns:
            The reserved ``(figure_type, count)`` pairs, in order.

        Raises:
            The error of the first failing line, after releasing the lines
            reserved before it.
        """
        reserved: List[Tuple[str, int]] = []
        try:
            for figure_type, count in lines:
                self.reserve(figure_type, count)
                reserved.append((figure_type, count))
        except Exception:
            self.release_all(reserved)
            raise
        return reserved

    def release_all(self, reserved: Sequence[Tuple[str, int]]) -> None:
        """Release reservations in reverse order.

        A line that cannot be released is logged and skipped so the others
        are still returned to stock.
        """
        for figure_type, count in reversed(reserved):
            try:
                self.release(figure_type, count)
            except Exception:
                logger.exception(
                    "compensation failed",
                    extra={"figure_type": figure_type, "count": count},
                )
