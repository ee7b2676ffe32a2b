"""Fulfillment orchestration for figure orders.

``FulfillmentService.fulfill`` drives one submission through its states:
check availability for every line, build and validate the figures,
reserve every line, persist the order and return its total. Inventory
calls are blocking and run in worker threads; persistence is awaited with
a timeout. Once stock has been reserved, every failure path (including
cancellation) hands the stock back before the error propagates, unless
the order store reports that the order was persisted after all.
"""

import asyncio
import logging
from decimal import Decimal
from typing import List, Tuple

from .assembly import build_order
from .domain import Fulfillment, FulfillmentStatus, Order, OrderStoragePort
from .errors import InsufficientStock, OrderError, PersistenceFailure, Unavailable
from .geometry import FigureType
from .pricing import order_total
from .reservation import InventoryService

logger = logging.getLogger(__name__)


class FulfillmentService:
    """Orchestrates availability, assembly, reservation and persistence.

    It does not handle HTTP or serialization; the ports it is given do
    all external I/O.
    """

    def __init__(
        self,
        inventory: InventoryService,
        orders: OrderStoragePort,
        persist_timeout: float = 5.0,
        persist_retry_max: int = 2,
    ):
        """Initialize the service with required dependencies.

        Args:
            inventory: Reservation service wrapping the inventory store.
            orders: Store for finished orders.
            persist_timeout: Seconds to wait for one save attempt.
            persist_retry_max: Total save attempts before giving up.
        """
        self.inventory = inventory
        self.orders = orders
        self.persist_timeout = persist_timeout
        self.persist_retry_max = max(1, persist_retry_max)

    async def fulfill(self, job: Fulfillment) -> Decimal:
        """Fulfill the cart of ``job`` and return the order total.

        ``job.status`` is updated at every transition, so after a failure
        it names the exit taken (REJECTED_UNAVAILABLE, REJECTED_INVALID,
        REJECTED_INSUFFICIENT_STOCK or FAILED).

        Args:
            job: Submission record holding the cart.

        Returns:
            The total accepted by the order store.

        Raises:
            InvalidRequest: A count is not a positive integer.
            UnknownFigureType: A position names no known figure type.
            Unavailable: Stock does not cover some type at check time.
            FigureInvalid: A figure violates its geometric rules.
            InsufficientStock: Stock ran out between check and reservation.
            InventoryUnavailable: The inventory store cannot be reached.
            PersistenceFailure: The order could not be saved; reservations
                have been released, or kept when the store could not say
                whether the order landed.
        """
        lines = await self._check(job)
        order = self._build(job)
        await self._reserve(job, lines)

        try:
            total = await self._persist(order)
        except asyncio.CancelledError:
            await self._settle_failed_save(job, order)
            raise
        except Exception:
            if not await self._settle_failed_save(job, order):
                raise
            total = job.total
        job.status = FulfillmentStatus.PERSISTED

        job.total = total
        job.status = FulfillmentStatus.COMPLETED
        logger.info("order completed", extra={"order_id": str(order.id), "total": str(total)})
        return total

    async def _check(self, job: Fulfillment) -> List[Tuple[str, int]]:
        try:
            lines = [(FigureType.parse(p.figure_type).value, p.count) for p in job.cart.positions]
            missing = await self.inventory.check_all(lines)
        except OrderError:
            job.status = FulfillmentStatus.REJECTED_INVALID
            raise
        except Exception:
            job.status = FulfillmentStatus.FAILED
            raise
        if missing:
            job.status = FulfillmentStatus.REJECTED_UNAVAILABLE
            raise Unavailable(", ".join(missing))
        job.status = FulfillmentStatus.CHECKED
        return lines

    def _build(self, job: Fulfillment) -> Order:
        try:
            job.order = build_order(job.cart)
        except OrderError:
            job.status = FulfillmentStatus.REJECTED_INVALID
            raise
        job.status = FulfillmentStatus.BUILT
        return job.order

    async def _reserve(self, job: Fulfillment, lines: List[Tuple[str, int]]) -> None:
        task = asyncio.ensure_future(asyncio.to_thread(self.inventory.reserve_all, lines))
        try:
            job.reserved = await asyncio.shield(task)
        except InsufficientStock:
            job.status = FulfillmentStatus.REJECTED_INSUFFICIENT_STOCK
            raise
        except asyncio.CancelledError:
            # the worker thread keeps running; undo whatever it reserved
            job.status = FulfillmentStatus.FAILED
            await asyncio.wait({task})
            if not task.cancelled() and task.exception() is None:
                await asyncio.to_thread(self.inventory.release_all, task.result())
            raise
        except Exception:
            job.status = FulfillmentStatus.FAILED
            raise
        job.status = FulfillmentStatus.RESERVED

    async def _persist(self, order: Order) -> Decimal:
        last: PersistenceFailure = PersistenceFailure()
        for attempt in range(1, self.persist_retry_max + 1):
            try:
                return await asyncio.wait_for(self.orders.save(order), self.persist_timeout)
            except asyncio.TimeoutError:
                last = PersistenceFailure(f"save timed out after {self.persist_timeout}s")
            except PersistenceFailure as e:
                last = e
            logger.warning(
                "order save failed",
                extra={"order_id": str(order.id), "attempt": attempt, "reason": last.detail},
            )
        raise last

    async def _settle_failed_save(self, job: Fulfillment, order: Order) -> bool:
        """Decide the fate of reservations after a failed or cancelled save.

        A save that timed out may still have landed, so the store is asked
        before any stock is handed back. Returns True when the order turned
        out to be persisted; its reservations are then kept.
        """
        oid = str(order.id)
        try:
            persisted = await self.orders.exists(order.id)
        except Exception:
            job.status = FulfillmentStatus.FAILED
            logger.exception("order state unknown, keeping stock reserved", extra={"order_id": oid})
            return False
        if persisted:
            job.status = FulfillmentStatus.PERSISTED
            job.total = order_total(order.figures)
            logger.warning("save reported failure but order was persisted", extra={"order_id": oid})
            return True
        job.status = FulfillmentStatus.FAILED
        logger.error("order not persisted, releasing stock", extra={"order_id": oid})
        await asyncio.to_thread(self.inventory.release_all, job.reserved)
        job.reserved = []
        return False
