"""Domain models and ports for figure orders.

This module contains the dataclasses that flow through the fulfillment
pipeline (positions, carts, orders), the lifecycle enum of a fulfillment,
and protocol definitions (ports) for the external inventory and order
stores. Concrete adapters live in ``adapters``, ``repo`` and
``http_adapters``.
"""

import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Iterator, List, Optional, Protocol, Tuple, runtime_checkable

from .geometry import Figure


# ---- Enums ----
class FulfillmentStatus(str, Enum):
    """Lifecycle of one order submission.

    The happy path is RECEIVED → CHECKED → BUILT → RESERVED → PERSISTED →
    COMPLETED; every other member is a terminal failure exit.
    """

    RECEIVED = "RECEIVED"
    CHECKED = "CHECKED"
    BUILT = "BUILT"
    RESERVED = "RESERVED"
    PERSISTED = "PERSISTED"
    COMPLETED = "COMPLETED"
    REJECTED_UNAVAILABLE = "REJECTED_UNAVAILABLE"
    REJECTED_INVALID = "REJECTED_INVALID"
    REJECTED_INSUFFICIENT_STOCK = "REJECTED_INSUFFICIENT_STOCK"
    FAILED = "FAILED"


# ---- Entities / DTOs ----
@dataclass(frozen=True)
class Position:
    """A single requested line in a cart.

    Attributes:
        figure_type: Raw type tag as received (resolved later).
        side_a: First measurement (side or radius).
        side_b: Second measurement, when the figure has one.
        side_c: Third measurement, when the figure has one.
        count: Requested quantity.
    """

    figure_type: str
    side_a: Optional[float] = None
    side_b: Optional[float] = None
    side_c: Optional[float] = None
    count: int = 1


@dataclass(frozen=True)
class Cart:
    """Ordered sequence of positions. ``None`` is normalised to empty."""

    positions: Tuple[Position, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "positions", tuple(self.positions or ()))


@dataclass(frozen=True)
class OrderLine:
    figure: Figure
    count: int


@dataclass(frozen=True)
class Order:
    """Validated, immutable order.

    Attributes:
        lines: One line per cart position, in cart order.
        id: Order identifier, also the idempotency key for persistence.
    """

    lines: Tuple[OrderLine, ...]
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    @property
    def figures(self) -> Iterator[Figure]:
        """One figure instance per ordered unit."""
        for line in self.lines:
            for _ in range(line.count):
                yield line.figure


@dataclass
class Fulfillment:
    """Mutable record of one submission travelling through the pipeline.

    The service updates ``status`` at each transition so callers can
    observe where a failed submission stopped.
    """

    cart: Cart
    status: FulfillmentStatus = FulfillmentStatus.RECEIVED
    order: Optional[Order] = None
    total: Optional[Decimal] = None
    reserved: List[Tuple[str, int]] = field(default_factory=list)


# ---- Ports (DIP) ----
class InventoryPort(Protocol):
    """Key-counter store holding stock per figure type.

    Implementations raise ``InventoryUnavailable`` when the store cannot be
    reached. No compound operation is assumed.
    """

    def get_count(self, figure_type: str) -> int:
        """Current stock for ``figure_type`` (0 when unknown)."""
        raise NotImplementedError()

    def set_count(self, figure_type: str, value: int) -> None:
        """Overwrite the stock for ``figure_type``."""
        raise NotImplementedError()


@runtime_checkable
class AtomicInventoryPort(InventoryPort, Protocol):
    """Inventory store that also offers an atomic compare-and-set."""

    def compare_and_set(self, figure_type: str, expected: int, value: int) -> bool:
        """Write ``value`` only if the stock still equals ``expected``.

        Returns:
            True when the write happened, False when the stock had changed.
        """
        raise NotImplementedError()


class OrderStoragePort(Protocol):
    """Persistence for finished orders."""

    async def save(self, order: Order) -> Decimal:
        """Persist ``order`` and return its accepted total.

        Saving the same order id twice must not create a second order.

        Raises:
            PersistenceFailure: When the store is unreachable or rejects it.
        """
        raise NotImplementedError()

    async def exists(self, order_id: uuid.UUID) -> bool:
        """Whether an order with ``order_id`` has been persisted.

        Raises:
            PersistenceFailure: When the store is unreachable.
        """
        raise NotImplementedError()
