"""Error taxonomy for the figures store.

Business outcomes are ``ValueError`` subclasses whose string form is a short
code (``str(e) == "INSUFFICIENT_STOCK"``), so callers and the HTTP layer can
map them without inspecting messages. Upstream failures that are worth
retrying derive from ``RuntimeError`` instead.
"""


class OrderError(ValueError):
    """Base class for business errors raised while fulfilling an order.

    Attributes:
        code: Short, stable error code. Also the string form of the error.
        detail: Optional human readable explanation (figure type, sides...).
    """

    code = "ORDER_ERROR"

    def __init__(self, detail: str | None = None):
        super().__init__(self.code)
        self.detail = detail


class InvalidRequest(OrderError):
    """Malformed request, e.g. a non-positive count."""

    code = "INVALID_REQUEST"


class UnknownFigureType(OrderError):
    """The figure type tag does not name a known variant."""

    code = "UNKNOWN_FIGURE_TYPE"


class FigureInvalid(OrderError):
    """A figure violates its geometric constraints."""

    code = "FIGURE_INVALID"


class Unavailable(OrderError):
    """Not enough stock at availability-check time."""

    code = "UNAVAILABLE"


class InsufficientStock(OrderError):
    """Not enough stock at reservation time (lost a race after the check)."""

    code = "INSUFFICIENT_STOCK"


class UpstreamError(RuntimeError):
    """Base class for retryable failures of an external collaborator."""

    code = "UPSTREAM_UNAVAILABLE"

    def __init__(self, detail: str | None = None):
        super().__init__(self.code)
        self.detail = detail


class InventoryUnavailable(UpstreamError):
    """The inventory store could not be reached or kept losing CAS races."""

    code = "INVENTORY_UNAVAILABLE"


class PersistenceFailure(UpstreamError):
    """The order store was unreachable, timed out or rejected the order."""

    code = "PERSISTENCE_FAILURE"


class ConfigurationError(RuntimeError):
    """Static configuration is incomplete (e.g. an unpriced figure type)."""
