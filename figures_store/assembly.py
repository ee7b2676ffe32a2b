"""Turn a cart into a validated ``Order``."""

from .domain import Cart, Order, OrderLine
from .geometry import build_figure


def build_order(cart: Cart) -> Order:
    """Build an order from every position of ``cart``.

    Any invalid or unknown figure aborts the whole build; no partial
    orders are produced. An empty cart yields an empty order.

    Raises:
        UnknownFigureType: For an unrecognized figure type tag.
        FigureInvalid: When a figure violates its geometric rules.
    """
    lines = tuple(
        OrderLine(
            figure=build_figure(p.figure_type, p.side_a, p.side_b, p.side_c),
            count=p.count,
        )
        for p in cart.positions
    )
    return Order(lines=lines)
