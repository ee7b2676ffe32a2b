"""Line and order pricing.

Prices are ``Decimal`` amounts quantized to cents. A line price is the
figure's area multiplied by the markup of its variant. The markup table must
cover every ``FigureType``; :func:`check_markup_table` enforces it at import
time and is called again at application startup.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Mapping

from .errors import ConfigurationError
from .geometry import Figure, FigureType, area

CENTS = Decimal("0.01")

MARKUPS: dict[FigureType, Decimal] = {
    FigureType.TRIANGLE: Decimal("1.2"),
    FigureType.SQUARE: Decimal("1.0"),
    FigureType.CIRCLE: Decimal("0.9"),
}


def check_markup_table(markups: Mapping[FigureType, Decimal] = MARKUPS) -> None:
    """Fail when some figure type has no markup.

    Raises:
        ConfigurationError: Listing the unpriced figure types.
    """
    missing = [t.value for t in FigureType if t not in markups]
    if missing:
        raise ConfigurationError(f"no markup defined for {missing}")


def line_total(figure: Figure, markups: Mapping[FigureType, Decimal] = MARKUPS) -> Decimal:
    """Price of a single figure: area times the variant's markup, in cents."""
    # str() keeps the shortest repr of the float instead of its binary expansion
    amount = Decimal(str(area(figure))) * markups[figure.figure_type]
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def order_total(figures: Iterable[Figure], markups: Mapping[FigureType, Decimal] = MARKUPS) -> Decimal:
    """Sum of line totals; exact, so independent of summation order."""
    return sum((line_total(f, markups) for f in figures), Decimal("0.00"))


check_markup_table()
