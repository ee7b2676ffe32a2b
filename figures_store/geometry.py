"""Figure variants, their validation rules and area formulas.

Each variant is an independent frozen dataclass carrying only the
measurements it needs, with its own ``validate`` and ``area``. Figures are
constructed exclusively through :func:`build_figure`, which dispatches on
:class:`FigureType` and validates before returning, so every figure that
leaves this module is valid and immutable.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Union

from .errors import ConfigurationError, FigureInvalid, UnknownFigureType


class FigureType(str, Enum):
    """Closed set of figure variants sold by the store.

    The value doubles as the inventory key for the variant.
    """

    TRIANGLE = "Triangle"
    SQUARE = "Square"
    CIRCLE = "Circle"

    @classmethod
    def parse(cls, tag: "str | FigureType") -> "FigureType":
        """Resolve a type tag (case-insensitive) into a ``FigureType``.

        Raises:
            UnknownFigureType: When the tag names no known variant.
        """
        if isinstance(tag, cls):
            return tag
        if isinstance(tag, str):
            for member in cls:
                if member.value.lower() == tag.strip().lower():
                    return member
        raise UnknownFigureType(f"unknown figure type {tag!r}")


def _positive(value: float) -> bool:
    return math.isfinite(value) and value > 0


# Largest area that still prices to an exact cent amount.
MAX_AREA = 1e9


def _check_area(figure) -> None:
    value = figure.area()
    if not 0 < value <= MAX_AREA:
        raise FigureInvalid(f"area {value!r} out of range")


@dataclass(frozen=True)
class Triangle:
    a: float
    b: float
    c: float

    figure_type = FigureType.TRIANGLE

    def validate(self) -> None:
        a, b, c = self.a, self.b, self.c
        if not (_positive(a) and _positive(b) and _positive(c)):
            raise FigureInvalid("triangle sides must be positive")
        if not a < b + c or not b < a + c or not c < a + b:
            raise FigureInvalid("triangle inequality not met")
        _check_area(self)

    def area(self) -> float:
        # Heron's formula, stable ordering a >= b >= c
        a, b, c = sorted((self.a, self.b, self.c), reverse=True)
        product = (a + (b + c)) * (c - (a - b)) * (c + (a - b)) * (a + (b - c))
        return math.sqrt(max(product, 0.0)) / 4


@dataclass(frozen=True)
class Square:
    side: float

    figure_type = FigureType.SQUARE

    def validate(self) -> None:
        if not _positive(self.side):
            raise FigureInvalid("square side must be positive")
        _check_area(self)

    def area(self) -> float:
        return self.side * self.side


@dataclass(frozen=True)
class Circle:
    radius: float

    figure_type = FigureType.CIRCLE

    def validate(self) -> None:
        if not _positive(self.radius):
            raise FigureInvalid("circle radius must be positive")
        _check_area(self)

    def area(self) -> float:
        return math.pi * self.radius * self.radius


Figure = Union[Triangle, Square, Circle]


def validate(figure: Figure) -> None:
    """Raise ``FigureInvalid`` unless ``figure`` meets its variant's rules."""
    figure.validate()


def area(figure: Figure) -> float:
    """Area of an already validated figure."""
    return figure.area()


# ---- Factory ----

def _required(value: Optional[float], name: str) -> float:
    if value is None:
        raise FigureInvalid(f"missing {name}")
    return float(value)


def _triangle(side_a, side_b, side_c) -> Triangle:
    return Triangle(
        _required(side_a, "side_a"),
        _required(side_b, "side_b"),
        _required(side_c, "side_c"),
    )


def _square(side_a, side_b, side_c) -> Square:
    side = _required(side_a, "side_a")
    # A square keeps a single authoritative side; a second measurement is
    # only accepted when it matches.
    if side_b is not None and not math.isclose(side, float(side_b), rel_tol=1e-9, abs_tol=1e-9):
        raise FigureInvalid("square sides must be equal")
    return Square(side)


def _circle(side_a, side_b, side_c) -> Circle:
    return Circle(_required(side_a, "radius"))


_BUILDERS: dict[FigureType, Callable[..., Figure]] = {
    FigureType.TRIANGLE: _triangle,
    FigureType.SQUARE: _square,
    FigureType.CIRCLE: _circle,
}

_missing = set(FigureType) - set(_BUILDERS)
if _missing:
    raise ConfigurationError(f"no figure builder for {sorted(m.value for m in _missing)}")


def build_figure(
    figure_type: "str | FigureType",
    side_a: Optional[float] = None,
    side_b: Optional[float] = None,
    side_c: Optional[float] = None,
) -> Figure:
    """Construct and validate a figure from a type tag and raw measurements.

    This is the only place that maps a ``FigureType`` to a variant; adding a
    variant means adding its dataclass and one entry in ``_BUILDERS``.

    Args:
        figure_type: Variant tag or ``FigureType``.
        side_a: First measurement (side or radius).
        side_b: Second measurement, if the variant uses one.
        side_c: Third measurement, if the variant uses one.

    Returns:
        A validated, immutable figure.

    Raises:
        UnknownFigureType: For an unrecognized tag.
        FigureInvalid: When a measurement is missing or a rule is violated.
    """
    kind = FigureType.parse(figure_type)
    figure = _BUILDERS[kind](side_a, side_b, side_c)
    figure.validate()
    return figure
