"""Pydantic schemas for the order-submission API.

Only structural validation happens here; geometric rules, type resolution
and count checks belong to the domain so they produce the domain error
codes.
"""

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .domain import Cart, Position


class PositionIn(BaseModel):
    """Input schema for a single cart position.

    Attributes:
        figure_type: Figure type tag ("Triangle", "Square", "Circle").
        side_a: First measurement (side or radius).
        side_b: Second measurement, when the figure has one.
        side_c: Third measurement, when the figure has one.
        count: Non-negative quantity requested.
    """

    model_config = ConfigDict(populate_by_name=True)

    figure_type: str = Field(alias="figureType", min_length=1, max_length=32)
    side_a: Optional[float] = Field(default=None, alias="sideA")
    side_b: Optional[float] = Field(default=None, alias="sideB")
    side_c: Optional[float] = Field(default=None, alias="sideC")
    count: int = Field(ge=0)


class CartIn(BaseModel):
    """Schema for submitting a cart. A null or missing list is an empty cart."""

    positions: Optional[List[PositionIn]] = None

    def to_domain(self) -> Cart:
        return Cart(positions=tuple(
            Position(
                figure_type=p.figure_type,
                side_a=p.side_a,
                side_b=p.side_b,
                side_c=p.side_c,
                count=p.count,
            )
            for p in self.positions or ()
        ))


class OrderTotalOut(BaseModel):
    total: Decimal


class StockIn(BaseModel):
    count: int = Field(ge=0)


class StockOut(BaseModel):
    figure_type: str
    count: int
