"""Unit tests for line and order pricing."""

from decimal import Decimal

import pytest

from figures_store.errors import ConfigurationError
from figures_store.geometry import Circle, FigureType, Square, Triangle
from figures_store.pricing import MARKUPS, check_markup_table, line_total, order_total


def test_line_totals_per_variant():
    assert line_total(Triangle(3, 4, 5)) == Decimal("7.20")
    assert line_total(Square(3)) == Decimal("9.00")
    assert line_total(Circle(2)) == Decimal("11.31")  # 12.566... * 0.9


def test_every_figure_type_is_priced():
    assert set(MARKUPS) == set(FigureType)
    check_markup_table()


def test_incomplete_markup_table_is_a_configuration_error():
    partial = {FigureType.TRIANGLE: Decimal("1.2"), FigureType.CIRCLE: Decimal("0.9")}
    with pytest.raises(ConfigurationError, match="Square"):
        check_markup_table(partial)


def test_order_total_is_exact_and_order_independent():
    figures = [Circle(2), Triangle(3, 4, 5), Square(1.5), Circle(0.3)]
    forward = order_total(figures)
    assert forward == order_total(list(reversed(figures)))
    assert forward == sum((line_total(f) for f in figures), Decimal("0"))


def test_empty_order_total_is_zero():
    assert order_total([]) == Decimal("0.00")
