"""Tests for money and order number helpers."""

import re
from datetime import datetime
from decimal import Decimal

from orderflow.utils.helpers import generate_order_number, to_minor_units, to_money


class TestGenerateOrderNumber:
    """Tests for human readable order numbers."""

    def test_format(self):
        number = generate_order_number(now=datetime(2026, 3, 4, 5, 6, 7))

        assert re.fullmatch(r"ORD20260304050607[A-Z0-9]{6}", number)

    def test_custom_prefix(self):
        assert generate_order_number("SHOP").startswith("SHOP")

    def test_same_second_numbers_do_not_collide(self):
        now = datetime(2026, 3, 4, 5, 6, 7)

        numbers = {generate_order_number(now=now) for _ in range(2000)}

        assert len(numbers) == 2000


class TestMoney:
    def test_rounds_half_up(self):
        assert to_money("10.005") == Decimal("10.01")
        assert to_money(None) == Decimal("0.00")

    def test_minor_units(self):
        assert to_minor_units(Decimal("560.5")) == 56050
