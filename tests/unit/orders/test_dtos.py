from __future__ import annotations

from decimal import Decimal

import pytest
from pydantic import ValidationError

from modules.orders.dtos import CreateOrderDTO, LineItem

pytestmark = pytest.mark.unit


class TestLineItem:
    def test_defaults_to_one_unit(self):
        assert LineItem(item_id=3).quantity == 1

    def test_rejects_zero_quantity(self):
        with pytest.raises(ValidationError):
            LineItem(item_id=3, quantity=0)

    def test_rejects_negative_price(self):
        with pytest.raises(ValidationError):
            LineItem(item_id=3, unit_price=Decimal("-1"))

    def test_is_frozen(self):
        item = LineItem(item_id=3)
        with pytest.raises(ValidationError):
            item.quantity = 5


class TestCreateOrderDTO:
    def test_rejects_empty_line_items(self):
        with pytest.raises(ValidationError):
            CreateOrderDTO(buyer_id=1, total_amount=Decimal("10"), line_items=())

    def test_rejects_zero_total(self):
        with pytest.raises(ValidationError):
            CreateOrderDTO(
                buyer_id=1,
                total_amount=Decimal("0"),
                line_items=(LineItem(item_id=1),),
            )
