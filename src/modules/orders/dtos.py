"""Order DTOs for the service layer.

Framework-agnostic data transfer objects using Pydantic v2.  They are the
contract between the normalizer (which builds them from raw request
bodies) and the reservation coordinator / order service.  DTOs are
immutable (``frozen=True``).

- ``LineItem``: one (item, quantity) pair of an order, in request order.
- ``CreateOrderDTO``: a fully validated order-creation request.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, field_validator


class LineItem(BaseModel):
    """Immutable line item.

    ``unit_price`` is the price the buyer saw, kept for the record only;
    pricing is not computed here.
    """

    model_config = ConfigDict(frozen=True)

    item_id: int
    quantity: int = 1
    unit_price: Optional[Decimal] = None

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Quantity must be at least 1.")
        return v

    @field_validator("unit_price")
    @classmethod
    def price_must_not_be_negative(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        if v is not None and v < 0:
            raise ValueError("Unit price cannot be negative.")
        return v


class CreateOrderDTO(BaseModel):
    """Immutable DTO for order creation.

    Validates:
    - ``line_items`` contains at least one item (order preserved,
      duplicates kept as separate entries).
    - ``total_amount`` is greater than zero.
    """

    model_config = ConfigDict(frozen=True)

    buyer_id: int
    total_amount: Decimal
    line_items: Tuple[LineItem, ...]
    notes: str = ""
    idempotency_key: Optional[str] = None

    @field_validator("line_items")
    @classmethod
    def line_items_must_not_be_empty(
        cls, v: Tuple[LineItem, ...]
    ) -> Tuple[LineItem, ...]:
        if not v:
            raise ValueError("Order must have at least one item.")
        return v

    @field_validator("total_amount")
    @classmethod
    def total_must_be_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("Total amount must be greater than zero.")
        return v
