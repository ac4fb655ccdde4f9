"""Inventory domain exceptions.

Raised by ``StockService`` when an adjustment cannot be applied.  The
views translate them into HTTP responses the order service understands.
"""

from __future__ import annotations


class ProductNotFound(Exception):
    """The requested product does not exist."""


class InvalidQuantity(Exception):
    """Adjustment quantity is missing, non-numeric or below 1."""


class InsufficientStock(Exception):
    """Current stock is lower than the requested quantity."""

    reason = "insufficient_stock"

    def __init__(self, message: str, available: int) -> None:
        super().__init__(message)
        self.available = available


class ProductOutOfStock(InsufficientStock):
    """Current stock is zero."""

    reason = "out_of_stock"
