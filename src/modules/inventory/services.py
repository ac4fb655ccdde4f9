"""Inventory service layer.

The inventory side of the reservation protocol: it owns the counted stock
and is the only place where that count changes.

- ``reserve_stock``: atomic check-and-subtract.  The caller's earlier read
  may be stale; this re-check inside the local transaction is what
  actually decides who gets the last unit.
- ``release_stock``: add units back (compensation for a failed order).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from django.db import transaction

from modules.inventory.exceptions import (
    InsufficientStock,
    InvalidQuantity,
    ProductNotFound,
    ProductOutOfStock,
)

if TYPE_CHECKING:
    from modules.inventory.models import Product
    from modules.inventory.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)


def out_of_stock_message(name: str) -> str:
    return f"Product out of stock: {name}. No units available."


def insufficient_stock_message(name: str, available: int, requested: int) -> str:
    return (
        f"Insufficient stock for {name}. Only {available} unit(s) available "
        f"(requested {requested})."
    )


class StockService:
    """Application service for stock queries and adjustments."""

    def __init__(self, repository: IProductRepository) -> None:
        self._repo = repository

    def get_product(self, id: Any) -> Product:
        """Raises ``ProductNotFound`` if the product does not exist."""
        product = self._repo.get_by_id(id)
        if not product:
            raise ProductNotFound(f"Product {id} not found.")
        return product

    @transaction.atomic
    def reserve_stock(self, id: Any, quantity: int) -> Product:
        """Decrement stock by *quantity* or fail without changing anything.

        Raises:
            InvalidQuantity: quantity below 1.
            ProductNotFound: the product does not exist.
            ProductOutOfStock: stock is zero.
            InsufficientStock: stock is positive but below *quantity*.
        """
        _check_quantity(quantity)
        product = self._repo.get_for_update(id)
        if not product:
            raise ProductNotFound(f"Product {id} not found.")

        log = logger.bind(product_id=product.pk, requested=quantity)

        if product.is_out_of_stock:
            log.warning("stock.out_of_stock")
            raise ProductOutOfStock(out_of_stock_message(product.name), available=0)
        if product.stock_quantity < quantity:
            log.warning("stock.insufficient", available=product.stock_quantity)
            raise InsufficientStock(
                insufficient_stock_message(
                    product.name, product.stock_quantity, quantity
                ),
                available=product.stock_quantity,
            )

        if not self._repo.decrement_stock(product.pk, quantity):
            # Lost a race the row lock did not cover (e.g. SQLite).
            product.refresh_from_db(fields=["stock_quantity"])
            log.warning("stock.lost_race", available=product.stock_quantity)
            raise InsufficientStock(
                insufficient_stock_message(
                    product.name, product.stock_quantity, quantity
                ),
                available=product.stock_quantity,
            )

        product.refresh_from_db(fields=["stock_quantity", "updated_at"])
        log.info("stock.reserved", remaining=product.stock_quantity)
        return product

    @transaction.atomic
    def release_stock(self, id: Any, quantity: int) -> Product:
        """Add *quantity* units back to the product.

        Raises:
            InvalidQuantity: quantity below 1.
            ProductNotFound: the product does not exist.
        """
        _check_quantity(quantity)
        product = self._repo.get_for_update(id)
        if not product or not self._repo.increment_stock(product.pk, quantity):
            raise ProductNotFound(f"Product {id} not found.")

        product.refresh_from_db(fields=["stock_quantity", "updated_at"])
        logger.info(
            "stock.released",
            product_id=product.pk,
            quantity=quantity,
            restored_stock=product.stock_quantity,
        )
        return product


def _check_quantity(quantity: int) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise InvalidQuantity("Quantity must be a positive integer.")
