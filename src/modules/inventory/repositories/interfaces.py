"""Product repository interface.

Extends ``IRepository[Product]`` with the row-lock look-up and the two
atomic stock adjustments the inventory service exposes.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Optional

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.inventory.models import Product


class IProductRepository(IRepository["Product"]):
    """Repository contract for the Product aggregate."""

    @abstractmethod
    def get_for_update(self, id: Any) -> Optional["Product"]:
        """Retrieve a product with a row-level lock (SELECT FOR UPDATE).

        Must be called inside a transaction.  Returns ``None`` if the
        product does not exist.
        """

    @abstractmethod
    def decrement_stock(self, id: Any, quantity: int) -> bool:
        """Subtract *quantity* only if that much stock is available.

        Returns ``False`` (and changes nothing) otherwise.
        """

    @abstractmethod
    def increment_stock(self, id: Any, quantity: int) -> bool:
        """Add *quantity* back.  Returns ``False`` if the product is missing."""
