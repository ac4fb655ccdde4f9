"""Order repository interface (the order ledger).

Extends ``IRepository[Order]`` with what the order service needs: atomic
creation of an order with its line items, status history, and look-up by
idempotency key.  The service layer depends only on this contract.
"""

from __future__ import annotations

from abc import abstractmethod
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Optional, Sequence

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.orders.dtos import LineItem
    from modules.orders.models import Order, OrderStatusHistory


class IOrderRepository(IRepository["Order"]):
    """Repository contract for the Order aggregate root."""

    @abstractmethod
    def create(
        self,
        buyer_id: int,
        total_amount: Decimal,
        line_items: Sequence[LineItem],
        notes: str = "",
        idempotency_key: Optional[str] = None,
    ) -> Order:
        """Record a PENDING order and its items in one transaction.

        Only called after every line item's stock was reserved.
        """

    @abstractmethod
    def get_for_update(self, id: Any) -> Optional[Order]:
        """Retrieve an order holding a row-level lock."""

    @abstractmethod
    def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        """Retrieve the order created with *key*, if any."""

    @abstractmethod
    def add_history(
        self,
        order_id: Any,
        status: str,
        notes: str = "",
        old_status: Optional[str] = None,
        user_id: Optional[int] = None,
    ) -> OrderStatusHistory:
        """Append a status change to the order's audit trail."""
