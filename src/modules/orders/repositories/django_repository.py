"""Django ORM implementation of the order ledger.

Every write runs in ``transaction.atomic()`` so an order, its items, its
first history row and its ``OrderCreated`` outbox row appear together or
not at all.  Status updates lock the order row with ``select_for_update()``.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional, Sequence

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction

from modules.core.models import OutboxEvent
from modules.orders.constants import ORDERS_TOPIC, OrderStatus
from modules.orders.dtos import LineItem
from modules.orders.events import OrderCreated
from modules.orders.models import Order, OrderItem, OrderStatusHistory
from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Create (aggregate root + children)
    # ------------------------------------------------------------------

    @transaction.atomic
    def create(
        self,
        buyer_id: int,
        total_amount: Decimal,
        line_items: Sequence[LineItem],
        notes: str = "",
        idempotency_key: Optional[str] = None,
    ) -> Order:
        order = Order(
            buyer_id=buyer_id,
            total_amount=total_amount,
            notes=notes,
            idempotency_key=idempotency_key,
            status=OrderStatus.PENDING,
        )
        order.save()

        OrderItem.objects.bulk_create(
            [
                OrderItem(
                    order=order,
                    position=position,
                    item_id=item.item_id,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                )
                for position, item in enumerate(line_items)
            ]
        )

        order.add_domain_event(
            OrderCreated(
                aggregate_id=order.id,
                buyer_id=buyer_id,
                total_amount=total_amount,
                line_items=tuple(
                    {"itemId": item.item_id, "quantity": item.quantity}
                    for item in line_items
                ),
            )
        )
        self.save(order)
        self.add_history(
            order_id=order.id,
            status=OrderStatus.PENDING,
            notes="Order created",
            old_status=None,
        )

        logger.info(
            "order.recorded",
            order_id=str(order.id),
            order_number=order.order_number,
            item_count=len(line_items),
        )
        return self.get_by_id(order.id) or order

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: Any) -> Optional[Order]:
        """Order with items and history prefetched; ``None`` for bad ids."""
        try:
            return (
                Order.objects.prefetch_related("items", "status_history")
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def get_for_update(self, id: Any) -> Optional[Order]:
        try:
            return Order.objects.select_for_update().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        return (
            Order.objects.prefetch_related("items", "status_history")
            .filter(idempotency_key=key)
            .first()
        )

    # ------------------------------------------------------------------
    # Save (IRepository contract)
    # ------------------------------------------------------------------

    @transaction.atomic
    def save(self, entity: Order) -> Order:
        """Persist the order and drain its domain events into the outbox."""
        entity.save()

        events = entity.domain_events
        for event in events:
            OutboxEvent.record(
                topic=ORDERS_TOPIC,
                event_type=event.event_name,
                aggregate_id=event.aggregate_id,
                payload=event.to_payload(),
            )
        entity.clear_domain_events()

        logger.debug("order.saved", order_id=str(entity.id), event_count=len(events))
        return entity

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    @transaction.atomic
    def add_history(
        self,
        order_id: Any,
        status: str,
        notes: str = "",
        old_status: Optional[str] = None,
        user_id: Optional[int] = None,
    ) -> OrderStatusHistory:
        history = OrderStatusHistory.objects.create(
            order_id=order_id,
            old_status=old_status,
            new_status=status,
            notes=notes,
            user_id=user_id,
        )
        logger.info(
            "order.history_added",
            order_id=str(order_id),
            old_status=old_status,
            new_status=status,
        )
        return history
