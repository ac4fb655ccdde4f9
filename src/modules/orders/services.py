"""Order service layer (Use Cases).

``create_order`` ties the protocol together::

    normalized request -> ReservationCoordinator.reserve -> ledger.create

The ledger is only written after every line item's stock was reserved.
If the write fails, the reservation is compensated before the error
propagates, so a failed request leaves neither an order nor taken stock.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

import structlog
from django.db import IntegrityError, transaction

from modules.orders.constants import OrderStatus
from modules.orders.events import OrderStatusChanged
from modules.orders.exceptions import (
    IdempotencyKeyConflict,
    InvalidOrderStatus,
    OrderNotFound,
    OrderPersistenceError,
)

if TYPE_CHECKING:
    from modules.orders.dtos import CreateOrderDTO
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.orders.reservation import ReservationCoordinator

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class OrderPlacement:
    order: Order
    replayed: bool = False


class OrderService:
    """Application service for Order use-cases.

    Receives its collaborators via constructor injection.  The coordinator
    is only needed by ``create_order``.
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        coordinator: Optional[ReservationCoordinator] = None,
    ) -> None:
        self._order_repo = order_repository
        self._coordinator = coordinator

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_order(self, dto: CreateOrderDTO) -> OrderPlacement:
        """Reserve stock for every line item, then record the order.

        Raises:
            ProductNotFound: an item does not exist.
            ProductOutOfStock / InsufficientStock: stock too low.
            RemoteServiceUnavailable: inventory unreachable or too slow.
            IdempotencyKeyConflict: the key belongs to another buyer's order.
            OrderPersistenceError: stock was reserved (and has been given
                back) but the order could not be written.
        """
        if self._coordinator is None:
            raise RuntimeError("OrderService.create_order needs a ReservationCoordinator.")

        log = logger.bind(buyer_id=dto.buyer_id, line_count=len(dto.line_items))
        log.info("order.creation_started")

        if dto.idempotency_key:
            existing = self._order_repo.get_by_idempotency_key(dto.idempotency_key)
            if existing:
                _check_key_owner(existing, dto)
                log.info(
                    "order.idempotency_hit",
                    order_id=str(existing.id),
                    key=dto.idempotency_key,
                )
                return OrderPlacement(existing, replayed=True)

        receipt = self._coordinator.reserve(dto.line_items)

        try:
            order = self._order_repo.create(
                buyer_id=dto.buyer_id,
                total_amount=dto.total_amount,
                line_items=dto.line_items,
                notes=dto.notes,
                idempotency_key=dto.idempotency_key,
            )
        except IntegrityError as exc:
            winner = (
                self._order_repo.get_by_idempotency_key(dto.idempotency_key)
                if dto.idempotency_key
                else None
            )
            if winner is None:
                log.error("order.ledger_failed", error=str(exc))
                self._coordinator.compensate(receipt, "ledger_failure")
                raise OrderPersistenceError("The order could not be recorded.") from exc
            # Lost the race for the idempotency key: the winner holds the stock.
            self._coordinator.compensate(receipt, "duplicate_request")
            _check_key_owner(winner, dto)
            log.info("order.idempotency_race_lost", order_id=str(winner.id))
            return OrderPlacement(winner, replayed=True)
        except Exception as exc:
            log.error(
                "order.ledger_failed",
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            self._coordinator.compensate(receipt, "ledger_failure")
            raise OrderPersistenceError("The order could not be recorded.") from exc

        log.info(
            "order.created",
            order_id=str(order.id),
            order_number=order.order_number,
        )
        return OrderPlacement(order)

    @transaction.atomic
    def update_status(
        self,
        order_id: Any,
        new_status: str,
        notes: str = "",
        user_id: Optional[int] = None,
    ) -> Order:
        """Move an order to *new_status*.

        Requesting the status the order already has is a no-op.

        Raises:
            OrderNotFound: order does not exist.
            InvalidOrderStatus: unknown status or transition not allowed.
        """
        new_status = str(new_status or "").upper()
        if new_status not in OrderStatus.values:
            raise InvalidOrderStatus(f"Unknown order status: {new_status or '(empty)'}.")

        order = self._order_repo.get_for_update(order_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")

        log = logger.bind(
            order_id=str(order.id),
            current_status=order.status,
            new_status=new_status,
        )

        if order.status == new_status:
            log.info("order.status_unchanged")
            return self._order_repo.get_by_id(order.id) or order

        if not order.can_transition_to(new_status):
            log.warning("order.invalid_transition")
            raise InvalidOrderStatus(
                f"Cannot transition from {order.status} to {new_status}."
            )

        old_status = order.status
        order.status = new_status
        order.add_domain_event(
            OrderStatusChanged(
                aggregate_id=order.id,
                old_status=old_status,
                new_status=new_status,
            )
        )
        self._order_repo.save(order)
        self._order_repo.add_history(
            order_id=order.id,
            status=new_status,
            notes=notes,
            old_status=old_status,
            user_id=user_id,
        )

        log.info("order.status_updated")
        return self._order_repo.get_by_id(order.id) or order

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: Any) -> Order:
        """Raises ``OrderNotFound`` if the order does not exist."""
        order = self._order_repo.get_by_id(order_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order


def _check_key_owner(order: Order, dto: CreateOrderDTO) -> None:
    if order.buyer_id != dto.buyer_id:
        logger.warning(
            "order.idempotency_key_conflict",
            buyer_id=dto.buyer_id,
            key=dto.idempotency_key,
        )
        raise IdempotencyKeyConflict(
            "This Idempotency-Key was already used for another order."
        )
