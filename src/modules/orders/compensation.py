"""Compensation strategies for aborted reservations.

When an order cannot be completed after some stock was already taken
(a later line item was rejected, the inventory service became unreachable,
or the order could not be recorded), the coordinator hands the receipt of
what was reserved to one of these strategies:

- ``NoCompensation``: leave the decrements in place and log them.
- ``SagaCompensation``: give the units back right away, newest first.
  Releases that fail are queued through the outbox.
- ``OutboxCompensation``: queue one release per reserved item; the
  ``orders.release_pending_stock`` task replays them.

``ORDER_COMPENSATION_STRATEGY`` selects one (``saga``, ``outbox``, ``none``).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Protocol

import structlog
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from modules.core.middleware import get_correlation_id
from modules.core.models import OutboxEvent
from modules.orders.constants import INVENTORY_TOPIC, STOCK_RELEASE_REQUESTED
from modules.orders.exceptions import RemoteServiceUnavailable
from modules.orders.reservation import ReservationOutcome, ReservationReceipt

if TYPE_CHECKING:
    from modules.orders.reservation import InventoryGateway

logger = structlog.get_logger(__name__)


class CompensationStrategy(Protocol):
    def compensate(self, receipt: ReservationReceipt, reason: str) -> None:
        ...


class NoCompensation:
    def compensate(self, receipt: ReservationReceipt, reason: str) -> None:
        if receipt:
            logger.warning(
                "compensation.skipped",
                reason=reason,
                item_ids=[o.item_id for o in receipt.outcomes],
                units=receipt.total_units,
            )


class OutboxCompensation:
    """Queues stock releases for asynchronous replay."""

    def compensate(self, receipt: ReservationReceipt, reason: str) -> None:
        correlation_id = get_correlation_id()
        for outcome in receipt.outcomes:
            OutboxEvent.record(
                topic=INVENTORY_TOPIC,
                event_type=STOCK_RELEASE_REQUESTED,
                aggregate_id=outcome.item_id,
                payload={
                    "itemId": outcome.item_id,
                    "quantity": outcome.quantity,
                    "reason": reason,
                    "correlationId": correlation_id,
                },
            )
        if receipt:
            logger.info(
                "compensation.release_queued",
                reason=reason,
                count=len(receipt),
            )


class SagaCompensation:
    """Releases reserved units synchronously, in reverse order."""

    def __init__(
        self,
        gateway: InventoryGateway,
        fallback: CompensationStrategy | None = None,
    ) -> None:
        self._gateway = gateway
        self._fallback = fallback or OutboxCompensation()

    def compensate(self, receipt: ReservationReceipt, reason: str) -> None:
        failed: List[ReservationOutcome] = []
        for outcome in reversed(receipt.outcomes):
            log = logger.bind(item_id=outcome.item_id, quantity=outcome.quantity)
            try:
                released = self._gateway.increment(outcome.item_id, outcome.quantity)
            except RemoteServiceUnavailable as exc:
                log.error("compensation.release_failed", error=str(exc))
                failed.append(outcome)
                continue
            if not released:
                log.error("compensation.release_rejected")
                failed.append(outcome)
                continue
            log.info("compensation.released", reason=reason)

        if failed:
            self._fallback.compensate(ReservationReceipt(tuple(failed)), reason)


def compensation_from_settings(gateway: InventoryGateway) -> CompensationStrategy:
    name = str(getattr(settings, "ORDER_COMPENSATION_STRATEGY", "saga")).lower()
    if name == "saga":
        return SagaCompensation(gateway)
    if name == "outbox":
        return OutboxCompensation()
    if name == "none":
        return NoCompensation()
    raise ImproperlyConfigured(
        f"Unknown ORDER_COMPENSATION_STRATEGY {name!r}; "
        "expected 'saga', 'outbox' or 'none'."
    )
