"""Integration tests for deferred stock releases.

``OutboxCompensation`` queues releases; ``orders.release_pending_stock``
replays them against the inventory endpoints.
"""

from __future__ import annotations

import pytest

from modules.core.models import EventStatus, OutboxEvent
from modules.inventory.models import Product
from modules.orders.compensation import OutboxCompensation
from modules.orders.constants import INVENTORY_TOPIC
from modules.orders.inventory_client import InventoryClient
from modules.orders.models import Order
from modules.orders.reservation import (
    ReservationOutcome,
    ReservationReceipt,
    ReservationResult,
)
from modules.orders.tasks import release_pending_stock

pytestmark = pytest.mark.integration


def _receipt(*pairs):
    return ReservationReceipt(
        tuple(ReservationOutcome(i, q, ReservationResult.RESERVED) for i, q in pairs)
    )


class TestReleasePendingStock:
    def test_replays_queued_releases(self, make_product, inventory_transport):
        make_product(pk=1, stock=6)
        make_product(pk=5, stock=4)
        OutboxCompensation().compensate(_receipt((1, 2), (5, 1)), "OUT_OF_STOCK")

        result = release_pending_stock.delay().get()

        assert result == {"released": 2, "failed": 0}
        assert Product.objects.get(pk=1).stock_quantity == 8
        assert Product.objects.get(pk=5).stock_quantity == 5
        assert not OutboxEvent.objects.filter(
            topic=INVENTORY_TOPIC, status=EventStatus.PENDING
        ).exists()

    def test_rejected_release_is_marked_failed(self, inventory_transport):
        OutboxCompensation().compensate(_receipt((404, 1)), "UNREACHABLE")

        result = release_pending_stock()

        assert result == {"released": 0, "failed": 1}
        event = OutboxEvent.objects.get(topic=INVENTORY_TOPIC)
        assert event.status == EventStatus.FAILED
        assert event.retry_count == 1

    def test_exhausted_rows_are_left_alone(self, settings, inventory_transport):
        settings.ORDER_RELEASE_MAX_RETRIES = 1
        OutboxCompensation().compensate(_receipt((404, 1)), "UNREACHABLE")
        release_pending_stock()

        assert release_pending_stock() == {"released": 0, "failed": 0}


class TestOutboxStrategyEndToEnd:
    def test_race_loser_is_compensated_by_the_task(
        self, settings, auth_client, make_product, inventory_transport, monkeypatch
    ):
        settings.ORDER_COMPENSATION_STRATEGY = "outbox"
        make_product(pk=1, stock=8)
        make_product(pk=5, stock=5)
        original = InventoryClient.decrement

        def decrement(self, item_id, quantity, timeout=None):
            if item_id == 5:
                Product.objects.filter(pk=5).update(stock_quantity=0)
            return original(self, item_id, quantity, timeout=timeout)

        monkeypatch.setattr(InventoryClient, "decrement", decrement)
        payload = {"total": 10, "items": [{"itemId": 1, "quantity": 2}, {"itemId": 5}]}

        response = auth_client.post("/api/v1/orders/", payload, format="json")

        assert response.status_code == 400
        assert not Order.objects.exists()
        assert Product.objects.get(pk=1).stock_quantity == 6

        release_pending_stock()

        assert Product.objects.get(pk=1).stock_quantity == 8
