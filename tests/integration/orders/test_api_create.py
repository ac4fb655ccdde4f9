"""Integration tests for POST /api/v1/orders/.

The order view calls the inventory endpoints over HTTP; the
``inventory_transport`` fixture serves those calls from this same Django
project, so stock really moves through the inventory views.

Covers:
- Happy path with explicit items and with flat id lists.
- Not-found, out-of-stock, insufficient and multi-problem rejections.
- Stock taken between validation and reservation (saga compensation).
- Inventory unreachable.
- Amounts too large for the ledger, and ledger failures after reservation.
- Authentication enforcement and envelope shape.
"""

from __future__ import annotations

from decimal import InvalidOperation

import httpx
import pybreaker
import pytest
from django.conf import settings

from modules.inventory.models import Product
from modules.orders.constants import OrderStatus
from modules.orders.inventory_client import InventoryClient
from modules.orders.models import Order
from modules.orders.repositories.django_repository import OrderDjangoRepository

pytestmark = pytest.mark.integration

URL = "/api/v1/orders/"


@pytest.fixture()
def catalog(make_product):
    return {
        1: make_product(pk=1, stock=8, name="Laptop"),
        5: make_product(pk=5, stock=5, name="Monitor"),
    }


def _stock(pk):
    return Product.objects.get(pk=pk).stock_quantity


class TestCreateOrder:
    def test_reserves_stock_and_records_pending_order(
        self, auth_client, buyer, catalog, inventory_transport
    ):
        payload = {
            "totalAmount": 15999.99,
            "items": [{"itemId": 1, "quantity": 2}, {"itemId": 5, "quantity": 1}],
        }

        response = auth_client.post(URL, payload, format="json")

        assert response.status_code == 201
        body = response.json()
        assert body["ok"] is True
        assert body["statusCode"] == 201
        assert body["count"] == 1
        data = body["data"]
        assert data["status"] == OrderStatus.PENDING
        assert data["total_amount"] == "15999.99"
        assert data["buyer_id"] == buyer.pk
        lines = [(i["item_id"], i["quantity"]) for i in data["items"]]
        assert lines == [(1, 2), (5, 1)]
        assert _stock(1) == 6
        assert _stock(5) == 4
        assert ("PUT", "/api/v1/products/1/stock/") in inventory_transport.calls

    def test_flat_ids_with_duplicates(self, auth_client, catalog, inventory_transport):
        response = auth_client.post(
            URL, {"total": 300, "itemIds": [5, 5]}, format="json"
        )

        assert response.status_code == 201
        assert len(response.json()["data"]["items"]) == 2
        assert _stock(5) == 3

    def test_legacy_comma_string(self, auth_client, catalog, inventory_transport):
        response = auth_client.post(
            URL, {"total": 300, "productIds": "1,5"}, format="json"
        )

        assert response.status_code == 201
        assert _stock(1) == 7
        assert _stock(5) == 4

    def test_buyer_id_from_body(self, auth_client, catalog, inventory_transport):
        response = auth_client.post(
            URL, {"total": 10, "itemIds": [1], "userId": 4242}, format="json"
        )
        assert response.json()["data"]["buyer_id"] == 4242


class TestRejections:
    def test_missing_item_creates_nothing(
        self, auth_client, catalog, inventory_transport
    ):
        payload = {"totalAmount": 100, "items": [{"itemId": 1}, {"itemId": 99}]}

        response = auth_client.post(URL, payload, format="json")

        assert response.status_code == 404
        body = response.json()
        assert body["ok"] is False
        assert "99" in body["message"]
        assert body["data"]["missingItemIds"] == [99]
        assert not Order.objects.exists()
        assert _stock(1) == 8

    def test_out_of_stock_message(self, auth_client, make_product, inventory_transport):
        make_product(pk=7, stock=0, name="Mouse")

        response = auth_client.post(URL, {"total": 10, "itemIds": [7]}, format="json")

        assert response.status_code == 400
        assert (
            response.json()["message"]
            == "Product out of stock: Mouse. No units available."
        )

    def test_insufficient_stock_message(
        self, auth_client, catalog, inventory_transport
    ):
        payload = {"total": 10, "items": [{"itemId": 5, "quantity": 6}]}

        response = auth_client.post(URL, payload, format="json")

        assert response.status_code == 400
        message = response.json()["message"]
        assert message.startswith("Insufficient stock for Monitor.")
        assert "Only 5 unit(s) available" in message
        assert _stock(5) == 5

    def test_several_problems_are_reported_together(
        self, auth_client, catalog, make_product, inventory_transport
    ):
        make_product(pk=7, stock=0, name="Mouse")
        payload = {
            "total": 10,
            "items": [{"itemId": 7}, {"itemId": 5, "quantity": 9}, {"itemId": 1}],
        }

        response = auth_client.post(URL, payload, format="json")

        assert response.status_code == 400
        body = response.json()
        assert body["message"].startswith("Stock problems: ")
        assert len(body["data"]["details"]) == 2
        assert _stock(1) == 8

    def test_validation_error(self, auth_client, catalog, inventory_transport):
        response = auth_client.post(URL, {"itemIds": [1]}, format="json")

        assert response.status_code == 400
        assert "total" in response.json()["message"]
        assert inventory_transport.calls == []

    def test_requires_authentication(self, api_client, catalog):
        response = api_client.post(URL, {"total": 10, "itemIds": [1]}, format="json")

        assert response.status_code == 401
        body = response.json()
        assert body["ok"] is False
        assert body["statusCode"] == 401


class TestReservationRace:
    def test_stock_taken_after_validation_is_given_back(
        self, auth_client, catalog, inventory_transport, monkeypatch
    ):
        original = InventoryClient.decrement

        def decrement(self, item_id, quantity, timeout=None):
            if item_id == 5:
                Product.objects.filter(pk=5).update(stock_quantity=0)
            return original(self, item_id, quantity, timeout=timeout)

        monkeypatch.setattr(InventoryClient, "decrement", decrement)
        payload = {"total": 10, "items": [{"itemId": 1, "quantity": 2}, {"itemId": 5}]}

        response = auth_client.post(URL, payload, format="json")

        assert response.status_code == 400
        assert "out of stock" in response.json()["message"]
        assert not Order.objects.exists()
        assert _stock(1) == 8
        release = ("POST", "/api/v1/products/1/stock/release/")
        assert release in inventory_transport.calls


class TestInventoryUnavailable:
    def test_unreachable_inventory_is_a_server_error(
        self, auth_client, catalog, monkeypatch
    ):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        def from_settings(cls, transport=None):
            return cls(
                base_url=settings.INVENTORY_SERVICE_URL,
                timeout=settings.INVENTORY_TIMEOUT,
                breaker=pybreaker.CircuitBreaker(fail_max=5, reset_timeout=60),
                transport=httpx.MockTransport(refuse),
            )

        monkeypatch.setattr(
            InventoryClient, "from_settings", classmethod(from_settings)
        )

        response = auth_client.post(URL, {"total": 10, "itemIds": [1]}, format="json")

        assert response.status_code == 500
        assert response.json()["ok"] is False
        assert not Order.objects.exists()


class TestLedgerFailure:
    def test_oversized_total_is_rejected_before_reserving(
        self, auth_client, catalog, inventory_transport
    ):
        payload = {
            "totalAmount": "1000000000000",
            "items": [{"itemId": 1, "quantity": 2}],
        }

        response = auth_client.post(URL, payload, format="json")

        assert response.status_code == 400
        assert "must not exceed" in response.json()["message"]
        assert inventory_transport.calls == []
        assert _stock(1) == 8

    def test_oversized_price_is_rejected(
        self, auth_client, catalog, inventory_transport
    ):
        payload = {
            "total": 10,
            "items": [{"itemId": 1, "price": "1000000000000"}],
        }

        response = auth_client.post(URL, payload, format="json")

        assert response.status_code == 400
        assert _stock(1) == 8

    def test_unexpected_write_error_gives_stock_back(
        self, auth_client, catalog, inventory_transport, monkeypatch
    ):
        def create(self, *args, **kwargs):
            raise InvalidOperation()

        monkeypatch.setattr(OrderDjangoRepository, "create", create)
        payload = {"total": 10, "items": [{"itemId": 1, "quantity": 2}]}

        response = auth_client.post(URL, payload, format="json")

        assert response.status_code == 500
        assert response.json()["message"] == "The order could not be recorded."
        assert not Order.objects.exists()
        assert _stock(1) == 8
        release = ("POST", "/api/v1/products/1/stock/release/")
        assert release in inventory_transport.calls
