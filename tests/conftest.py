from decimal import Decimal

import httpx
import pybreaker
import pytest
from django.conf import settings
from django.contrib.auth import get_user_model
from django.test import Client
from rest_framework.test import APIClient

from modules.inventory.models import Product
from modules.orders.inventory_client import InventoryClient

User = get_user_model()


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def buyer():
    return User.objects.create_user(username="buyer", password="testpass123")


@pytest.fixture()
def auth_client(buyer):
    """APIClient with a force-authenticated buyer."""
    client = APIClient()
    client.force_authenticate(user=buyer)
    return client


@pytest.fixture()
def admin_client():
    """APIClient with a force-authenticated staff user."""
    client = APIClient()
    admin = User.objects.create_user(
        username="admin", password="testpass123", is_staff=True
    )
    client.force_authenticate(user=admin)
    return client


# ---------------------------------------------------------------------------
# Inventory service, served in-process
# ---------------------------------------------------------------------------


class DjangoTestTransport(httpx.BaseTransport):
    """httpx transport that hands requests to Django's test client.

    Calls made by ``InventoryClient`` reach the inventory views of this
    project without a network, inside the test transaction.
    """

    def __init__(self) -> None:
        self._client = Client()
        self.calls: list[tuple[str, str]] = []
        self.request_ids: list[str] = []

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        path = request.url.raw_path.decode("ascii")
        extra = {}
        if "authorization" in request.headers:
            extra["HTTP_AUTHORIZATION"] = request.headers["authorization"]
        if "x-request-id" in request.headers:
            extra["HTTP_X_REQUEST_ID"] = request.headers["x-request-id"]
            self.request_ids.append(request.headers["x-request-id"])

        response = self._client.generic(
            request.method,
            path,
            data=request.read(),
            content_type=request.headers.get("content-type", "application/json"),
            **extra,
        )
        self.calls.append((request.method, request.url.path))
        return httpx.Response(
            status_code=response.status_code,
            headers={"Content-Type": response.get("Content-Type", "application/json")},
            content=response.content,
            request=request,
        )


@pytest.fixture()
def inventory_transport(monkeypatch):
    """Route every ``InventoryClient.from_settings()`` through Django.

    Each test gets its own circuit breaker so failures never leak between
    tests.
    """
    transport = DjangoTestTransport()
    breaker = pybreaker.CircuitBreaker(fail_max=5, reset_timeout=60)

    def from_settings(cls, transport_override=None):
        return cls(
            base_url=settings.INVENTORY_SERVICE_URL,
            timeout=settings.INVENTORY_TIMEOUT,
            breaker=breaker,
            transport=transport,
        )

    monkeypatch.setattr(InventoryClient, "from_settings", classmethod(from_settings))
    return transport


@pytest.fixture()
def make_product():
    counter = {"n": 0}

    def _make(pk=None, stock=10, name=None, price="100.00"):
        counter["n"] += 1
        n = counter["n"]
        return Product.objects.create(
            id=pk,
            sku=f"SKU-{pk or n}",
            name=name or f"Product {pk or n}",
            price=Decimal(price),
            stock_quantity=stock,
        )

    return _make
