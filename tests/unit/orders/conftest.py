import threading

import pytest

from modules.orders.exceptions import RemoteServiceUnavailable
from modules.orders.reservation import (
    ReservationOutcome,
    ReservationResult,
    StockSnapshot,
)


class FakeInventory:
    """In-memory, thread-safe stand-in for the inventory service."""

    def __init__(self, stock):
        self.stock = dict(stock)
        self.calls = []
        self.timeouts = []
        self.unreachable = set()
        self.lost_answers = set()
        self.fail_increments = False
        self.before_decrement = None
        self._lock = threading.Lock()

    def get_stock(self, item_id, timeout=None):
        self.calls.append(("get", item_id))
        if item_id not in self.stock:
            return StockSnapshot(item_id=item_id, exists=False)
        return StockSnapshot(
            item_id=item_id,
            exists=True,
            available_quantity=self.stock[item_id],
            name=f"Item {item_id}",
        )

    def decrement(self, item_id, quantity, timeout=None):
        self.calls.append(("decrement", item_id, quantity))
        self.timeouts.append(timeout)
        if self.before_decrement:
            self.before_decrement(self, item_id)
        if item_id in self.unreachable:
            raise RemoteServiceUnavailable("inventory down")
        with self._lock:
            if item_id not in self.stock:
                return ReservationOutcome(
                    item_id, quantity, ReservationResult.NOT_FOUND
                )
            available = self.stock[item_id]
            if available == 0:
                return ReservationOutcome(
                    item_id,
                    quantity,
                    ReservationResult.OUT_OF_STOCK,
                    available=0,
                    message=f"Product out of stock: Item {item_id}.",
                )
            if available < quantity:
                return ReservationOutcome(
                    item_id,
                    quantity,
                    ReservationResult.INSUFFICIENT_STOCK,
                    available=available,
                    message=f"Insufficient stock for Item {item_id}.",
                )
            self.stock[item_id] = available - quantity
            if item_id in self.lost_answers:
                raise RemoteServiceUnavailable("read timed out")
            return ReservationOutcome(
                item_id,
                quantity,
                ReservationResult.RESERVED,
                available=self.stock[item_id],
            )

    def increment(self, item_id, quantity, timeout=None):
        self.calls.append(("increment", item_id, quantity))
        if self.fail_increments:
            raise RemoteServiceUnavailable("inventory down")
        with self._lock:
            self.stock[item_id] += quantity
        return True


class RecordingCompensation:
    def __init__(self):
        self.calls = []

    def compensate(self, receipt, reason):
        self.calls.append((receipt, reason))


@pytest.fixture()
def fake_inventory():
    return FakeInventory({1: 8, 5: 5})


@pytest.fixture()
def recording_compensation():
    return RecordingCompensation()


@pytest.fixture()
def make_inventory():
    return FakeInventory


@pytest.fixture()
def make_compensation():
    return RecordingCompensation
