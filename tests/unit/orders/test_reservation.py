"""Unit tests for ReservationCoordinator.

Covers:
- Phase 1 collects every problem before reporting; missing items win.
- Single stock problem surfaces unwrapped (out of stock vs insufficient).
- Nothing is decremented when Phase 1 rejects.
- Phase 2 rejection after a Phase 1 pass compensates earlier reservations.
- Deadline shared by every remote call.
- Concurrent buyers never take more units than exist.
"""

from __future__ import annotations

import threading

import pytest

from modules.orders.compensation import SagaCompensation
from modules.orders.dtos import LineItem
from modules.orders.exceptions import (
    InsufficientStock,
    ProductNotFound,
    ProductOutOfStock,
    RemoteServiceUnavailable,
)
from modules.orders.reservation import ReservationCoordinator, ReservationResult

pytestmark = pytest.mark.unit


def _items(*pairs):
    return [LineItem(item_id=i, quantity=q) for i, q in pairs]


def _decrements(inventory):
    return [call for call in inventory.calls if call[0] == "decrement"]


class TestHappyPath:
    def test_reserves_every_line_in_order(self, fake_inventory, recording_compensation):
        coordinator = ReservationCoordinator(fake_inventory, recording_compensation)

        receipt = coordinator.reserve(_items((1, 2), (5, 1)))

        assert [o.item_id for o in receipt.outcomes] == [1, 5]
        assert all(o.result is ReservationResult.RESERVED for o in receipt.outcomes)
        assert fake_inventory.stock == {1: 6, 5: 4}
        assert receipt.total_units == 3
        assert recording_compensation.calls == []

    def test_duplicates_are_decremented_separately(
        self, fake_inventory, recording_compensation
    ):
        coordinator = ReservationCoordinator(fake_inventory, recording_compensation)

        coordinator.reserve(_items((5, 1), (5, 1)))

        assert _decrements(fake_inventory) == [("decrement", 5, 1), ("decrement", 5, 1)]
        assert fake_inventory.stock[5] == 3


class TestPhaseOne:
    def test_missing_item_rejects_before_any_decrement(
        self, make_inventory, recording_compensation
    ):
        inventory = make_inventory({1: 8})
        coordinator = ReservationCoordinator(inventory, recording_compensation)

        with pytest.raises(ProductNotFound) as exc_info:
            coordinator.reserve(_items((1, 2), (99, 1)))

        assert exc_info.value.ids == [99]
        assert _decrements(inventory) == []
        assert inventory.stock == {1: 8}

    def test_missing_wins_over_stock_problems(
        self, make_inventory, recording_compensation
    ):
        inventory = make_inventory({1: 0})
        coordinator = ReservationCoordinator(inventory, recording_compensation)

        with pytest.raises(ProductNotFound):
            coordinator.reserve(_items((1, 1), (99, 1)))

    def test_single_out_of_stock_is_unwrapped(
        self, make_inventory, recording_compensation
    ):
        inventory = make_inventory({1: 0})
        coordinator = ReservationCoordinator(inventory, recording_compensation)

        with pytest.raises(ProductOutOfStock) as exc_info:
            coordinator.reserve(_items((1, 1)))

        expected = "Product out of stock: Item 1. No units available."
        assert str(exc_info.value) == expected

    def test_single_insufficient_is_unwrapped(
        self, make_inventory, recording_compensation
    ):
        inventory = make_inventory({1: 2})
        coordinator = ReservationCoordinator(inventory, recording_compensation)

        with pytest.raises(InsufficientStock) as exc_info:
            coordinator.reserve(_items((1, 3)))

        assert not isinstance(exc_info.value, ProductOutOfStock)
        assert "Only 2 unit(s) available" in str(exc_info.value)
        assert not str(exc_info.value).startswith("Stock problems")

    def test_several_problems_are_joined(self, make_inventory, recording_compensation):
        inventory = make_inventory({1: 0, 2: 1, 3: 10})
        coordinator = ReservationCoordinator(inventory, recording_compensation)

        with pytest.raises(InsufficientStock) as exc_info:
            coordinator.reserve(_items((1, 1), (2, 4), (3, 1)))

        error = exc_info.value
        assert str(error).startswith("Stock problems: ")
        assert len(error.details) == 2
        assert "out of stock: Item 1" in error.details[0]
        assert "Only 1 unit(s)" in error.details[1]
        assert _decrements(inventory) == []


class TestPhaseTwo:
    def test_race_after_validation_compensates_reserved_items(
        self, make_inventory, recording_compensation
    ):
        inventory = make_inventory({1: 8, 5: 5})

        def steal(fake, item_id):
            if item_id == 5:
                fake.stock[5] = 0

        inventory.before_decrement = steal
        coordinator = ReservationCoordinator(inventory, recording_compensation)

        with pytest.raises(ProductOutOfStock):
            coordinator.reserve(_items((1, 2), (5, 1)))

        [(receipt, reason)] = recording_compensation.calls
        assert [(o.item_id, o.quantity) for o in receipt.outcomes] == [(1, 2)]
        assert reason == "OUT_OF_STOCK"

    def test_saga_restores_stock_after_rejection(
        self, make_inventory, make_compensation
    ):
        inventory = make_inventory({1: 8, 5: 5})
        inventory.before_decrement = lambda fake, item_id: (
            fake.stock.__setitem__(5, 0) if item_id == 5 else None
        )
        coordinator = ReservationCoordinator(inventory, SagaCompensation(inventory))

        with pytest.raises(InsufficientStock):
            coordinator.reserve(_items((1, 2), (5, 1)))

        assert inventory.stock[1] == 8

    def test_unreachable_aborts_and_compensates(
        self, make_inventory, recording_compensation
    ):
        inventory = make_inventory({1: 8, 5: 5})
        inventory.unreachable = {5}
        coordinator = ReservationCoordinator(inventory, recording_compensation)

        with pytest.raises(RemoteServiceUnavailable):
            coordinator.reserve(_items((1, 1), (5, 1), (1, 1)))

        assert len(_decrements(inventory)) == 2
        [(receipt, reason)] = recording_compensation.calls
        assert len(receipt) == 1
        assert reason == "UNREACHABLE"

    def test_first_rejection_needs_no_compensation(
        self, make_inventory, recording_compensation
    ):
        inventory = make_inventory({1: 8})
        inventory.before_decrement = lambda fake, item_id: fake.stock.__setitem__(1, 0)
        coordinator = ReservationCoordinator(inventory, recording_compensation)

        with pytest.raises(ProductOutOfStock):
            coordinator.reserve(_items((1, 1)))

        assert recording_compensation.calls == []


class TestInDoubtDecrement:
    def test_lost_answer_is_not_released(self, make_inventory, recording_compensation):
        inventory = make_inventory({1: 8, 5: 5})
        inventory.lost_answers = {5}
        coordinator = ReservationCoordinator(inventory, recording_compensation)

        with pytest.raises(RemoteServiceUnavailable):
            coordinator.reserve(_items((1, 2), (5, 1)))

        [(receipt, reason)] = recording_compensation.calls
        assert [o.item_id for o in receipt.outcomes] == [1]
        assert reason == "UNREACHABLE"
        # Committed remotely; left for reconciliation rather than released.
        assert inventory.stock[5] == 4


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestDeadline:
    def test_each_call_gets_remaining_time(
        self, fake_inventory, recording_compensation
    ):
        clock = FakeClock()
        coordinator = ReservationCoordinator(
            fake_inventory, recording_compensation, deadline_seconds=5, clock=clock
        )

        coordinator.reserve(_items((1, 1)))

        assert fake_inventory.timeouts == [5]

    def test_expired_deadline_aborts_and_compensates(
        self, make_inventory, recording_compensation
    ):
        clock = FakeClock()
        inventory = make_inventory({1: 8, 5: 5, 6: 5})

        def advance(fake, item_id):
            clock.now += 3

        inventory.before_decrement = advance
        coordinator = ReservationCoordinator(
            inventory, recording_compensation, deadline_seconds=5, clock=clock
        )

        with pytest.raises(RemoteServiceUnavailable, match="deadline"):
            coordinator.reserve(_items((1, 1), (5, 1), (6, 1)))

        assert inventory.stock == {1: 7, 5: 4, 6: 5}
        [(receipt, _)] = recording_compensation.calls
        assert [o.item_id for o in receipt.outcomes] == [1, 5]


class TestConcurrency:
    def test_buyers_never_take_more_than_available(
        self, make_inventory, make_compensation
    ):
        inventory = make_inventory({1: 5})
        coordinator = ReservationCoordinator(inventory, make_compensation())
        barrier = threading.Barrier(12)
        results = []
        lock = threading.Lock()

        def buy():
            barrier.wait()
            try:
                coordinator.reserve(_items((1, 1)))
                outcome = "won"
            except InsufficientStock:
                outcome = "lost"
            with lock:
                results.append(outcome)

        threads = [threading.Thread(target=buy) for _ in range(12)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count("won") == 5
        assert inventory.stock[1] == 0

    def test_saga_keeps_stock_consistent_across_overlapping_orders(
        self, make_inventory, make_compensation
    ):
        initial = {1: 3, 2: 3}
        inventory = make_inventory(initial)
        coordinator = ReservationCoordinator(inventory, SagaCompensation(inventory))
        barrier = threading.Barrier(8)
        won = []
        lock = threading.Lock()
        orders = [[(1, 1), (2, 1)], [(2, 1), (1, 1)]] * 4

        def buy(pairs):
            barrier.wait()
            try:
                coordinator.reserve(_items(*pairs))
            except InsufficientStock:
                return
            with lock:
                won.append(pairs)

        threads = [threading.Thread(target=buy, args=(pairs,)) for pairs in orders]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(won) <= 3
        for item_id in initial:
            taken = sum(q for pairs in won for i, q in pairs if i == item_id)
            assert inventory.stock[item_id] == initial[item_id] - taken
            assert inventory.stock[item_id] >= 0
