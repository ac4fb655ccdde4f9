"""Stock reservation across the inventory service boundary.

``ReservationCoordinator.reserve`` runs in two phases:

1. **Validate all.**  A fresh stock snapshot is fetched for every line item
   and every problem is collected before anything is reported.  Missing
   items win over stock problems.  Nothing is decremented in this phase.
2. **Reserve sequentially.**  Each line item is decremented in request
   order.  The inventory service re-checks availability inside its own
   transaction, so a Phase 1 pass is only an early rejection: the
   decrement is what decides.  The first rejection aborts the attempt and
   the already reserved items are handed to the compensation strategy.

The whole attempt is bounded by a single deadline; every remote call gets
whatever time is left.

A decrement that times out or loses its connection is in doubt: the
inventory service may have committed it before the answer was lost.  It is
not part of the receipt, so compensation never releases it; releasing units
that were perhaps never taken could oversell the item.  Such items are
logged as ``reservation.inventory_unreachable`` with ``in_doubt=True`` for
manual reconciliation against the inventory side.
"""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, List, Optional, Protocol, Sequence, Tuple

import structlog

from modules.orders.exceptions import (
    InsufficientStock,
    ProductNotFound,
    ProductOutOfStock,
    RemoteServiceUnavailable,
)

if TYPE_CHECKING:
    from modules.orders.compensation import CompensationStrategy
    from modules.orders.dtos import LineItem

logger = structlog.get_logger(__name__)


class ReservationResult(str, enum.Enum):
    RESERVED = "RESERVED"
    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
    OUT_OF_STOCK = "OUT_OF_STOCK"
    NOT_FOUND = "NOT_FOUND"
    UNREACHABLE = "UNREACHABLE"


@dataclass(frozen=True)
class StockSnapshot:
    """Point-in-time view of one item's stock.  Never cached."""

    item_id: int
    exists: bool
    available_quantity: int = 0
    name: str = ""

    @property
    def label(self) -> str:
        return self.name or f"item {self.item_id}"


@dataclass(frozen=True)
class ReservationOutcome:
    item_id: int
    quantity: int
    result: ReservationResult
    available: Optional[int] = None
    message: str = ""

    @property
    def reserved(self) -> bool:
        return self.result is ReservationResult.RESERVED


@dataclass(frozen=True)
class ReservationReceipt:
    """The reserved outcomes of one attempt, in the order they were taken."""

    outcomes: Tuple[ReservationOutcome, ...] = ()

    def __bool__(self) -> bool:
        return bool(self.outcomes)

    def __len__(self) -> int:
        return len(self.outcomes)

    @property
    def total_units(self) -> int:
        return sum(outcome.quantity for outcome in self.outcomes)


class InventoryGateway(Protocol):
    """What the coordinator needs from the inventory service.

    Implementations raise ``RemoteServiceUnavailable`` for transport
    failures and timeouts; business rejections come back as outcomes.
    """

    def get_stock(self, item_id: int, timeout: Optional[float] = None) -> StockSnapshot:
        ...

    def decrement(
        self, item_id: int, quantity: int, timeout: Optional[float] = None
    ) -> ReservationOutcome:
        ...

    def increment(
        self, item_id: int, quantity: int, timeout: Optional[float] = None
    ) -> bool:
        ...


def out_of_stock_message(label: str) -> str:
    return f"Product out of stock: {label}. No units available."


def insufficient_stock_message(label: str, available: int, requested: int) -> str:
    return (
        f"Insufficient stock for {label}. Only {available} unit(s) available "
        f"(requested {requested})."
    )


class Deadline:
    """Overall time budget shared by every remote call of one attempt."""

    def __init__(
        self,
        seconds: Optional[float],
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._expires_at = clock() + seconds if seconds else None

    def remaining(self) -> Optional[float]:
        """Seconds left, ``None`` when unbounded.

        Raises:
            RemoteServiceUnavailable: the budget is used up.
        """
        if self._expires_at is None:
            return None
        left = self._expires_at - self._clock()
        if left <= 0:
            raise RemoteServiceUnavailable(
                "Inventory service did not answer within the reservation deadline."
            )
        return left


class ReservationCoordinator:
    """Reserves stock for every line item of an order, or for none of them."""

    def __init__(
        self,
        gateway: InventoryGateway,
        compensation: CompensationStrategy,
        deadline_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._gateway = gateway
        self._compensation = compensation
        self._deadline_seconds = deadline_seconds
        self._clock = clock

    def reserve(self, line_items: Sequence[LineItem]) -> ReservationReceipt:
        """Validate and then decrement stock for *line_items*.

        Raises:
            ProductNotFound: one or more items do not exist.
            ProductOutOfStock: a single item has no units left.
            InsufficientStock: one or more items lack the requested units.
            RemoteServiceUnavailable: the inventory service failed or the
                deadline expired.
        """
        deadline = Deadline(self._deadline_seconds, self._clock)
        log = logger.bind(line_count=len(line_items))

        log.info("reservation.phase1_started")
        self._validate_all(line_items, deadline)

        log.info("reservation.phase2_started")
        reserved: List[ReservationOutcome] = []
        for item in line_items:
            sent = False
            try:
                timeout = deadline.remaining()
                sent = True
                outcome = self._gateway.decrement(
                    item.item_id, item.quantity, timeout=timeout
                )
            except RemoteServiceUnavailable as exc:
                log.error(
                    "reservation.inventory_unreachable",
                    item_id=item.item_id,
                    in_doubt=sent,
                    reserved_count=len(reserved),
                    error=str(exc),
                )
                self._abort(reserved, ReservationResult.UNREACHABLE.value)
                raise

            if not outcome.reserved:
                log.warning(
                    "reservation.decrement_rejected",
                    item_id=item.item_id,
                    result=outcome.result.value,
                    available=outcome.available,
                    reserved_count=len(reserved),
                )
                self._abort(reserved, outcome.result.value)
                raise _error_for(outcome)

            reserved.append(outcome)

        receipt = ReservationReceipt(tuple(reserved))
        log.info("reservation.completed", units=receipt.total_units)
        return receipt

    # ------------------------------------------------------------------
    # Phase 1
    # ------------------------------------------------------------------

    def _validate_all(self, line_items: Sequence[LineItem], deadline: Deadline) -> None:
        missing: List[int] = []
        problems: List[Tuple[str, int]] = []

        for item in line_items:
            snapshot = self._gateway.get_stock(item.item_id, timeout=deadline.remaining())
            if not snapshot.exists:
                missing.append(item.item_id)
            elif snapshot.available_quantity <= 0:
                problems.append((out_of_stock_message(snapshot.label), 0))
            elif snapshot.available_quantity < item.quantity:
                problems.append(
                    (
                        insufficient_stock_message(
                            snapshot.label, snapshot.available_quantity, item.quantity
                        ),
                        snapshot.available_quantity,
                    )
                )

        if missing:
            logger.warning("reservation.items_not_found", item_ids=missing)
            raise ProductNotFound(missing)

        if not problems:
            return

        messages = [message for message, _ in problems]
        logger.warning("reservation.stock_rejected", problems=messages)
        if len(problems) == 1:
            message, available = problems[0]
            if available == 0:
                raise ProductOutOfStock(message)
            raise InsufficientStock(message)
        raise InsufficientStock("Stock problems: " + "; ".join(messages), details=messages)

    # ------------------------------------------------------------------
    # Phase 2 abort
    # ------------------------------------------------------------------

    def _abort(self, reserved: List[ReservationOutcome], reason: str) -> None:
        if reserved:
            self._compensation.compensate(ReservationReceipt(tuple(reserved)), reason)

    def compensate(self, receipt: ReservationReceipt, reason: str) -> None:
        """Undo a completed reservation whose order could not be recorded."""
        if receipt:
            self._compensation.compensate(receipt, reason)


def _error_for(outcome: ReservationOutcome) -> Exception:
    if outcome.result is ReservationResult.NOT_FOUND:
        return ProductNotFound([outcome.item_id])
    if outcome.result is ReservationResult.OUT_OF_STOCK:
        return ProductOutOfStock(
            outcome.message or out_of_stock_message(f"item {outcome.item_id}")
        )
    if outcome.result is ReservationResult.INSUFFICIENT_STOCK:
        return InsufficientStock(
            outcome.message
            or insufficient_stock_message(
                f"item {outcome.item_id}", outcome.available or 0, outcome.quantity
            )
        )
    return RemoteServiceUnavailable(
        outcome.message or f"Inventory service could not reserve item {outcome.item_id}."
    )
