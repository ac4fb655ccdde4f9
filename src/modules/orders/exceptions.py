"""Order domain exceptions.

Raised by the normalizer, the reservation coordinator and the service
layer.  The API layer (views) catches them and translates each class into
its own HTTP status; ``RemoteServiceUnavailable`` is the only one that
means "try again later".
"""

from __future__ import annotations

from typing import Iterable, List, Sequence


class OrderValidationError(Exception):
    """The order request is malformed or incomplete."""


class ProductNotFound(Exception):
    """One or more requested catalog items do not exist."""

    def __init__(self, ids: Iterable[int]) -> None:
        self.ids: List[int] = list(ids)
        super().__init__(f"One or more products were not found: {self.ids}")


class InsufficientStock(Exception):
    """Not enough stock to fulfil one or more line items.

    ``details`` holds one human-readable message per affected item.
    """

    def __init__(self, message: str, details: Sequence[str] | None = None) -> None:
        super().__init__(message)
        self.details: List[str] = list(details) if details else [message]


class ProductOutOfStock(InsufficientStock):
    """A requested item has zero units available."""


class RemoteServiceUnavailable(Exception):
    """The inventory service could not be reached in time."""


class OrderNotFound(Exception):
    """The requested order does not exist."""


class InvalidOrderStatus(Exception):
    """The requested status transition is not allowed."""


class OrderPersistenceError(Exception):
    """Stock was reserved but the order could not be recorded."""


class IdempotencyKeyConflict(Exception):
    """The Idempotency-Key was already used by another buyer."""
