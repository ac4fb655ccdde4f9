"""Domain events for the Orders bounded context."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Tuple

from shared.domain.events import DomainEvent


@dataclass(frozen=True, kw_only=True)
class OrderCreated(DomainEvent):
    """Raised when an order is recorded after its stock was reserved."""

    buyer_id: int
    total_amount: Decimal
    line_items: Tuple[Dict[str, Any], ...] = field(default_factory=tuple)


@dataclass(frozen=True, kw_only=True)
class OrderStatusChanged(DomainEvent):
    """Raised when an order moves to another status."""

    old_status: str
    new_status: str
