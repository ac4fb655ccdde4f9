"""Order domain constants.

Status choices and the transitions the order state machine allows.
The machine is acyclic: PENDING → PROCESSING → SHIPPED → COMPLETED, and
any non-terminal status may move to CANCELLED.
"""

from django.db import models


class OrderStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    PROCESSING = "PROCESSING", "Processing"
    SHIPPED = "SHIPPED", "Shipped"
    COMPLETED = "COMPLETED", "Completed"
    CANCELLED = "CANCELLED", "Cancelled"


VALID_TRANSITIONS: dict[str, set[str]] = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.COMPLETED, OrderStatus.CANCELLED},
    OrderStatus.COMPLETED: set(),
    OrderStatus.CANCELLED: set(),
}

TERMINAL_STATES: set[str] = {OrderStatus.COMPLETED, OrderStatus.CANCELLED}

ORDER_NUMBER_MAX_RETRIES = 5

# Outbox topics / event types
ORDERS_TOPIC = "orders"
INVENTORY_TOPIC = "inventory"
STOCK_RELEASE_REQUESTED = "StockReleaseRequested"

# Column bounds shared by the models and the request normalizer
AMOUNT_MAX_DIGITS = 12
AMOUNT_DECIMAL_PLACES = 2
IDEMPOTENCY_KEY_MAX_LENGTH = 255
