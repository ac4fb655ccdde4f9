"""Line-item normalizer.

Turns the two request shapes the order endpoint accepts into one
``CreateOrderDTO``:

* explicit items: ``{"totalAmount": 100, "items": [{"itemId": 1, "quantity": 2}]}``
* flat id list:   ``{"totalAmount": 100, "itemIds": [1, 5, 8]}`` or the
  legacy comma string ``"1,5,8"`` (quantity 1 each).

Duplicate ids in a flat list stay separate line items; they are not merged
into one line with a larger quantity.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, List, Mapping, Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

from modules.orders.constants import (
    AMOUNT_DECIMAL_PLACES,
    AMOUNT_MAX_DIGITS,
    IDEMPOTENCY_KEY_MAX_LENGTH,
)
from modules.orders.dtos import CreateOrderDTO, LineItem
from modules.orders.exceptions import OrderValidationError

logger = structlog.get_logger(__name__)

ITEMS_KEYS = ("items",)
ITEM_IDS_KEYS = ("itemIds", "productIds", "item_ids")
ITEM_ID_KEYS = ("itemId", "productId", "item_id", "id")
PRICE_KEYS = ("unitPrice", "price", "unit_price")
TOTAL_KEYS = ("totalAmount", "total", "total_amount")
BUYER_KEYS = ("buyerId", "userId", "buyer_id")

CENT = Decimal(1).scaleb(-AMOUNT_DECIMAL_PLACES)
MAX_AMOUNT = Decimal(1).scaleb(AMOUNT_MAX_DIGITS - AMOUNT_DECIMAL_PLACES) - CENT


def _first_present(data: Mapping[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


def _parse_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _parse_decimal(value: Any, field: str) -> Decimal:
    if isinstance(value, bool):
        raise OrderValidationError(f"'{field}' must be a number.")
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise OrderValidationError(f"'{field}' must be a number.") from exc


def _fits_amount_column(value: Decimal) -> bool:
    """Whether *value* can be stored once rounded to cents."""
    if not value.is_finite():
        return False
    if value.adjusted() >= AMOUNT_MAX_DIGITS - AMOUNT_DECIMAL_PLACES:
        return False
    return value.quantize(CENT) <= MAX_AMOUNT


def _explicit_items(raw_items: Any) -> List[LineItem]:
    if not isinstance(raw_items, list):
        raise OrderValidationError("'items' must be a list.")

    line_items = []
    for position, entry in enumerate(raw_items):
        if not isinstance(entry, Mapping):
            raise OrderValidationError(f"Item at position {position} must be an object.")

        item_id = _parse_int(_first_present(entry, ITEM_ID_KEYS))
        if item_id is None:
            raise OrderValidationError(
                f"Item at position {position} has no valid 'itemId'."
            )

        quantity = _parse_int(entry.get("quantity"))
        if quantity is None or quantity < 1:
            quantity = 1

        raw_price = _first_present(entry, PRICE_KEYS)
        unit_price = _parse_decimal(raw_price, "price") if raw_price is not None else None
        if unit_price is not None:
            if not _fits_amount_column(unit_price):
                raise OrderValidationError(
                    f"Item at position {position} has an invalid price "
                    f"(maximum {MAX_AMOUNT})."
                )
            if unit_price < 0:
                raise OrderValidationError(
                    f"Item at position {position} has a negative price."
                )

        line_items.append(
            LineItem(item_id=item_id, quantity=quantity, unit_price=unit_price)
        )
    return line_items


def _flat_items(raw_ids: Any) -> List[LineItem]:
    if isinstance(raw_ids, str):
        ids = []
        for token in raw_ids.split(","):
            if not token.strip():
                continue
            item_id = _parse_int(token)
            if item_id is None:
                logger.warning("order.invalid_item_id_skipped", token=token.strip())
                continue
            ids.append(item_id)
    elif isinstance(raw_ids, list):
        ids = []
        for position, value in enumerate(raw_ids):
            item_id = _parse_int(value)
            if item_id is None:
                raise OrderValidationError(
                    f"Item id at position {position} is not a valid identifier."
                )
            ids.append(item_id)
    else:
        raise OrderValidationError("'itemIds' must be a list or a comma-separated string.")

    return [LineItem(item_id=item_id, quantity=1) for item_id in ids]


def normalize_order_request(
    payload: Any,
    buyer_id: Optional[int] = None,
    idempotency_key: Optional[str] = None,
) -> CreateOrderDTO:
    """Build the canonical order request from a raw body.

    ``buyer_id`` is the identity resolved by authentication; an explicit
    ``buyerId``/``userId`` in the body takes precedence.

    Raises:
        OrderValidationError: neither shape present, empty item list,
            missing, non-positive or oversized total, oversized price,
            over-long idempotency key, or no resolvable buyer.
    """
    if not isinstance(payload, Mapping):
        raise OrderValidationError("Request body must be a JSON object.")

    raw_items = _first_present(payload, ITEMS_KEYS)
    raw_ids = _first_present(payload, ITEM_IDS_KEYS)

    if raw_items:
        line_items = _explicit_items(raw_items)
    elif raw_ids is not None:
        line_items = _flat_items(raw_ids)
    elif raw_items is not None:
        line_items = []
    else:
        raise OrderValidationError("Order must include 'items' or 'itemIds'.")

    if not line_items:
        raise OrderValidationError("Order must contain at least one item.")

    raw_total = _first_present(payload, TOTAL_KEYS)
    total = _parse_decimal(raw_total, "totalAmount") if raw_total is not None else None
    if total is None or not total.is_finite() or total <= 0:
        raise OrderValidationError(
            "The total amount (total or totalAmount) is required and must be "
            "greater than zero."
        )
    if not _fits_amount_column(total):
        raise OrderValidationError(f"The total amount must not exceed {MAX_AMOUNT}.")

    raw_buyer = _first_present(payload, BUYER_KEYS)
    resolved_buyer = _parse_int(raw_buyer) if raw_buyer is not None else buyer_id
    if resolved_buyer is None:
        raise OrderValidationError("Could not determine the buyer for this order.")

    if idempotency_key and len(idempotency_key) > IDEMPOTENCY_KEY_MAX_LENGTH:
        raise OrderValidationError(
            f"Idempotency-Key must be at most {IDEMPOTENCY_KEY_MAX_LENGTH} characters."
        )

    notes = payload.get("notes") or ""

    try:
        dto = CreateOrderDTO(
            buyer_id=resolved_buyer,
            total_amount=total,
            line_items=tuple(line_items),
            notes=str(notes),
            idempotency_key=idempotency_key,
        )
    except PydanticValidationError as exc:
        raise OrderValidationError(str(exc)) from exc

    logger.info(
        "order.request_normalized",
        buyer_id=dto.buyer_id,
        line_count=len(dto.line_items),
    )
    return dto
