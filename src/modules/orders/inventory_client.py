"""HTTP client for the inventory service.

Implements ``InventoryGateway`` on top of httpx.  Every call goes through a
pybreaker circuit breaker shared by the process: transport errors and 5xx
answers count as failures, business rejections (404, 409) do not.

Status mapping:

- ``GET  /api/v1/products/{id}/``: 200 snapshot, 404 ``exists=False``.
- ``PUT  /api/v1/products/{id}/stock/?quantity=N``: 200 ``RESERVED``,
  404 ``NOT_FOUND``, 409 ``OUT_OF_STOCK`` / ``INSUFFICIENT_STOCK``.
- ``POST /api/v1/products/{id}/stock/release/?quantity=N``: 200 released.

Anything that means the service could not answer raises
``RemoteServiceUnavailable``; nothing else escapes this module.
"""

from __future__ import annotations

import threading
from typing import Any, Dict, Optional

import httpx
import pybreaker
import structlog
from django.conf import settings

from modules.core.authentication import issue_service_token
from modules.core.middleware import REQUEST_ID_HEADER, get_correlation_id
from modules.orders.exceptions import RemoteServiceUnavailable
from modules.orders.reservation import (
    ReservationOutcome,
    ReservationResult,
    StockSnapshot,
)

logger = structlog.get_logger(__name__)

PRODUCT_PATH = "/api/v1/products/{item_id}/"
RESERVE_PATH = "/api/v1/products/{item_id}/stock/"
RELEASE_PATH = "/api/v1/products/{item_id}/stock/release/"
LIVENESS_PATH = "/health/live"


class InventoryServerError(Exception):
    """The inventory service answered with a 5xx status."""


class BreakerLogListener(pybreaker.CircuitBreakerListener):
    def state_change(self, cb, old_state, new_state) -> None:
        logger.warning(
            "inventory.circuit_state_changed",
            breaker=cb.name,
            old_state=getattr(old_state, "name", str(old_state)),
            new_state=getattr(new_state, "name", str(new_state)),
        )

    def failure(self, cb, exc) -> None:
        logger.error(
            "inventory.circuit_failure",
            breaker=cb.name,
            fail_counter=cb.fail_counter,
            error=str(exc),
        )


def build_breaker(fail_max: int, reset_timeout: float) -> pybreaker.CircuitBreaker:
    return pybreaker.CircuitBreaker(
        fail_max=fail_max,
        reset_timeout=reset_timeout,
        listeners=[BreakerLogListener()],
        name="inventory",
    )


_breaker: Optional[pybreaker.CircuitBreaker] = None
_breaker_lock = threading.Lock()


def get_inventory_breaker() -> pybreaker.CircuitBreaker:
    """Process-wide breaker built from settings on first use."""
    global _breaker
    with _breaker_lock:
        if _breaker is None:
            _breaker = build_breaker(
                settings.INVENTORY_CB_FAIL_MAX,
                settings.INVENTORY_CB_RESET_TIMEOUT,
            )
        return _breaker


class InventoryClient:
    """Remote accessor for the inventory service."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        breaker: Optional[pybreaker.CircuitBreaker] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._timeout = timeout
        self._breaker = breaker or get_inventory_breaker()
        self._http = httpx.Client(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    @classmethod
    def from_settings(
        cls, transport: Optional[httpx.BaseTransport] = None
    ) -> InventoryClient:
        return cls(
            base_url=settings.INVENTORY_SERVICE_URL,
            timeout=settings.INVENTORY_TIMEOUT,
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> InventoryClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # InventoryGateway
    # ------------------------------------------------------------------

    def get_stock(self, item_id: int, timeout: Optional[float] = None) -> StockSnapshot:
        response = self._request(
            "GET", PRODUCT_PATH.format(item_id=item_id), timeout=timeout
        )
        if response.status_code == 404:
            return StockSnapshot(item_id=item_id, exists=False)
        if response.status_code != 200:
            raise RemoteServiceUnavailable(
                f"Unexpected inventory answer {response.status_code} for item {item_id}."
            )

        data = self._data(response)
        return StockSnapshot(
            item_id=item_id,
            exists=True,
            available_quantity=max(int(data.get("stock_quantity") or 0), 0),
            name=str(data.get("name") or ""),
        )

    def decrement(
        self, item_id: int, quantity: int, timeout: Optional[float] = None
    ) -> ReservationOutcome:
        response = self._request(
            "PUT",
            RESERVE_PATH.format(item_id=item_id),
            params={"quantity": quantity},
            timeout=timeout,
            authenticated=True,
        )
        log = logger.bind(item_id=item_id, quantity=quantity)

        if response.status_code == 200:
            data = self._data(response)
            log.info("inventory.decremented", remaining=data.get("stock_quantity"))
            return ReservationOutcome(
                item_id=item_id,
                quantity=quantity,
                result=ReservationResult.RESERVED,
                available=data.get("stock_quantity"),
            )

        body = self._json(response)
        message = str(body.get("message") or "")

        if response.status_code == 404:
            return ReservationOutcome(
                item_id=item_id,
                quantity=quantity,
                result=ReservationResult.NOT_FOUND,
                message=message,
            )
        if response.status_code == 409:
            data = body.get("data") or {}
            result = (
                ReservationResult.OUT_OF_STOCK
                if data.get("reason") == "out_of_stock"
                else ReservationResult.INSUFFICIENT_STOCK
            )
            log.warning("inventory.decrement_rejected", result=result.value)
            return ReservationOutcome(
                item_id=item_id,
                quantity=quantity,
                result=result,
                available=data.get("available"),
                message=message,
            )

        log.error("inventory.decrement_unexpected_status", status_code=response.status_code)
        return ReservationOutcome(
            item_id=item_id,
            quantity=quantity,
            result=ReservationResult.UNREACHABLE,
            message=message or f"Inventory service answered {response.status_code}.",
        )

    def increment(
        self, item_id: int, quantity: int, timeout: Optional[float] = None
    ) -> bool:
        response = self._request(
            "POST",
            RELEASE_PATH.format(item_id=item_id),
            params={"quantity": quantity},
            timeout=timeout,
            authenticated=True,
        )
        if response.status_code != 200:
            logger.error(
                "inventory.increment_rejected",
                item_id=item_id,
                quantity=quantity,
                status_code=response.status_code,
            )
            return False
        return True

    def ping(self, timeout: Optional[float] = None) -> bool:
        response = self._request("GET", LIVENESS_PATH, timeout=timeout)
        if response.status_code != 200:
            raise RemoteServiceUnavailable(
                f"Inventory liveness check answered {response.status_code}."
            )
        return True

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
        authenticated: bool = False,
    ) -> httpx.Response:
        headers = {}
        correlation_id = get_correlation_id()
        if correlation_id:
            headers[REQUEST_ID_HEADER] = correlation_id
        if authenticated:
            headers["Authorization"] = f"Bearer {issue_service_token()}"

        effective = self._timeout if timeout is None else min(timeout, self._timeout)
        try:
            return self._breaker.call(
                self._send, method, path, headers, params, effective
            )
        except pybreaker.CircuitBreakerError as exc:
            logger.error("inventory.circuit_open", path=path)
            raise RemoteServiceUnavailable(
                "Inventory service is temporarily unavailable."
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("inventory.transport_error", path=path, error=str(exc))
            raise RemoteServiceUnavailable(
                f"Inventory service is unreachable: {exc}"
            ) from exc
        except InventoryServerError as exc:
            raise RemoteServiceUnavailable(str(exc)) from exc

    def _send(
        self,
        method: str,
        path: str,
        headers: Dict[str, str],
        params: Optional[Dict[str, Any]],
        timeout: float,
    ) -> httpx.Response:
        response = self._http.request(
            method, path, headers=headers, params=params, timeout=timeout
        )
        if response.status_code >= 500:
            raise InventoryServerError(
                f"Inventory service answered {response.status_code} for {path}."
            )
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    def _data(self, response: httpx.Response) -> Dict[str, Any]:
        data = self._json(response).get("data")
        if not isinstance(data, dict):
            raise RemoteServiceUnavailable("Inventory service returned a malformed body.")
        return data
