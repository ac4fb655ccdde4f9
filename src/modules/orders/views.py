"""Order API views.

Exposes ``OrderService`` via HTTP using a DRF ViewSet.  Domain exceptions
are caught and translated into status codes here; every response uses the
``{ok, statusCode, message, data, count}`` envelope.
"""

from __future__ import annotations

from typing import Optional

from django.conf import settings
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.viewsets import GenericViewSet

from modules.core.responses import failure, success
from modules.orders.compensation import compensation_from_settings
from modules.orders.exceptions import (
    IdempotencyKeyConflict,
    InsufficientStock,
    InvalidOrderStatus,
    OrderNotFound,
    OrderPersistenceError,
    OrderValidationError,
    ProductNotFound,
    RemoteServiceUnavailable,
)
from modules.orders.inventory_client import InventoryClient
from modules.orders.models import Order
from modules.orders.normalizer import normalize_order_request
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.reservation import ReservationCoordinator
from modules.orders.serializers import OrderSerializer, UpdateOrderStatusSerializer
from modules.orders.services import OrderService

IDEMPOTENCY_HEADER = "Idempotency-Key"


def build_order_service(gateway: Optional[InventoryClient] = None) -> OrderService:
    """Wire the service; without a gateway it can read and update but not create."""
    coordinator = None
    if gateway is not None:
        coordinator = ReservationCoordinator(
            gateway=gateway,
            compensation=compensation_from_settings(gateway),
            deadline_seconds=settings.ORDER_RESERVATION_DEADLINE,
        )
    return OrderService(
        order_repository=OrderDjangoRepository(),
        coordinator=coordinator,
    )


class OrderViewSet(GenericViewSet):
    """ViewSet for Order operations.

    Does **not** extend ``ModelViewSet``: all ORM access goes through the
    service/repository layer.
    """

    queryset = Order.objects.all()
    serializer_class = OrderSerializer

    def get_permissions(self):
        if self.action in {"partial_update", "set_status"}:
            return [IsAuthenticated(), IsAdminUser()]
        return [IsAuthenticated()]

    def get_throttles(self) -> list[BaseThrottle]:
        self.throttle_scope = "order_creation" if self.action == "create" else None
        return super().get_throttles()

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, request: Request) -> Response:
        """POST /api/v1/orders/

        Accepts ``items`` or ``itemIds`` (see the normalizer).  Supports
        idempotency via the ``Idempotency-Key`` header: 200 when the buyer
        already used the key, 409 when another buyer did, 201 for a new
        order.
        """
        try:
            dto = normalize_order_request(
                request.data,
                buyer_id=request.user.pk,
                idempotency_key=request.headers.get(IDEMPOTENCY_HEADER) or None,
            )
            with InventoryClient.from_settings() as client:
                placement = build_order_service(client).create_order(dto)
        except OrderValidationError as exc:
            return failure(str(exc), status.HTTP_400_BAD_REQUEST)
        except ProductNotFound as exc:
            return failure(
                str(exc),
                status.HTTP_404_NOT_FOUND,
                data={"missingItemIds": exc.ids},
            )
        except InsufficientStock as exc:
            return failure(
                str(exc),
                status.HTTP_400_BAD_REQUEST,
                data={"details": exc.details},
            )
        except IdempotencyKeyConflict as exc:
            return failure(str(exc), status.HTTP_409_CONFLICT)
        except (RemoteServiceUnavailable, OrderPersistenceError) as exc:
            return failure(str(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)

        data = OrderSerializer(placement.order).data
        if placement.replayed:
            return success("Order already exists for this Idempotency-Key.", data)
        return success("Order created successfully.", data, status.HTTP_201_CREATED)

    # ------------------------------------------------------------------
    # Retrieve
    # ------------------------------------------------------------------

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/

        Buyers see their own orders; staff see every order.
        """
        service = build_order_service()
        try:
            order = service.get_order(pk)
        except OrderNotFound:
            return failure("Order not found.", status.HTTP_404_NOT_FOUND)
        if not request.user.is_staff and order.buyer_id != request.user.pk:
            return failure("Order not found.", status.HTTP_404_NOT_FOUND)
        return success("Order found.", OrderSerializer(order).data)

    # ------------------------------------------------------------------
    # Status Update
    # ------------------------------------------------------------------

    def partial_update(self, request: Request, pk: str | None = None) -> Response:
        """PATCH /api/v1/orders/{pk}/  body: ``{"status": "SHIPPED"}``"""
        return self._update_status(request, pk, request.data)

    @action(detail=True, methods=["put"], url_path="status")
    def set_status(self, request: Request, pk: str | None = None) -> Response:
        """PUT /api/v1/orders/{pk}/status/?status=SHIPPED"""
        data = {
            "status": request.query_params.get("status")
            or (request.data.get("status") if hasattr(request.data, "get") else None),
            "notes": request.query_params.get("notes", ""),
        }
        return self._update_status(request, pk, data)

    def _update_status(self, request: Request, pk: str | None, data) -> Response:
        serializer = UpdateOrderStatusSerializer(data=data)
        serializer.is_valid(raise_exception=True)

        service = build_order_service()
        try:
            order = service.update_status(
                order_id=pk,
                new_status=serializer.validated_data["status"],
                notes=serializer.validated_data.get("notes", ""),
                user_id=request.user.pk,
            )
        except OrderNotFound:
            return failure("Order not found.", status.HTTP_404_NOT_FOUND)
        except InvalidOrderStatus as exc:
            return failure(str(exc), status.HTTP_400_BAD_REQUEST)
        return success("Order status updated.", OrderSerializer(order).data)
