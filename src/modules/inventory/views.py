"""Inventory API views.

Exposes ``StockService`` to the other storefront services.  Reads are
public; stock adjustments require an elevated service token.  Domain
exceptions are caught and translated into status codes the order
service's client understands:

- 404: product not found.
- 409: stock too low (``data.reason`` is ``out_of_stock`` or
  ``insufficient_stock``, ``data.available`` the current count).
- 400: malformed quantity.
"""

from __future__ import annotations

from typing import Callable

from rest_framework import status
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet

from modules.core.authentication import IsServicePrincipal, ServiceTokenAuthentication
from modules.core.responses import failure, success
from modules.inventory.exceptions import (
    InsufficientStock,
    InvalidQuantity,
    ProductNotFound,
)
from modules.inventory.models import Product
from modules.inventory.repositories.django_repository import ProductDjangoRepository
from modules.inventory.serializers import ProductSerializer
from modules.inventory.services import StockService


def _parse_quantity(request: Request) -> int:
    raw = request.query_params.get("quantity")
    if raw is None and isinstance(request.data, dict):
        raw = request.data.get("quantity")
    if raw is None:
        raise InvalidQuantity("Parameter 'quantity' is required.")
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise InvalidQuantity("Parameter 'quantity' must be an integer.") from exc


class ProductViewSet(GenericViewSet):
    """Catalog item look-up and stock adjustment endpoints."""

    queryset = Product.objects.all()
    serializer_class = ProductSerializer
    permission_classes = [AllowAny]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = StockService(repository=ProductDjangoRepository())

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/products/{pk}/"""
        try:
            product = self._service.get_product(pk)
        except ProductNotFound:
            return failure("Product not found.", status.HTTP_404_NOT_FOUND)
        return success("Product found.", ProductSerializer(product).data)

    # ------------------------------------------------------------------
    # Stock adjustments (service credential required)
    # ------------------------------------------------------------------

    @action(
        detail=True,
        methods=["put"],
        url_path="stock",
        authentication_classes=[ServiceTokenAuthentication],
        permission_classes=[IsServicePrincipal],
    )
    def reserve(self, request: Request, pk: str | None = None) -> Response:
        """PUT /api/v1/products/{pk}/stock/?quantity=N

        Atomically subtracts N units, or fails without touching stock.
        """
        return self._adjust(request, pk, self._service.reserve_stock, "Stock reserved.")

    @action(
        detail=True,
        methods=["post"],
        url_path="stock/release",
        authentication_classes=[ServiceTokenAuthentication],
        permission_classes=[IsServicePrincipal],
    )
    def release(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/products/{pk}/stock/release/?quantity=N"""
        return self._adjust(request, pk, self._service.release_stock, "Stock released.")

    def _adjust(
        self,
        request: Request,
        pk: str | None,
        operation: Callable[[str | None, int], Product],
        message: str,
    ) -> Response:
        try:
            quantity = _parse_quantity(request)
            product = operation(pk, quantity)
        except InvalidQuantity as exc:
            return failure(str(exc), status.HTTP_400_BAD_REQUEST)
        except ProductNotFound:
            return failure("Product not found.", status.HTTP_404_NOT_FOUND)
        except InsufficientStock as exc:
            return failure(
                str(exc),
                status.HTTP_409_CONFLICT,
                data={
                    "reason": exc.reason,
                    "available": exc.available,
                    "productId": pk,
                },
            )
        return success(message, ProductSerializer(product).data)
