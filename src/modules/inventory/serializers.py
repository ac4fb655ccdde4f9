"""Inventory DRF serializers (read side only)."""

from __future__ import annotations

from rest_framework import serializers

from modules.inventory.models import Product


class ProductSerializer(serializers.ModelSerializer):
    """Public representation of a catalog item and its current stock."""

    class Meta:
        model = Product
        fields = [
            "id",
            "sku",
            "name",
            "description",
            "price",
            "stock_quantity",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields
