"""Inventory repositories package."""

from modules.inventory.repositories.django_repository import ProductDjangoRepository
from modules.inventory.repositories.interfaces import IProductRepository

__all__ = ["IProductRepository", "ProductDjangoRepository"]
