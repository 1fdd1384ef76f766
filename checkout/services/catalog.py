"""
Cached catalog reads used by pricing.
"""
from __future__ import annotations

from checkout.domain.inventory import InventoryRecord
from checkout.domain.pricing import ProductRef
from checkout.infra.cache import PRODUCT_PREFIX, CacheService
from checkout.infra.repositories import InventoryRepository, ProductRepository


class CatalogService:
    """Product and stock lookups behind the product cache."""

    def __init__(
        self,
        product_repo: ProductRepository | None = None,
        inventory_repo: InventoryRepository | None = None,
        cache: CacheService | None = None,
    ):
        self.product_repo = product_repo or ProductRepository()
        self.inventory_repo = inventory_repo or InventoryRepository()
        self.cache = cache or CacheService()

    def get_product(self, product_id: str) -> ProductRef | None:
        return self.cache.get_or_set(
            PRODUCT_PREFIX,
            f"product:{product_id}",
            lambda: self.product_repo.get(product_id),
        )

    def get_product_for_inventory(self, inventory_id: int) -> ProductRef | None:
        return self.cache.get_or_set(
            PRODUCT_PREFIX,
            f"inventory-product:{inventory_id}",
            lambda: self.product_repo.get_for_inventory(inventory_id),
        )

    def get_stock(self, inventory_id: int) -> InventoryRecord | None:
        """Stock as shown on product pages; may lag by the cache TTL."""
        return self.cache.get_or_set(
            PRODUCT_PREFIX,
            f"stock:{inventory_id}",
            lambda: self.inventory_repo.find(inventory_id),
        )

    def remove_product_cache(self) -> None:
        """Invalidate everything cached under the product prefix."""
        self.cache.remove_by_prefix(PRODUCT_PREFIX)
