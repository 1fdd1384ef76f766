"""
Promotion resolution and promotion admin operations.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable

from django.db import transaction
from django.utils import timezone

from checkout.conf import currency_quantum
from checkout.domain.errors import PromotionAdminError, PromotionNotFound
from checkout.domain.pricing import (
    HUNDRED,
    ProductRef,
    Promotion,
    PromotionScope,
    PromotionType,
    calculate_discounted_price,
    select_best_promotion,
)
from checkout.infra.cache import PROMOTION_PREFIX, CacheService
from checkout.infra.models import (
    BrandORM,
    CategoryORM,
    ProductORM,
    PromotionBrandORM,
    PromotionCategoryORM,
    PromotionORM,
    PromotionProductORM,
)
from checkout.infra.repositories import PromotionRepository
from checkout.services.catalog import CatalogService

logger = logging.getLogger(__name__)

PROMOTION_FIELDS = (
    "name",
    "description",
    "type",
    "value",
    "max_discount_amount",
    "min_order_amount",
    "scope",
    "priority",
    "is_active",
    "start_date",
    "end_date",
)


class PromotionService:
    """Finds the best promotion for products and manages promotions."""

    def __init__(
        self,
        promotion_repo: PromotionRepository | None = None,
        catalog: CatalogService | None = None,
        cache: CacheService | None = None,
    ):
        self.promotion_repo = promotion_repo or PromotionRepository()
        self.cache = cache or CacheService()
        self.catalog = catalog or CatalogService(cache=self.cache)

    # Resolution

    def get_active_promotions(self) -> list[Promotion]:
        """Promotions valid right now."""
        now = timezone.now()
        promotions = self.cache.get_or_set(
            PROMOTION_PREFIX,
            "active",
            lambda: self.promotion_repo.list_active(now),
        )
        # cached list may hold promotions that started or ended since it was loaded
        return [p for p in promotions if p.is_valid_at(now)]

    def get_promotions_for_product(self, product_id: str) -> list[Promotion]:
        product = self.catalog.get_product(product_id)
        if product is None:
            return []
        return [p for p in self.get_active_promotions() if p.applies_to(product)]

    def get_promotions_for_category(self, category_id: int) -> list[Promotion]:
        return [
            p for p in self.get_active_promotions()
            if p.scope == PromotionScope.ALL or category_id in p.category_ids
        ]

    def get_promotions_for_brand(self, brand_id: int) -> list[Promotion]:
        return [
            p for p in self.get_active_promotions()
            if p.scope == PromotionScope.ALL or brand_id in p.brand_ids
        ]

    def get_best_promotion_for_product(
        self,
        product_id: str,
        reference_price: Decimal | None = None,
        order_total: Decimal | None = None,
    ) -> Promotion | None:
        """Best promotion for a product, ranked at ``reference_price``.

        The product's own unit price is used when no price is given. When
        ``order_total`` is given, promotions whose minimum order amount is not
        met are skipped.
        """
        product = self.catalog.get_product(product_id)
        if product is None:
            return None
        price = product.unit_price if reference_price is None else reference_price
        return select_best_promotion(
            self.get_active_promotions(),
            product,
            price,
            timezone.now(),
            order_total=order_total,
            quantum=currency_quantum(),
        )

    def calculate_promotion_price(
        self,
        product_id: str,
        reference_price: Decimal | None = None,
        order_total: Decimal | None = None,
    ) -> Decimal | None:
        """Discounted unit price, or None for an unknown product."""
        product = self.catalog.get_product(product_id)
        if product is None:
            return None
        price = product.unit_price if reference_price is None else reference_price
        best = self.get_best_promotion_for_product(product_id, price, order_total)
        return calculate_discounted_price(price, best, currency_quantum())

    def resolve_for_products(
        self,
        products: Iterable[ProductRef],
        order_total: Decimal | None = None,
    ) -> tuple[dict[str, Decimal], dict[str, Promotion | None]]:
        """Resolve many products against one snapshot of active promotions.

        Returns ``(prices, best)`` keyed by product id.
        """
        now = timezone.now()
        quantum = currency_quantum()
        promotions = self.get_active_promotions()
        prices: dict[str, Decimal] = {}
        best: dict[str, Promotion | None] = {}
        for product in products:
            if product.id in prices:
                continue
            promotion = select_best_promotion(
                promotions,
                product,
                product.unit_price,
                now,
                order_total=order_total,
                quantum=quantum,
            )
            best[product.id] = promotion
            prices[product.id] = calculate_discounted_price(product.unit_price, promotion, quantum)
        return prices, best

    # Admin

    def get_promotion(self, promotion_id: int) -> Promotion:
        promotion = self.promotion_repo.get_by_id(promotion_id)
        if promotion is None:
            raise PromotionNotFound(promotion_id)
        return promotion

    def list_promotions(self) -> list[Promotion]:
        return self.promotion_repo.list_all()

    @transaction.atomic
    def create_promotion(self, data: dict) -> Promotion:
        """Create a promotion with its targets."""
        fields = self._validate(data)
        promotion_orm = PromotionORM.objects.create(**fields)
        self._set_targets(promotion_orm, fields["scope"], data)
        self.remove_promotion_cache()
        logger.info(
            "promotion_created",
            extra={"promotion_id": promotion_orm.id, "operation": "create_promotion"},
        )
        return self.get_promotion(promotion_orm.id)

    @transaction.atomic
    def update_promotion(self, promotion_id: int, data: dict) -> Promotion:
        promotion_orm = PromotionORM.objects.filter(id=promotion_id).first()
        if promotion_orm is None:
            raise PromotionNotFound(promotion_id)
        merged = {name: getattr(promotion_orm, name) for name in PROMOTION_FIELDS}
        merged.update({k: v for k, v in data.items() if k in PROMOTION_FIELDS})
        fields = self._validate(merged)
        for name, value in fields.items():
            setattr(promotion_orm, name, value)
        promotion_orm.save()
        if any(key in data for key in ("scope", "product_ids", "category_ids", "brand_ids")):
            self._set_targets(promotion_orm, fields["scope"], data)
        self.remove_promotion_cache()
        logger.info(
            "promotion_updated",
            extra={"promotion_id": promotion_id, "operation": "update_promotion"},
        )
        return self.get_promotion(promotion_id)

    @transaction.atomic
    def delete_promotion(self, promotion_id: int) -> None:
        deleted, _ = PromotionORM.objects.filter(id=promotion_id).delete()
        if not deleted:
            raise PromotionNotFound(promotion_id)
        self.remove_promotion_cache()
        logger.info(
            "promotion_deleted",
            extra={"promotion_id": promotion_id, "operation": "delete_promotion"},
        )

    @transaction.atomic
    def toggle_active(self, promotion_id: int) -> Promotion:
        promotion_orm = PromotionORM.objects.select_for_update().filter(id=promotion_id).first()
        if promotion_orm is None:
            raise PromotionNotFound(promotion_id)
        promotion_orm.is_active = not promotion_orm.is_active
        promotion_orm.save(update_fields=["is_active", "updated_at"])
        self.remove_promotion_cache()
        return self.get_promotion(promotion_id)

    def remove_promotion_cache(self) -> None:
        self.cache.remove_by_prefix(PROMOTION_PREFIX)

    def _validate(self, data: dict) -> dict:
        """Normalize and check a promotion payload."""
        try:
            promotion_type = PromotionType(data.get("type"))
            scope = PromotionScope(data.get("scope") or PromotionScope.ALL)
            value = Decimal(str(data.get("value")))
        except (ValueError, ArithmeticError) as e:
            raise PromotionAdminError(f"Invalid promotion: {e}") from e

        name = (data.get("name") or "").strip()
        if not name:
            raise PromotionAdminError("Promotion name is required")
        if promotion_type != PromotionType.BUY_X_GET_Y and value <= 0:
            raise PromotionAdminError("Promotion value must be positive")
        if promotion_type == PromotionType.PERCENTAGE and value > HUNDRED:
            raise PromotionAdminError("Percentage cannot exceed 100")
        start_date, end_date = data.get("start_date"), data.get("end_date")
        if start_date is None or end_date is None or start_date >= end_date:
            raise PromotionAdminError("Start date must be before end date")

        return {
            "name": name,
            "description": data.get("description") or "",
            "type": promotion_type.value,
            "value": value,
            "max_discount_amount": data.get("max_discount_amount"),
            "min_order_amount": data.get("min_order_amount"),
            "scope": scope.value,
            "priority": int(data.get("priority") or 0),
            "is_active": data.get("is_active", True),
            "start_date": start_date,
            "end_date": end_date,
        }

    def _set_targets(self, promotion_orm: PromotionORM, scope: str, data: dict) -> None:
        """Replace targets, keeping only the set that matches ``scope``."""
        PromotionProductORM.objects.filter(promotion=promotion_orm).delete()
        PromotionCategoryORM.objects.filter(promotion=promotion_orm).delete()
        PromotionBrandORM.objects.filter(promotion=promotion_orm).delete()

        if scope == PromotionScope.PRODUCT.value:
            ids = set(data.get("product_ids") or [])
            found = {str(pk) for pk in ProductORM.objects.filter(id__in=ids).values_list("id", flat=True)}
            missing = {str(pk) for pk in ids} - found
            if missing:
                raise PromotionAdminError(f"Products not found: {sorted(missing)}")
            PromotionProductORM.objects.bulk_create(
                [PromotionProductORM(promotion=promotion_orm, product_id=pk) for pk in found]
            )
        elif scope == PromotionScope.CATEGORY.value:
            ids = set(data.get("category_ids") or [])
            found = set(CategoryORM.objects.filter(id__in=ids).values_list("id", flat=True))
            if ids - found:
                raise PromotionAdminError(f"Categories not found: {sorted(ids - found)}")
            PromotionCategoryORM.objects.bulk_create(
                [PromotionCategoryORM(promotion=promotion_orm, category_id=pk) for pk in found]
            )
        elif scope == PromotionScope.BRAND.value:
            ids = set(data.get("brand_ids") or [])
            found = set(BrandORM.objects.filter(id__in=ids).values_list("id", flat=True))
            if ids - found:
                raise PromotionAdminError(f"Brands not found: {sorted(ids - found)}")
            PromotionBrandORM.objects.bulk_create(
                [PromotionBrandORM(promotion=promotion_orm, brand_id=pk) for pk in found]
            )
