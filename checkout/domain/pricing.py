"""
Promotion value objects and discount calculation.

All functions here are pure: they work on already-loaded promotions and
prices and never touch storage.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Iterable

ZERO = Decimal("0")
HUNDRED = Decimal("100")


class PromotionType(str, Enum):
    """Promotion discount kind."""
    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"
    BUY_X_GET_Y = "BUY_X_GET_Y"  # stored, never discounts


class PromotionScope(str, Enum):
    """What a promotion targets."""
    ALL = "ALL"
    PRODUCT = "PRODUCT"
    CATEGORY = "CATEGORY"
    BRAND = "BRAND"


@dataclass(frozen=True)
class ProductRef:
    """The parts of a catalog product that pricing needs."""
    id: str
    price: Decimal
    sale_price: Decimal | None = None
    category_id: int | None = None
    brand_id: int | None = None
    name: str = ""

    @property
    def unit_price(self) -> Decimal:
        """Price before promotions: the sale price when set, else list price."""
        return self.sale_price if self.sale_price is not None else self.price


@dataclass(frozen=True)
class Promotion:
    """Read model of a promotion."""
    id: int
    name: str
    type: PromotionType
    value: Decimal
    start_date: datetime
    end_date: datetime
    is_active: bool = True
    priority: int = 0
    max_discount_amount: Decimal | None = None
    min_order_amount: Decimal | None = None
    scope: PromotionScope = PromotionScope.ALL
    product_ids: frozenset[str] = field(default_factory=frozenset)
    category_ids: frozenset[int] = field(default_factory=frozenset)
    brand_ids: frozenset[int] = field(default_factory=frozenset)

    def is_valid_at(self, now: datetime) -> bool:
        """Active and inside its [start, end) window."""
        return self.is_active and self.start_date <= now < self.end_date

    def applies_to(self, product: ProductRef) -> bool:
        """Whether the promotion targets the product directly or via category/brand."""
        if self.scope == PromotionScope.ALL:
            return True
        if product.id in self.product_ids:
            return True
        if product.category_id is not None and product.category_id in self.category_ids:
            return True
        if product.brand_id is not None and product.brand_id in self.brand_ids:
            return True
        return False

    def meets_min_order(self, order_total: Decimal | None) -> bool:
        if order_total is None or self.min_order_amount is None:
            return True
        return order_total >= self.min_order_amount


def quantize_money(amount: Decimal, quantum: Decimal = Decimal("1")) -> Decimal:
    """Round to the currency's smallest unit, half up."""
    return amount.quantize(quantum, rounding=ROUND_HALF_UP)


def calculate_discount(price: Decimal, promotion: Promotion, quantum: Decimal = Decimal("1")) -> Decimal:
    """Discount a promotion gives on one unit at ``price``; always within [0, price]."""
    if price <= 0:
        return ZERO
    if promotion.type == PromotionType.PERCENTAGE:
        discount = price * promotion.value / HUNDRED
        if promotion.max_discount_amount is not None:
            discount = min(discount, promotion.max_discount_amount)
    elif promotion.type == PromotionType.FIXED_AMOUNT:
        discount = min(promotion.value, price)
    else:
        return ZERO
    discount = quantize_money(discount, quantum)
    return max(ZERO, min(discount, price))


def calculate_discounted_price(price: Decimal, promotion: Promotion | None, quantum: Decimal = Decimal("1")) -> Decimal:
    """Unit price after applying ``promotion`` (unchanged when None)."""
    if promotion is None:
        return price
    return max(ZERO, price - calculate_discount(price, promotion, quantum))


def rank_key(promotion: Promotion, price: Decimal, quantum: Decimal = Decimal("1")):
    """Sort key: priority desc, discount at the real price desc, id asc."""
    return (-promotion.priority, -calculate_discount(price, promotion, quantum), promotion.id)


def select_best_promotion(
    promotions: Iterable[Promotion],
    product: ProductRef,
    price: Decimal,
    now: datetime,
    order_total: Decimal | None = None,
    quantum: Decimal = Decimal("1"),
) -> Promotion | None:
    """Pick the single best promotion for ``product`` at ``price``.

    Candidates must be valid at ``now``, target the product, and (when
    ``order_total`` is given) have their minimum order amount met. The result
    does not depend on the order of ``promotions``.
    """
    candidates = [
        p for p in promotions
        if p.is_valid_at(now) and p.applies_to(product) and p.meets_min_order(order_total)
    ]
    if not candidates:
        return None
    return min(candidates, key=lambda p: rank_key(p, price, quantum))
