"""
Order total composition.

A quote is built by a base strategy and then passed through decorators:
promotions first (per line), then the order-level voucher. Each step returns
a whole ``PriceQuote`` rather than a scalar, so the stored order lines and the
order total come from the same numbers.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from decimal import Decimal

from checkout.domain.errors import InventoryNotFound, VoucherRejected
from checkout.domain.inventory import StockLine
from checkout.domain.pricing import ZERO, ProductRef, Promotion
from checkout.domain.voucher import VoucherValidationResult
from checkout.services.catalog import CatalogService
from checkout.services.promotions import PromotionService
from checkout.services.vouchers import VoucherService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PricingRequest:
    """Input of the total calculation."""
    lines: tuple[StockLine, ...]
    voucher_code: str | None = None
    user_id: str | None = None
    guest_id: str | None = None


@dataclass(frozen=True)
class PricedLine:
    inventory_id: int
    quantity: int
    product: ProductRef
    base_unit_price: Decimal
    unit_price: Decimal
    promotion: Promotion | None = None

    @property
    def base_subtotal(self) -> Decimal:
        return self.base_unit_price * self.quantity

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class PriceQuote:
    """Per-line prices plus the order-level voucher outcome."""
    lines: tuple[PricedLine, ...] = field(default_factory=tuple)
    voucher: VoucherValidationResult | None = None

    @property
    def original_amount(self) -> Decimal:
        """Sum at catalog price, before any discount."""
        return sum((line.base_subtotal for line in self.lines), ZERO)

    @property
    def promoted_amount(self) -> Decimal:
        """Sum after line promotions, before the voucher."""
        return sum((line.subtotal for line in self.lines), ZERO)

    @property
    def voucher_discount(self) -> Decimal:
        if self.voucher is None or not self.voucher.is_valid:
            return ZERO
        return self.voucher.discount_amount

    @property
    def total_amount(self) -> Decimal:
        return self.promoted_amount - self.voucher_discount

    @property
    def discount_amount(self) -> Decimal:
        return self.original_amount - self.total_amount


class OrderTotalStrategy(ABC):
    """Computes a price quote for a request."""

    @abstractmethod
    def calculate(self, request: PricingRequest) -> PriceQuote:
        raise NotImplementedError

    def calculate_total(self, request: PricingRequest) -> Decimal:
        return self.calculate(request).total_amount


class BaseOrderTotalStrategy(OrderTotalStrategy):
    """Lines at the product's sale price, or list price when there is none."""

    def __init__(self, catalog: CatalogService | None = None):
        self.catalog = catalog or CatalogService()

    def calculate(self, request: PricingRequest) -> PriceQuote:
        lines = []
        for line in request.lines:
            product = self.catalog.get_product_for_inventory(line.inventory_id)
            if product is None:
                raise InventoryNotFound(line.inventory_id)
            lines.append(PricedLine(
                inventory_id=line.inventory_id,
                quantity=line.quantity,
                product=product,
                base_unit_price=product.unit_price,
                unit_price=product.unit_price,
            ))
        return PriceQuote(lines=tuple(lines))


class OrderTotalDecorator(OrderTotalStrategy):
    """Wraps another strategy and adjusts its quote."""

    def __init__(self, inner: OrderTotalStrategy):
        self.inner = inner

    def calculate(self, request: PricingRequest) -> PriceQuote:
        return self.decorate(self.inner.calculate(request), request)

    @abstractmethod
    def decorate(self, quote: PriceQuote, request: PricingRequest) -> PriceQuote:
        raise NotImplementedError


class PromotionDecorator(OrderTotalDecorator):
    """Replaces each line's unit price with its best promotion price.

    Promotion minimum order amounts are checked against the base total of
    the incoming quote, and prices are resolved once for all lines.
    """

    def __init__(self, inner: OrderTotalStrategy, promotion_service: PromotionService | None = None):
        super().__init__(inner)
        self.promotion_service = promotion_service or PromotionService()

    def decorate(self, quote: PriceQuote, request: PricingRequest) -> PriceQuote:
        prices, best = self.promotion_service.resolve_for_products(
            [line.product for line in quote.lines],
            order_total=quote.original_amount,
        )
        lines = tuple(
            replace(
                line,
                unit_price=prices.get(line.product.id, line.unit_price),
                promotion=best.get(line.product.id),
            )
            for line in quote.lines
        )
        return replace(quote, lines=lines)


class VoucherDecorator(OrderTotalDecorator):
    """Applies the order voucher to the promoted subtotal; a refusal stops the order."""

    def __init__(self, inner: OrderTotalStrategy, voucher_service: VoucherService | None = None):
        super().__init__(inner)
        self.voucher_service = voucher_service or VoucherService()

    def decorate(self, quote: PriceQuote, request: PricingRequest) -> PriceQuote:
        if not request.voucher_code:
            return quote
        result = self.voucher_service.validate_voucher(
            request.voucher_code,
            quote.promoted_amount,
            user_id=request.user_id,
            guest_id=request.guest_id,
        )
        if not result.is_valid:
            raise VoucherRejected(result.error_code, result.error_message)
        return replace(quote, voucher=result)


class OrderTotalStrategyFactory:
    """Builds the strategy chain for a request."""

    def __init__(
        self,
        catalog: CatalogService | None = None,
        promotion_service: PromotionService | None = None,
        voucher_service: VoucherService | None = None,
    ):
        self.catalog = catalog or CatalogService()
        self.promotion_service = promotion_service or PromotionService(catalog=self.catalog)
        self.voucher_service = voucher_service or VoucherService()

    def create_strategy(self, request: PricingRequest) -> OrderTotalStrategy:
        strategy: OrderTotalStrategy = BaseOrderTotalStrategy(self.catalog)
        strategy = PromotionDecorator(strategy, self.promotion_service)
        if request.voucher_code:
            strategy = VoucherDecorator(strategy, self.voucher_service)
        return strategy
