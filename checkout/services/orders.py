"""
Order creation and order lifecycle operations.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from uuid import UUID

from django.db import transaction

from checkout.domain.errors import InsufficientStock, OrderNotFound, VoucherRejected
from checkout.domain.inventory import StockLine
from checkout.domain.order import Order, OrderItem, OrderStatus, PaymentMethod
from checkout.domain.payment import PaymentResult
from checkout.domain.voucher import ERROR_MESSAGES, VoucherErrorCode, normalize_code
from checkout.infra.pii_masker import mask_pii_in_dict
from checkout.infra.repositories import CartRepository, OrderRepository
from checkout.services.catalog import CatalogService
from checkout.services.compensation import CancellationService
from checkout.services.inventory import InventoryLedger
from checkout.services.payments import PaymentContext, PaymentStrategyFactory
from checkout.services.totals import OrderTotalStrategyFactory, PriceQuote, PricingRequest
from checkout.services.vouchers import VoucherService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderCreationRequest:
    """Checkout form as submitted by the customer."""
    items: tuple[StockLine, ...]
    payment_method: PaymentMethod = PaymentMethod.COD
    customer_name: str = ""
    phone: str = ""
    email: str = ""
    address: str = ""
    note: str = ""
    voucher_code: str | None = None
    client_ip: str = "127.0.0.1"
    return_url: str | None = None


@dataclass(frozen=True)
class OrderCreationResult:
    """Persisted order (if any) plus the payment outcome."""
    order: Order | None = None
    payment: PaymentResult | None = None
    error_code: str | None = None
    error_message: str | None = None
    voucher_error_code: VoucherErrorCode | None = None
    details: dict = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.error_code is None and self.payment is not None and self.payment.success

    @classmethod
    def failure(cls, error_code: str, message: str, **kwargs) -> "OrderCreationResult":
        return cls(error_code=error_code, error_message=message, **kwargs)


class OrderService:
    """Service for order operations."""

    def __init__(
        self,
        order_repo: OrderRepository | None = None,
        inventory: InventoryLedger | None = None,
        catalog: CatalogService | None = None,
        voucher_service: VoucherService | None = None,
        totals_factory: OrderTotalStrategyFactory | None = None,
        payment_strategies: PaymentStrategyFactory | None = None,
        cancellation: CancellationService | None = None,
        cart_repo: CartRepository | None = None,
    ):
        self.order_repo = order_repo or OrderRepository()
        self.inventory = inventory or InventoryLedger()
        self.catalog = catalog or CatalogService()
        self.voucher_service = voucher_service or VoucherService()
        self.totals_factory = totals_factory or OrderTotalStrategyFactory(
            catalog=self.catalog,
            voucher_service=self.voucher_service,
        )
        self.payment_strategies = payment_strategies or PaymentStrategyFactory()
        self.cancellation = cancellation or CancellationService(
            order_repo=self.order_repo,
            inventory=self.inventory,
            catalog=self.catalog,
            voucher_service=self.voucher_service,
        )
        self.cart_repo = cart_repo or CartRepository()

    def create_order(
        self,
        request: OrderCreationRequest,
        user_id: str | None = None,
        guest_id: str | None = None,
    ) -> OrderCreationResult:
        """Price, persist and dispatch payment for a new order.

        Expected failures (empty order, stock, voucher) come back as error
        codes with nothing written. Order rows, stock decrements and voucher
        usage commit together; payment is dispatched after that commit.
        """
        lines = tuple(request.items)
        if not lines:
            return OrderCreationResult.failure("VALIDATION_ERROR", "Order has no items")

        for line in lines:
            if self.inventory.check_and_reserve(line.inventory_id, line.quantity) is None:
                available = self.inventory.get(line.inventory_id).quantity
                return self._stock_failure(InsufficientStock(line.inventory_id, line.quantity, available))

        pricing = PricingRequest(
            lines=lines,
            voucher_code=normalize_code(request.voucher_code) or None,
            user_id=user_id,
            guest_id=guest_id,
        )
        try:
            quote = self.totals_factory.create_strategy(pricing).calculate(pricing)
        except VoucherRejected as e:
            return self._voucher_failure(pricing.voucher_code, e)

        order = self._build_order(request, quote, user_id, guest_id)

        try:
            with transaction.atomic():
                self.order_repo.save(order)
                self.inventory.decrement_all(lines)
                if quote.voucher is not None:
                    self._mark_voucher_used(order, quote, pricing)
        except InsufficientStock as e:
            return self._stock_failure(e)
        except VoucherRejected as e:
            return self._voucher_failure(pricing.voucher_code, e)

        strategy = self.payment_strategies.get_strategy(order.payment_method)
        payment = strategy.process(order, PaymentContext(request.client_ip, request.return_url))

        if not payment.success:
            self._abandon(order, payment)
        elif payment.requires_redirect:
            order.await_payment()
            self.order_repo.update_status(order)

        self.catalog.remove_product_cache()
        if payment.success:
            self.cart_repo.clear(user_id, guest_id)

        logger.info(
            "order_created",
            extra=mask_pii_in_dict({
                "order_id": str(order.id),
                "user_id": user_id,
                "status": order.status.value,
                "total_amount": str(order.total_amount),
                "voucher_code": order.voucher_code,
                "payment_method": order.payment_method.name,
            }),
        )
        if not payment.success:
            return OrderCreationResult(
                order=order,
                payment=payment,
                error_code="PAYMENT_FAILED",
                error_message=payment.error_message,
            )
        return OrderCreationResult(order=order, payment=payment)

    def get_order(self, order_id: UUID, user_id: str | None = None) -> Order:
        """Order by id; with ``user_id`` only the owner's order is returned."""
        order = self.order_repo.get_by_id(order_id)
        if order is None or (user_id is not None and order.user_id != user_id):
            raise OrderNotFound(order_id)
        return order

    def get_orders_by_user(self, user_id: str, limit: int = 50, offset: int = 0) -> list[Order]:
        return self.order_repo.get_by_user(user_id, limit=limit, offset=offset)

    def update_order_status(self, order_id: UUID, status: OrderStatus, note: str | None = None) -> Order:
        """Admin status change; cancel and reject go through compensation."""
        status = OrderStatus(status)
        if status == OrderStatus.CANCELLED:
            return self.cancellation.admin_cancel_order(order_id, note)
        if status == OrderStatus.REJECTED:
            return self.cancellation.admin_reject_order(order_id, note)

        with transaction.atomic():
            order = self.order_repo.get_by_id(order_id, for_update=True)
            if order is None:
                raise OrderNotFound(order_id)
            order.transition_to(status)
            if note:
                order.admin_note = note
            self.order_repo.update_status(order)
        logger.info(
            "order_status_updated",
            extra={"order_id": str(order_id), "status": status.value},
        )
        return order

    def sync_guest_orders_to_user(self, guest_id: str, user_id: str) -> int:
        """Attach a guest's orders to the account they signed in with."""
        moved = self.order_repo.reassign_guest_orders(guest_id, user_id)
        logger.info(
            "guest_orders_synced",
            extra=mask_pii_in_dict({"user_id": user_id, "guest_id": guest_id, "count": moved}),
        )
        return moved

    def _build_order(
        self,
        request: OrderCreationRequest,
        quote: PriceQuote,
        user_id: str | None,
        guest_id: str | None,
    ) -> Order:
        items = [
            OrderItem(
                inventory_id=line.inventory_id,
                quantity=line.quantity,
                price=line.unit_price,
                base_price=line.base_unit_price,
                product_id=line.product.id,
                promotion_id=line.promotion.id if line.promotion else None,
            )
            for line in quote.lines
        ]
        voucher = quote.voucher
        return Order(
            user_id=user_id,
            guest_id=guest_id,
            items=items,
            payment_method=request.payment_method,
            status=OrderStatus.PENDING,
            original_amount=quote.original_amount,
            total_amount=quote.total_amount,
            customer_name=request.customer_name,
            phone=request.phone,
            email=request.email,
            address=request.address,
            note=request.note,
            voucher_code=voucher.code if voucher else None,
            voucher_name=voucher.voucher_name if voucher else None,
        )

    def _mark_voucher_used(self, order: Order, quote: PriceQuote, pricing: PricingRequest) -> None:
        """Consume the voucher or raise so the enclosing transaction rolls back."""
        used = self.voucher_service.mark_voucher_used(
            quote.voucher.code,
            order.id,
            pricing.user_id,
            pricing.guest_id,
            quote.voucher_discount,
            quote.promoted_amount,
        )
        if not used:
            error_code = (
                VoucherErrorCode.USER_ALREADY_USED
                if self.voucher_service.has_used_voucher(quote.voucher.code, pricing.user_id, pricing.guest_id)
                else VoucherErrorCode.USAGE_LIMIT_EXCEEDED
            )
            raise VoucherRejected(error_code, ERROR_MESSAGES[error_code])

    def _abandon(self, order: Order, payment: PaymentResult) -> None:
        """Payment could not start: keep the order as Cancelled and undo its effects."""
        with transaction.atomic():
            order.cancel(f"Payment failed: {payment.error_message or 'unknown error'}")
            self.order_repo.update_status(order)
            self.inventory.restore_all(StockLine(item.inventory_id, item.quantity) for item in order.items)
            self.voucher_service.release_voucher_usage(order.id)
        logger.warning(
            "order_payment_failed",
            extra={"order_id": str(order.id), "error": payment.error_message},
        )

    def _stock_failure(self, error: InsufficientStock) -> OrderCreationResult:
        logger.info(
            "order_rejected_insufficient_stock",
            extra={"inventory_id": error.inventory_id, "quantity": error.requested},
        )
        return OrderCreationResult.failure(
            error.code,
            error.message,
            details={"inventory_id": error.inventory_id, "available": error.available},
        )

    def _voucher_failure(self, code: str | None, error: VoucherRejected) -> OrderCreationResult:
        logger.info(
            "order_rejected_voucher",
            extra={"voucher_code": code, "error_code": error.error_code.name},
        )
        return OrderCreationResult.failure(
            error.code,
            error.message,
            voucher_error_code=error.error_code,
        )
