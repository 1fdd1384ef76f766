"""
Infrastructure repositories for domain entities.
"""
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.db.models import F, Q

from checkout.domain.errors import InsufficientStock, InventoryNotFound
from checkout.domain.inventory import InventoryRecord
from checkout.domain.order import Order, OrderItem, OrderStatus, PaymentMethod
from checkout.domain.payment import PaymentTransactionStatus
from checkout.domain.pricing import ProductRef, Promotion, PromotionScope, PromotionType
from checkout.domain.voucher import Voucher, VoucherType
from checkout.infra.models import (
    CartItemORM,
    InventoryORM,
    OrderItemORM,
    OrderORM,
    PaymentTransactionORM,
    ProductORM,
    PromotionORM,
    VoucherORM,
    VoucherUsageORM,
)

logger = logging.getLogger(__name__)


class InventoryRepository:
    """Repository for inventory rows."""

    def find(self, inventory_id: int) -> InventoryRecord | None:
        """Get inventory row or None."""
        inventory_orm = InventoryORM.objects.filter(id=inventory_id).first()
        if inventory_orm is None:
            return None
        return self._to_domain(inventory_orm)

    def get(self, inventory_id: int) -> InventoryRecord:
        """Get inventory row or raise InventoryNotFound."""
        record = self.find(inventory_id)
        if record is None:
            raise InventoryNotFound(inventory_id)
        return record

    def decrement(self, inventory_id: int, quantity: int) -> None:
        """Take ``quantity`` units in one conditional UPDATE."""
        updated = (
            InventoryORM.objects
            .filter(id=inventory_id, quantity__gte=quantity)
            .update(quantity=F("quantity") - quantity)
        )
        if updated == 0:
            current = self.find(inventory_id)
            if current is None:
                raise InventoryNotFound(inventory_id)
            raise InsufficientStock(inventory_id, quantity, current.quantity)

    def increment(self, inventory_id: int, quantity: int) -> None:
        """Put ``quantity`` units back."""
        updated = InventoryORM.objects.filter(id=inventory_id).update(quantity=F("quantity") + quantity)
        if updated == 0:
            raise InventoryNotFound(inventory_id)

    def _to_domain(self, inventory_orm: InventoryORM) -> InventoryRecord:
        return InventoryRecord(
            id=inventory_orm.id,
            product_id=str(inventory_orm.product_id),
            size_id=inventory_orm.size_id,
            quantity=inventory_orm.quantity,
        )


class ProductRepository:
    """Read access to catalog products."""

    def get(self, product_id: str) -> ProductRef | None:
        product_orm = ProductORM.objects.filter(id=product_id).first()
        return self._to_domain(product_orm) if product_orm else None

    def get_for_inventory(self, inventory_id: int) -> ProductRef | None:
        """Product stocked by an inventory row."""
        inventory_orm = InventoryORM.objects.select_related("product").filter(id=inventory_id).first()
        return self._to_domain(inventory_orm.product) if inventory_orm else None

    def _to_domain(self, product_orm: ProductORM) -> ProductRef:
        return ProductRef(
            id=str(product_orm.id),
            name=product_orm.name,
            price=product_orm.price,
            sale_price=product_orm.sale_price,
            category_id=product_orm.category_id,
            brand_id=product_orm.brand_id,
        )


class PromotionRepository:
    """Repository for promotions and their targets."""

    def get_by_id(self, promotion_id: int) -> Promotion | None:
        promotion_orm = self._queryset().filter(id=promotion_id).first()
        return self._to_domain(promotion_orm) if promotion_orm else None

    def list_active(self, now: datetime) -> list[Promotion]:
        """Active promotions that have not ended by ``now`` (upcoming included)."""
        promotions_orm = self._queryset().filter(
            is_active=True,
            end_date__gt=now,
        )
        return [self._to_domain(promotion_orm) for promotion_orm in promotions_orm]

    def list_all(self) -> list[Promotion]:
        return [self._to_domain(promotion_orm) for promotion_orm in self._queryset().order_by("-priority", "id")]

    def _queryset(self):
        return PromotionORM.objects.prefetch_related("products", "categories", "brands")

    def _to_domain(self, promotion_orm: PromotionORM) -> Promotion:
        """Convert ORM model to domain entity."""
        return Promotion(
            id=promotion_orm.id,
            name=promotion_orm.name,
            type=PromotionType(promotion_orm.type),
            value=promotion_orm.value,
            start_date=promotion_orm.start_date,
            end_date=promotion_orm.end_date,
            is_active=promotion_orm.is_active,
            priority=promotion_orm.priority,
            max_discount_amount=promotion_orm.max_discount_amount,
            min_order_amount=promotion_orm.min_order_amount,
            scope=PromotionScope(promotion_orm.scope),
            product_ids=frozenset(str(link.product_id) for link in promotion_orm.products.all()),
            category_ids=frozenset(link.category_id for link in promotion_orm.categories.all()),
            brand_ids=frozenset(link.brand_id for link in promotion_orm.brands.all()),
        )


class VoucherRepository:
    """Repository for vouchers and their usage ledger."""

    def get(self, code: str) -> Voucher | None:
        voucher_orm = VoucherORM.objects.filter(code=code).first()
        return self._to_domain(voucher_orm) if voucher_orm else None

    def list_active(self, now: datetime) -> list[Voucher]:
        vouchers_orm = VoucherORM.objects.filter(
            is_active=True,
            start_date__lte=now,
            end_date__gt=now,
        ).order_by("end_date")
        return [self._to_domain(voucher_orm) for voucher_orm in vouchers_orm]

    def has_usage(self, code: str, user_id: str | None, guest_id: str | None) -> bool:
        """Whether the user (or the guest, when anonymous) already used ``code``."""
        if user_id:
            return VoucherUsageORM.objects.filter(voucher_id=code, user_id=user_id).exists()
        if guest_id:
            return VoucherUsageORM.objects.filter(voucher_id=code, guest_id=guest_id).exists()
        return False

    def consume(
        self,
        code: str,
        order_id: UUID,
        user_id: str | None,
        guest_id: str | None,
        discount_amount: Decimal,
        original_amount: Decimal,
    ) -> bool:
        """Increment used_count within the limit and record the usage.

        Both writes happen in one savepoint; False means the limit was hit or
        the user/guest already has a usage row, and nothing was written.
        """
        try:
            with transaction.atomic():
                updated = (
                    VoucherORM.objects
                    .filter(code=code)
                    .filter(Q(usage_limit__isnull=True) | Q(used_count__lt=F("usage_limit")))
                    .update(used_count=F("used_count") + 1)
                )
                if updated == 0:
                    return False
                VoucherUsageORM.objects.create(
                    voucher_id=code,
                    order_id=order_id,
                    user_id=user_id or None,
                    guest_id=None if user_id else (guest_id or None),
                    discount_amount=discount_amount,
                    original_amount=original_amount,
                    final_amount=original_amount - discount_amount,
                )
        except IntegrityError:
            logger.info(
                "voucher_usage_conflict",
                extra={"voucher_code": code, "order_id": str(order_id)},
            )
            return False
        return True

    def release(self, order_id: UUID) -> list[str]:
        """Delete usage rows of an order and give the counts back."""
        codes = list(VoucherUsageORM.objects.filter(order_id=order_id).values_list("voucher_id", flat=True))
        VoucherUsageORM.objects.filter(order_id=order_id).delete()
        for code in codes:
            VoucherORM.objects.filter(code=code, used_count__gt=0).update(used_count=F("used_count") - 1)
        return codes

    def usages_for(self, user_id: str | None = None, guest_id: str | None = None):
        queryset = VoucherUsageORM.objects.select_related("voucher").order_by("-created_at")
        if user_id:
            return list(queryset.filter(user_id=user_id))
        if guest_id:
            return list(queryset.filter(guest_id=guest_id))
        return []

    def _to_domain(self, voucher_orm: VoucherORM) -> Voucher:
        """Convert ORM model to domain entity."""
        return Voucher(
            code=voucher_orm.code,
            name=voucher_orm.name,
            description=voucher_orm.description,
            type=VoucherType(voucher_orm.type),
            value=voucher_orm.value,
            start_date=voucher_orm.start_date,
            end_date=voucher_orm.end_date,
            is_active=voucher_orm.is_active,
            min_order_amount=voucher_orm.min_order_amount,
            max_discount_amount=voucher_orm.max_discount_amount,
            usage_limit=voucher_orm.usage_limit,
            used_count=voucher_orm.used_count,
        )


class OrderRepository:
    """Repository for Order aggregate."""

    def get_by_id(self, order_id: UUID, for_update: bool = False) -> Order | None:
        """Get order by ID with items; ``for_update`` locks the row."""
        queryset = OrderORM.objects.select_for_update() if for_update else OrderORM.objects
        try:
            order_orm = queryset.prefetch_related("items").get(id=order_id)
        except (OrderORM.DoesNotExist, ValueError, ValidationError):
            return None
        return self._to_domain(order_orm)

    def get_by_user(self, user_id: str, limit: int = 50, offset: int = 0) -> list[Order]:
        """Get orders by user, newest first."""
        orders_orm = (
            OrderORM.objects
            .filter(user_id=user_id)
            .prefetch_related("items")
            .order_by("-created_at")[offset:offset + limit]
        )
        return [self._to_domain(order_orm) for order_orm in orders_orm]

    @transaction.atomic
    def save(self, order: Order) -> UUID:
        """Save order aggregate; items are written only on first save."""
        order_orm, created = OrderORM.objects.update_or_create(
            id=order.id,
            defaults={
                "user_id": order.user_id,
                "guest_id": order.guest_id,
                "customer_name": order.customer_name,
                "phone": order.phone,
                "email": order.email,
                "address": order.address,
                "note": order.note,
                "admin_note": order.admin_note,
                "payment_method": int(order.payment_method),
                "status": order.status.value,
                "original_amount": order.original_amount,
                "discount_amount": order.discount_amount,
                "total_amount": order.total_amount,
                "voucher_code": order.voucher_code,
                "voucher_name": order.voucher_name,
            },
        )

        if created:
            OrderItemORM.objects.bulk_create([
                OrderItemORM(
                    order=order_orm,
                    inventory_id=item.inventory_id,
                    product_id=item.product_id,
                    promotion_id=item.promotion_id,
                    quantity=item.quantity,
                    base_price=item.base_price,
                    price=item.price,
                    subtotal=item.subtotal,
                )
                for item in order.items
            ])
        order.created_at = order_orm.created_at
        return order_orm.id

    def update_status(self, order: Order) -> None:
        OrderORM.objects.filter(id=order.id).update(
            status=order.status.value,
            admin_note=order.admin_note,
        )

    def reassign_guest_orders(self, guest_id: str, user_id: str) -> int:
        return OrderORM.objects.filter(guest_id=guest_id, user_id__isnull=True).update(user_id=user_id)

    def _to_domain(self, order_orm: OrderORM) -> Order:
        """Convert ORM model to domain entity."""
        items = [
            OrderItem(
                inventory_id=item_orm.inventory_id,
                quantity=item_orm.quantity,
                price=item_orm.price,
                base_price=item_orm.base_price,
                product_id=item_orm.product_id,
                promotion_id=item_orm.promotion_id,
            )
            for item_orm in order_orm.items.all()
        ]
        return Order(
            id=order_orm.id,
            user_id=order_orm.user_id,
            guest_id=order_orm.guest_id,
            items=items,
            payment_method=PaymentMethod(order_orm.payment_method),
            status=OrderStatus(order_orm.status),
            original_amount=order_orm.original_amount,
            total_amount=order_orm.total_amount,
            customer_name=order_orm.customer_name,
            phone=order_orm.phone,
            email=order_orm.email,
            address=order_orm.address,
            note=order_orm.note,
            voucher_code=order_orm.voucher_code,
            voucher_name=order_orm.voucher_name,
            admin_note=order_orm.admin_note,
            created_at=order_orm.created_at,
        )


class PaymentTransactionRepository:
    """Repository for gateway payment transactions."""

    def create(
        self,
        order_id: UUID,
        payment_method: PaymentMethod,
        amount: Decimal,
        currency: str,
        expires_at: datetime,
    ) -> PaymentTransactionORM:
        return PaymentTransactionORM.objects.create(
            order_id=order_id,
            payment_method=int(payment_method),
            amount=amount,
            currency=currency,
            status=PaymentTransactionStatus.PENDING.value,
            expires_at=expires_at,
        )

    def get_by_transaction_id(self, transaction_id: str) -> PaymentTransactionORM | None:
        return PaymentTransactionORM.objects.filter(transaction_id=transaction_id).first()

    def get_latest_for_order(self, order_id: UUID) -> PaymentTransactionORM | None:
        return PaymentTransactionORM.objects.filter(order_id=order_id).order_by("-created_at").first()

    def get_for_update(self, pk: UUID) -> PaymentTransactionORM:
        return PaymentTransactionORM.objects.select_for_update().get(pk=pk)

    def list_stale(self, now: datetime, limit: int) -> list[PaymentTransactionORM]:
        """Open transactions past their deadline, plus failed ones whose order still waits."""
        open_statuses = [
            PaymentTransactionStatus.PENDING.value,
            PaymentTransactionStatus.PROCESSING.value,
        ]
        return list(
            PaymentTransactionORM.objects
            .filter(expires_at__lte=now)
            .filter(
                Q(status__in=open_statuses)
                | Q(status=PaymentTransactionStatus.FAILED.value, order__status=OrderStatus.PENDING_PAYMENT.value)
            )
            .order_by("expires_at")[:limit]
        )


class CartRepository:
    """Cart lines owned by a user or guest."""

    def clear(self, user_id: str | None, guest_id: str | None) -> int:
        if user_id:
            deleted, _ = CartItemORM.objects.filter(user_id=user_id).delete()
        elif guest_id:
            deleted, _ = CartItemORM.objects.filter(guest_id=guest_id).delete()
        else:
            deleted = 0
        return deleted
