from __future__ import annotations

from uuid import uuid4

from django.db import models
from django.db.models import Q


ORDER_STATUS = (
    ("PENDING", "Pending"),
    ("PENDING_PAYMENT", "Pending payment"),
    ("PAID", "Paid"),
    ("PREPARING", "Preparing"),
    ("SHIPPING", "Shipping"),
    ("COMPLETED", "Completed"),
    ("CANCELLED", "Cancelled"),
    ("REJECTED", "Rejected"),
)

PAYMENT_METHOD = (
    (0, "Cash on delivery"),
    (1, "Bank transfer"),
    (2, "Credit card"),
    (3, "MoMo"),
    (4, "VnPay"),
    (5, "ZaloPay"),
    (6, "PayPal"),
)

PAYMENT_TRANSACTION_STATUS = (
    ("PENDING", "Pending"),
    ("PROCESSING", "Processing"),
    ("SUCCESS", "Success"),
    ("FAILED", "Failed"),
    ("CANCELLED", "Cancelled"),
    ("EXPIRED", "Expired"),
    ("REFUNDED", "Refunded"),
)

PROMOTION_TYPE = (
    ("PERCENTAGE", "Percentage"),
    ("FIXED_AMOUNT", "Fixed amount"),
    ("BUY_X_GET_Y", "Buy X get Y"),
)

PROMOTION_SCOPE = (
    ("ALL", "All products"),
    ("PRODUCT", "Products"),
    ("CATEGORY", "Categories"),
    ("BRAND", "Brands"),
)

VOUCHER_TYPE = (
    ("PERCENTAGE", "Percentage"),
    ("FIXED_AMOUNT", "Fixed amount"),
)

OPERATION_TYPE = (
    ("CREATE_ORDER", "Create order"),
    ("CANCEL_ORDER", "Cancel order"),
    ("REJECT_ORDER", "Reject order"),
    ("UPDATE_ORDER_STATUS", "Update order status"),
    ("UNKNOWN", "Unknown"),
)


class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class CategoryORM(TimeStampedModel):
    name = models.CharField(max_length=255)


class BrandORM(TimeStampedModel):
    name = models.CharField(max_length=255)


class ProductORM(TimeStampedModel):
    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    name = models.CharField(max_length=255)
    price = models.DecimalField(max_digits=14, decimal_places=2)
    sale_price = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    category = models.ForeignKey(
        CategoryORM,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="products",
    )
    brand = models.ForeignKey(
        BrandORM,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="products",
    )

    class Meta:
        indexes = [
            models.Index(fields=("category",)),
            models.Index(fields=("brand",)),
        ]


class InventoryORM(TimeStampedModel):
    product = models.ForeignKey(
        ProductORM,
        on_delete=models.PROTECT,
        related_name="inventories",
    )
    size_id = models.IntegerField()
    quantity = models.IntegerField(default=0)

    class Meta:
        constraints = [
            models.CheckConstraint(condition=Q(quantity__gte=0), name="inventory_quantity_non_negative"),
            models.UniqueConstraint(fields=("product", "size_id"), name="inventory_product_size_unique"),
        ]


class PromotionORM(TimeStampedModel):
    name = models.CharField(max_length=255)
    description = models.TextField(default="", blank=True)
    type = models.CharField(max_length=32, choices=PROMOTION_TYPE)
    value = models.DecimalField(max_digits=14, decimal_places=2)
    max_discount_amount = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    min_order_amount = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    scope = models.CharField(max_length=16, choices=PROMOTION_SCOPE, default="ALL")
    priority = models.IntegerField(default=0)
    is_active = models.BooleanField(default=True)
    start_date = models.DateTimeField()
    end_date = models.DateTimeField()

    class Meta:
        indexes = [
            models.Index(fields=("is_active", "start_date", "end_date")),
        ]


class PromotionProductORM(models.Model):
    promotion = models.ForeignKey(PromotionORM, on_delete=models.CASCADE, related_name="products")
    product = models.ForeignKey(ProductORM, on_delete=models.CASCADE, related_name="promotions")

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=("promotion", "product"), name="promotion_product_unique"),
        ]


class PromotionCategoryORM(models.Model):
    promotion = models.ForeignKey(PromotionORM, on_delete=models.CASCADE, related_name="categories")
    category = models.ForeignKey(CategoryORM, on_delete=models.CASCADE, related_name="promotions")

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=("promotion", "category"), name="promotion_category_unique"),
        ]


class PromotionBrandORM(models.Model):
    promotion = models.ForeignKey(PromotionORM, on_delete=models.CASCADE, related_name="brands")
    brand = models.ForeignKey(BrandORM, on_delete=models.CASCADE, related_name="promotions")

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=("promotion", "brand"), name="promotion_brand_unique"),
        ]


class VoucherORM(TimeStampedModel):
    code = models.CharField(max_length=64, primary_key=True)
    name = models.CharField(max_length=255)
    description = models.TextField(default="", blank=True)
    type = models.CharField(max_length=32, choices=VOUCHER_TYPE)
    value = models.DecimalField(max_digits=14, decimal_places=2)
    min_order_amount = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    max_discount_amount = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    usage_limit = models.IntegerField(null=True, blank=True)
    used_count = models.IntegerField(default=0)
    is_active = models.BooleanField(default=True)
    start_date = models.DateTimeField()
    end_date = models.DateTimeField()

    class Meta:
        constraints = [
            models.CheckConstraint(condition=Q(used_count__gte=0), name="voucher_used_count_non_negative"),
        ]
        indexes = [
            models.Index(fields=("is_active", "start_date", "end_date")),
        ]


class OrderORM(TimeStampedModel):
    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    user_id = models.CharField(max_length=64, null=True, blank=True)
    guest_id = models.CharField(max_length=64, null=True, blank=True)
    customer_name = models.CharField(max_length=255, default="", blank=True)
    phone = models.CharField(max_length=32, default="", blank=True)
    email = models.CharField(max_length=255, default="", blank=True)
    address = models.TextField(default="", blank=True)
    note = models.TextField(default="", blank=True)
    admin_note = models.TextField(default="", blank=True)
    payment_method = models.IntegerField(choices=PAYMENT_METHOD, default=0)
    status = models.CharField(max_length=32, choices=ORDER_STATUS)
    original_amount = models.DecimalField(max_digits=14, decimal_places=2)
    discount_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    total_amount = models.DecimalField(max_digits=14, decimal_places=2)
    voucher_code = models.CharField(max_length=64, null=True, blank=True)
    voucher_name = models.CharField(max_length=255, null=True, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=("user_id", "status")),
            models.Index(fields=("guest_id",)),
            models.Index(fields=("status", "created_at")),
        ]


class OrderItemORM(TimeStampedModel):
    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    order = models.ForeignKey(
        OrderORM,
        on_delete=models.CASCADE,
        related_name="items",
    )
    inventory = models.ForeignKey(
        InventoryORM,
        on_delete=models.PROTECT,
        related_name="order_items",
    )
    product_id = models.CharField(max_length=64, null=True, blank=True)
    promotion_id = models.IntegerField(null=True, blank=True)
    quantity = models.IntegerField()
    base_price = models.DecimalField(max_digits=14, decimal_places=2)
    price = models.DecimalField(max_digits=14, decimal_places=2)
    subtotal = models.DecimalField(max_digits=14, decimal_places=2)

    class Meta:
        indexes = [
            models.Index(fields=("order",)),
        ]


class VoucherUsageORM(TimeStampedModel):
    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    voucher = models.ForeignKey(
        VoucherORM,
        on_delete=models.PROTECT,
        related_name="usages",
    )
    order = models.ForeignKey(
        OrderORM,
        on_delete=models.CASCADE,
        related_name="voucher_usages",
    )
    user_id = models.CharField(max_length=64, null=True, blank=True)
    guest_id = models.CharField(max_length=64, null=True, blank=True)
    discount_amount = models.DecimalField(max_digits=14, decimal_places=2)
    original_amount = models.DecimalField(max_digits=14, decimal_places=2)
    final_amount = models.DecimalField(max_digits=14, decimal_places=2)

    class Meta:
        constraints = [
            # One usage per voucher per user, and per guest when there is no user
            models.UniqueConstraint(
                fields=("voucher", "user_id"),
                condition=Q(user_id__isnull=False),
                name="voucher_usage_user_unique",
            ),
            models.UniqueConstraint(
                fields=("voucher", "guest_id"),
                condition=Q(guest_id__isnull=False),
                name="voucher_usage_guest_unique",
            ),
        ]
        indexes = [
            models.Index(fields=("order",)),
        ]


class PaymentTransactionORM(TimeStampedModel):
    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    order = models.ForeignKey(
        OrderORM,
        on_delete=models.PROTECT,
        related_name="payment_transactions",
    )
    payment_method = models.IntegerField(choices=PAYMENT_METHOD)
    transaction_id = models.CharField(max_length=128, null=True, blank=True, unique=True)
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    currency = models.CharField(max_length=8, default="VND")
    status = models.CharField(max_length=16, choices=PAYMENT_TRANSACTION_STATUS)
    gateway_response = models.JSONField(default=dict, blank=True)
    payment_url = models.TextField(default="", blank=True)
    failure_reason = models.TextField(default="", blank=True)
    expires_at = models.DateTimeField()
    paid_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=("order",)),
            models.Index(fields=("status", "expires_at")),
        ]


class CartItemORM(TimeStampedModel):
    user_id = models.CharField(max_length=64, null=True, blank=True)
    guest_id = models.CharField(max_length=64, null=True, blank=True)
    inventory = models.ForeignKey(
        InventoryORM,
        on_delete=models.CASCADE,
        related_name="cart_items",
    )
    quantity = models.IntegerField(default=1)

    class Meta:
        indexes = [
            models.Index(fields=("user_id",)),
            models.Index(fields=("guest_id",)),
        ]


class IdempotencyKey(TimeStampedModel):
    key = models.CharField(max_length=255)
    user_id = models.CharField(max_length=64)
    operation = models.CharField(max_length=32, choices=OPERATION_TYPE)
    request_hash = models.CharField(max_length=255)
    response_payload = models.JSONField()

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=("key", "user_id", "operation"), name="idempotency_key_unique"),
        ]
        indexes = [
            models.Index(fields=("request_hash",)),
        ]
