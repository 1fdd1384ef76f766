from django.contrib import admin

from checkout.infra.models import (
    BrandORM,
    CategoryORM,
    IdempotencyKey,
    InventoryORM,
    OrderItemORM,
    OrderORM,
    PaymentTransactionORM,
    ProductORM,
    PromotionORM,
    VoucherORM,
    VoucherUsageORM,
)


@admin.register(CategoryORM)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "created_at")
    search_fields = ("name",)


@admin.register(BrandORM)
class BrandAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "created_at")
    search_fields = ("name",)


@admin.register(ProductORM)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "price", "sale_price", "category", "brand")
    list_filter = ("category", "brand")
    search_fields = ("name",)


@admin.register(InventoryORM)
class InventoryAdmin(admin.ModelAdmin):
    list_display = ("id", "product", "size_id", "quantity", "updated_at")
    search_fields = ("product__name",)


@admin.register(PromotionORM)
class PromotionAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "type", "value", "scope", "priority", "is_active", "start_date", "end_date")
    list_filter = ("type", "scope", "is_active")
    search_fields = ("name",)


@admin.register(VoucherORM)
class VoucherAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "type", "value", "used_count", "usage_limit", "is_active", "end_date")
    list_filter = ("type", "is_active")
    search_fields = ("code", "name")
    readonly_fields = ("used_count",)


@admin.register(VoucherUsageORM)
class VoucherUsageAdmin(admin.ModelAdmin):
    list_display = ("id", "voucher", "order", "user_id", "guest_id", "discount_amount", "created_at")
    search_fields = ("voucher__code", "user_id")


@admin.register(OrderORM)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("id", "user_id", "status", "payment_method", "total_amount", "voucher_code", "created_at")
    list_filter = ("status", "payment_method", "created_at")
    search_fields = ("id", "user_id", "phone")


@admin.register(OrderItemORM)
class OrderItemAdmin(admin.ModelAdmin):
    list_display = ("id", "order", "inventory", "quantity", "base_price", "price", "created_at")
    list_filter = ("created_at",)


@admin.register(PaymentTransactionORM)
class PaymentTransactionAdmin(admin.ModelAdmin):
    list_display = ("id", "order", "payment_method", "amount", "status", "expires_at", "paid_at")
    list_filter = ("payment_method", "status")
    search_fields = ("transaction_id",)
    readonly_fields = ("gateway_response",)


@admin.register(IdempotencyKey)
class IdempotencyAdmin(admin.ModelAdmin):
    list_display = ("key", "user_id", "operation", "created_at")
    list_filter = ("operation", "created_at")
    search_fields = ("key", "user_id")
