"""
Shared fixtures for checkout tests.
"""
from datetime import timedelta
from decimal import Decimal
from itertools import count

from django.utils import timezone

from checkout.infra.models import (
    BrandORM,
    CartItemORM,
    CategoryORM,
    InventoryORM,
    OrderORM,
    ProductORM,
    PromotionORM,
    VoucherORM,
)
from checkout.services.gateways import PaymentGatewayFactory
from checkout.services.orders import OrderService
from checkout.services.payments import PaymentService, PaymentStrategyFactory

_sizes = count(36)


def make_product(price="200000", sale_price=None, category=None, brand=None, name="Runner"):
    return ProductORM.objects.create(
        name=name,
        price=Decimal(price),
        sale_price=Decimal(sale_price) if sale_price is not None else None,
        category=category,
        brand=brand,
    )


def make_inventory(product=None, quantity=10, size_id=None):
    return InventoryORM.objects.create(
        product=product or make_product(),
        size_id=size_id if size_id is not None else next(_sizes),
        quantity=quantity,
    )


def make_category(name="Sneakers"):
    return CategoryORM.objects.create(name=name)


def make_brand(name="Bitis"):
    return BrandORM.objects.create(name=name)


def make_promotion(value="10", type="PERCENTAGE", scope="ALL", priority=0, days=1, **extra):
    now = timezone.now()
    extra.setdefault("start_date", now - timedelta(days=days))
    extra.setdefault("end_date", now + timedelta(days=days))
    return PromotionORM.objects.create(
        name=extra.pop("name", f"{type} {value}"),
        type=type,
        value=Decimal(value),
        scope=scope,
        priority=priority,
        **extra,
    )


def make_voucher(code="SAVE10", value="10000", type="FIXED_AMOUNT", days=1, **extra):
    now = timezone.now()
    extra.setdefault("start_date", now - timedelta(days=days))
    extra.setdefault("end_date", now + timedelta(days=days))
    return VoucherORM.objects.create(
        code=code,
        name=extra.pop("name", f"Voucher {code}"),
        type=type,
        value=Decimal(value),
        **extra,
    )


def make_order_row(user_id="U1", total="100000"):
    """Bare order row for tests that only need something to reference."""
    return OrderORM.objects.create(
        user_id=user_id,
        status="PENDING",
        original_amount=Decimal(total),
        total_amount=Decimal(total),
    )


def make_cart_item(inventory, user_id=None, guest_id=None, quantity=1):
    return CartItemORM.objects.create(
        inventory=inventory,
        user_id=user_id,
        guest_id=guest_id,
        quantity=quantity,
    )


VNPAY_CONFIG = {
    "BASE_URL": "https://sandbox.vnpayment.vn/paymentv2/vpcpay.html",
    "TMN_CODE": "SHOE0001",
    "HASH_SECRET": "vnpay-secret",
    "RETURN_URL": "https://shop.example/payments/vnpay/callback/",
}

MOMO_CONFIG = {
    "API_URL": "https://momo.example/create",
    "PARTNER_CODE": "MOMO0001",
    "ACCESS_KEY": "access",
    "SECRET_KEY": "momo-secret",
    "TIMEOUT_SECONDS": 3,
}

ZALOPAY_CONFIG = {
    "API_URL": "https://zalopay.example/v2/create",
    "APP_ID": "2553",
    "KEY1": "zalo-key1",
    "KEY2": "zalo-key2",
}


def order_service_with_gateways(gateways):
    """OrderService whose gateway payments go through ``gateways``."""
    payment_service = PaymentService(gateway_factory=PaymentGatewayFactory(gateways))
    return OrderService(payment_strategies=PaymentStrategyFactory(payment_service))
