"""
GraphQL schema definition using Ariadne.
"""
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from uuid import UUID

from ariadne import (
    EnumType,
    MutationType,
    QueryType,
    ScalarType,
    load_schema_from_path,
    make_executable_schema,
)

from checkout.api.middleware import ValidationError
from checkout.conf import currency_quantum
from checkout.domain.inventory import StockLine
from checkout.domain.order import Order, OrderStatus, PaymentMethod
from checkout.domain.pricing import calculate_discounted_price
from checkout.services.catalog import CatalogService
from checkout.services.compensation import CancellationService
from checkout.services.orders import OrderCreationRequest, OrderService
from checkout.services.payments import PaymentService
from checkout.services.promotions import PromotionService
from checkout.services.vouchers import VoucherService

SCHEMAS_DIR = Path(__file__).parent / "schemas"
type_defs = "\n".join([
    load_schema_from_path(SCHEMAS_DIR / "common"),
    load_schema_from_path(SCHEMAS_DIR / "query"),
    load_schema_from_path(SCHEMAS_DIR / "mutation"),
])

query = QueryType()
mutation = MutationType()
order_status_enum = EnumType("OrderStatus", OrderStatus)
payment_method_enum = EnumType("PaymentMethod", PaymentMethod)


def get_identity(info) -> tuple:
    """(user_id, guest_id) from the request headers."""
    request = info.context["request"]
    return (
        request.headers.get("X-User-ID") or None,
        request.headers.get("X-Guest-ID") or None,
    )


def get_client_ip(info) -> str:
    request = info.context["request"]
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.META.get("REMOTE_ADDR") or "127.0.0.1"


def order_to_dict(order: Order) -> dict:
    return {
        "id": order.id,
        "userId": order.user_id,
        "guestId": order.guest_id,
        "status": order.status,
        "paymentMethod": order.payment_method,
        "customerName": order.customer_name,
        "phone": order.phone,
        "email": order.email,
        "address": order.address,
        "note": order.note,
        "adminNote": order.admin_note,
        "voucherCode": order.voucher_code,
        "voucherName": order.voucher_name,
        "originalAmount": order.original_amount,
        "discountAmount": order.discount_amount,
        "totalAmount": order.total_amount,
        "createdAt": order.created_at,
        "items": [
            {
                "inventoryId": item.inventory_id,
                "productId": item.product_id,
                "promotionId": item.promotion_id,
                "quantity": item.quantity,
                "basePrice": item.base_price,
                "price": item.price,
                "subtotal": item.subtotal,
            }
            for item in order.items
        ],
    }


def promotion_to_dict(promotion) -> dict | None:
    if promotion is None:
        return None
    return {
        "id": promotion.id,
        "name": promotion.name,
        "type": promotion.type.value,
        "value": promotion.value,
        "scope": promotion.scope.value,
        "priority": promotion.priority,
        "maxDiscountAmount": promotion.max_discount_amount,
        "minOrderAmount": promotion.min_order_amount,
        "startDate": promotion.start_date,
        "endDate": promotion.end_date,
    }


@query.field("order")
def resolve_order(_, info, id):
    """Resolve order query; signed-in users only see their own orders."""
    user_id, _guest_id = get_identity(info)
    return order_to_dict(OrderService().get_order(id, user_id=user_id))


@query.field("ordersByUser")
def resolve_orders_by_user(_, info, userId, limit=50, offset=0):
    """Resolve orders by user query with pagination."""
    orders = OrderService().get_orders_by_user(userId, limit=limit, offset=offset)
    return [order_to_dict(order) for order in orders]


@query.field("validateVoucher")
def resolve_validate_voucher(_, info, code, orderAmount):
    user_id, guest_id = get_identity(info)
    result = VoucherService().validate_voucher(code, orderAmount, user_id, guest_id)
    return {
        "isValid": result.is_valid,
        "code": result.code,
        "voucherName": result.voucher_name,
        "orderAmount": result.order_amount,
        "discountAmount": result.discount_amount,
        "finalAmount": result.final_amount,
        "errorCode": int(result.error_code) if result.error_code is not None else None,
        "errorMessage": result.error_message,
    }


@query.field("bestPromotion")
def resolve_best_promotion(_, info, productId, orderTotal=None):
    product = CatalogService().get_product(productId)
    if product is None:
        return None
    promotion = PromotionService().get_best_promotion_for_product(productId, order_total=orderTotal)
    return {
        "productId": product.id,
        "promotion": promotion_to_dict(promotion),
        "originalPrice": product.unit_price,
        "promotionPrice": calculate_discounted_price(product.unit_price, promotion, currency_quantum()),
    }


@query.field("activeVouchers")
def resolve_active_vouchers(_, info):
    return [
        {
            "code": voucher.code,
            "name": voucher.name,
            "description": voucher.description,
            "type": voucher.type.value,
            "value": voucher.value,
            "minOrderAmount": voucher.min_order_amount,
            "maxDiscountAmount": voucher.max_discount_amount,
            "usageLimit": voucher.usage_limit,
            "usedCount": voucher.used_count,
            "startDate": voucher.start_date,
            "endDate": voucher.end_date,
        }
        for voucher in VoucherService().get_active_vouchers()
    ]


@query.field("paymentTransaction")
def resolve_payment_transaction(_, info, orderId):
    payment = PaymentService().get_payment_transaction(orderId)
    if payment is None:
        return None
    return {
        "id": payment.id,
        "orderId": payment.order_id,
        "transactionId": payment.transaction_id,
        "paymentMethod": PaymentMethod(payment.payment_method),
        "amount": payment.amount,
        "currency": payment.currency,
        "status": payment.status,
        "paymentUrl": payment.payment_url or None,
        "failureReason": payment.failure_reason,
        "expiresAt": payment.expires_at,
        "paidAt": payment.paid_at,
    }


@mutation.field("createOrder")
def resolve_create_order(_, info, input: dict):
    """Resolve create order mutation."""
    user_id, guest_id = get_identity(info)
    if not user_id and not guest_id:
        raise ValidationError("X-User-ID or X-Guest-ID header is required")
    try:
        lines = tuple(StockLine(int(item["inventoryId"]), int(item["quantity"])) for item in input["items"])
    except ValueError as e:
        raise ValidationError(str(e))

    result = OrderService().create_order(
        OrderCreationRequest(
            items=lines,
            payment_method=input.get("paymentMethod") or PaymentMethod.COD,
            customer_name=input["customerName"],
            phone=input["phone"],
            email=input.get("email") or "",
            address=input["address"],
            note=input.get("note") or "",
            voucher_code=input.get("voucherCode"),
            client_ip=get_client_ip(info),
            return_url=input.get("returnUrl"),
        ),
        user_id=user_id,
        guest_id=None if user_id else guest_id,
    )
    return {
        "success": result.success,
        "order": order_to_dict(result.order) if result.order else None,
        "paymentUrl": result.payment.payment_url if result.payment else None,
        "errorCode": result.error_code,
        "errorMessage": result.error_message,
        "voucherErrorCode": int(result.voucher_error_code) if result.voucher_error_code is not None else None,
    }


@mutation.field("cancelOrder")
def resolve_cancel_order(_, info, orderId):
    user_id, _guest_id = get_identity(info)
    return order_to_dict(CancellationService().cancel_order(orderId, user_id=user_id))


@mutation.field("rejectOrder")
def resolve_reject_order(_, info, orderId):
    user_id, _guest_id = get_identity(info)
    return order_to_dict(CancellationService().reject_order(orderId, user_id=user_id))


@mutation.field("updateOrderStatus")
def resolve_update_order_status(_, info, orderId, status, note=None):
    return order_to_dict(OrderService().update_order_status(orderId, status, note))


decimal_scalar = ScalarType("Decimal")
uuid_scalar = ScalarType("UUID")
datetime_scalar = ScalarType("DateTime")


@decimal_scalar.serializer
def serialize_decimal(value):
    """Serialize Decimal to string."""
    return str(value)


@decimal_scalar.value_parser
def parse_decimal_value(value):
    """Parse Decimal from string."""
    return Decimal(str(value))


@uuid_scalar.serializer
def serialize_uuid(value):
    """Serialize UUID to string."""
    return str(value)


@uuid_scalar.value_parser
def parse_uuid_value(value):
    """Parse UUID from string."""
    if isinstance(value, UUID):
        return value
    return UUID(str(value))


@datetime_scalar.serializer
def serialize_datetime(value):
    """Serialize DateTime to ISO format string."""
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


@datetime_scalar.value_parser
def parse_datetime_value(value):
    """Parse DateTime from string."""
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


schema = make_executable_schema(
    type_defs,
    query,
    mutation,
    order_status_enum,
    payment_method_enum,
    decimal_scalar,
    uuid_scalar,
    datetime_scalar,
)
