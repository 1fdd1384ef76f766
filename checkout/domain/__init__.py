from checkout.domain.order import Order, OrderItem, OrderStatus, PaymentMethod
from checkout.domain.payment import PaymentResult, PaymentTransactionStatus
from checkout.domain.pricing import Promotion, PromotionScope, PromotionType
from checkout.domain.voucher import Voucher, VoucherErrorCode, VoucherType

__all__ = [
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentMethod",
    "PaymentResult",
    "PaymentTransactionStatus",
    "Promotion",
    "PromotionScope",
    "PromotionType",
    "Voucher",
    "VoucherErrorCode",
    "VoucherType",
]
