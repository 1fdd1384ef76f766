"""
Domain errors for the checkout core.

Expected business failures (voucher rejected, stock exhausted) carry a stable
``code`` so the API layer can map them without string matching.
"""
from __future__ import annotations


class CheckoutError(Exception):
    """Base class for checkout domain errors."""

    code = "CHECKOUT_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InsufficientStock(CheckoutError):
    """Requested quantity exceeds what the inventory row holds."""

    code = "INSUFFICIENT_STOCK"

    def __init__(self, inventory_id: int, requested: int, available: int | None = None):
        self.inventory_id = inventory_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for inventory {inventory_id}: requested {requested}"
            + (f", available {available}" if available is not None else "")
        )


class InventoryNotFound(CheckoutError):
    """Inventory row referenced by an order line does not exist."""

    code = "INVENTORY_NOT_FOUND"

    def __init__(self, inventory_id: int):
        self.inventory_id = inventory_id
        super().__init__(f"Inventory {inventory_id} not found")


class VoucherRejected(CheckoutError):
    """Voucher failed validation while pricing an order."""

    code = "VOUCHER_INVALID"

    def __init__(self, error_code, message: str):
        self.error_code = error_code
        super().__init__(message)


class VoucherAdminError(CheckoutError):
    """Invalid voucher create/update/delete request."""

    code = "VALIDATION_ERROR"


class PromotionNotFound(CheckoutError):
    code = "NOT_FOUND"

    def __init__(self, promotion_id):
        self.promotion_id = promotion_id
        super().__init__(f"Promotion {promotion_id} not found")


class OrderNotFound(CheckoutError):
    code = "NOT_FOUND"

    def __init__(self, order_id):
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found")


class InvalidOrderState(CheckoutError):
    """Requested status transition is not allowed from the current status."""

    code = "INVALID_STATE"


class PaymentMethodNotSupported(CheckoutError):
    code = "PAYMENT_METHOD_NOT_SUPPORTED"

    def __init__(self, method):
        self.method = method
        super().__init__(f"Payment method {method} has no gateway")


class PaymentTransactionNotFound(CheckoutError):
    code = "NOT_FOUND"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Payment transaction {transaction_id} not found")


class PromotionAdminError(CheckoutError):
    """Invalid promotion create/update request."""

    code = "VALIDATION_ERROR"


class InvalidPaymentCallback(CheckoutError):
    """Gateway callback parameters could not be read."""

    code = "VALIDATION_ERROR"
