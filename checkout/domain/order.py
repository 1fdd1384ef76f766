"""
Domain model for Order aggregate.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum, IntEnum
from uuid import UUID, uuid4

from checkout.domain.errors import InvalidOrderState


class OrderStatus(str, Enum):
    """Order status enumeration."""
    PENDING = "PENDING"
    PENDING_PAYMENT = "PENDING_PAYMENT"
    PAID = "PAID"
    PREPARING = "PREPARING"
    SHIPPING = "SHIPPING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"


class PaymentMethod(IntEnum):
    """Payment method enumeration."""
    COD = 0
    BANK_TRANSFER = 1
    CREDIT_CARD = 2
    MOMO = 3
    VNPAY = 4
    ZALOPAY = 5
    PAYPAL = 6


ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({
        OrderStatus.PENDING_PAYMENT,
        OrderStatus.PAID,
        OrderStatus.PREPARING,
        OrderStatus.CANCELLED,
        OrderStatus.REJECTED,
    }),
    OrderStatus.PENDING_PAYMENT: frozenset({
        OrderStatus.PAID,
        OrderStatus.CANCELLED,
        OrderStatus.REJECTED,
    }),
    OrderStatus.PAID: frozenset({
        OrderStatus.PREPARING,
        OrderStatus.CANCELLED,
        OrderStatus.REJECTED,
    }),
    OrderStatus.PREPARING: frozenset({
        OrderStatus.SHIPPING,
        OrderStatus.CANCELLED,
        OrderStatus.REJECTED,
    }),
    OrderStatus.SHIPPING: frozenset({
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED,
        OrderStatus.REJECTED,
    }),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REJECTED: frozenset(),
}


class OrderItem:
    """Order line item value object.

    ``price`` is the unit price actually charged (after the line promotion),
    ``base_price`` the catalog price before promotions.
    """

    def __init__(
        self,
        inventory_id: int,
        quantity: int,
        price: Decimal,
        base_price: Decimal | None = None,
        product_id: str | None = None,
        promotion_id: int | None = None,
    ):
        if quantity <= 0:
            raise ValueError("Quantity must be positive")
        if price < 0:
            raise ValueError("Price must be non-negative")

        self.inventory_id = inventory_id
        self.quantity = quantity
        self.price = price
        self.base_price = price if base_price is None else base_price
        self.product_id = product_id
        self.promotion_id = promotion_id

    @property
    def subtotal(self) -> Decimal:
        """Calculate item subtotal."""
        return self.price * self.quantity

    @property
    def base_subtotal(self) -> Decimal:
        """Subtotal at the catalog price."""
        return self.base_price * self.quantity


class Order:
    """Order aggregate root."""

    def __init__(
        self,
        id: UUID | None = None,
        user_id: str | None = None,
        guest_id: str | None = None,
        items: list[OrderItem] | None = None,
        payment_method: PaymentMethod = PaymentMethod.COD,
        status: OrderStatus = OrderStatus.PENDING,
        original_amount: Decimal | None = None,
        total_amount: Decimal | None = None,
        customer_name: str = "",
        phone: str = "",
        email: str = "",
        address: str = "",
        note: str = "",
        voucher_code: str | None = None,
        voucher_name: str | None = None,
        admin_note: str = "",
        created_at: datetime | None = None,
    ):
        self.id = id or uuid4()
        self.user_id = user_id
        self.guest_id = guest_id
        self._items = items or []
        self.payment_method = PaymentMethod(payment_method)
        self._status = status
        self.customer_name = customer_name
        self.phone = phone
        self.email = email
        self.address = address
        self.note = note
        self.voucher_code = voucher_code
        self.voucher_name = voucher_name
        self.admin_note = admin_note
        self.created_at = created_at

        base_total = sum((item.base_subtotal for item in self._items), Decimal("0"))
        self._original_amount = base_total if original_amount is None else original_amount
        self._total_amount = (
            sum((item.subtotal for item in self._items), Decimal("0"))
            if total_amount is None else total_amount
        )
        if self._total_amount < 0:
            raise ValueError("Total amount must be non-negative")
        if self._total_amount > self._original_amount:
            raise ValueError("Total amount cannot exceed original amount")

    @property
    def items(self) -> list[OrderItem]:
        """Get order items (immutable)."""
        return list(self._items)

    @property
    def status(self) -> OrderStatus:
        """Get order status."""
        return self._status

    @property
    def original_amount(self) -> Decimal:
        """Sum of line items at catalog price."""
        return self._original_amount

    @property
    def total_amount(self) -> Decimal:
        """Final amount after promotions and voucher."""
        return self._total_amount

    @property
    def discount_amount(self) -> Decimal:
        """Everything taken off the original amount."""
        return self._original_amount - self._total_amount

    @property
    def owner_id(self) -> str | None:
        return self.user_id or self.guest_id

    def can_transition_to(self, status: OrderStatus) -> bool:
        return status in ALLOWED_TRANSITIONS[self._status]

    def transition_to(self, status: OrderStatus) -> None:
        """Move to ``status`` or raise InvalidOrderState."""
        if not self.can_transition_to(status):
            raise InvalidOrderState(
                f"Cannot move order {self.id} from {self._status.value} to {status.value}"
            )
        self._status = status

    def await_payment(self) -> None:
        """Order is waiting on a gateway redirect."""
        self.transition_to(OrderStatus.PENDING_PAYMENT)

    def mark_paid(self) -> None:
        """Mark order as paid."""
        self.transition_to(OrderStatus.PAID)

    def cancel(self, note: str | None = None) -> None:
        """Cancel order."""
        self.transition_to(OrderStatus.CANCELLED)
        if note:
            self.admin_note = note

    def reject(self, note: str | None = None) -> None:
        """Reject order."""
        self.transition_to(OrderStatus.REJECTED)
        if note:
            self.admin_note = note
