"""
Payment value objects shared by dispatch strategies and gateways.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from uuid import UUID

from checkout.domain.order import PaymentMethod


class PaymentTransactionStatus(str, Enum):
    """Payment transaction status enumeration."""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"
    REFUNDED = "REFUNDED"


TRANSACTION_TRANSITIONS = {
    PaymentTransactionStatus.PENDING: frozenset({
        PaymentTransactionStatus.PROCESSING,
        PaymentTransactionStatus.FAILED,
        PaymentTransactionStatus.CANCELLED,
        PaymentTransactionStatus.EXPIRED,
    }),
    PaymentTransactionStatus.PROCESSING: frozenset({
        PaymentTransactionStatus.SUCCESS,
        PaymentTransactionStatus.FAILED,
        PaymentTransactionStatus.CANCELLED,
        PaymentTransactionStatus.EXPIRED,
    }),
    PaymentTransactionStatus.SUCCESS: frozenset({PaymentTransactionStatus.REFUNDED}),
    PaymentTransactionStatus.FAILED: frozenset(),
    PaymentTransactionStatus.CANCELLED: frozenset(),
    PaymentTransactionStatus.EXPIRED: frozenset(),
    PaymentTransactionStatus.REFUNDED: frozenset(),
}

FINAL_TRANSACTION_STATUSES = frozenset({
    PaymentTransactionStatus.SUCCESS,
    PaymentTransactionStatus.FAILED,
    PaymentTransactionStatus.CANCELLED,
    PaymentTransactionStatus.EXPIRED,
    PaymentTransactionStatus.REFUNDED,
})


def can_transition(current: PaymentTransactionStatus, target: PaymentTransactionStatus) -> bool:
    return target in TRANSACTION_TRANSITIONS[current]


@dataclass(frozen=True)
class PaymentResult:
    """Uniform outcome of a payment dispatch or gateway call."""
    success: bool
    payment_url: str | None = None
    transaction_id: str | None = None
    error_message: str | None = None

    @property
    def requires_redirect(self) -> bool:
        """Derived from the URL, never stored separately."""
        return bool(self.payment_url)

    @classmethod
    def failed(cls, message: str, transaction_id: str | None = None) -> "PaymentResult":
        return cls(success=False, transaction_id=transaction_id, error_message=message)


@dataclass(frozen=True)
class PaymentRequest:
    """What a gateway needs to open a payment for an order."""
    order_id: UUID
    amount: Decimal
    payment_method: PaymentMethod
    order_info: str = ""
    client_ip: str = "127.0.0.1"
    return_url: str | None = None


@dataclass(frozen=True)
class PaymentCallback:
    """Normalized gateway callback."""
    transaction_id: str
    order_id: str
    amount: Decimal
    status: str
    signature: str
    parameters: dict[str, str] = field(default_factory=dict)
