"""
Domain model for order-level vouchers and their validation pipeline.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum, IntEnum

from checkout.domain.pricing import HUNDRED, ZERO, quantize_money


class VoucherType(str, Enum):
    """Voucher discount kind."""
    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"


class VoucherErrorCode(IntEnum):
    """Reasons a voucher is refused."""
    VOUCHER_NOT_FOUND = 1
    VOUCHER_EXPIRED = 2
    VOUCHER_NOT_STARTED = 3
    VOUCHER_INACTIVE = 4
    USAGE_LIMIT_EXCEEDED = 5
    ORDER_AMOUNT_TOO_LOW = 6
    USER_ALREADY_USED = 7
    VOUCHER_ALREADY_APPLIED = 8
    INVALID_VOUCHER_CODE = 9
    SYSTEM_ERROR = 10


ERROR_MESSAGES = {
    VoucherErrorCode.VOUCHER_NOT_FOUND: "Voucher does not exist",
    VoucherErrorCode.VOUCHER_EXPIRED: "Voucher has expired",
    VoucherErrorCode.VOUCHER_NOT_STARTED: "Voucher is not active yet",
    VoucherErrorCode.VOUCHER_INACTIVE: "Voucher is disabled",
    VoucherErrorCode.USAGE_LIMIT_EXCEEDED: "Voucher usage limit reached",
    VoucherErrorCode.ORDER_AMOUNT_TOO_LOW: "Order amount is below the voucher minimum",
    VoucherErrorCode.USER_ALREADY_USED: "You have already used this voucher",
    VoucherErrorCode.VOUCHER_ALREADY_APPLIED: "Voucher is already applied",
    VoucherErrorCode.INVALID_VOUCHER_CODE: "Voucher code is invalid",
    VoucherErrorCode.SYSTEM_ERROR: "Could not validate voucher",
}


def normalize_code(code: str | None) -> str:
    """Codes are stored trimmed and upper-case."""
    return (code or "").strip().upper()


@dataclass(frozen=True)
class Voucher:
    """Read model of a voucher."""
    code: str
    name: str
    type: VoucherType
    value: Decimal
    start_date: datetime
    end_date: datetime
    is_active: bool = True
    min_order_amount: Decimal | None = None
    max_discount_amount: Decimal | None = None
    usage_limit: int | None = None
    used_count: int = 0
    description: str = ""

    @property
    def limit_reached(self) -> bool:
        return self.usage_limit is not None and self.used_count >= self.usage_limit

    def calculate_discount(self, order_amount: Decimal, quantum: Decimal = Decimal("1")) -> Decimal:
        """Discount on ``order_amount``, rounded to the currency unit and never above it."""
        if order_amount <= 0:
            return ZERO
        if self.type == VoucherType.PERCENTAGE:
            discount = order_amount * self.value / HUNDRED
            if self.max_discount_amount is not None:
                discount = min(discount, self.max_discount_amount)
        else:
            discount = min(self.value, order_amount)
        discount = quantize_money(discount, quantum)
        return max(ZERO, min(discount, order_amount))


@dataclass(frozen=True)
class VoucherValidationResult:
    """Outcome of validating a voucher against an order amount."""
    is_valid: bool
    code: str
    order_amount: Decimal
    discount_amount: Decimal = ZERO
    error_code: VoucherErrorCode | None = None
    error_message: str | None = None
    voucher: Voucher | None = None

    @property
    def final_amount(self) -> Decimal:
        return self.order_amount - self.discount_amount

    @property
    def voucher_name(self) -> str | None:
        return self.voucher.name if self.voucher else None

    @classmethod
    def failure(cls, code: str, order_amount: Decimal, error_code: VoucherErrorCode, voucher: Voucher | None = None):
        return cls(
            is_valid=False,
            code=code,
            order_amount=order_amount,
            error_code=error_code,
            error_message=ERROR_MESSAGES[error_code],
            voucher=voucher,
        )


def evaluate_voucher(
    voucher: Voucher | None,
    code: str,
    order_amount: Decimal,
    now: datetime,
    already_used: bool,
    quantum: Decimal = Decimal("1"),
) -> VoucherValidationResult:
    """Run the validation pipeline in its fixed order.

    Order: existence, active flag, start, end, usage limit, minimum order
    amount, prior usage by the same user or guest. The first failing check
    decides the error code.
    """
    fail = VoucherValidationResult.failure
    if not code:
        return fail(code, order_amount, VoucherErrorCode.INVALID_VOUCHER_CODE)
    if voucher is None:
        return fail(code, order_amount, VoucherErrorCode.VOUCHER_NOT_FOUND)
    if not voucher.is_active:
        return fail(code, order_amount, VoucherErrorCode.VOUCHER_INACTIVE, voucher)
    if now < voucher.start_date:
        return fail(code, order_amount, VoucherErrorCode.VOUCHER_NOT_STARTED, voucher)
    if now >= voucher.end_date:
        return fail(code, order_amount, VoucherErrorCode.VOUCHER_EXPIRED, voucher)
    if voucher.limit_reached:
        return fail(code, order_amount, VoucherErrorCode.USAGE_LIMIT_EXCEEDED, voucher)
    if voucher.min_order_amount is not None and order_amount < voucher.min_order_amount:
        return fail(code, order_amount, VoucherErrorCode.ORDER_AMOUNT_TOO_LOW, voucher)
    if already_used:
        return fail(code, order_amount, VoucherErrorCode.USER_ALREADY_USED, voucher)

    return VoucherValidationResult(
        is_valid=True,
        code=code,
        order_amount=order_amount,
        discount_amount=voucher.calculate_discount(order_amount, quantum),
        voucher=voucher,
    )
