"""
Voucher validation, usage accounting and voucher admin operations.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from django.db import transaction
from django.utils import timezone

from checkout.conf import currency_quantum
from checkout.domain.errors import VoucherAdminError
from checkout.domain.pricing import HUNDRED, ZERO
from checkout.domain.voucher import (
    ERROR_MESSAGES,
    Voucher,
    VoucherErrorCode,
    VoucherType,
    VoucherValidationResult,
    evaluate_voucher,
    normalize_code,
)
from checkout.infra.cache import VOUCHER_PREFIX, CacheService
from checkout.infra.models import VoucherORM
from checkout.infra.pii_masker import mask_pii_in_dict
from checkout.infra.repositories import VoucherRepository

logger = logging.getLogger(__name__)

VOUCHER_FIELDS = (
    "name",
    "description",
    "type",
    "value",
    "min_order_amount",
    "max_discount_amount",
    "usage_limit",
    "is_active",
    "start_date",
    "end_date",
)


@dataclass(frozen=True)
class VoucherApplyResult:
    """Cart preview of a voucher."""
    success: bool
    code: str
    original_amount: Decimal
    discount_amount: Decimal
    final_amount: Decimal
    voucher_name: str | None = None
    error_code: VoucherErrorCode | None = None
    message: str | None = None


class VoucherService:
    """Validates vouchers against orders and records their use."""

    def __init__(
        self,
        voucher_repo: VoucherRepository | None = None,
        cache: CacheService | None = None,
    ):
        self.voucher_repo = voucher_repo or VoucherRepository()
        self.cache = cache or CacheService()

    def get_voucher_by_code(self, code: str) -> Voucher | None:
        """Voucher read model, cached under the voucher prefix."""
        code = normalize_code(code)
        if not code:
            return None
        return self.cache.get_or_set(VOUCHER_PREFIX, code, lambda: self.voucher_repo.get(code))

    def validate_voucher(
        self,
        code: str,
        order_amount: Decimal,
        user_id: str | None = None,
        guest_id: str | None = None,
    ) -> VoucherValidationResult:
        """Read-only validation; safe to call any number of times."""
        code = normalize_code(code)
        voucher = self.get_voucher_by_code(code) if code else None
        already_used = bool(voucher) and self.voucher_repo.has_usage(code, user_id, guest_id)
        result = evaluate_voucher(
            voucher,
            code,
            Decimal(order_amount),
            timezone.now(),
            already_used,
            quantum=currency_quantum(),
        )
        if not result.is_valid:
            logger.info(
                "voucher_rejected",
                extra=mask_pii_in_dict({
                    "voucher_code": code,
                    "error_code": result.error_code.name,
                    "user_id": user_id,
                    "guest_id": guest_id,
                }),
            )
        return result

    def apply_voucher(
        self,
        code: str,
        order_amount: Decimal,
        user_id: str | None = None,
        guest_id: str | None = None,
    ) -> VoucherApplyResult:
        """Preview the voucher on a cart amount without recording usage."""
        result = self.validate_voucher(code, order_amount, user_id, guest_id)
        return VoucherApplyResult(
            success=result.is_valid,
            code=result.code,
            original_amount=result.order_amount,
            discount_amount=result.discount_amount,
            final_amount=result.final_amount,
            voucher_name=result.voucher_name,
            error_code=result.error_code,
            message=result.error_message or "Voucher applied",
        )

    def calculate_discount(self, code: str, order_amount: Decimal) -> Decimal:
        """Discount ignoring usage rules; 0 for unknown or disabled vouchers."""
        voucher = self.get_voucher_by_code(code)
        if voucher is None or not voucher.is_active:
            return ZERO
        return voucher.calculate_discount(Decimal(order_amount), currency_quantum())

    def can_user_use_voucher(self, code: str, user_id: str | None = None, guest_id: str | None = None) -> bool:
        code = normalize_code(code)
        voucher = self.voucher_repo.get(code) if code else None
        if voucher is None:
            return False
        now = timezone.now()
        return (
            voucher.is_active
            and voucher.start_date <= now < voucher.end_date
            and not voucher.limit_reached
            and not self.voucher_repo.has_usage(code, user_id, guest_id)
        )

    def has_used_voucher(self, code: str, user_id: str | None = None, guest_id: str | None = None) -> bool:
        return self.voucher_repo.has_usage(normalize_code(code), user_id, guest_id)

    def mark_voucher_used(
        self,
        code: str,
        order_id: UUID,
        user_id: str | None,
        guest_id: str | None,
        discount_amount: Decimal,
        original_amount: Decimal,
    ) -> bool:
        """Record one use of the voucher; False when the limit or one-time rule blocks it."""
        code = normalize_code(code)
        consumed = self.voucher_repo.consume(code, order_id, user_id, guest_id, discount_amount, original_amount)
        if consumed:
            self.cache.remove(VOUCHER_PREFIX, code)
            logger.info(
                "voucher_used",
                extra={"voucher_code": code, "order_id": str(order_id)},
            )
        else:
            logger.warning(
                "voucher_use_refused",
                extra={"voucher_code": code, "order_id": str(order_id)},
            )
        return consumed

    def release_voucher_usage(self, order_id: UUID) -> list[str]:
        """Undo the usage rows written for an order."""
        codes = self.voucher_repo.release(order_id)
        for code in codes:
            self.cache.remove(VOUCHER_PREFIX, code)
        if codes:
            logger.info(
                "voucher_usage_released",
                extra={"order_id": str(order_id), "voucher_code": ",".join(codes)},
            )
        return codes

    def get_active_vouchers(self) -> list[Voucher]:
        return self.voucher_repo.list_active(timezone.now())

    def get_user_voucher_usages(self, user_id: str | None = None, guest_id: str | None = None):
        return self.voucher_repo.usages_for(user_id, guest_id)

    # Admin

    @transaction.atomic
    def create_voucher(self, data: dict) -> Voucher:
        code = normalize_code(data.get("code"))
        if not code:
            raise VoucherAdminError(ERROR_MESSAGES[VoucherErrorCode.INVALID_VOUCHER_CODE])
        if VoucherORM.objects.filter(code=code).exists():
            raise VoucherAdminError(f"Voucher {code} already exists")
        fields = self._validate(data)
        VoucherORM.objects.create(code=code, **fields)
        self.cache.remove_by_prefix(VOUCHER_PREFIX)
        logger.info("voucher_created", extra={"voucher_code": code, "operation": "create_voucher"})
        return self.voucher_repo.get(code)

    @transaction.atomic
    def update_voucher(self, code: str, data: dict) -> Voucher:
        code = normalize_code(code)
        voucher_orm = VoucherORM.objects.select_for_update().filter(code=code).first()
        if voucher_orm is None:
            raise VoucherAdminError(ERROR_MESSAGES[VoucherErrorCode.VOUCHER_NOT_FOUND])
        merged = {name: getattr(voucher_orm, name) for name in VOUCHER_FIELDS}
        merged.update({k: v for k, v in data.items() if k in VOUCHER_FIELDS})
        fields = self._validate(merged)
        if fields["usage_limit"] is not None and fields["usage_limit"] < voucher_orm.used_count:
            raise VoucherAdminError("Usage limit cannot be below the current used count")
        for name, value in fields.items():
            setattr(voucher_orm, name, value)
        voucher_orm.save()
        self.cache.remove_by_prefix(VOUCHER_PREFIX)
        logger.info("voucher_updated", extra={"voucher_code": code, "operation": "update_voucher"})
        return self.voucher_repo.get(code)

    @transaction.atomic
    def delete_voucher(self, code: str) -> None:
        """Delete a voucher that has never been used."""
        code = normalize_code(code)
        voucher_orm = VoucherORM.objects.select_for_update().filter(code=code).first()
        if voucher_orm is None:
            raise VoucherAdminError(ERROR_MESSAGES[VoucherErrorCode.VOUCHER_NOT_FOUND])
        if voucher_orm.used_count > 0 or voucher_orm.usages.exists():
            raise VoucherAdminError("Cannot delete a voucher that has been used")
        voucher_orm.delete()
        self.cache.remove_by_prefix(VOUCHER_PREFIX)
        logger.info("voucher_deleted", extra={"voucher_code": code, "operation": "delete_voucher"})

    @transaction.atomic
    def toggle_active(self, code: str) -> Voucher:
        code = normalize_code(code)
        voucher_orm = VoucherORM.objects.select_for_update().filter(code=code).first()
        if voucher_orm is None:
            raise VoucherAdminError(ERROR_MESSAGES[VoucherErrorCode.VOUCHER_NOT_FOUND])
        voucher_orm.is_active = not voucher_orm.is_active
        voucher_orm.save(update_fields=["is_active", "updated_at"])
        self.cache.remove_by_prefix(VOUCHER_PREFIX)
        return self.voucher_repo.get(code)

    def _validate(self, data: dict) -> dict:
        try:
            voucher_type = VoucherType(data.get("type"))
            value = Decimal(str(data.get("value")))
        except (ValueError, ArithmeticError) as e:
            raise VoucherAdminError(f"Invalid voucher: {e}") from e

        name = (data.get("name") or "").strip()
        if not name:
            raise VoucherAdminError("Voucher name is required")
        if value <= 0:
            raise VoucherAdminError("Voucher value must be positive")
        if voucher_type == VoucherType.PERCENTAGE and value > HUNDRED:
            raise VoucherAdminError("Percentage cannot exceed 100")
        start_date, end_date = data.get("start_date"), data.get("end_date")
        if start_date is None or end_date is None or start_date >= end_date:
            raise VoucherAdminError("Start date must be before end date")
        usage_limit = data.get("usage_limit")
        if usage_limit is not None and int(usage_limit) <= 0:
            raise VoucherAdminError("Usage limit must be positive")

        return {
            "name": name,
            "description": data.get("description") or "",
            "type": voucher_type.value,
            "value": value,
            "min_order_amount": data.get("min_order_amount"),
            "max_discount_amount": data.get("max_discount_amount"),
            "usage_limit": int(usage_limit) if usage_limit is not None else None,
            "is_active": data.get("is_active", True),
            "start_date": start_date,
            "end_date": end_date,
        }
