"""
Payment dispatch strategies and the payment transaction lifecycle.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from django.db import transaction
from django.utils import timezone

from checkout.conf import currency, payment_expiry
from checkout.domain.errors import PaymentMethodNotSupported, PaymentTransactionNotFound
from checkout.domain.order import Order, OrderStatus, PaymentMethod
from checkout.domain.payment import (
    FINAL_TRANSACTION_STATUSES,
    PaymentRequest,
    PaymentResult,
    PaymentTransactionStatus,
    can_transition,
)
from checkout.infra.models import PaymentTransactionORM
from checkout.infra.repositories import OrderRepository, PaymentTransactionRepository
from checkout.services.compensation import CancellationService
from checkout.services.gateways import PaymentGatewayFactory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentContext:
    """Request details a gateway may need."""
    client_ip: str = "127.0.0.1"
    return_url: str | None = None


@dataclass(frozen=True)
class PaymentCallbackResult:
    success: bool
    order_id: UUID | None
    status: PaymentTransactionStatus | None
    message: str = ""


class PaymentService:
    """Opens gateway payments and settles their callbacks."""

    def __init__(
        self,
        transaction_repo: PaymentTransactionRepository | None = None,
        order_repo: OrderRepository | None = None,
        gateway_factory: PaymentGatewayFactory | None = None,
        cancellation: CancellationService | None = None,
    ):
        self.transaction_repo = transaction_repo or PaymentTransactionRepository()
        self.order_repo = order_repo or OrderRepository()
        self.gateway_factory = gateway_factory or PaymentGatewayFactory()
        self.cancellation = cancellation or CancellationService(order_repo=self.order_repo)

    def initiate_payment(
        self,
        order: Order,
        method: PaymentMethod,
        context: PaymentContext | None = None,
    ) -> PaymentResult:
        """Record a transaction and ask the gateway for a redirect URL."""
        context = context or PaymentContext()
        try:
            gateway = self.gateway_factory.get_gateway(method)
        except PaymentMethodNotSupported as e:
            return PaymentResult.failed(e.message)

        payment = self.transaction_repo.create(
            order_id=order.id,
            payment_method=method,
            amount=order.total_amount,
            currency=currency(),
            expires_at=timezone.now() + payment_expiry(),
        )
        result = gateway.create_payment_url(PaymentRequest(
            order_id=order.id,
            amount=order.total_amount,
            payment_method=method,
            order_info=f"Payment for order {order.id}",
            client_ip=context.client_ip,
            return_url=context.return_url,
        ))

        payment.transaction_id = result.transaction_id
        if result.success and result.requires_redirect:
            payment.status = PaymentTransactionStatus.PROCESSING.value
            payment.payment_url = result.payment_url
        else:
            payment.status = PaymentTransactionStatus.FAILED.value
            payment.failure_reason = result.error_message or "Gateway returned no payment URL"
        payment.save()

        logger.info(
            "payment_initiated",
            extra={
                "order_id": str(order.id),
                "gateway": gateway.name,
                "status": payment.status,
                "transaction_id": result.transaction_id,
            },
        )
        return result

    def process_payment_callback(self, method: PaymentMethod, params: dict) -> PaymentCallbackResult:
        """Settle a gateway callback; replays of a settled transaction change nothing."""
        gateway = self.gateway_factory.get_gateway(method)
        callback = gateway.parse_callback(params)

        if not gateway.validate_callback(callback):
            logger.warning(
                "payment_callback_invalid_signature",
                extra={"gateway": gateway.name, "transaction_id": callback.transaction_id},
            )
            return PaymentCallbackResult(False, None, None, "Invalid signature")

        with transaction.atomic():
            found = self.transaction_repo.get_by_transaction_id(callback.transaction_id)
            if found is None:
                raise PaymentTransactionNotFound(callback.transaction_id)
            payment = self.transaction_repo.get_for_update(found.pk)
            current = PaymentTransactionStatus(payment.status)

            if current in FINAL_TRANSACTION_STATUSES:
                return PaymentCallbackResult(
                    current == PaymentTransactionStatus.SUCCESS,
                    payment.order_id,
                    current,
                    "Payment already processed",
                )

            result = gateway.verify_payment(callback)
            if result.success and callback.amount != payment.amount:
                result = PaymentResult.failed("Paid amount does not match the order", callback.transaction_id)

            payment.gateway_response = dict(params)
            if result.success:
                self._move(payment, PaymentTransactionStatus.SUCCESS)
                payment.paid_at = timezone.now()
                order = self.order_repo.get_by_id(payment.order_id, for_update=True)
                if order is not None and order.can_transition_to(OrderStatus.PAID):
                    order.mark_paid()
                    self.order_repo.update_status(order)
                else:
                    logger.warning(
                        "payment_for_closed_order",
                        extra={"order_id": str(payment.order_id)},
                    )
            else:
                self._move(payment, PaymentTransactionStatus.FAILED)
                payment.failure_reason = result.error_message or ""
            payment.save()

        logger.info(
            "payment_callback_processed",
            extra={
                "order_id": str(payment.order_id),
                "gateway": gateway.name,
                "status": payment.status,
                "transaction_id": callback.transaction_id,
            },
        )
        return PaymentCallbackResult(
            result.success,
            payment.order_id,
            PaymentTransactionStatus(payment.status),
            result.error_message or "Payment successful",
        )

    def get_payment_transaction(self, order_id: UUID) -> PaymentTransactionORM | None:
        return self.transaction_repo.get_latest_for_order(order_id)

    def expire_payment_transaction(self, pk: UUID) -> bool:
        """Expire one open transaction and cancel its unpaid order.

        A transaction that already failed keeps its status; only its order
        is cancelled.
        """
        with transaction.atomic():
            payment = self.transaction_repo.get_for_update(pk)
            current = PaymentTransactionStatus(payment.status)
            if can_transition(current, PaymentTransactionStatus.EXPIRED):
                payment.status = PaymentTransactionStatus.EXPIRED.value
                payment.failure_reason = "Payment window expired"
                payment.save(update_fields=["status", "failure_reason", "updated_at"])
            elif current != PaymentTransactionStatus.FAILED:
                return False
            order = self.cancellation.expire_pending_payment(payment.order_id)
            if order is None and current == PaymentTransactionStatus.FAILED:
                return False
        logger.info(
            "payment_expired",
            extra={"order_id": str(payment.order_id), "transaction_id": payment.transaction_id},
        )
        return True

    def expire_stale_transactions(self, now: datetime | None = None, limit: int = 100) -> int:
        """Expire transactions past their deadline; returns how many were expired."""
        now = now or timezone.now()
        expired = 0
        for payment in self.transaction_repo.list_stale(now, limit):
            if self.expire_payment_transaction(payment.pk):
                expired += 1
        return expired

    def _move(self, payment: PaymentTransactionORM, status: PaymentTransactionStatus) -> None:
        current = PaymentTransactionStatus(payment.status)
        if not can_transition(current, status):
            raise ValueError(f"Cannot move payment from {current.value} to {status.value}")
        payment.status = status.value


class PaymentStrategy(ABC):
    """Handles payment for a freshly created order."""

    @abstractmethod
    def process(self, order: Order, context: PaymentContext) -> PaymentResult:
        raise NotImplementedError


class CodPaymentStrategy(PaymentStrategy):
    """Cash on delivery: nothing to call, always succeeds."""

    def process(self, order: Order, context: PaymentContext) -> PaymentResult:
        return PaymentResult(success=True)


class GatewayPaymentStrategy(PaymentStrategy):
    """Redirect-based payment through a gateway."""

    def __init__(self, method: PaymentMethod, payment_service: PaymentService):
        self.method = method
        self.payment_service = payment_service

    def process(self, order: Order, context: PaymentContext) -> PaymentResult:
        return self.payment_service.initiate_payment(order, self.method, context)


class PaymentStrategyFactory:
    """Strategy lookup by payment method; unmapped methods fall back to COD."""

    GATEWAY_METHODS = frozenset({PaymentMethod.MOMO, PaymentMethod.VNPAY, PaymentMethod.ZALOPAY})

    def __init__(self, payment_service: PaymentService | None = None):
        self.payment_service = payment_service or PaymentService()

    def get_strategy(self, method: PaymentMethod) -> PaymentStrategy:
        method = PaymentMethod(method)
        if method in self.GATEWAY_METHODS:
            return GatewayPaymentStrategy(method, self.payment_service)
        if method != PaymentMethod.COD:
            logger.warning("payment_method_fallback_cod", extra={"payment_method": method.name})
        return CodPaymentStrategy()
