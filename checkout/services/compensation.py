"""
Compensating actions for orders: cancel, reject and payment expiry.

Each action moves the order status and puts its stock back in one
transaction. The product cache is invalidated once the outermost
transaction commits.
"""
from __future__ import annotations

import logging
from uuid import UUID

from django.db import transaction

from checkout.domain.errors import OrderNotFound
from checkout.domain.inventory import StockLine
from checkout.domain.order import Order, OrderStatus
from checkout.infra.repositories import OrderRepository
from checkout.services.catalog import CatalogService
from checkout.services.inventory import InventoryLedger
from checkout.services.vouchers import VoucherService

logger = logging.getLogger(__name__)

ADMIN_CANCEL_NOTE = "Cancelled by admin"
ADMIN_REJECT_NOTE = "Rejected by admin"


class CancellationService:
    """Service for cancelling and rejecting orders (compensation)."""

    def __init__(
        self,
        order_repo: OrderRepository | None = None,
        inventory: InventoryLedger | None = None,
        catalog: CatalogService | None = None,
        voucher_service: VoucherService | None = None,
    ):
        self.order_repo = order_repo or OrderRepository()
        self.inventory = inventory or InventoryLedger()
        self.catalog = catalog or CatalogService()
        self.voucher_service = voucher_service or VoucherService()

    def cancel_order(self, order_id: UUID, user_id: str | None = None) -> Order:
        """Customer cancel; ``user_id`` must own the order when given."""
        return self._close(order_id, OrderStatus.CANCELLED, owner_id=user_id)

    def reject_order(self, order_id: UUID, user_id: str | None = None) -> Order:
        return self._close(order_id, OrderStatus.REJECTED, owner_id=user_id)

    def admin_cancel_order(self, order_id: UUID, note: str | None = None) -> Order:
        return self._close(order_id, OrderStatus.CANCELLED, note=note or ADMIN_CANCEL_NOTE)

    def admin_reject_order(self, order_id: UUID, note: str | None = None) -> Order:
        return self._close(order_id, OrderStatus.REJECTED, note=note or ADMIN_REJECT_NOTE)

    def expire_pending_payment(self, order_id: UUID) -> Order | None:
        """Cancel an order whose gateway payment never completed.

        The order was never paid, so its voucher usage is given back too.
        Orders that already left PENDING_PAYMENT are left alone.
        """
        with transaction.atomic():
            order = self.order_repo.get_by_id(order_id, for_update=True)
            if order is None or order.status != OrderStatus.PENDING_PAYMENT:
                return None
            order.cancel("Payment expired")
            self.order_repo.update_status(order)
            self.inventory.restore_all(self._stock_lines(order))
            self.voucher_service.release_voucher_usage(order.id)
            transaction.on_commit(self.catalog.remove_product_cache)
        logger.info(
            "order_payment_expired",
            extra={"order_id": str(order.id), "status": order.status.value},
        )
        return order

    def _close(
        self,
        order_id: UUID,
        status: OrderStatus,
        owner_id: str | None = None,
        note: str | None = None,
    ) -> Order:
        with transaction.atomic():
            order = self.order_repo.get_by_id(order_id, for_update=True)
            if order is None or (owner_id is not None and order.user_id != owner_id):
                raise OrderNotFound(order_id)

            if status == OrderStatus.CANCELLED:
                order.cancel(note)
            else:
                order.reject(note)
            self.order_repo.update_status(order)
            self.inventory.restore_all(self._stock_lines(order))
            transaction.on_commit(self.catalog.remove_product_cache)

        logger.info(
            "order_cancelled" if status == OrderStatus.CANCELLED else "order_rejected",
            extra={"order_id": str(order.id), "status": order.status.value},
        )
        return order

    def _stock_lines(self, order: Order) -> list[StockLine]:
        return [StockLine(item.inventory_id, item.quantity) for item in order.items]
