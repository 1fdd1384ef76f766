"""
Inventory ledger: read-only stock checks and atomic decrements/restores.
"""
from __future__ import annotations

import logging
from typing import Iterable

from django.db import transaction

from checkout.domain.inventory import InventoryRecord, StockLine
from checkout.infra.repositories import InventoryRepository

logger = logging.getLogger(__name__)


class InventoryLedger:
    """Sole authority on whether N units of an inventory row can be sold."""

    def __init__(self, inventory_repo: InventoryRepository | None = None):
        self.inventory_repo = inventory_repo or InventoryRepository()

    def check_and_reserve(self, inventory_id: int, quantity: int) -> InventoryRecord | None:
        """Return the row when it can supply ``quantity``, else None.

        Read-only; the matching mutation is ``decrement``.
        """
        record = self.inventory_repo.find(inventory_id)
        if record is None or not record.can_supply(quantity):
            return None
        return record

    def get(self, inventory_id: int) -> InventoryRecord:
        return self.inventory_repo.get(inventory_id)

    def decrement(self, inventory_id: int, quantity: int) -> None:
        """Take stock, re-checking availability at write time."""
        self.inventory_repo.decrement(inventory_id, quantity)
        logger.info(
            "inventory_decremented",
            extra={"inventory_id": inventory_id, "quantity": quantity},
        )

    def restore(self, inventory_id: int, quantity: int) -> None:
        """Put stock back unconditionally."""
        self.inventory_repo.increment(inventory_id, quantity)
        logger.info(
            "inventory_restored",
            extra={"inventory_id": inventory_id, "quantity": quantity},
        )

    @transaction.atomic
    def decrement_all(self, lines: Iterable[StockLine]) -> None:
        """Decrement every line or none of them."""
        for line in lines:
            self.decrement(line.inventory_id, line.quantity)

    @transaction.atomic
    def restore_all(self, lines: Iterable[StockLine]) -> None:
        for line in lines:
            self.restore(line.inventory_id, line.quantity)
