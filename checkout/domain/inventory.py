"""
Inventory value objects.
"""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class InventoryRecord:
    """Stock of one product in one size."""
    id: int
    product_id: str
    size_id: int
    quantity: int

    def can_supply(self, quantity: int) -> bool:
        return quantity > 0 and self.quantity >= quantity


@dataclass(frozen=True)
class StockLine:
    """A requested (inventory, quantity) pair."""
    inventory_id: int
    quantity: int

    def __post_init__(self):
        if self.quantity <= 0:
            raise ValueError("Quantity must be positive")
