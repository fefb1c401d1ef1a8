"""Read-only selectors over the inventory ledger."""

from inventory_kernel.selectors.movement_history_selector import (
    MovementHistory,
    MovementHistorySelector,
)
from inventory_kernel.selectors.stock_selector import StockSelector

__all__ = [
    "MovementHistory",
    "MovementHistorySelector",
    "StockSelector",
]
