"""
Pure domain layer.

Immutable values and ports with no dependency on the ORM, the database or
the system clock (SystemClock aside).
"""

from inventory_kernel.domain.bom import BomRegistry, ProcessInput, ProductionProcess
from inventory_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from inventory_kernel.domain.customer_ledger import CustomerLedger, NullCustomerLedger
from inventory_kernel.domain.dtos import (
    BalancedMovementView,
    MovementSpec,
    MovementView,
    ProductStock,
    ReversalResult,
    SaleInput,
    SaleItemInput,
    StockDiscrepancy,
    StockLevel,
    TransactionType,
)

__all__ = [
    "BomRegistry",
    "ProcessInput",
    "ProductionProcess",
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "CustomerLedger",
    "NullCustomerLedger",
    "BalancedMovementView",
    "MovementSpec",
    "MovementView",
    "ProductStock",
    "ReversalResult",
    "SaleInput",
    "SaleItemInput",
    "StockDiscrepancy",
    "StockLevel",
    "TransactionType",
]
