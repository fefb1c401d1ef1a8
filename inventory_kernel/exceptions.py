"""
Typed Exception Hierarchy for the Inventory Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (forms, scripts, the orchestrator) must react to ledger failures
precisely: an operator who is short of materials needs the list of deficient
products, a double reversal must be distinguishable from a storage outage.
Parsing message strings for that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    InventoryKernelError (base)
    |
    +-- ValidationError
    +-- NotFoundError
    +-- StockError
    |   +-- InsufficientStockError
    +-- ReversalError
    |   +-- AlreadyVoidedError
    +-- PersistenceFailure
    +-- ConsistencyError
    |   +-- PartialApplicationError
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Input           | VALIDATION_ERROR            | Malformed or missing input
                | NOT_FOUND                   | Unknown product/location/process/txn
----------------|-----------------------------|-----------------------------------------
Stock           | INSUFFICIENT_STOCK          | Quantity would go below zero
----------------|-----------------------------|-----------------------------------------
Reversal        | ALREADY_VOIDED              | Transaction is already VOID
----------------|-----------------------------|-----------------------------------------
Storage         | PERSISTENCE_FAILURE         | Database error at commit/flush
----------------|-----------------------------|-----------------------------------------
Consistency     | PARTIAL_APPLICATION         | Ledger invariant broken (fatal)
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Update/delete of append-only data
----------------|-----------------------------|-----------------------------------------
Config          | CONFIGURATION_ERROR         | Invalid BOM or configuration set

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        ledger.record_production("gift_set_assembly", Decimal("5"), today)
    except InsufficientStockError as e:
        for s in e.shortfalls:
            notify(f"{s.product_name}: need {s.required}, have {s.available}")

PartialApplicationError is never a recoverable case: it means the ledger
detected a consistency breach and refused to continue. Retrying is NOT safe
for any stock mutation unless the caller has confirmed that the original
attempt did not commit.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


class InventoryKernelError(Exception):
    """
    Base exception for all inventory kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "INVENTORY_KERNEL_ERROR"


class ValidationError(InventoryKernelError):
    """Malformed or missing input."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class NotFoundError(InventoryKernelError):
    """Referenced product, location, process or transaction does not exist."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


# Stock exceptions


class StockError(InventoryKernelError):
    """Base exception for stock business rules."""

    code: str = "STOCK_ERROR"


@dataclass(frozen=True)
class StockShortfall:
    """One deficient resource: what was required and what was available."""

    product_id: str
    product_name: str
    required: Decimal
    available: Decimal
    location_id: str | None = None
    location_name: str | None = None

    @property
    def label(self) -> str:
        if self.location_name:
            return f"{self.product_name} @ {self.location_name}"
        return self.product_name


class InsufficientStockError(StockError):
    """
    One or more resources would drop below zero.

    Production and the movement recorder report every deficient resource;
    sales report the first violating line only.
    """

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, shortfalls: list[StockShortfall], message: str | None = None):
        self.shortfalls = list(shortfalls)
        if message is None:
            parts = ", ".join(
                f"{s.label}: available {s.available}, requested {s.required}"
                for s in self.shortfalls
            )
            message = f"Insufficient stock. {parts}"
        super().__init__(message)

    @property
    def product_ids(self) -> list[str]:
        return [s.product_id for s in self.shortfalls]


# Reversal exceptions


class ReversalError(InventoryKernelError):
    """Base exception for reversal errors."""

    code: str = "REVERSAL_ERROR"


class AlreadyVoidedError(ReversalError):
    """Transaction was already reversed; VOID is terminal."""

    code: str = "ALREADY_VOIDED"

    def __init__(self, transaction_id: str, transaction_type: str):
        self.transaction_id = transaction_id
        self.transaction_type = transaction_type
        super().__init__(
            f"{transaction_type} transaction {transaction_id} is already void"
        )


# Storage exceptions


class PersistenceFailure(InventoryKernelError):
    """Storage error while flushing or committing a unit of work."""

    code: str = "PERSISTENCE_FAILURE"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Persistence failure during {operation}: {reason}")


# Consistency exceptions


class ConsistencyError(InventoryKernelError):
    """Base exception for detected ledger consistency breaches."""

    code: str = "CONSISTENCY_ERROR"


class PartialApplicationError(ConsistencyError):
    """
    The ledger detected a state that atomic application should make
    unreachable. Treat as a fatal bug, never as a recoverable case.
    """

    code: str = "PARTIAL_APPLICATION"

    def __init__(self, transaction_id: str | None, reason: str):
        self.transaction_id = transaction_id
        self.reason = reason
        super().__init__(
            f"Ledger consistency breach (transaction {transaction_id}): {reason}"
        )


# Immutability exceptions


class ImmutabilityError(InventoryKernelError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete append-only ledger data."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )


# Configuration exceptions


class ConfigurationError(InventoryKernelError):
    """Configuration set or BOM definition is invalid."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__(
            f"Invalid inventory configuration: {'; '.join(self.errors)}"
        )
