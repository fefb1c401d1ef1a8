"""
DTOs -- immutable data crossing the ledger boundary.

Responsibility:
    Inputs accepted by the engines (MovementSpec, SaleInput, SaleItemInput),
    and read models returned by the selectors and the reversal coordinator
    (MovementView, ReversalResult, StockLevel, StockDiscrepancy).

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Free of ORM dependencies; selectors
    convert ORM rows into these values at the boundary.

Invariants enforced:
    - All DTOs are frozen dataclasses; collections are tuples.
    - Quantities and money are Decimal.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from inventory_kernel.exceptions import ValidationError


class TransactionType(str, Enum):
    """Kinds of transaction a caller can reverse."""

    PURCHASE = "purchase"
    PRODUCTION = "production"
    TRANSFER = "transfer"
    SALE = "sale"
    WASTAGE = "wastage"

    @classmethod
    def parse(cls, value: "TransactionType | str") -> "TransactionType":
        """
        Accept an enum member or its string value.

        Raises:
            ValidationError: For an unknown transaction type.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValidationError(
                f"Unknown transaction type: {value!r}",
                field="transaction_type",
            ) from None


@dataclass(frozen=True)
class MovementSpec:
    """
    One requested quantity change, submitted to MovementRecorder.

    location_id None means "the ledger's default location".
    """

    product_id: UUID
    location_id: UUID | None
    quantity_change: Decimal
    movement_type: str
    source_transaction_id: UUID
    notes: str | None = None
    reversal_of_id: UUID | None = None


@dataclass(frozen=True)
class SaleItemInput:
    """One requested sale line."""

    product_id: UUID
    location_id: UUID
    quantity: Decimal
    price_per_unit: Decimal
    trade_scheme: str | None = None
    discount_percentage: Decimal = Decimal("0")
    discount_amount: Decimal = Decimal("0")


@dataclass(frozen=True)
class SaleInput:
    """
    A complete sale request.

    Contract:
        items is non-empty; credit_sale implies payment_received == 0.
        Both are checked by the pricing engine and SaleService, not here.
    """

    buyer_reference: str
    sale_date: date
    items: tuple[SaleItemInput, ...]
    contact_no: str | None = None
    bill_discount_percentage: Decimal = Decimal("0")
    bill_discount_amount: Decimal = Decimal("0")
    payment_received: Decimal = Decimal("0")
    credit_sale: bool = False
    notes: str | None = None

    def __post_init__(self) -> None:
        # Accept a list for convenience; store a tuple.
        if not isinstance(self.items, tuple):
            object.__setattr__(self, "items", tuple(self.items))


@dataclass(frozen=True)
class MovementView:
    """
    One entry of a product's movement history.

    stored is False for production entries synthesized from a
    ProductionRecord and the BOM registry.
    """

    product_id: UUID
    location_id: UUID | None
    location_name: str | None
    quantity_change: Decimal
    movement_type: str
    occurred_at: datetime
    source_transaction_id: UUID
    movement_id: UUID | None = None
    reversal_of_id: UUID | None = None
    notes: str | None = None
    stored: bool = True

    @property
    def is_compensating(self) -> bool:
        return self.reversal_of_id is not None


@dataclass(frozen=True)
class BalancedMovementView:
    """A MovementView paired with the quantity after it was applied."""

    movement: MovementView
    balance_after: Decimal


@dataclass(frozen=True)
class ReversalResult:
    """Outcome of a successful reversal."""

    transaction_id: UUID
    transaction_type: TransactionType
    voided_at: datetime
    compensating_movement_ids: tuple[UUID, ...] = field(default_factory=tuple)
    reason: str | None = None

    @property
    def movement_count(self) -> int:
        return len(self.compensating_movement_ids)


@dataclass(frozen=True)
class StockLevel:
    """Quantity of a product at one location."""

    product_id: UUID
    product_name: str
    location_id: UUID
    location_name: str
    quantity: Decimal


@dataclass(frozen=True)
class ProductStock:
    """Aggregate quantity of a product with its per-location breakdown."""

    product_id: UUID
    product_name: str
    stage: str
    quantity: Decimal
    min_stock: Decimal | None
    locations: tuple[StockLevel, ...] = ()

    @property
    def is_low(self) -> bool:
        return self.min_stock is not None and self.quantity < self.min_stock


@dataclass(frozen=True)
class StockDiscrepancy:
    """A detected violation of a stock invariant."""

    product_id: UUID
    product_name: str
    kind: str
    detail: str
    location_id: UUID | None = None
