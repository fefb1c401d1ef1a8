"""
Module: inventory_kernel.models.transactions
Responsibility: ORM persistence for transaction headers -- sales (with their
    items), transfers, purchases, wastage and production records.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Headers are created once and only ever gain the void flag (together
      with voided_at and void_reason).  ACTIVE -> VOID is terminal.
    - Headers and sale items are never deleted.
    Both rules are enforced by the listeners in db/immutability.py.
    - SaleTransaction.invoice_number is unique.

Audit relevance:
    A void header plus its compensating movements is the complete, visible
    record of a reversal; nothing is removed from the trail.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inventory_kernel.db.base import TrackedBase, UUIDString
from inventory_kernel.models.movement import MovementType


class VoidableMixin:
    """Columns shared by every transaction header."""

    # Only field allowed to change after insert (False -> True, once)
    is_void: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    voided_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    void_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Ledger clock time the header was recorded (movement timestamps match)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    transaction_type: ClassVar[MovementType]

    @property
    def status(self) -> str:
        return "void" if self.is_void else "active"


class SaleTransaction(VoidableMixin, TrackedBase):
    """Sale header: buyer, bill-level discounts, totals and payment."""

    __tablename__ = "sales"

    __table_args__ = (
        UniqueConstraint("invoice_number", name="uq_sale_invoice_number"),
        Index("idx_sale_date", "sale_date"),
    )

    transaction_type = MovementType.SALE

    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False)

    buyer_reference: Mapped[str] = mapped_column(String(200), nullable=False)

    contact_no: Mapped[str | None] = mapped_column(String(50), nullable=True)

    sale_date: Mapped[date] = mapped_column(Date, nullable=False)

    bill_discount_percentage: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("0")
    )

    bill_discount_amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("0")
    )

    total_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    final_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    payment_received: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("0")
    )

    credit_sale: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    items: Mapped[list["SaleItem"]] = relationship(
        back_populates="sale",
        lazy="selectin",
        order_by="SaleItem.line_no",
    )

    def __repr__(self) -> str:
        return f"<SaleTransaction {self.invoice_number} final={self.final_amount} {self.status}>"

    @property
    def balance_due(self) -> Decimal:
        return self.final_amount - self.payment_received


class SaleItem(TrackedBase):
    """One priced line of a sale, drawn from one location."""

    __tablename__ = "sale_items"

    __table_args__ = (
        Index("idx_sale_item_sale", "sale_id"),
    )

    sale_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("sales.id"),
        nullable=False,
    )

    line_no: Mapped[int] = mapped_column(nullable=False, default=0)

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )

    location_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("locations.id"),
        nullable=False,
    )

    quantity: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    price_per_unit: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    # "buy+free", e.g. "10+1"
    trade_scheme: Mapped[str | None] = mapped_column(String(20), nullable=True)

    discount_percentage: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("0")
    )

    discount_amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("0")
    )

    total_price: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    final_price: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    sale: Mapped["SaleTransaction"] = relationship(back_populates="items")

    def __repr__(self) -> str:
        return f"<SaleItem product={self.product_id} qty={self.quantity} final={self.final_price}>"


class Transfer(VoidableMixin, TrackedBase):
    """Movement of one product between two locations."""

    __tablename__ = "transfers"

    __table_args__ = (
        Index("idx_transfer_product", "product_id"),
    )

    transaction_type = MovementType.TRANSFER

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )

    from_location_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("locations.id"),
        nullable=False,
    )

    to_location_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("locations.id"),
        nullable=False,
    )

    quantity: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    transfer_date: Mapped[date] = mapped_column(Date, nullable=False)

    def __repr__(self) -> str:
        return f"<Transfer product={self.product_id} qty={self.quantity} {self.status}>"


class PurchaseRecord(VoidableMixin, TrackedBase):
    """Stock received from a supplier into one location."""

    __tablename__ = "purchases"

    __table_args__ = (
        Index("idx_purchase_product", "product_id"),
    )

    transaction_type = MovementType.PURCHASE

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )

    location_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("locations.id"),
        nullable=False,
    )

    quantity: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    unit_price: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    supplier: Mapped[str | None] = mapped_column(String(200), nullable=True)

    purchase_date: Mapped[date] = mapped_column(Date, nullable=False)

    def __repr__(self) -> str:
        return f"<PurchaseRecord product={self.product_id} qty={self.quantity} {self.status}>"


class WastageRecord(VoidableMixin, TrackedBase):
    """Stock written off, with the reason."""

    __tablename__ = "wastage"

    __table_args__ = (
        Index("idx_wastage_product", "product_id"),
    )

    transaction_type = MovementType.WASTAGE

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )

    # None when wastage was reported without a location
    location_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("locations.id"),
        nullable=True,
    )

    quantity: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    wastage_date: Mapped[date] = mapped_column(Date, nullable=False)

    reason: Mapped[str] = mapped_column(String(500), nullable=False)

    def __repr__(self) -> str:
        return f"<WastageRecord product={self.product_id} qty={self.quantity} {self.status}>"


class ProductionRecord(VoidableMixin, TrackedBase):
    """
    One run of a BOM production process.

    bom_version is the registry version in effect when the run was recorded,
    kept so history replay can detect a changed process definition.
    """

    __tablename__ = "production"

    __table_args__ = (
        Index("idx_production_process", "process"),
    )

    transaction_type = MovementType.PRODUCTION

    process: Mapped[str] = mapped_column(String(100), nullable=False)

    quantity: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    production_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Location the BOM deltas were booked at
    location_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("locations.id"),
        nullable=False,
    )

    bom_version: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<ProductionRecord {self.process} x{self.quantity} {self.status}>"


TRANSACTION_MODELS: dict[MovementType, type] = {
    MovementType.SALE: SaleTransaction,
    MovementType.TRANSFER: Transfer,
    MovementType.PURCHASE: PurchaseRecord,
    MovementType.WASTAGE: WastageRecord,
    MovementType.PRODUCTION: ProductionRecord,
}
