"""
Module: inventory_kernel.models.movement
Responsibility: ORM persistence for the append-only movement ledger.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Movement rows are created only by MovementRecorder and are never
      updated or deleted (ORM listeners in db/immutability.py).
    - A compensating row points at the row it compensates through
      reversal_of_id and carries the negated quantity_change.

Audit relevance:
    Movements are the event trail from which reversal and history
    reconstruction are computed.  Losing or editing a row would make both
    unreproducible.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import DateTime, Enum as SAEnum, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inventory_kernel.db.base import Base, UUIDString

if TYPE_CHECKING:
    from inventory_kernel.models.product import Location


class MovementType(str, Enum):
    """The five movement kinds; also the transaction kinds that cause them."""

    PURCHASE = "purchase"
    PRODUCTION = "production"
    TRANSFER = "transfer"
    SALE = "sale"
    WASTAGE = "wastage"


def movement_type_column() -> SAEnum:
    return SAEnum(
        MovementType,
        native_enum=False,
        length=20,
        values_callable=lambda e: [m.value for m in e],
    )


class Movement(Base):
    """
    One signed quantity change against a (product, location) pair.

    Contract:
        source_transaction_id names the header row (sale, transfer,
        production, purchase or wastage) that caused the movement.  The
        header type is movement_type.
    """

    __tablename__ = "movements"

    __table_args__ = (
        Index("idx_movement_source", "source_transaction_id"),
        Index("idx_movement_product_time", "product_id", "occurred_at"),
        Index("idx_movement_location", "location_id"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )

    location_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("locations.id"),
        nullable=True,
    )

    quantity_change: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    movement_type: Mapped[MovementType] = mapped_column(
        movement_type_column(),
        nullable=False,
    )

    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    source_transaction_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    # Set on compensating rows only
    reversal_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("movements.id"),
        nullable=True,
    )

    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)

    location: Mapped["Location | None"] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return (
            f"<Movement {self.movement_type.value} product={self.product_id} "
            f"change={self.quantity_change}>"
        )

    @property
    def is_compensating(self) -> bool:
        return self.reversal_of_id is not None
