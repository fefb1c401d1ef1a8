"""
Module: inventory_kernel.models.product
Responsibility: ORM persistence for the Ledger Store -- products, locations and
    per-(location, product) stock.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Product.quantity == sum of LocationStock.quantity for that product.
    - No quantity is negative after a committed operation.
    Both are maintained by MovementRecorder, the only writer of these
    quantity columns, and re-verified by StockSelector.verify_invariants().

Failure modes:
    - IntegrityError on duplicate product/location names or a second stock
      row for the same (location, product) pair.
"""

from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inventory_kernel.db.base import TrackedBase, UUIDString


class ProductStage(str, Enum):
    """Production stage of a product."""

    RAW = "raw"
    INTERMEDIATE = "intermediate"
    READY = "ready"
    FINISHED = "finished"


class Product(TrackedBase):
    """
    A stock-keeping product with its aggregate quantity.

    Contract:
        quantity is derived state: the sum of this product's LocationStock
        rows.  Only MovementRecorder writes it.
    """

    __tablename__ = "products"

    __table_args__ = (
        UniqueConstraint("name", name="uq_product_name"),
        Index("idx_product_stage", "stage"),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    stage: Mapped[ProductStage] = mapped_column(
        SAEnum(
            ProductStage,
            native_enum=False,
            length=20,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=ProductStage.RAW,
    )

    quantity: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=Decimal("0"),
    )

    # Low-stock alert threshold
    min_stock: Mapped[Decimal | None] = mapped_column(
        Numeric(38, 9),
        nullable=True,
    )

    stock_rows: Mapped[list["LocationStock"]] = relationship(
        back_populates="product",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Product {self.name} qty={self.quantity}>"

    @property
    def is_below_min_stock(self) -> bool:
        if self.min_stock is None:
            return False
        return self.quantity < self.min_stock


class Location(TrackedBase):
    """A physical place where stock is held (factory, shop, warehouse, ...)."""

    __tablename__ = "locations"

    __table_args__ = (
        UniqueConstraint("name", name="uq_location_name"),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    address: Mapped[str | None] = mapped_column(String(500), nullable=True)

    def __repr__(self) -> str:
        return f"<Location {self.name}>"


class LocationStock(TrackedBase):
    """Quantity of one product held at one location."""

    __tablename__ = "location_stock"

    __table_args__ = (
        UniqueConstraint("location_id", "product_id", name="uq_location_product"),
        Index("idx_location_stock_product", "product_id"),
    )

    location_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("locations.id"),
        nullable=False,
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )

    quantity: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=Decimal("0"),
    )

    product: Mapped["Product"] = relationship(back_populates="stock_rows")

    location: Mapped["Location"] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return (
            f"<LocationStock location={self.location_id} "
            f"product={self.product_id} qty={self.quantity}>"
        )
