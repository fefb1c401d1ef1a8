"""
CatalogService -- registers products and locations.

Responsibility:
    Creates the master data the ledger books against.  Registration is
    idempotent by name: registering an existing name returns the existing
    row, updating only descriptive fields (stage, min_stock, address).

Architecture position:
    Kernel > Services.  Flushes only.

Invariants enforced:
    - A product is created with quantity 0; stock only arrives through
      movements.
    - Quantities of an existing product are never touched here.
"""

from decimal import Decimal

from sqlalchemy import select

from inventory_kernel.db.types import to_decimal
from inventory_kernel.exceptions import ValidationError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.product import Location, Product, ProductStage
from inventory_kernel.services.base import BaseService

logger = get_logger("services.catalog")


class CatalogService(BaseService[Product]):
    """Registers products and locations."""

    def register_location(self, name: str, address: str | None = None) -> Location:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Location name is required", field="name")

        location = self.session.execute(
            select(Location).where(Location.name == name)
        ).scalar_one_or_none()
        if location is not None:
            if address is not None and location.address != address:
                location.address = address
                self.session.flush()
            return location

        location = Location(name=name, address=address)
        self.session.add(location)
        self.session.flush()
        logger.info("location_registered", extra={"location_id": str(location.id), "location_name": name})
        return location

    def register_product(
        self,
        name: str,
        stage: ProductStage | str = ProductStage.RAW,
        min_stock: Decimal | int | str | None = None,
    ) -> Product:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Product name is required", field="name")
        try:
            stage = ProductStage(stage)
        except ValueError as exc:
            raise ValidationError(f"Unknown product stage: {stage}", field="stage") from exc
        if min_stock is not None:
            try:
                min_stock = to_decimal(min_stock, "min_stock")
            except ValueError as exc:
                raise ValidationError(str(exc), field="min_stock") from exc
            if min_stock < 0:
                raise ValidationError("min_stock must not be negative", field="min_stock")

        product = self.session.execute(
            select(Product).where(Product.name == name)
        ).scalar_one_or_none()
        if product is not None:
            if product.stage != stage or product.min_stock != min_stock:
                product.stage = stage
                product.min_stock = min_stock
                self.session.flush()
            return product

        product = Product(name=name, stage=stage, quantity=Decimal("0"), min_stock=min_stock)
        self.session.add(product)
        self.session.flush()
        logger.info(
            "product_registered",
            extra={"product_id": str(product.id), "product_name": name, "stage": stage.value},
        )
        return product
