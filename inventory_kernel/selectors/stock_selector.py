"""
Module: inventory_kernel.selectors.stock_selector
Responsibility: Read models over the Ledger Store -- per-product and
    per-location quantities, inventory by stage, low-stock alerts, BOM
    capacity (how many units a process could make), and an invariant audit.
Architecture position: Kernel > Selectors.  Read-only.

Invariants enforced:
    - verify_invariants() reports, never repairs.  An empty list means
      Product.quantity equals the sum of its locations for every product and
      no quantity is negative.
"""

from __future__ import annotations

from decimal import ROUND_FLOOR, Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_engines.cartons import DEFAULT_CARTON_SIZE
from inventory_engines.cartons import format_carton_quantity as _format_cartons
from inventory_kernel.domain.bom import BomRegistry
from inventory_kernel.domain.dtos import ProductStock, StockDiscrepancy, StockLevel
from inventory_kernel.exceptions import NotFoundError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.product import Location, LocationStock, Product, ProductStage
from inventory_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.stock")

ZERO = Decimal("0")


class StockSelector(BaseSelector[Product]):
    """Selector for current stock."""

    def __init__(
        self,
        session: Session,
        bom_registry: BomRegistry | None = None,
        carton_size: int = DEFAULT_CARTON_SIZE,
        draw_location_id: UUID | None = None,
    ):
        super().__init__(session)
        self._registry = bom_registry
        self._carton_size = carton_size
        self._draw_location_id = draw_location_id

    def _product(self, product_id: UUID) -> Product:
        product = self.session.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product", str(product_id))
        return product

    def _levels(self, product: Product) -> tuple[StockLevel, ...]:
        rows = self.session.execute(
            select(LocationStock, Location)
            .join(Location, Location.id == LocationStock.location_id)
            .where(LocationStock.product_id == product.id)
            .order_by(Location.name)
        ).all()
        return tuple(
            StockLevel(
                product_id=product.id,
                product_name=product.name,
                location_id=location.id,
                location_name=location.name,
                quantity=stock.quantity,
            )
            for stock, location in rows
        )

    def _to_dto(self, product: Product, with_locations: bool = True) -> ProductStock:
        return ProductStock(
            product_id=product.id,
            product_name=product.name,
            stage=product.stage.value,
            quantity=product.quantity,
            min_stock=product.min_stock,
            locations=self._levels(product) if with_locations else (),
        )

    def product_quantity(self, product_id: UUID) -> Decimal:
        return self._product(product_id).quantity

    def location_quantity(self, product_id: UUID, location_id: UUID) -> Decimal:
        """Quantity at one location; 0 when the product was never stocked there."""
        quantity = self.session.execute(
            select(LocationStock.quantity).where(
                LocationStock.product_id == product_id,
                LocationStock.location_id == location_id,
            )
        ).scalar_one_or_none()
        return quantity if quantity is not None else ZERO

    def stock_by_location(self, product_id: UUID) -> list[StockLevel]:
        return list(self._levels(self._product(product_id)))

    def product_stock(self, product_id: UUID) -> ProductStock:
        return self._to_dto(self._product(product_id))

    def stock_report(self) -> list[ProductStock]:
        products = self.session.execute(select(Product).order_by(Product.name)).scalars().all()
        return [self._to_dto(p) for p in products]

    def inventory_by_stage(self, stage: ProductStage | str) -> list[ProductStock]:
        stage = ProductStage(stage)
        products = self.session.execute(
            select(Product).where(Product.stage == stage).order_by(Product.name)
        ).scalars().all()
        return [self._to_dto(p) for p in products]

    def low_stock_products(self) -> list[ProductStock]:
        """Products whose aggregate quantity is below their min_stock."""
        products = self.session.execute(
            select(Product)
            .where(Product.min_stock.is_not(None), Product.quantity < Product.min_stock)
            .order_by(Product.name)
        ).scalars().all()
        return [self._to_dto(p, with_locations=False) for p in products]

    def max_producible(self, process_name: str) -> Decimal:
        """
        Whole units of a process the current stock can make: the minimum
        over inputs of floor(quantity / ratio).

        Counts stock at the draw location when one is set (production only
        consumes from there), otherwise the aggregate.
        """
        if self._registry is None:
            raise NotFoundError("ProductionProcess", process_name)
        process = self._registry.get(process_name)
        names = list(process.input_names)
        if self._draw_location_id is None:
            query = select(Product.name, Product.quantity).where(Product.name.in_(names))
        else:
            query = (
                select(Product.name, LocationStock.quantity)
                .join(LocationStock, LocationStock.product_id == Product.id)
                .where(
                    Product.name.in_(names),
                    LocationStock.location_id == self._draw_location_id,
                )
            )
        quantities = dict(self.session.execute(query).all())
        result: Decimal | None = None
        for item in process.inputs:
            available = quantities.get(item.product_name, ZERO)
            units = (available / item.ratio).to_integral_value(rounding=ROUND_FLOOR)
            result = units if result is None else min(result, units)
        return max(result or ZERO, ZERO)

    def format_carton_quantity(self, quantity: Decimal, carton_size: int | None = None) -> str:
        return _format_cartons(quantity, carton_size or self._carton_size)

    def verify_invariants(self) -> list[StockDiscrepancy]:
        """Check aggregate == sum of locations and non-negativity, for every product."""
        discrepancies: list[StockDiscrepancy] = []
        products = self.session.execute(select(Product).order_by(Product.name)).scalars().all()
        for product in products:
            rows = self.session.execute(
                select(LocationStock).where(LocationStock.product_id == product.id)
            ).scalars().all()
            location_total = sum((r.quantity for r in rows), ZERO)
            if location_total != product.quantity:
                discrepancies.append(
                    StockDiscrepancy(
                        product_id=product.id,
                        product_name=product.name,
                        kind="aggregate_mismatch",
                        detail=f"quantity {product.quantity} != location total {location_total}",
                    )
                )
            if product.quantity < ZERO:
                discrepancies.append(
                    StockDiscrepancy(
                        product_id=product.id,
                        product_name=product.name,
                        kind="negative_aggregate",
                        detail=f"quantity {product.quantity}",
                    )
                )
            for row in rows:
                if row.quantity < ZERO:
                    discrepancies.append(
                        StockDiscrepancy(
                            product_id=product.id,
                            product_name=product.name,
                            kind="negative_location",
                            detail=f"quantity {row.quantity}",
                            location_id=row.location_id,
                        )
                    )
        if discrepancies:
            logger.error(
                "stock_invariants_violated",
                extra={"discrepancy_count": len(discrepancies)},
            )
        return discrepancies
