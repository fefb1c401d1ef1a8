"""
ProductionService -- runs BOM production processes against the ledger.

Responsibility:
    Record N units of a production process: check that every input is
    available at the location the run draws from (the default location),
    write the ProductionRecord, and submit one
    negative movement per input plus one positive movement for the output
    as a single batch.

Architecture position:
    Kernel > Services.  Consumes the injected BomRegistry and
    MovementRecorder; flushes only.

Invariants enforced:
    - All inputs are checked at the draw location before anything is
      written; every deficient input is reported, not just the first.
      Stock held at other locations does not count: it must be transferred
      to the draw location first.
    - The header and all deltas are one batch inside the caller's
      transaction.
    - The record stores the registry version it was produced under.

Failure modes:
    - NotFoundError: unknown process, or a BOM product missing from the
      product table.
    - ValidationError: quantity not > 0.
    - InsufficientStockError: message "Insufficient materials. Required: N,
      Available: <name>: <qty>, ..." with one shortfall per deficient input.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_kernel.domain.bom import BomRegistry, ProductionProcess
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import MovementSpec
from inventory_kernel.exceptions import (
    InsufficientStockError,
    NotFoundError,
    StockShortfall,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.movement import MovementType
from inventory_kernel.models.product import Location, Product
from inventory_kernel.models.transactions import ProductionRecord
from inventory_kernel.services.base import BaseService
from inventory_kernel.services.movement_recorder import MovementRecorder

logger = get_logger("services.production")


def _fmt(quantity: Decimal) -> str:
    return format(quantity.normalize(), "f")


class ProductionService(BaseService[ProductionRecord]):
    """
    Records production runs.

    Contract:
        ``record_production`` returns the flushed ProductionRecord, or raises
        having written nothing.
    """

    def __init__(
        self,
        session: Session,
        bom_registry: BomRegistry,
        recorder: MovementRecorder,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._registry = bom_registry
        self._recorder = recorder
        self._clock = clock or SystemClock()

    def _products_by_name(self, names: list[str]) -> dict[str, Product]:
        rows = self.session.execute(
            select(Product)
            .where(Product.name.in_(names))
            .order_by(Product.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars().all()
        products = {p.name: p for p in rows}
        for name in names:
            if name not in products:
                raise NotFoundError("Product", name)
        return products

    def _check_materials(
        self,
        process: ProductionProcess,
        quantity: Decimal,
        products: dict[str, Product],
        location: Location,
    ) -> None:
        shortfalls = []
        for name, required in process.required_inputs(quantity):
            available = self._stock_at(products[name].id, location.id)
            if available < required:
                shortfalls.append(
                    StockShortfall(
                        product_id=str(products[name].id),
                        product_name=name,
                        required=required,
                        available=available,
                        location_id=str(location.id),
                        location_name=location.name,
                    )
                )
        if shortfalls:
            available_text = ", ".join(
                f"{s.product_name}: {_fmt(s.available)}" for s in shortfalls
            )
            logger.warning(
                "production_rejected_insufficient_materials",
                extra={
                    "process_name": process.name,
                    "quantity": quantity,
                    "location_id": str(location.id),
                    "deficient_inputs": [s.product_name for s in shortfalls],
                },
            )
            raise InsufficientStockError(
                shortfalls,
                message=(
                    f"Insufficient materials. Required: {_fmt(quantity)}, "
                    f"Available: {available_text}"
                ),
            )

    def record_production(
        self,
        process_name: str,
        quantity,
        production_date: date,
        notes: str | None = None,
    ) -> ProductionRecord:
        """
        Produce ``quantity`` units through ``process_name``.

        Postconditions:
            Each input dropped by ratio * quantity and the output rose by
            output_ratio * quantity, all at the default location, and a
            ProductionRecord exists.
        """
        quantity = self._require_positive(quantity, "quantity")
        process = self._registry.get(process_name)

        names = list(process.input_names)
        if process.output_product not in names:
            names.append(process.output_product)
        products = self._products_by_name(names)

        location = self._get_location(self._recorder.resolve_location(None))
        self._check_materials(process, quantity, products, location)

        location_id = location.id
        now = self._clock.now()
        record = ProductionRecord(
            process=process.name,
            quantity=quantity,
            production_date=production_date,
            location_id=location_id,
            bom_version=self._registry.version,
            recorded_at=now,
            notes=notes,
        )
        self.session.add(record)
        self.session.flush()

        specs = [
            MovementSpec(
                product_id=products[name].id,
                location_id=location_id,
                quantity_change=-required,
                movement_type=MovementType.PRODUCTION,
                source_transaction_id=record.id,
            )
            for name, required in process.required_inputs(quantity)
        ]
        specs.append(
            MovementSpec(
                product_id=products[process.output_product].id,
                location_id=location_id,
                quantity_change=process.output_quantity(quantity),
                movement_type=MovementType.PRODUCTION,
                source_transaction_id=record.id,
            )
        )
        self._recorder.apply_movements(specs, occurred_at=now)

        logger.info(
            "production_recorded",
            extra={
                "production_id": str(record.id),
                "process_name": process.name,
                "quantity": quantity,
                "bom_version": self._registry.version,
            },
        )
        return record
