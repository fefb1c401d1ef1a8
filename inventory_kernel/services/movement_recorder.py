"""
MovementRecorder -- the sole mutator of stock quantities.

Responsibility:
    Apply a batch of signed quantity changes to LocationStock and
    Product.quantity and append one Movement row per change.  Every engine
    (production, sale, transfer, wastage, purchase) and the reversal
    coordinator submit their deltas here.

Architecture position:
    Kernel > Services.  Flushes only; InventoryLedger owns commit/rollback.

Invariants enforced:
    - Product.quantity == sum of its LocationStock rows, re-verified for
      every touched product after the batch is applied.
    - No LocationStock or Product quantity goes negative.  The whole batch
      is evaluated in list order before anything is mutated.
    - Movements are append-only; a zero change is not a movement.
    - Rows are locked with SELECT ... FOR UPDATE in sorted id order so two
      batches over the same pairs serialize without deadlocking.

Failure modes:
    - ValidationError: zero or non-numeric change, unknown movement type,
      no location and no default location configured.
    - NotFoundError: unknown product or location id.
    - InsufficientStockError: lists every (product, location) that would go
      negative, with available and required quantities.
    - PartialApplicationError: aggregate and per-location totals disagree
      after application.  Logged at CRITICAL; never recoverable.

Audit relevance:
    Every stock change in the system passes through apply_movements() and
    leaves a Movement row tagged with its source transaction.
"""

from collections import OrderedDict
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_kernel.db.types import to_decimal
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import MovementSpec
from inventory_kernel.exceptions import (
    InsufficientStockError,
    NotFoundError,
    PartialApplicationError,
    StockShortfall,
    ValidationError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.movement import Movement, MovementType
from inventory_kernel.models.product import Location, LocationStock, Product
from inventory_kernel.services.base import BaseService

logger = get_logger("services.movement_recorder")

ZERO = Decimal("0")


class MovementRecorder(BaseService[Movement]):
    """
    Applies MovementSpec batches atomically within the caller's transaction.

    Contract:
        ``apply_movements`` either applies every spec (and returns the new
        Movement rows in spec order) or raises before any quantity changes.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        default_location_id: UUID | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._default_location_id = default_location_id

    @property
    def default_location_id(self) -> UUID | None:
        return self._default_location_id

    def resolve_location(self, location_id: UUID | None) -> UUID:
        """Map a missing location to the default location."""
        if location_id is not None:
            return location_id
        if self._default_location_id is None:
            raise ValidationError(
                "Movement has no location and no default location is configured",
                field="location_id",
            )
        return self._default_location_id

    def _normalize(self, spec: MovementSpec) -> tuple[UUID, UUID, Decimal, MovementType]:
        try:
            change = to_decimal(spec.quantity_change, "quantity_change")
        except ValueError as exc:
            raise ValidationError(str(exc), field="quantity_change") from exc
        if change == ZERO:
            raise ValidationError(
                f"Quantity change for product {spec.product_id} is zero",
                field="quantity_change",
            )
        try:
            movement_type = MovementType(spec.movement_type)
        except ValueError:
            raise ValidationError(
                f"Unknown movement type: {spec.movement_type!r}",
                field="movement_type",
            ) from None
        return spec.product_id, self.resolve_location(spec.location_id), change, movement_type

    def _lock_products(self, product_ids: set[UUID]) -> dict[UUID, Product]:
        rows = self.session.execute(
            select(Product)
            .where(Product.id.in_(product_ids))
            .order_by(Product.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars().all()
        products = {p.id: p for p in rows}
        for product_id in sorted(product_ids, key=str):
            if product_id not in products:
                raise NotFoundError("Product", str(product_id))
        return products

    def _load_locations(self, location_ids: set[UUID]) -> dict[UUID, Location]:
        rows = self.session.execute(
            select(Location).where(Location.id.in_(location_ids))
        ).scalars().all()
        locations = {loc.id: loc for loc in rows}
        for location_id in sorted(location_ids, key=str):
            if location_id not in locations:
                raise NotFoundError("Location", str(location_id))
        return locations

    def _lock_stock_rows(
        self, pairs: set[tuple[UUID, UUID]]
    ) -> dict[tuple[UUID, UUID], LocationStock]:
        product_ids = {p for p, _ in pairs}
        rows = self.session.execute(
            select(LocationStock)
            .where(LocationStock.product_id.in_(product_ids))
            .order_by(LocationStock.product_id, LocationStock.location_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars().all()
        return {
            (row.product_id, row.location_id): row
            for row in rows
            if (row.product_id, row.location_id) in pairs
        }

    def apply_movements(
        self,
        specs: list[MovementSpec],
        occurred_at: datetime | None = None,
    ) -> list[Movement]:
        """
        Apply a batch of quantity changes.

        Preconditions:
            Called inside the caller's transaction.
        Postconditions:
            On success every LocationStock/Product quantity reflects the
            batch and one Movement per spec is flushed.  On any exception
            nothing has been mutated by this call.

        Args:
            specs: Changes in the order they take effect.
            occurred_at: Timestamp for every movement (defaults to clock.now()).

        Returns:
            The created Movement rows, in spec order.
        """
        if not specs:
            return []

        normalized = [self._normalize(spec) for spec in specs]

        product_ids = {product_id for product_id, _, _, _ in normalized}
        location_ids = {location_id for _, location_id, _, _ in normalized}
        pairs = {(product_id, location_id) for product_id, location_id, _, _ in normalized}

        products = self._lock_products(product_ids)
        locations = self._load_locations(location_ids)
        stock_rows = self._lock_stock_rows(pairs)

        # Evaluate every running balance before mutating anything
        pair_balance: dict[tuple[UUID, UUID], Decimal] = {
            pair: (stock_rows[pair].quantity if pair in stock_rows else ZERO)
            for pair in pairs
        }
        product_balance: dict[UUID, Decimal] = {
            product_id: products[product_id].quantity for product_id in product_ids
        }
        pair_start = dict(pair_balance)
        product_start = dict(product_balance)
        pair_short: OrderedDict[tuple[UUID, UUID], Decimal] = OrderedDict()
        product_short: OrderedDict[UUID, Decimal] = OrderedDict()

        for product_id, location_id, change, _ in normalized:
            pair = (product_id, location_id)
            pair_balance[pair] += change
            product_balance[product_id] += change
            if pair_balance[pair] < ZERO and pair not in pair_short:
                pair_short[pair] = pair_start[pair] - pair_balance[pair]
            if product_balance[product_id] < ZERO and product_id not in product_short:
                product_short[product_id] = product_start[product_id] - product_balance[product_id]

        if pair_short or product_short:
            shortfalls = []
            for (product_id, location_id), required in pair_short.items():
                shortfalls.append(
                    StockShortfall(
                        product_id=str(product_id),
                        product_name=products[product_id].name,
                        required=required,
                        available=pair_start[(product_id, location_id)],
                        location_id=str(location_id),
                        location_name=locations[location_id].name,
                    )
                )
            reported = {product_id for product_id, _ in pair_short}
            for product_id, required in product_short.items():
                if product_id in reported:
                    continue
                shortfalls.append(
                    StockShortfall(
                        product_id=str(product_id),
                        product_name=products[product_id].name,
                        required=required,
                        available=product_start[product_id],
                    )
                )
            logger.warning(
                "movements_rejected_insufficient_stock",
                extra={
                    "shortfall_count": len(shortfalls),
                    "products": [s.product_name for s in shortfalls],
                },
            )
            raise InsufficientStockError(shortfalls)

        # Apply
        timestamp = occurred_at or self._clock.now()
        movements: list[Movement] = []
        for spec, (product_id, location_id, change, movement_type) in zip(specs, normalized):
            pair = (product_id, location_id)
            row = stock_rows.get(pair)
            if row is None:
                row = LocationStock(
                    product=products[product_id],
                    location_id=location_id,
                    quantity=ZERO,
                )
                self.session.add(row)
                stock_rows[pair] = row
            row.quantity = row.quantity + change
            products[product_id].quantity = products[product_id].quantity + change

            movement = Movement(
                product_id=product_id,
                location_id=location_id,
                quantity_change=change,
                movement_type=movement_type,
                occurred_at=timestamp,
                source_transaction_id=spec.source_transaction_id,
                reversal_of_id=spec.reversal_of_id,
                notes=spec.notes,
            )
            self.session.add(movement)
            movements.append(movement)

        self.session.flush()

        self._verify_aggregates(products, specs)

        logger.info(
            "movements_applied",
            extra={
                "movement_count": len(movements),
                "source_transaction_ids": sorted({str(s.source_transaction_id) for s in specs}),
                "product_count": len(products),
            },
        )
        return movements

    def _verify_aggregates(self, products: dict[UUID, Product], specs: list[MovementSpec]) -> None:
        for product_id, product in products.items():
            quantities = self.session.execute(
                select(LocationStock.quantity).where(LocationStock.product_id == product_id)
            ).scalars().all()
            location_total = sum(quantities, ZERO)
            if location_total != product.quantity or product.quantity < ZERO:
                transaction_id = str(specs[0].source_transaction_id)
                logger.critical(
                    "aggregate_invariant_broken",
                    extra={
                        "product_id": str(product_id),
                        "product_quantity": product.quantity,
                        "location_total": location_total,
                        "transaction_id": transaction_id,
                    },
                )
                raise PartialApplicationError(
                    transaction_id,
                    f"Product {product.name} quantity {product.quantity} does not "
                    f"match location total {location_total}",
                )
