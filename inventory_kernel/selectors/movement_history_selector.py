"""
Module: inventory_kernel.selectors.movement_history_selector
Responsibility: Rebuild the movement history of a product (optionally at
    one location), newest first.
Architecture position: Kernel > Selectors.  Read-only.  Consumes the
    injected BomRegistry.

Invariants enforced:
    - Stored purchase, transfer, sale and wastage movements (and their
      compensating rows) are returned as recorded.
    - Production entries are synthesized from ProductionRecord rows and the
      current BOM definition: -ratio * N for an input, +output_ratio * N for
      the output, at the record's production location and time.  A void
      record adds a second, negated entry at voided_at.  Stored production
      movements are not returned, so nothing is counted twice.
    - No balance is stored; MovementHistory.with_running_balance()
      recomputes it on every read.

Failure modes:
    - NotFoundError: unknown product, raised when history() is called.

Audit relevance:
    Replaying production through the current registry is only faithful
    while process definitions are unchanged.  Every production record
    carries the registry version it was recorded under; a mismatch is
    logged as production_bom_version_drift and the entry is still replayed.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_kernel.domain.bom import BomRegistry
from inventory_kernel.domain.dtos import BalancedMovementView, MovementView
from inventory_kernel.exceptions import NotFoundError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.movement import Movement, MovementType
from inventory_kernel.models.product import Location, Product
from inventory_kernel.models.transactions import ProductionRecord
from inventory_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.movement_history")


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive timestamps (SQLite drops tzinfo) and normalize."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class MovementHistory:
    """
    Finite, restartable, lazily produced sequence of MovementView, newest first.

    Nothing is read until iteration starts.  Each new iteration replays the
    history from the start.
    """

    def __init__(self, loader: Callable[[], list[MovementView]]):
        self._loader = loader

    def __iter__(self) -> Iterator[MovementView]:
        yield from self._loader()

    def to_list(self) -> list[MovementView]:
        return list(self)

    def net_change(self) -> Decimal:
        return sum((v.quantity_change for v in self), Decimal("0"))

    def with_running_balance(self) -> list[BalancedMovementView]:
        """
        Pair every entry with the quantity after it, newest first.

        The balance accumulates from the oldest entry, starting at zero.
        """
        views = list(self)
        balance = Decimal("0")
        balanced = []
        for view in reversed(views):
            balance += view.quantity_change
            balanced.append(BalancedMovementView(movement=view, balance_after=balance))
        balanced.reverse()
        return balanced


class MovementHistorySelector(BaseSelector[Movement]):
    """
    Selector for product movement histories.

    Contract:
        ``history()`` validates the product eagerly and returns a lazy
        MovementHistory reading through this selector's session, so the
        session must stay open while the history is iterated.
        ``load_views()`` is the eager form.
    """

    def __init__(self, session: Session, bom_registry: BomRegistry):
        super().__init__(session)
        self._registry = bom_registry

    def _require_product(self, product_id: UUID) -> Product:
        product = self.session.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product", str(product_id))
        return product

    def history(self, product_id: UUID, location_id: UUID | None = None) -> MovementHistory:
        self._require_product(product_id)
        return MovementHistory(lambda: self.load_views(product_id, location_id))

    def load_views(self, product_id: UUID, location_id: UUID | None = None) -> list[MovementView]:
        """All history entries for the product, sorted newest first."""
        product = self._require_product(product_id)
        location_names = {
            loc.id: loc.name
            for loc in self.session.execute(select(Location)).scalars().all()
        }

        views = self._stored_views(product, location_id, location_names)
        views.extend(self._production_views(product, location_id, location_names))

        views.sort(
            key=lambda v: (v.occurred_at, str(v.source_transaction_id), str(v.movement_id or "")),
            reverse=True,
        )
        logger.debug(
            "movement_history_loaded",
            extra={
                "product_id": str(product_id),
                "location_id": str(location_id) if location_id else None,
                "entry_count": len(views),
            },
        )
        return views

    def _stored_views(
        self,
        product: Product,
        location_id: UUID | None,
        location_names: dict[UUID, str],
    ) -> list[MovementView]:
        query = select(Movement).where(
            Movement.product_id == product.id,
            Movement.movement_type != MovementType.PRODUCTION,
        )
        if location_id is not None:
            query = query.where(Movement.location_id == location_id)

        return [
            MovementView(
                product_id=m.product_id,
                location_id=m.location_id,
                location_name=location_names.get(m.location_id),
                quantity_change=m.quantity_change,
                movement_type=m.movement_type.value,
                occurred_at=as_utc(m.occurred_at),
                source_transaction_id=m.source_transaction_id,
                movement_id=m.id,
                reversal_of_id=m.reversal_of_id,
                notes=m.notes,
            )
            for m in self.session.execute(query).scalars().all()
        ]

    def _production_views(
        self,
        product: Product,
        location_id: UUID | None,
        location_names: dict[UUID, str],
    ) -> list[MovementView]:
        processes = {p.name: p for p in self._registry.processes_involving(product.name)}
        if not processes:
            return []

        query = select(ProductionRecord).where(ProductionRecord.process.in_(list(processes)))
        if location_id is not None:
            query = query.where(ProductionRecord.location_id == location_id)

        views = []
        for record in self.session.execute(query).scalars().all():
            if record.bom_version != self._registry.version:
                logger.warning(
                    "production_bom_version_drift",
                    extra={
                        "production_id": str(record.id),
                        "process_name": record.process,
                        "recorded_version": record.bom_version,
                        "current_version": self._registry.version,
                    },
                )

            delta = processes[record.process].signed_delta(product.name, record.quantity)
            if not delta:
                continue

            base = dict(
                product_id=product.id,
                location_id=record.location_id,
                location_name=location_names.get(record.location_id),
                movement_type=MovementType.PRODUCTION.value,
                source_transaction_id=record.id,
                notes=record.process,
                stored=False,
            )
            views.append(
                MovementView(
                    quantity_change=delta,
                    occurred_at=as_utc(record.recorded_at),
                    **base,
                )
            )
            if record.is_void and record.voided_at is not None:
                views.append(
                    MovementView(
                        quantity_change=-delta,
                        occurred_at=as_utc(record.voided_at),
                        **base,
                    )
                )
        return views
