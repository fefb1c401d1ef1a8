"""
WastageService -- writes off damaged or lost stock.

Invariants enforced:
    - A reason is always recorded; quantity > 0.
    - With a location, the quantity is checked against that location.
      Without one, it is checked against the aggregate and booked at the
      default location, where MovementRecorder enforces non-negativity.
    - One negative movement; nothing is produced.
"""

from datetime import date
from uuid import UUID

from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import MovementSpec
from inventory_kernel.exceptions import (
    InsufficientStockError,
    StockShortfall,
    ValidationError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.movement import MovementType
from inventory_kernel.models.transactions import WastageRecord
from inventory_kernel.services.base import BaseService
from inventory_kernel.services.movement_recorder import MovementRecorder

logger = get_logger("services.wastage")


class WastageService(BaseService[WastageRecord]):
    """Records wastage."""

    def __init__(
        self,
        session: Session,
        recorder: MovementRecorder,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._recorder = recorder
        self._clock = clock or SystemClock()

    def record_wastage(
        self,
        product_id: UUID,
        quantity,
        wastage_date: date,
        reason: str,
        location_id: UUID | None = None,
        notes: str | None = None,
    ) -> WastageRecord:
        quantity = self._require_positive(quantity, "quantity")
        if not reason or not reason.strip():
            raise ValidationError("Wastage reason is required", field="reason")

        product = self._get_product(product_id)
        location = self._get_location(location_id) if location_id is not None else None

        if location is not None:
            available = self._stock_at(product_id, location.id)
        else:
            available = product.quantity

        if quantity > available:
            logger.warning(
                "wastage_rejected_insufficient_stock",
                extra={
                    "product_id": str(product_id),
                    "location_id": str(location_id) if location_id else None,
                    "available": available,
                    "requested": quantity,
                },
            )
            raise InsufficientStockError(
                [
                    StockShortfall(
                        product_id=str(product.id),
                        product_name=product.name,
                        required=quantity,
                        available=available,
                        location_id=str(location.id) if location else None,
                        location_name=location.name if location else None,
                    )
                ]
            )

        now = self._clock.now()
        record = WastageRecord(
            product_id=product_id,
            location_id=location_id,
            quantity=quantity,
            wastage_date=wastage_date,
            reason=reason.strip(),
            recorded_at=now,
            notes=notes,
        )
        self.session.add(record)
        self.session.flush()

        self._recorder.apply_movements(
            [
                MovementSpec(
                    product_id=product_id,
                    location_id=location_id,
                    quantity_change=-quantity,
                    movement_type=MovementType.WASTAGE,
                    source_transaction_id=record.id,
                    notes=record.reason,
                )
            ],
            occurred_at=now,
        )

        logger.info(
            "wastage_recorded",
            extra={
                "wastage_id": str(record.id),
                "product_id": str(product_id),
                "quantity": quantity,
                "location_id": str(location_id) if location_id else None,
            },
        )
        return record
