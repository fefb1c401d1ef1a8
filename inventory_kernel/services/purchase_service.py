"""
PurchaseService -- receives stock from suppliers.

Purchases are the only way stock enters the ledger from outside.  Without
a location they land at the default location.
"""

from datetime import date
from uuid import UUID

from sqlalchemy.orm import Session

from inventory_kernel.db.types import round_money, to_decimal
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import MovementSpec
from inventory_kernel.exceptions import ValidationError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.movement import MovementType
from inventory_kernel.models.transactions import PurchaseRecord
from inventory_kernel.services.base import BaseService
from inventory_kernel.services.movement_recorder import MovementRecorder

logger = get_logger("services.purchase")


class PurchaseService(BaseService[PurchaseRecord]):
    """Records purchases."""

    def __init__(
        self,
        session: Session,
        recorder: MovementRecorder,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._recorder = recorder
        self._clock = clock or SystemClock()

    def record_purchase(
        self,
        product_id: UUID,
        quantity,
        purchase_date: date,
        location_id: UUID | None = None,
        unit_price=None,
        supplier: str | None = None,
        notes: str | None = None,
    ) -> PurchaseRecord:
        quantity = self._require_positive(quantity, "quantity")
        if unit_price is not None:
            try:
                unit_price = to_decimal(unit_price, "unit_price")
            except ValueError as exc:
                raise ValidationError(str(exc), field="unit_price") from exc
            if unit_price < 0:
                raise ValidationError(
                    f"unit_price cannot be negative, got {unit_price}", field="unit_price"
                )
            unit_price = round_money(unit_price)

        self._get_product(product_id)
        resolved_location = self._recorder.resolve_location(location_id)
        self._get_location(resolved_location)

        now = self._clock.now()
        record = PurchaseRecord(
            product_id=product_id,
            location_id=resolved_location,
            quantity=quantity,
            unit_price=unit_price,
            supplier=supplier,
            purchase_date=purchase_date,
            recorded_at=now,
            notes=notes,
        )
        self.session.add(record)
        self.session.flush()

        self._recorder.apply_movements(
            [
                MovementSpec(
                    product_id=product_id,
                    location_id=resolved_location,
                    quantity_change=quantity,
                    movement_type=MovementType.PURCHASE,
                    source_transaction_id=record.id,
                    notes=supplier,
                )
            ],
            occurred_at=now,
        )

        logger.info(
            "purchase_recorded",
            extra={
                "purchase_id": str(record.id),
                "product_id": str(product_id),
                "location_id": str(resolved_location),
                "quantity": quantity,
            },
        )
        return record
