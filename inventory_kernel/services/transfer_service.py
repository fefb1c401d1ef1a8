"""
TransferService -- moves stock of one product between two locations.

Invariants enforced:
    - from and to differ; quantity > 0 and no more than the source holds.
    - Exactly two movements sharing the Transfer id: -quantity at the
      source, +quantity at the destination.  Aggregate Product.quantity is
      unchanged.
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
from inventory_kernel.models.transactions import Transfer
from inventory_kernel.services.base import BaseService
from inventory_kernel.services.movement_recorder import MovementRecorder

logger = get_logger("services.transfer")


class TransferService(BaseService[Transfer]):
    """Records location-to-location transfers."""

    def __init__(
        self,
        session: Session,
        recorder: MovementRecorder,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._recorder = recorder
        self._clock = clock or SystemClock()

    def record_transfer(
        self,
        product_id: UUID,
        from_location_id: UUID,
        to_location_id: UUID,
        quantity,
        transfer_date: date,
        notes: str | None = None,
    ) -> Transfer:
        """
        Move ``quantity`` of a product from one location to another.

        Raises:
            ValidationError: same source and destination, or quantity <= 0.
            NotFoundError: unknown product or location.
            InsufficientStockError: source holds less than ``quantity``.
        """
        quantity = self._require_positive(quantity, "quantity")
        if from_location_id == to_location_id:
            raise ValidationError(
                "Transfer source and destination must differ",
                field="to_location_id",
            )

        product = self._get_product(product_id)
        source = self._get_location(from_location_id)
        self._get_location(to_location_id)

        available = self._stock_at(product_id, from_location_id)
        if quantity > available:
            logger.warning(
                "transfer_rejected_insufficient_stock",
                extra={
                    "product_id": str(product_id),
                    "from_location_id": str(from_location_id),
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
                        location_id=str(source.id),
                        location_name=source.name,
                    )
                ]
            )

        now = self._clock.now()
        transfer = Transfer(
            product_id=product_id,
            from_location_id=from_location_id,
            to_location_id=to_location_id,
            quantity=quantity,
            transfer_date=transfer_date,
            recorded_at=now,
            notes=notes,
        )
        self.session.add(transfer)
        self.session.flush()

        self._recorder.apply_movements(
            [
                MovementSpec(
                    product_id=product_id,
                    location_id=from_location_id,
                    quantity_change=-quantity,
                    movement_type=MovementType.TRANSFER,
                    source_transaction_id=transfer.id,
                ),
                MovementSpec(
                    product_id=product_id,
                    location_id=to_location_id,
                    quantity_change=quantity,
                    movement_type=MovementType.TRANSFER,
                    source_transaction_id=transfer.id,
                ),
            ],
            occurred_at=now,
        )

        logger.info(
            "transfer_recorded",
            extra={
                "transfer_id": str(transfer.id),
                "product_id": str(product_id),
                "from_location_id": str(from_location_id),
                "to_location_id": str(to_location_id),
                "quantity": quantity,
            },
        )
        return transfer
