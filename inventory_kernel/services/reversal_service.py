"""
ReversalService -- voids a transaction with compensating movements.

Responsibility:
    Validates reversal preconditions, negates every movement the
    transaction produced through MovementRecorder, and flags the header
    void -- all in the caller's transaction.  For sales, asks the customer
    ledger to undo its balance update.

Architecture position:
    Kernel > Services.  Consumes MovementRecorder and a CustomerLedger.

Invariants enforced:
    - ACTIVE -> VOID is the only transition, and it is terminal.
    - Nothing is deleted.  Each compensating movement carries the same
      (product, location), the negated change, the original movement type
      and source_transaction_id, and reversal_of_id -> the original row.
    - Compensation and the void flag land together.  If compensation is
      rejected (purchased stock already consumed), the header stays active.

Failure modes:
    - ValidationError: unknown transaction type.
    - NotFoundError: no header with that id.
    - AlreadyVoidedError: header already void.  Nothing changes.
    - InsufficientStockError: compensation would drive stock negative.
    - PartialApplicationError: header has no movements (fatal).

Audit relevance:
    After a reversal the trail holds the original movements, their
    compensating twins, and the void header with voided_at and void_reason.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.customer_ledger import CustomerLedger, NullCustomerLedger
from inventory_kernel.domain.dtos import MovementSpec, ReversalResult, TransactionType
from inventory_kernel.exceptions import (
    AlreadyVoidedError,
    NotFoundError,
    PartialApplicationError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.movement import Movement, MovementType
from inventory_kernel.models.transactions import TRANSACTION_MODELS, SaleTransaction
from inventory_kernel.services.movement_recorder import MovementRecorder

logger = get_logger("services.reversal")


class ReversalService:
    """
    Reverses recorded transactions.

    Non-goals:
        - Does NOT call session.commit(); caller controls boundaries.
        - Does NOT handle partial reversals (single sale lines).
    """

    def __init__(
        self,
        session: Session,
        recorder: MovementRecorder,
        customer_ledger: CustomerLedger | None = None,
        clock: Clock | None = None,
    ):
        self._session = session
        self._recorder = recorder
        self._customer_ledger = customer_ledger or NullCustomerLedger()
        self._clock = clock or SystemClock()

    def _load_and_validate(self, transaction_id: UUID, transaction_type: TransactionType):
        """Load the header with a row lock and check it is still active."""
        model = TRANSACTION_MODELS[MovementType(transaction_type.value)]

        # Row lock serializes concurrent reversals of the same header
        header = self._session.execute(
            select(model)
            .where(model.id == transaction_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if header is None:
            raise NotFoundError(model.__name__, str(transaction_id))

        if header.is_void:
            logger.warning(
                "reversal_rejected_already_void",
                extra={
                    "transaction_id": str(transaction_id),
                    "transaction_type": transaction_type.value,
                },
            )
            raise AlreadyVoidedError(str(transaction_id), transaction_type.value)

        return header

    def _original_movements(self, transaction_id: UUID) -> list[Movement]:
        return list(
            self._session.execute(
                select(Movement)
                .where(
                    Movement.source_transaction_id == transaction_id,
                    Movement.reversal_of_id.is_(None),
                )
                .order_by(Movement.occurred_at, Movement.id)
            ).scalars().all()
        )

    def reverse(
        self,
        transaction_id: UUID,
        transaction_type: TransactionType | str,
        reason: str | None = None,
    ) -> ReversalResult:
        """
        Void a transaction and restore every quantity it changed.

        Postconditions:
            Every (product, location) the transaction touched is back to
            what it would be without the transaction; the header is void
            with voided_at and void_reason set.
        """
        transaction_type = TransactionType.parse(transaction_type)
        header = self._load_and_validate(transaction_id, transaction_type)

        originals = self._original_movements(transaction_id)
        if not originals:
            logger.critical(
                "reversal_target_has_no_movements",
                extra={
                    "transaction_id": str(transaction_id),
                    "transaction_type": transaction_type.value,
                },
            )
            raise PartialApplicationError(
                str(transaction_id),
                f"{transaction_type.value} transaction has no movements to compensate",
            )

        specs = [
            MovementSpec(
                product_id=m.product_id,
                location_id=m.location_id,
                quantity_change=-m.quantity_change,
                movement_type=m.movement_type,
                source_transaction_id=transaction_id,
                notes=reason,
                reversal_of_id=m.id,
            )
            for m in originals
        ]
        # Restorations first so an intermediate balance never dips below zero
        specs.sort(key=lambda s: s.quantity_change < 0)

        now = self._clock.now()
        compensating = self._recorder.apply_movements(specs, occurred_at=now)

        header.is_void = True
        header.voided_at = now
        header.void_reason = reason
        self._session.flush()

        if isinstance(header, SaleTransaction):
            self._customer_ledger.reverse_sale(
                buyer_reference=header.buyer_reference,
                sale_id=header.id,
                final_amount=header.final_amount,
                payment_received=header.payment_received,
            )

        logger.info(
            "reversal_completed",
            extra={
                "transaction_id": str(transaction_id),
                "transaction_type": transaction_type.value,
                "compensating_movement_count": len(compensating),
            },
        )

        return ReversalResult(
            transaction_id=transaction_id,
            transaction_type=transaction_type,
            voided_at=now,
            compensating_movement_ids=tuple(m.id for m in compensating),
            reason=reason,
        )
