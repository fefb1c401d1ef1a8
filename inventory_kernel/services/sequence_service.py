"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Provides strictly increasing numbers per named sequence, backed by the
    ``sequence_counters`` table and ``SELECT ... FOR UPDATE``.  The invoice
    number generator draws from it so concurrent sales never collide.

Architecture position:
    Kernel > Services.  Called by InvoiceNumberGenerator (SaleService).

Invariants enforced:
    - The locked counter row is the sole source of the next value; the
      aggregate-max-plus-one pattern is never used.
    - The increment is part of the caller's transaction.  A rolled-back
      sale does not consume its number.

Failure modes:
    - IntegrityError on a concurrent first use of a sequence, handled by a
      savepoint rollback and a locked re-read.
"""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Non-goals:
        - Does NOT call ``session.commit()``; caller controls boundaries.

    Usage:
        seq = SequenceService(session).next_value(SequenceService.INVOICE)
    """

    INVOICE = "invoice"

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Get the next value for a named sequence (always > 0).

        The counter row stays locked until the caller's transaction ends.
        """
        counter = self._locked_counter(sequence_name)

        if counter is None:
            # First use; another transaction may create the row at the same time
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._locked_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Current value without incrementing, or None for an unused sequence."""
        counter = self._session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None


class InvoiceNumberGenerator:
    """
    Allocates invoice numbers of the form ``INV-<YYYYMMDDHHMMSS>-<seq:06d>``.

    The timestamp is informational; uniqueness comes from the sequence, so
    two sales in the same second still get distinct numbers.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        prefix: str = "INV",
    ):
        self._sequences = SequenceService(session)
        self._clock = clock or SystemClock()
        self._prefix = prefix

    @staticmethod
    def format(prefix: str, stamp: datetime, sequence: int) -> str:
        return f"{prefix}-{stamp.strftime('%Y%m%d%H%M%S')}-{sequence:06d}"

    def next_invoice_number(self) -> str:
        sequence = self._sequences.next_value(SequenceService.INVOICE)
        return self.format(self._prefix, self._clock.now(), sequence)
