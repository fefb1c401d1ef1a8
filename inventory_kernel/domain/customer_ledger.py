"""
CustomerLedger -- port for the external customer-balance ledger.

SaleService reports each recorded sale, and ReversalService each reversed
sale, through this protocol.  Calls happen inside the ledger's unit of work:
an exception raised by the collaborator rolls the sale (or reversal) back.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Protocol, runtime_checkable
from uuid import UUID

from inventory_kernel.logging_config import get_logger

logger = get_logger("domain.customer_ledger")


@runtime_checkable
class CustomerLedger(Protocol):
    """Protocol for the buyer balance book kept outside the inventory ledger."""

    def record_sale(
        self,
        buyer_reference: str,
        sale_id: UUID,
        final_amount: Decimal,
        payment_received: Decimal,
        credit_sale: bool,
    ) -> None:
        """Apply a new sale to the buyer's balance."""
        ...

    def reverse_sale(
        self,
        buyer_reference: str,
        sale_id: UUID,
        final_amount: Decimal,
        payment_received: Decimal,
    ) -> None:
        """Undo an earlier record_sale for the same sale."""
        ...


class NullCustomerLedger:
    """CustomerLedger that only logs; used when no balance book is wired in."""

    def record_sale(
        self,
        buyer_reference: str,
        sale_id: UUID,
        final_amount: Decimal,
        payment_received: Decimal,
        credit_sale: bool,
    ) -> None:
        logger.debug(
            "customer_ledger_sale_skipped",
            extra={"buyer_reference": buyer_reference, "sale_id": str(sale_id)},
        )

    def reverse_sale(
        self,
        buyer_reference: str,
        sale_id: UUID,
        final_amount: Decimal,
        payment_received: Decimal,
    ) -> None:
        logger.debug(
            "customer_ledger_reversal_skipped",
            extra={"buyer_reference": buyer_reference, "sale_id": str(sale_id)},
        )
