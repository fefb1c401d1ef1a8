"""
Tests for transaction reversal.

Covers:
- Every transaction type restores the quantities it changed
- Compensating movements point at the movement they undo
- A void header cannot be reversed again
- A reversal that would drive stock negative fails and leaves the header active
- Sale reversals notify the customer ledger
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from inventory_kernel.domain.dtos import SaleInput, SaleItemInput, TransactionType
from inventory_kernel.exceptions import (
    AlreadyVoidedError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from inventory_kernel.models.movement import Movement
from inventory_kernel.models.transactions import PurchaseRecord, SaleTransaction

RUN_DATE = date(2024, 1, 6)

GIFT_SET_INPUTS = (
    "Soap (Ready)",
    "Shampoo (Ready)",
    "Lotion (Ready)",
    "Powder",
    "Gift Box Outer Cardboard",
    "Empty Thermacol",
)


@pytest.fixture
def sell(ledger, product_id, location_id):
    def _sell(name, quantity, location="Shop", price="100", **kwargs):
        return ledger.record_sale(
            SaleInput(
                buyer_reference=kwargs.pop("buyer", "Retailer A"),
                sale_date=RUN_DATE,
                items=[
                    SaleItemInput(
                        product_id=product_id(name),
                        location_id=location_id(location),
                        quantity=Decimal(str(quantity)),
                        price_per_unit=Decimal(price),
                    )
                ],
                **kwargs,
            )
        )

    return _sell


def movements_for(session, transaction_id) -> list[Movement]:
    return list(
        session.execute(
            select(Movement).where(Movement.source_transaction_id == transaction_id)
        ).scalars().all()
    )


class TestReverseEachType:
    def test_purchase(self, ledger, receive, qty):
        purchase = receive("Powder", 10)

        result = ledger.reverse_transaction(purchase.id, TransactionType.PURCHASE, "Returned")

        assert qty("Powder") == Decimal("0")
        assert qty("Powder", "Factory") == Decimal("0")
        assert result.movement_count == 1
        assert purchase.is_void
        assert purchase.void_reason == "Returned"

    def test_sale(self, ledger, receive, qty, sell):
        receive("Gift Set", 30, "Shop")
        sale = sell("Gift Set", 12)

        ledger.reverse_transaction(sale.id, "sale")

        assert qty("Gift Set", "Shop") == Decimal("30")
        assert sale.status == "void"

    def test_transfer(self, ledger, receive, qty, product_id, location_id):
        receive("Gift Set", 50)
        transfer = ledger.record_transfer(
            product_id("Gift Set"), location_id("Factory"), location_id("Shop"), 20, RUN_DATE
        )

        result = ledger.reverse_transaction(transfer.id, TransactionType.TRANSFER)

        assert qty("Gift Set", "Factory") == Decimal("50")
        assert qty("Gift Set", "Shop") == Decimal("0")
        assert result.movement_count == 2

    def test_wastage(self, ledger, receive, qty, product_id):
        receive("Empty Thermacol", 10)
        record = ledger.record_wastage(product_id("Empty Thermacol"), 4, RUN_DATE, "Crushed")

        ledger.reverse_transaction(record.id, TransactionType.WASTAGE)

        assert qty("Empty Thermacol") == Decimal("10")

    def test_production(self, ledger, receive, qty):
        for name in GIFT_SET_INPUTS:
            receive(name, 10)
        run = ledger.record_production("gift_set_assembly", 5, RUN_DATE)

        result = ledger.reverse_transaction(run.id, TransactionType.PRODUCTION, "Miscounted")

        assert qty("Gift Set") == Decimal("0")
        for name in GIFT_SET_INPUTS:
            assert qty(name) == Decimal("10")
        assert result.movement_count == 7


class TestCompensatingMovements:
    def test_point_at_originals(self, ledger, session, receive, product_id, location_id):
        receive("Powder", 10)
        transfer = ledger.record_transfer(
            product_id("Powder"), location_id("Factory"), location_id("Shop"), 6, RUN_DATE
        )
        originals = {m.id: m for m in movements_for(session, transfer.id)}

        result = ledger.reverse_transaction(transfer.id, TransactionType.TRANSFER)

        compensating = [session.get(Movement, mid) for mid in result.compensating_movement_ids]
        assert {m.reversal_of_id for m in compensating} == set(originals)
        for movement in compensating:
            original = originals[movement.reversal_of_id]
            assert movement.quantity_change == -original.quantity_change
            assert movement.location_id == original.location_id
            assert movement.movement_type == original.movement_type
            assert movement.source_transaction_id == transfer.id

    def test_restorations_applied_first(self, ledger, session, receive, product_id, location_id):
        receive("Powder", 10)
        transfer = ledger.record_transfer(
            product_id("Powder"), location_id("Factory"), location_id("Shop"), 10, RUN_DATE
        )

        result = ledger.reverse_transaction(transfer.id, TransactionType.TRANSFER)

        changes = [session.get(Movement, mid).quantity_change for mid in result.compensating_movement_ids]
        assert changes == [Decimal("10"), Decimal("-10")]

    def test_voided_at_from_clock(self, ledger, receive, deterministic_clock):
        purchase = receive("Powder", 1)
        deterministic_clock.advance(60)

        result = ledger.reverse_transaction(purchase.id, TransactionType.PURCHASE)

        assert result.voided_at == deterministic_clock.now()


class TestReversalRejections:
    def test_already_voided(self, ledger, session, receive, qty):
        purchase = receive("Powder", 10)
        ledger.reverse_transaction(purchase.id, TransactionType.PURCHASE)
        before = len(movements_for(session, purchase.id))

        with pytest.raises(AlreadyVoidedError):
            ledger.reverse_transaction(purchase.id, TransactionType.PURCHASE)

        assert len(movements_for(session, purchase.id)) == before
        assert qty("Powder") == Decimal("0")

    def test_consumed_purchase_cannot_be_reversed(self, ledger, session, receive, qty, sell, product_id, location_id):
        purchase = receive("Gift Set", 10)
        ledger.record_transfer(
            product_id("Gift Set"), location_id("Factory"), location_id("Shop"), 8, RUN_DATE
        )
        sell("Gift Set", 8)

        with pytest.raises(InsufficientStockError):
            ledger.reverse_transaction(purchase.id, TransactionType.PURCHASE)

        header = session.get(PurchaseRecord, purchase.id)
        assert header.is_void is False
        assert header.voided_at is None
        assert qty("Gift Set", "Factory") == Decimal("2")

    def test_sold_output_blocks_production_reversal(self, ledger, receive, qty, sell, product_id, location_id):
        for name in GIFT_SET_INPUTS:
            receive(name, 5)
        run = ledger.record_production("gift_set_assembly", 5, RUN_DATE)
        ledger.record_transfer(
            product_id("Gift Set"), location_id("Factory"), location_id("Shop"), 5, RUN_DATE
        )

        with pytest.raises(InsufficientStockError):
            ledger.reverse_transaction(run.id, TransactionType.PRODUCTION)

        assert qty("Powder") == Decimal("0")
        assert run.is_void is False

    def test_unknown_type(self, ledger, receive):
        purchase = receive("Powder", 1)
        with pytest.raises(ValidationError) as exc_info:
            ledger.reverse_transaction(purchase.id, "refund")
        assert exc_info.value.field == "transaction_type"

    def test_unknown_id(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.reverse_transaction(uuid4(), TransactionType.SALE)

    def test_wrong_type_for_id(self, ledger, receive):
        purchase = receive("Powder", 1)
        with pytest.raises(NotFoundError):
            ledger.reverse_transaction(purchase.id, TransactionType.WASTAGE)


class TestSaleReversalCustomerLedger:
    def test_reverse_sale_notified(self, ledger, session, receive, sell, customer_ledger):
        receive("Powder", 10, "Shop")
        sale = sell("Powder", 3, price="50", credit_sale=True)
        assert customer_ledger.balance("Retailer A") == Decimal("150.00")

        ledger.reverse_transaction(sale.id, TransactionType.SALE)

        kind, call = customer_ledger.calls[-1]
        assert kind == "reverse_sale"
        assert call["sale_id"] == sale.id
        assert customer_ledger.balance("Retailer A") == Decimal("0")
        assert session.get(SaleTransaction, sale.id).is_void

    def test_non_sale_reversal_leaves_customer_ledger_alone(self, ledger, receive, customer_ledger):
        purchase = receive("Powder", 1)
        ledger.reverse_transaction(purchase.id, TransactionType.PURCHASE)
        assert customer_ledger.calls == []
