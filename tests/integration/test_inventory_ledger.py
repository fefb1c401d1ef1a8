"""
End-to-end tests for the InventoryLedger facade.

Covers:
- A full factory day: receive, produce, move to the shop, sell, reverse
- Unit-of-work boundaries: commit on success, rollback on any failure
- Database errors surfacing as PersistenceFailure
- Log context carried by every write
- Construction against an empty catalog
- Price preset lookup from configuration
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from inventory_kernel.domain.dtos import SaleInput, SaleItemInput, TransactionType
from inventory_kernel.exceptions import (
    InsufficientStockError,
    NotFoundError,
    PersistenceFailure,
)
from inventory_kernel.models.movement import Movement
from inventory_kernel.models.transactions import PurchaseRecord
from inventory_services import InventoryLedger

DAY = date(2024, 1, 10)

GIFT_SET_INPUTS = (
    "Soap (Ready)",
    "Shampoo (Ready)",
    "Lotion (Ready)",
    "Powder",
    "Gift Box Outer Cardboard",
    "Empty Thermacol",
)


def movement_count(session) -> int:
    return session.execute(select(func.count()).select_from(Movement)).scalar_one()


class TestFactoryDay:
    def test_receive_produce_transfer_sell_reverse(
        self, ledger, receive, qty, product_id, location_id, deterministic_clock
    ):
        receive("Soap (Wrapped)", 120)
        receive("Soap Boxes", 100)
        for name in GIFT_SET_INPUTS[1:]:
            receive(name, 80)

        deterministic_clock.tick()
        ledger.record_production("soap_boxing", 100, DAY)
        deterministic_clock.tick()
        ledger.record_production("gift_set_assembly", 60, DAY)
        deterministic_clock.tick()
        ledger.record_transfer(
            product_id("Gift Set"), location_id("Factory"), location_id("Shop"), 24, DAY
        )
        deterministic_clock.tick()
        sale = ledger.record_sale(
            SaleInput(
                buyer_reference="Retailer A",
                sale_date=DAY,
                items=[
                    SaleItemInput(
                        product_id=product_id("Gift Set"),
                        location_id=location_id("Shop"),
                        quantity=Decimal("11"),
                        price_per_unit=Decimal("330"),
                        trade_scheme="10+1",
                    )
                ],
                payment_received=Decimal("3300"),
            )
        )

        assert qty("Soap (Wrapped)") == Decimal("20")
        assert qty("Soap Boxes") == Decimal("0")
        assert qty("Soap (Ready)") == Decimal("40")
        assert qty("Powder") == Decimal("20")
        assert qty("Gift Set", "Factory") == Decimal("36")
        assert qty("Gift Set", "Shop") == Decimal("13")
        assert sale.final_amount == Decimal("3300.00")
        assert sale.balance_due == Decimal("0.00")

        deterministic_clock.tick()
        ledger.reverse_transaction(sale.id, TransactionType.SALE, "Returned unopened")

        assert qty("Gift Set", "Shop") == Decimal("24")
        assert qty("Gift Set") == Decimal("60")
        assert ledger.verify_invariants() == []

        history = ledger.get_movement_history(product_id("Gift Set")).with_running_balance()
        assert history[0].balance_after == Decimal("60")
        assert [r.movement.movement_type for r in history] == [
            "sale",
            "sale",
            "transfer",
            "transfer",
            "production",
        ]


class TestUnitOfWork:
    def test_success_is_committed(self, ledger, session, product_id, qty):
        ledger.record_purchase(product_id("Powder"), 5, DAY)
        session.rollback()

        assert session.execute(select(func.count()).select_from(PurchaseRecord)).scalar_one() == 1
        assert qty("Powder") == Decimal("5")

    def test_domain_error_rolls_back(self, ledger, session, receive, product_id, qty):
        receive("Powder", 3)
        before = movement_count(session)

        with pytest.raises(InsufficientStockError):
            ledger.record_wastage(product_id("Powder"), 4, DAY, "Spilled")

        assert movement_count(session) == before
        ledger.record_wastage(product_id("Powder"), 3, DAY, "Spilled")
        assert qty("Powder") == Decimal("0")

    def test_database_error_becomes_persistence_failure(
        self, ledger, session, product_id, monkeypatch, captured_logs
    ):
        def broken(*args, **kwargs):
            raise OperationalError("INSERT INTO purchases", {}, Exception("disk I/O error"))

        monkeypatch.setattr(ledger.purchase_service, "record_purchase", broken)

        with pytest.raises(PersistenceFailure) as exc_info:
            ledger.record_purchase(product_id("Powder"), 1, DAY)

        assert exc_info.value.operation == "record_purchase"
        assert "disk I/O error" in exc_info.value.reason
        assert session.execute(select(func.count()).select_from(PurchaseRecord)).scalar_one() == 0
        failures = [r for r in captured_logs() if r["message"] == "unit_of_work_failed"]
        assert failures and failures[0]["operation"] == "record_purchase"

    def test_unexpected_error_rolls_back_and_propagates(self, ledger, receive, product_id, qty, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(ledger.transfer_service, "record_transfer", broken)

        with pytest.raises(RuntimeError):
            ledger.record_transfer(product_id("Powder"), None, None, 1, DAY)

        receive("Powder", 2)
        assert qty("Powder") == Decimal("2")


class TestLogContext:
    def test_writes_carry_operation_and_type(self, ledger, product_id, captured_logs):
        ledger.record_purchase(product_id("Powder"), 5, DAY)

        record = next(r for r in captured_logs() if r["message"] == "purchase_recorded")
        assert record["operation"] == "record_purchase"
        assert record["transaction_type"] == "purchase"

    def test_reversal_context(self, ledger, receive, captured_logs):
        purchase = receive("Powder", 2)
        ledger.reverse_transaction(purchase.id, "purchase")

        record = next(r for r in captured_logs() if r["message"] == "reversal_completed")
        assert record["transaction_id"] == str(purchase.id)
        assert record["operation"] == "reverse_transaction"


class TestConstruction:
    def test_unsynced_empty_catalog(self, session, config, deterministic_clock):
        with pytest.raises(NotFoundError) as exc_info:
            InventoryLedger(session, config, clock=deterministic_clock, sync_catalog=False)
        assert exc_info.value.entity_id == "Factory"

    def test_second_ledger_reuses_catalog(self, ledger, session, config, receive):
        receive("Powder", 9)
        again = InventoryLedger(session, config)
        assert again.product_id("Powder") == ledger.product_id("Powder")
        assert again.stock.product_quantity(again.product_id("Powder")) == Decimal("9")
        assert again.default_location_id == ledger.default_location_id


class TestPricePresets:
    @pytest.mark.parametrize(
        "entered,scheme,pct",
        [
            (Decimal("270.00"), "10+1", Decimal("10")),
            (Decimal("258.92"), "12+1", Decimal("15")),
            ("265", "12+1", Decimal("13")),
        ],
    )
    def test_configured_rules(self, ledger, entered, scheme, pct):
        rule = ledger.find_price_rule("Nikka Nikki Gift Set 4 Pcs", entered)
        assert rule.trade_scheme == scheme
        assert rule.discount_percentage == pct
        assert rule.base_price == Decimal("330")

    def test_no_rule(self, ledger):
        assert ledger.find_price_rule("Nikka Nikki Gift Set 4 Pcs", Decimal("300")) is None
        assert ledger.find_price_rule("Powder", Decimal("270")) is None
