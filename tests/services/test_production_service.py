"""
Tests for production runs through the BOM.

Covers:
- Gift set assembly consumes each input and yields the output atomically
- Every deficient input is reported, with the material-shortfall message
- The production record stores process, location and registry version
- Capacity: how many units the current stock could make
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from inventory_kernel.exceptions import InsufficientStockError, NotFoundError, ValidationError
from inventory_kernel.models.movement import Movement, MovementType
from inventory_kernel.models.transactions import ProductionRecord

GIFT_SET_INPUTS = (
    "Soap (Ready)",
    "Shampoo (Ready)",
    "Lotion (Ready)",
    "Powder",
    "Gift Box Outer Cardboard",
    "Empty Thermacol",
)

RUN_DATE = date(2024, 1, 2)


@pytest.fixture
def stocked_gift_inputs(receive):
    for name in GIFT_SET_INPUTS:
        receive(name, 10)


class TestGiftSetAssembly:
    def test_consumes_inputs_and_yields_output(self, ledger, stocked_gift_inputs, qty):
        record = ledger.record_production("gift_set_assembly", 5, RUN_DATE)

        for name in GIFT_SET_INPUTS:
            assert qty(name) == Decimal("5"), name
            assert qty(name, "Factory") == Decimal("5"), name
        assert qty("Gift Set") == Decimal("5")
        assert qty("Gift Set", "Factory") == Decimal("5")
        assert record.status == "active"

    def test_record_fields(self, ledger, stocked_gift_inputs, config):
        record = ledger.record_production("gift_set_assembly", 2, RUN_DATE, notes="morning shift")

        assert record.process == "gift_set_assembly"
        assert record.quantity == Decimal("2")
        assert record.production_date == RUN_DATE
        assert record.location_id == ledger.default_location_id
        assert record.bom_version == config.checksum
        assert record.notes == "morning shift"

    def test_one_movement_per_input_plus_output(self, ledger, session, stocked_gift_inputs):
        record = ledger.record_production("gift_set_assembly", 3, RUN_DATE)

        rows = session.execute(
            select(Movement).where(Movement.source_transaction_id == record.id)
        ).scalars().all()
        assert len(rows) == 7
        assert all(m.movement_type == MovementType.PRODUCTION for m in rows)
        assert sorted(m.quantity_change for m in rows) == [Decimal("-3")] * 6 + [Decimal("3")]

    def test_one_short_input_changes_nothing(self, ledger, session, receive, qty):
        for name in GIFT_SET_INPUTS:
            receive(name, 4 if name == "Powder" else 10)

        with pytest.raises(InsufficientStockError) as exc_info:
            ledger.record_production("gift_set_assembly", 5, RUN_DATE)

        assert str(exc_info.value) == "Insufficient materials. Required: 5, Available: Powder: 4"
        assert qty("Powder") == Decimal("4")
        assert qty("Soap (Ready)") == Decimal("10")
        assert qty("Gift Set") == Decimal("0")
        assert session.execute(select(func.count()).select_from(ProductionRecord)).scalar_one() == 0

    def test_every_deficient_input_reported(self, ledger, receive):
        receive("Soap (Ready)", 3)
        receive("Shampoo (Ready)", 10)

        with pytest.raises(InsufficientStockError) as exc_info:
            ledger.record_production("gift_set_assembly", 5, RUN_DATE)

        shortfalls = {s.product_name: s for s in exc_info.value.shortfalls}
        assert set(shortfalls) == set(GIFT_SET_INPUTS) - {"Shampoo (Ready)"}
        assert shortfalls["Soap (Ready)"].available == Decimal("3")
        assert shortfalls["Soap (Ready)"].required == Decimal("5")
        assert str(exc_info.value).startswith(
            "Insufficient materials. Required: 5, Available: Soap (Ready): 3, Lotion (Ready): 0"
        )


class TestOtherProcesses:
    def test_soap_boxing(self, ledger, receive, qty):
        receive("Soap (Wrapped)", 30)
        receive("Soap Boxes", 25)

        ledger.record_production("soap_boxing", 20, RUN_DATE)

        assert qty("Soap (Wrapped)") == Decimal("10")
        assert qty("Soap Boxes") == Decimal("5")
        assert qty("Soap (Ready)") == Decimal("20")

    def test_labeling(self, ledger, receive, qty):
        receive("Lotion (Unlabeled)", 8)
        ledger.record_production("lotion_labeling", 8, RUN_DATE)
        assert qty("Lotion (Unlabeled)") == Decimal("0")
        assert qty("Lotion (Ready)") == Decimal("8")


class TestProductionValidation:
    def test_unknown_process(self, ledger):
        with pytest.raises(NotFoundError) as exc_info:
            ledger.record_production("candle_dipping", 1, RUN_DATE)
        assert exc_info.value.entity_type == "ProductionProcess"

    @pytest.mark.parametrize("quantity", [0, -3])
    def test_non_positive_quantity(self, ledger, quantity):
        with pytest.raises(ValidationError) as exc_info:
            ledger.record_production("gift_set_assembly", quantity, RUN_DATE)
        assert exc_info.value.field == "quantity"


class TestDrawLocation:
    def test_stock_elsewhere_reported_as_material_shortfall(self, ledger, session, receive, qty):
        receive("Soap (Wrapped)", 10, "Shop")
        receive("Soap Boxes", 10, "Shop")
        before = session.execute(select(func.count()).select_from(Movement)).scalar_one()

        with pytest.raises(InsufficientStockError) as exc_info:
            ledger.record_production("soap_boxing", 5, RUN_DATE)

        assert str(exc_info.value) == (
            "Insufficient materials. Required: 5, Available: Soap (Wrapped): 0, Soap Boxes: 0"
        )
        assert {s.location_name for s in exc_info.value.shortfalls} == {"Factory"}
        assert session.execute(select(func.count()).select_from(Movement)).scalar_one() == before
        assert qty("Soap (Wrapped)", "Shop") == Decimal("10")

    def test_split_stock_counts_only_factory(self, ledger, receive):
        receive("Soap (Wrapped)", 3)
        receive("Soap (Wrapped)", 10, "Shop")
        receive("Soap Boxes", 10)

        with pytest.raises(InsufficientStockError) as exc_info:
            ledger.record_production("soap_boxing", 5, RUN_DATE)

        assert str(exc_info.value).endswith("Available: Soap (Wrapped): 3")
        assert ledger.max_producible("soap_boxing") == Decimal("3")

    def test_runs_after_transfer_to_factory(self, ledger, receive, qty, product_id, location_id):
        receive("Soap (Wrapped)", 10, "Shop")
        receive("Soap Boxes", 10)
        ledger.record_transfer(
            product_id("Soap (Wrapped)"), location_id("Shop"), location_id("Factory"), 5, RUN_DATE
        )

        ledger.record_production("soap_boxing", 5, RUN_DATE)

        assert qty("Soap (Ready)", "Factory") == Decimal("5")
        assert qty("Soap (Wrapped)", "Shop") == Decimal("5")


class TestMaxProducible:
    def test_limited_by_scarcest_input(self, ledger, receive):
        for name in GIFT_SET_INPUTS:
            receive(name, 7 if name == "Empty Thermacol" else 20)
        assert ledger.max_producible("gift_set_assembly") == Decimal("7")

    def test_zero_without_stock(self, ledger):
        assert ledger.max_producible("gift_set_assembly") == Decimal("0")

    def test_matches_what_production_accepts(self, ledger, receive):
        for name in GIFT_SET_INPUTS:
            receive(name, 9)
        capacity = ledger.max_producible("gift_set_assembly")

        ledger.record_production("gift_set_assembly", capacity, RUN_DATE)
        with pytest.raises(InsufficientStockError):
            ledger.record_production("gift_set_assembly", 1, RUN_DATE)
