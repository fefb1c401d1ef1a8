"""
Tests for catalog registration.

Registration is idempotent by name and never touches stock.
"""

from decimal import Decimal

import pytest

from inventory_kernel.exceptions import ValidationError
from inventory_kernel.models.product import ProductStage


class TestCatalogSync:
    def test_configured_catalog_registered(self, ledger, config):
        report = {p.product_name: p for p in ledger.stock_report()}
        assert set(report) == {p.name for p in config.products}
        assert all(p.quantity == 0 for p in report.values())
        for name in ("Factory", "Camp Office", "Shop", "Warehouse"):
            ledger.location_id(name)

    def test_sync_is_idempotent_and_keeps_stock(self, ledger, receive, qty):
        receive("Powder", 12)
        ledger.sync_catalog()
        assert qty("Powder") == Decimal("12")
        assert len(ledger.stock_report()) == len({p.product_name for p in ledger.stock_report()})


class TestRegisterProduct:
    def test_new_product(self, ledger, captured_logs):
        product = ledger.register_product("Face Wash", ProductStage.READY, min_stock=30)

        assert product.quantity == 0
        assert product.stage == ProductStage.READY
        assert product.min_stock == Decimal("30")
        assert ledger.product_id("Face Wash") == product.id
        assert any(r["message"] == "product_registered" for r in captured_logs())

    def test_existing_name_updates_descriptive_fields(self, ledger, receive, qty):
        receive("Powder", 5)
        before = ledger.product_id("Powder")

        product = ledger.register_product("Powder", "finished", min_stock="10")

        assert product.id == before
        assert product.stage == ProductStage.FINISHED
        assert product.min_stock == Decimal("10")
        assert qty("Powder") == Decimal("5")

    def test_name_is_trimmed(self, ledger):
        product = ledger.register_product("  Toothpaste ")
        assert product.name == "Toothpaste"
        assert product.stage == ProductStage.RAW

    @pytest.mark.parametrize(
        "kwargs,field",
        [
            ({"name": ""}, "name"),
            ({"name": "X", "stage": "packed"}, "stage"),
            ({"name": "X", "min_stock": -1}, "min_stock"),
            ({"name": "X", "min_stock": "lots"}, "min_stock"),
        ],
    )
    def test_invalid(self, ledger, kwargs, field):
        with pytest.raises(ValidationError) as exc_info:
            ledger.register_product(**kwargs)
        assert exc_info.value.field == field


class TestRegisterLocation:
    def test_new_and_repeat(self, ledger):
        first = ledger.register_location("Depot", address="Main Road")
        again = ledger.register_location("Depot")

        assert again.id == first.id
        assert again.address == "Main Road"

    def test_address_updated(self, ledger):
        ledger.register_location("Depot", address="Main Road")
        updated = ledger.register_location("Depot", address="Ring Road")
        assert updated.address == "Ring Road"

    def test_blank_name(self, ledger):
        with pytest.raises(ValidationError):
            ledger.register_location("   ")
