"""
Tests for sales.

Covers:
- Stock drops per line at the line's location; one sale movement per item
- Pricing stored on header and items, money rounded to 2 places
- Fail-fast stock check, cumulative for lines on the same pair
- Invoice numbers: format and sequencing
- Credit sales and the customer-ledger collaborator
- Input validation
"""

import re
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from inventory_kernel.domain.dtos import SaleInput, SaleItemInput
from inventory_kernel.exceptions import InsufficientStockError, ValidationError
from inventory_kernel.models.movement import Movement, MovementType
from inventory_kernel.models.transactions import SaleTransaction

SALE_DATE = date(2024, 1, 3)
INVOICE_PATTERN = re.compile(r"^INV-\d{14}-\d{6}$")


@pytest.fixture
def line(product_id, location_id):
    def _line(product, location, quantity, price="100", **kwargs):
        return SaleItemInput(
            product_id=product_id(product),
            location_id=location_id(location),
            quantity=Decimal(str(quantity)),
            price_per_unit=Decimal(price),
            **kwargs,
        )

    return _line


def movement_count(session) -> int:
    return session.execute(select(func.count()).select_from(Movement)).scalar_one()


class TestRecordSale:
    def test_stock_drops_at_line_location(self, ledger, receive, line, qty):
        receive("Gift Set", 30, "Shop")
        receive("Gift Set", 10)

        ledger.record_sale(SaleInput("Retailer A", SALE_DATE, [line("Gift Set", "Shop", 12)]))

        assert qty("Gift Set", "Shop") == Decimal("18")
        assert qty("Gift Set", "Factory") == Decimal("10")
        assert qty("Gift Set") == Decimal("28")

    def test_header_items_and_movements(self, ledger, session, receive, line):
        receive("Gift Set", 200, "Shop")
        receive("Powder", 50, "Shop")

        sale = ledger.record_sale(
            SaleInput(
                buyer_reference="Retailer A",
                sale_date=SALE_DATE,
                contact_no="0300-1234567",
                items=[
                    line("Gift Set", "Shop", 110, "100", trade_scheme="10+1"),
                    line("Powder", "Shop", 10, "20", discount_percentage=Decimal("10")),
                ],
                payment_received=Decimal("5000"),
            )
        )

        assert sale.total_amount == Decimal("11200.00")
        assert sale.final_amount == Decimal("10180.00")
        assert sale.balance_due == Decimal("5180.00")
        assert [i.line_no for i in sale.items] == [1, 2]
        gift_line = sale.items[0]
        assert gift_line.trade_scheme == "10+1"
        assert gift_line.total_price == Decimal("11000.00")
        assert gift_line.final_price == Decimal("10000.00")

        rows = session.execute(
            select(Movement).where(Movement.source_transaction_id == sale.id)
        ).scalars().all()
        assert len(rows) == 2
        assert all(m.movement_type == MovementType.SALE for m in rows)
        assert sorted(m.quantity_change for m in rows) == [Decimal("-110"), Decimal("-10")]
        assert all(m.notes == sale.invoice_number for m in rows)

    def test_money_rounded_to_two_places(self, ledger, receive, line):
        receive("Powder", 10, "Shop")
        sale = ledger.record_sale(
            SaleInput("Retailer A", SALE_DATE, [line("Powder", "Shop", 3, "3.333")])
        )
        assert sale.final_amount == Decimal("10.00")
        assert sale.items[0].price_per_unit == Decimal("3.333")

    def test_bill_discounts(self, ledger, receive, line):
        receive("Powder", 10, "Shop")
        sale = ledger.record_sale(
            SaleInput(
                "Retailer A",
                SALE_DATE,
                [line("Powder", "Shop", 10, "100")],
                bill_discount_amount=Decimal("100"),
                bill_discount_percentage=Decimal("50"),
            )
        )
        assert sale.total_amount == Decimal("1000.00")
        assert sale.final_amount == Decimal("450.00")


class TestStockCheck:
    def test_insufficient_stock_creates_nothing(self, ledger, session, receive, line, qty):
        receive("Gift Set", 30, "Shop")
        before = movement_count(session)

        with pytest.raises(InsufficientStockError) as exc_info:
            ledger.record_sale(SaleInput("Retailer A", SALE_DATE, [line("Gift Set", "Shop", 40)]))

        shortfall = exc_info.value.shortfalls[0]
        assert shortfall.available == Decimal("30")
        assert shortfall.required == Decimal("40")
        assert shortfall.location_name == "Shop"
        assert movement_count(session) == before
        assert qty("Gift Set", "Shop") == Decimal("30")
        assert session.execute(select(func.count()).select_from(SaleTransaction)).scalar_one() == 0

    def test_stock_elsewhere_does_not_count(self, ledger, receive, line):
        receive("Gift Set", 100)
        with pytest.raises(InsufficientStockError):
            ledger.record_sale(SaleInput("Retailer A", SALE_DATE, [line("Gift Set", "Shop", 1)]))

    def test_lines_on_same_pair_are_cumulative(self, ledger, receive, line):
        receive("Gift Set", 30, "Shop")
        with pytest.raises(InsufficientStockError) as exc_info:
            ledger.record_sale(
                SaleInput(
                    "Retailer A",
                    SALE_DATE,
                    [line("Gift Set", "Shop", 20), line("Gift Set", "Shop", 15)],
                )
            )
        assert exc_info.value.shortfalls[0].required == Decimal("35")

    def test_first_violating_line_reported(self, ledger, receive, line):
        receive("Powder", 1, "Shop")
        with pytest.raises(InsufficientStockError) as exc_info:
            ledger.record_sale(
                SaleInput(
                    "Retailer A",
                    SALE_DATE,
                    [line("Powder", "Shop", 5), line("Gift Set", "Shop", 5)],
                )
            )
        assert [s.product_name for s in exc_info.value.shortfalls] == ["Powder"]


class TestInvoiceNumbers:
    def test_format_and_sequence(self, ledger, receive, line, deterministic_clock):
        receive("Powder", 10, "Shop")
        first = ledger.record_sale(SaleInput("A", SALE_DATE, [line("Powder", "Shop", 1)]))
        second = ledger.record_sale(SaleInput("B", SALE_DATE, [line("Powder", "Shop", 1)]))

        assert INVOICE_PATTERN.match(first.invoice_number)
        assert first.invoice_number.endswith("-000001")
        assert second.invoice_number.endswith("-000002")
        assert first.invoice_number[4:18] == deterministic_clock.now().strftime("%Y%m%d%H%M%S")

    def test_failed_sale_does_not_consume_number(self, ledger, receive, line):
        receive("Powder", 1, "Shop")
        with pytest.raises(InsufficientStockError):
            ledger.record_sale(SaleInput("A", SALE_DATE, [line("Powder", "Shop", 2)]))
        sale = ledger.record_sale(SaleInput("A", SALE_DATE, [line("Powder", "Shop", 1)]))
        assert sale.invoice_number.endswith("-000001")


class TestCreditSales:
    def test_credit_sale_notifies_customer_ledger(self, ledger, receive, line, customer_ledger):
        receive("Powder", 10, "Shop")
        sale = ledger.record_sale(
            SaleInput("Retailer A", SALE_DATE, [line("Powder", "Shop", 2, "50")], credit_sale=True)
        )

        kind, call = customer_ledger.calls[-1]
        assert kind == "record_sale"
        assert call["sale_id"] == sale.id
        assert call["credit_sale"] is True
        assert customer_ledger.balance("Retailer A") == Decimal("100.00")

    def test_credit_sale_with_payment_rejected(self, ledger, session, receive, line, customer_ledger):
        receive("Powder", 10, "Shop")
        before = movement_count(session)
        with pytest.raises(ValidationError):
            ledger.record_sale(
                SaleInput(
                    "Retailer A",
                    SALE_DATE,
                    [line("Powder", "Shop", 2)],
                    credit_sale=True,
                    payment_received=Decimal("10"),
                )
            )
        assert movement_count(session) == before
        assert customer_ledger.calls == []


class TestSaleValidation:
    def test_no_items(self, ledger):
        with pytest.raises(ValidationError) as exc_info:
            ledger.record_sale(SaleInput("Retailer A", SALE_DATE, []))
        assert exc_info.value.field == "items"

    def test_blank_buyer(self, ledger, receive, line):
        receive("Powder", 1, "Shop")
        with pytest.raises(ValidationError) as exc_info:
            ledger.record_sale(SaleInput("  ", SALE_DATE, [line("Powder", "Shop", 1)]))
        assert exc_info.value.field == "buyer_reference"

    def test_non_positive_quantity(self, ledger, line):
        with pytest.raises(ValidationError) as exc_info:
            ledger.record_sale(SaleInput("A", SALE_DATE, [line("Powder", "Shop", 0)]))
        assert exc_info.value.field == "items[0].quantity"

    def test_bad_discount_names_the_line(self, ledger, receive, line):
        receive("Powder", 5, "Shop")
        with pytest.raises(ValidationError) as exc_info:
            ledger.record_sale(
                SaleInput(
                    "A",
                    SALE_DATE,
                    [
                        line("Powder", "Shop", 1),
                        line("Powder", "Shop", 1, discount_percentage=Decimal("-5")),
                    ],
                )
            )
        assert exc_info.value.field == "items[1].discount_percentage"

    @pytest.mark.parametrize("bad", [Decimal("NaN"), Decimal("Infinity")])
    def test_non_finite_price(self, ledger, session, receive, line, bad):
        receive("Powder", 5, "Shop")
        before = movement_count(session)
        with pytest.raises(ValidationError) as exc_info:
            ledger.record_sale(SaleInput("A", SALE_DATE, [line("Powder", "Shop", 1, price=bad)]))
        assert exc_info.value.field == "items[0].unit_price"
        assert movement_count(session) == before

    def test_non_finite_quantity(self, ledger, line):
        with pytest.raises(ValidationError) as exc_info:
            ledger.record_sale(SaleInput("A", SALE_DATE, [line("Powder", "Shop", "NaN")]))
        assert exc_info.value.field == "items[0].quantity"

    def test_percentage_above_hundred_gives_free_line(self, ledger, receive, line, qty):
        receive("Powder", 5, "Shop")
        sale = ledger.record_sale(
            SaleInput(
                "A",
                SALE_DATE,
                [line("Powder", "Shop", 2, "40", discount_percentage=Decimal("150"))],
            )
        )
        assert sale.items[0].final_price == Decimal("0.00")
        assert sale.final_amount == Decimal("0.00")
        assert qty("Powder", "Shop") == Decimal("3")
