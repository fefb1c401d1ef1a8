"""
inventory_engines.pricing -- Layered sale pricing: trade schemes and discounts.

Responsibility:
    Price one sale line (trade scheme rebate, then fixed discount, then
    percentage discount) and total a bill (sum of lines, then bill-level
    fixed discount, then bill-level percentage).  Resolve configured price
    presets for a product at an entered unit price.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May import inventory_kernel.exceptions and inventory_kernel.db.types
    (Decimal coercion) only.  Consumed by SaleService.

Invariants enforced:
    - Discount order is fixed: scheme -> fixed amount -> percentage.
    - Results are clamped at zero; a discount can never make a price negative.
    - No rounding.  Callers persist money through round_money().
    - A credit sale carries no payment.

Failure modes:
    - ValidationError for negative or non-finite quantity, price, discount
      or payment, and for a credit sale with a payment.

Audit relevance:
    Every call is traced via ``@traced_engine``; the input fingerprint lets
    a stored sale line be re-priced and compared.

Usage:
    from decimal import Decimal
    from inventory_engines.pricing import item_price

    price = item_price(Decimal("110"), Decimal("100"), scheme="10+1")
    price.free_units        # Decimal("10")
    price.after_scheme      # Decimal("10000")
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from inventory_engines.tracer import traced_engine
from inventory_kernel.db.types import to_decimal
from inventory_kernel.exceptions import ValidationError
from inventory_kernel.logging_config import get_logger

logger = get_logger("engines.pricing")

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def _amount(value: Any, field: str) -> Decimal:
    try:
        amount = to_decimal(value, field)
    except ValueError as exc:
        raise ValidationError(str(exc), field=field) from exc
    if amount < ZERO:
        raise ValidationError(f"{field} cannot be negative, got {amount}", field=field)
    return amount


def _apply_discounts(amount: Decimal, discount_amount: Decimal, discount_percentage: Decimal) -> tuple[Decimal, Decimal]:
    after_amount = max(ZERO, amount - discount_amount)
    final = max(ZERO, after_amount * (1 - discount_percentage / HUNDRED))
    return after_amount, final


def parse_trade_scheme(scheme: str | None) -> tuple[int, int] | None:
    """
    Parse "buy+free" into (buy, free).

    Returns None for an empty, malformed or non-positive scheme.
    """
    if not scheme:
        return None
    parts = scheme.split("+")
    if len(parts) != 2:
        return None
    try:
        buy, free = int(parts[0].strip()), int(parts[1].strip())
    except ValueError:
        return None
    if buy <= 0 or free <= 0:
        return None
    return buy, free


def trade_scheme_free_units(quantity: Decimal, scheme: str | None) -> Decimal:
    """
    Free units earned under a "buy+free" scheme.

    The rebate is proportional, free * quantity / (buy + free), so a partial
    batch still earns its share.  An unparseable scheme earns nothing.
    """
    parsed = parse_trade_scheme(scheme)
    if parsed is None:
        return ZERO
    buy, free = parsed
    return Decimal(free) * quantity / Decimal(buy + free)


@dataclass(frozen=True)
class ItemPrice:
    """Price breakdown of one sale line."""

    quantity: Decimal
    unit_price: Decimal
    free_units: Decimal
    total: Decimal
    after_scheme: Decimal
    after_amount: Decimal
    final: Decimal

    @property
    def scheme_discount(self) -> Decimal:
        return self.total - self.after_scheme

    @property
    def net_rate(self) -> Decimal:
        """Final price per unit."""
        if self.quantity == ZERO:
            return ZERO
        return self.final / self.quantity


@traced_engine(
    "pricing.item",
    "1.0",
    fingerprint_fields=("quantity", "unit_price", "scheme", "discount_percentage", "discount_amount"),
)
def item_price(
    quantity: Decimal,
    unit_price: Decimal,
    scheme: str | None = None,
    discount_percentage: Decimal = ZERO,
    discount_amount: Decimal = ZERO,
) -> ItemPrice:
    """
    Price one sale line.

    Formula:
        total        = quantity * unit_price
        after_scheme = total - free_units * unit_price
        after_amount = max(0, after_scheme - discount_amount)
        final        = max(0, after_amount * (1 - discount_percentage / 100))

    Raises:
        ValidationError: On negative or non-finite inputs.  A percentage
            above 100 is accepted; the final price clamps at zero.
    """
    quantity = _amount(quantity, "quantity")
    unit_price = _amount(unit_price, "unit_price")
    discount_amount = _amount(discount_amount, "discount_amount")
    discount_percentage = _amount(discount_percentage, "discount_percentage")

    total = quantity * unit_price
    free_units = trade_scheme_free_units(quantity, scheme)
    after_scheme = total - free_units * unit_price
    after_amount, final = _apply_discounts(after_scheme, discount_amount, discount_percentage)

    return ItemPrice(
        quantity=quantity,
        unit_price=unit_price,
        free_units=free_units,
        total=total,
        after_scheme=after_scheme,
        after_amount=after_amount,
        final=final,
    )


@dataclass(frozen=True)
class BillTotals:
    """Totals of a whole sale."""

    total_amount: Decimal
    items_final: Decimal
    after_amount: Decimal
    final_amount: Decimal
    payment_received: Decimal
    credit_sale: bool

    @property
    def balance_due(self) -> Decimal:
        return self.final_amount - self.payment_received


@traced_engine(
    "pricing.bill",
    "1.0",
    fingerprint_fields=("items", "bill_discount_amount", "bill_discount_percentage", "credit_sale", "payment_received"),
)
def bill_totals(
    items: Sequence[ItemPrice],
    bill_discount_amount: Decimal = ZERO,
    bill_discount_percentage: Decimal = ZERO,
    credit_sale: bool = False,
    payment_received: Decimal = ZERO,
) -> BillTotals:
    """
    Total a bill from its priced lines.

    total_amount is the sum of line totals (before any discount).  The bill
    fixed discount and then the bill percentage apply to the sum of line
    finals, clamped at zero.

    Raises:
        ValidationError: On negative inputs or a credit sale with a payment.
    """
    bill_discount_amount = _amount(bill_discount_amount, "bill_discount_amount")
    bill_discount_percentage = _amount(bill_discount_percentage, "bill_discount_percentage")
    payment_received = _amount(payment_received, "payment_received")

    if credit_sale and payment_received != ZERO:
        raise ValidationError(
            f"A credit sale cannot carry a payment (payment_received={payment_received})",
            field="payment_received",
        )

    total_amount = sum((i.total for i in items), ZERO)
    items_final = sum((i.final for i in items), ZERO)
    after_amount, final_amount = _apply_discounts(
        items_final, bill_discount_amount, bill_discount_percentage
    )

    return BillTotals(
        total_amount=total_amount,
        items_final=items_final,
        after_amount=after_amount,
        final_amount=final_amount,
        payment_received=payment_received,
        credit_sale=credit_sale,
    )


# Price presets


@dataclass(frozen=True)
class PresetRule:
    """Scheme and discount configured for one entered unit price."""

    price_key: str
    trade_scheme: str
    discount_percentage: Decimal


@dataclass(frozen=True)
class ProductPreset:
    product_name: str
    base_price: Decimal
    rules: tuple[PresetRule, ...] = ()

    def rule_for_key(self, key: str) -> PresetRule | None:
        for rule in self.rules:
            if rule.price_key == key:
                return rule
        return None


@dataclass(frozen=True)
class PriceRule:
    """A resolved preset: what to pre-fill on a sale line."""

    trade_scheme: str
    discount_percentage: Decimal
    base_price: Decimal
    price_key: str


def _price_keys(entered_price: Decimal) -> list[str]:
    exact = format(entered_price.normalize(), "f")
    fixed = str(entered_price.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
    return [exact] if exact == fixed else [exact, fixed]


def find_price_rule(
    presets: Mapping[str, ProductPreset],
    product_name: str,
    entered_price: Decimal | int | str,
) -> PriceRule | None:
    """
    Look up the preset rule for a product at an entered unit price.

    The price is matched by its plain form first ("265"), then by its
    two-decimal form ("265.00").  Returns None when the product has no
    preset or no rule matches.
    """
    preset = presets.get(product_name)
    if preset is None:
        return None

    price = _amount(entered_price, "entered_price")
    for key in _price_keys(price):
        rule = preset.rule_for_key(key)
        if rule is not None:
            logger.debug(
                "price_rule_matched",
                extra={"product_name": product_name, "price_key": key},
            )
            return PriceRule(
                trade_scheme=rule.trade_scheme,
                discount_percentage=rule.discount_percentage,
                base_price=preset.base_price,
                price_key=key,
            )
    return None
