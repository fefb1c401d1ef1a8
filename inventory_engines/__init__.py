"""
Pure calculation engines for the inventory ledger.

Engines take plain values and return frozen results.  They never touch the
database or the clock; pricing calls are traced through ``@traced_engine``.
"""

from inventory_engines.cartons import (
    DEFAULT_CARTON_SIZE,
    carton_breakdown,
    cartons_to_pieces,
    format_carton_quantity,
    pieces_to_cartons,
)
from inventory_engines.pricing import (
    BillTotals,
    ItemPrice,
    PresetRule,
    PriceRule,
    ProductPreset,
    bill_totals,
    find_price_rule,
    item_price,
    parse_trade_scheme,
    trade_scheme_free_units,
)
from inventory_engines.tracer import traced_engine

__all__ = [
    "BillTotals",
    "ItemPrice",
    "PresetRule",
    "PriceRule",
    "ProductPreset",
    "bill_totals",
    "find_price_rule",
    "item_price",
    "parse_trade_scheme",
    "trade_scheme_free_units",
    "DEFAULT_CARTON_SIZE",
    "carton_breakdown",
    "cartons_to_pieces",
    "format_carton_quantity",
    "pieces_to_cartons",
    "traced_engine",
]
