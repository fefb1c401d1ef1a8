"""
Module: inventory_kernel.db.types
Responsibility: Annotated column type aliases and the rounding helpers shared
    by every model and service.
Architecture position: Kernel > DB.  MUST NOT import from models/, domain/,
    services/, or selectors/.

Invariants enforced:
    - No floats.  Quantities and money are Decimal with explicit precision.
    - round_money() is the ONLY sanctioned rounding function for stored
      money values; pricing engines never round.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated, Any

from sqlalchemy import Numeric, String

# 38 digits total, 9 decimal places
Money = Annotated[Decimal, Numeric(38, 9)]

Quantity = Annotated[Decimal, Numeric(38, 9)]

ShortCode = Annotated[str, String(50)]

LongText = Annotated[str, String(4000)]

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    Preconditions: value is a Decimal.
    Postconditions: Returns value quantized with the given rounding mode.
    """
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def to_decimal(value: Any, field: str = "value") -> Decimal:
    """
    Coerce int / str / Decimal input to Decimal.

    Floats are refused: binary floating point cannot represent most decimal
    quantities exactly.

    Raises:
        ValueError: on float input, a string that is not a number, or a
            non-finite value (NaN, Infinity).
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, str)) and not isinstance(value, bool):
        try:
            result = Decimal(value)
        except InvalidOperation as exc:
            raise ValueError(f"{field} is not a number: {value!r}") from exc
    else:
        raise ValueError(f"{field} must be a Decimal, int or numeric string, got {value!r}")
    if not result.is_finite():
        raise ValueError(f"{field} must be finite, got {value!r}")
    return result
