"""
inventory_engines.cartons -- Carton / piece conversions for packed goods.

Finished goods ship in cartons of a fixed number of pieces (24 gift sets per
carton in the default configuration).  Stock is always kept in pieces; these
helpers convert for display and data entry.
"""

from __future__ import annotations

from decimal import Decimal

from inventory_kernel.exceptions import ValidationError

DEFAULT_CARTON_SIZE = 24


def _check_size(carton_size: int) -> None:
    if carton_size <= 0:
        raise ValidationError(
            f"carton_size must be positive, got {carton_size}", field="carton_size"
        )


def cartons_to_pieces(cartons: Decimal, carton_size: int = DEFAULT_CARTON_SIZE) -> Decimal:
    _check_size(carton_size)
    return cartons * carton_size


def pieces_to_cartons(pieces: Decimal, carton_size: int = DEFAULT_CARTON_SIZE) -> Decimal:
    """Fractional carton count, e.g. 36 pieces -> 1.5 cartons."""
    _check_size(carton_size)
    return pieces / carton_size


def carton_breakdown(pieces: Decimal, carton_size: int = DEFAULT_CARTON_SIZE) -> tuple[Decimal, Decimal]:
    """Split a piece count into (full cartons, loose pieces)."""
    _check_size(carton_size)
    cartons, loose = divmod(pieces, Decimal(carton_size))
    return cartons, loose


def format_carton_quantity(pieces: Decimal, carton_size: int = DEFAULT_CARTON_SIZE) -> str:
    """Render a piece count as "N ctn + M pcs"."""
    cartons, loose = carton_breakdown(pieces, carton_size)
    return f"{cartons:f} ctn + {loose.normalize():f} pcs"
