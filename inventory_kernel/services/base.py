"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Common constructor and session-handling contract for every writing
    service in the kernel.  Services receive a SQLAlchemy ``Session`` and use
    ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services.  Every service in ``inventory_kernel/services/`` that
    writes extends this class.

Invariants enforced:
    Services flush within the caller's transaction and never commit or roll
    back.  InventoryLedger (or a test harness) owns the boundary, so a
    header, its items and every stock delta land together or not at all.
"""

from abc import ABC
from decimal import Decimal
from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_kernel.db.base import Base
from inventory_kernel.db.types import to_decimal
from inventory_kernel.exceptions import NotFoundError, ValidationError
from inventory_kernel.models.product import Location, LocationStock, Product

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide read models; those live in
          ``inventory_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session

    # Shared lookups and input checks for the engines

    def _require_positive(self, value, field: str) -> Decimal:
        """Coerce to Decimal and require > 0."""
        try:
            amount = to_decimal(value, field)
        except ValueError as exc:
            raise ValidationError(str(exc), field=field) from exc
        if amount <= 0:
            raise ValidationError(f"{field} must be positive, got {amount}", field=field)
        return amount

    def _get_product(self, product_id: UUID) -> Product:
        product = self.session.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product", str(product_id))
        return product

    def _get_location(self, location_id: UUID) -> Location:
        location = self.session.get(Location, location_id)
        if location is None:
            raise NotFoundError("Location", str(location_id))
        return location

    def _stock_at(self, product_id: UUID, location_id: UUID) -> Decimal:
        """Current quantity of a product at a location (0 when never stocked)."""
        quantity = self.session.execute(
            select(LocationStock.quantity).where(
                LocationStock.product_id == product_id,
                LocationStock.location_id == location_id,
            )
        ).scalar_one_or_none()
        return quantity if quantity is not None else Decimal("0")
