"""ORM models for the inventory ledger."""

from inventory_kernel.models.movement import Movement, MovementType
from inventory_kernel.models.product import (
    Location,
    LocationStock,
    Product,
    ProductStage,
)
from inventory_kernel.models.sequence import SequenceCounter
from inventory_kernel.models.transactions import (
    TRANSACTION_MODELS,
    ProductionRecord,
    PurchaseRecord,
    SaleItem,
    SaleTransaction,
    Transfer,
    VoidableMixin,
    WastageRecord,
)

__all__ = [
    "Product",
    "ProductStage",
    "Location",
    "LocationStock",
    "Movement",
    "MovementType",
    "SaleTransaction",
    "SaleItem",
    "Transfer",
    "PurchaseRecord",
    "WastageRecord",
    "ProductionRecord",
    "VoidableMixin",
    "TRANSACTION_MODELS",
    "SequenceCounter",
]
