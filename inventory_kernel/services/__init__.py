"""Kernel services: the writing side of the ledger (flush only, never commit)."""

from inventory_kernel.services.catalog_service import CatalogService
from inventory_kernel.services.movement_recorder import MovementRecorder
from inventory_kernel.services.production_service import ProductionService
from inventory_kernel.services.purchase_service import PurchaseService
from inventory_kernel.services.reversal_service import ReversalService
from inventory_kernel.services.sale_service import SaleService
from inventory_kernel.services.sequence_service import (
    InvoiceNumberGenerator,
    SequenceService,
)
from inventory_kernel.services.transfer_service import TransferService
from inventory_kernel.services.wastage_service import WastageService

__all__ = [
    "CatalogService",
    "InvoiceNumberGenerator",
    "MovementRecorder",
    "ProductionService",
    "PurchaseService",
    "ReversalService",
    "SaleService",
    "SequenceService",
    "TransferService",
    "WastageService",
]
