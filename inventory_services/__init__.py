"""Service layer: the InventoryLedger facade that owns transaction boundaries."""

from inventory_services.ledger_orchestrator import InventoryLedger

__all__ = ["InventoryLedger"]
