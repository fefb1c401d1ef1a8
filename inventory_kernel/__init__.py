"""
Inventory Kernel - stock ledger and transaction engine.

An append-only inventory ledger with:
- Per-location and aggregate stock kept consistent by a single recorder
- Atomic purchase, production, transfer, sale and wastage transactions
- BOM-driven production
- Exact reversal by compensating movements plus a void flag
"""

__version__ = "0.1.0"
