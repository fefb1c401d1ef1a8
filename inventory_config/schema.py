"""
InventoryConfigurationSet schema.

Defines the human-authored, reviewable configuration artifact for the
inventory ledger.  YAML fragments are parsed into these types by the loader,
checked by the validator, and bridged into kernel values (BomRegistry,
price presets) on demand.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from inventory_engines.pricing import ProductPreset
    from inventory_kernel.domain.bom import BomRegistry

# ---------------------------------------------------------------------------
# Ledger settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerSettings:
    """Settings that govern how the ledger books movements."""

    default_location: str
    invoice_prefix: str = "INV"
    carton_size: int = 24


# ---------------------------------------------------------------------------
# Master data
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LocationDef:
    name: str
    address: str | None = None


@dataclass(frozen=True)
class ProductDef:
    name: str
    stage: str
    min_stock: Decimal | None = None


# ---------------------------------------------------------------------------
# Bill of materials
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProcessInputDef:
    product: str
    ratio: Decimal = Decimal("1")


@dataclass(frozen=True)
class ProcessDef:
    """One production process as declared in processes.yaml."""

    name: str
    label: str
    inputs: tuple[ProcessInputDef, ...]
    output_product: str
    output_ratio: Decimal = Decimal("1")


# ---------------------------------------------------------------------------
# Price presets
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PresetRuleDef:
    price: str  # matched as text against the entered unit price
    trade_scheme: str
    discount_percentage: Decimal


@dataclass(frozen=True)
class PricePresetDef:
    product: str
    base_price: Decimal
    rules: tuple[PresetRuleDef, ...] = ()


# ---------------------------------------------------------------------------
# Root configuration set
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InventoryConfigurationSet:
    """
    The complete inventory configuration.

    ``checksum`` is the SHA-256 of the canonical source fragments; it is
    also the version of the BomRegistry built from this set, so every
    production record names the configuration it was recorded under.
    """

    config_id: str
    version: int
    ledger: LedgerSettings
    locations: tuple[LocationDef, ...] = ()
    products: tuple[ProductDef, ...] = ()
    processes: tuple[ProcessDef, ...] = ()
    price_presets: tuple[PricePresetDef, ...] = ()
    name: str = ""
    checksum: str = ""

    def product(self, name: str) -> ProductDef | None:
        for product in self.products:
            if product.name == name:
                return product
        return None

    def bom_registry(self) -> BomRegistry:
        from inventory_config.bridges import build_bom_registry

        return build_bom_registry(self)

    def presets(self) -> Mapping[str, ProductPreset]:
        from inventory_config.bridges import build_price_presets

        return build_price_presets(self)
