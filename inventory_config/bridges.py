"""
Config -> Kernel Bridges.

Functions that convert an InventoryConfigurationSet into kernel values.
These live in inventory_config (the producer) because the kernel must
NEVER import inventory_config.

Usage:
    from inventory_config import get_active_config

    config = get_active_config()
    registry = config.bom_registry()
    presets = config.presets()
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

from inventory_config.schema import InventoryConfigurationSet
from inventory_engines.pricing import PresetRule, ProductPreset
from inventory_kernel.domain.bom import BomRegistry, ProcessInput, ProductionProcess
from inventory_kernel.exceptions import ConfigurationError


def build_bom_registry(config: InventoryConfigurationSet) -> BomRegistry:
    """Build the BomRegistry, versioned by the configuration checksum."""
    try:
        processes = [
            ProductionProcess(
                name=p.name,
                label=p.label,
                inputs=tuple(
                    ProcessInput(product_name=i.product, ratio=i.ratio) for i in p.inputs
                ),
                output_product=p.output_product,
                output_ratio=p.output_ratio,
            )
            for p in config.processes
        ]
        return BomRegistry(processes, version=config.checksum)
    except ValueError as exc:
        raise ConfigurationError([str(exc)]) from exc


def build_price_presets(config: InventoryConfigurationSet) -> Mapping[str, ProductPreset]:
    """Build the read-only product-name -> ProductPreset mapping."""
    return MappingProxyType(
        {
            preset.product: ProductPreset(
                product_name=preset.product,
                base_price=preset.base_price,
                rules=tuple(
                    PresetRule(
                        price_key=rule.price,
                        trade_scheme=rule.trade_scheme,
                        discount_percentage=rule.discount_percentage,
                    )
                    for rule in preset.rules
                ),
            )
            for preset in config.price_presets
        }
    )
