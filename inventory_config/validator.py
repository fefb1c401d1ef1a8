"""
Configuration Validator (``inventory_config.validator``).

Responsibility
--------------
Validates an ``InventoryConfigurationSet`` before it is handed out,
ensuring the master data and bill of materials are structurally sound.

Invariants enforced
-------------------
* Location, product and process names are unique.
* The default location is one of the declared locations.
* Every process input and output names a declared product, every ratio is
  positive, and no process lists an input twice or consumes its own output.
* Product stages are known; carton size is positive.
* Every price preset names a declared product and has unique price keys.

Failure modes
-------------
* Validation errors (``ConfigValidationResult.errors``)  -> the
  configuration MUST NOT be used.
* Validation warnings  -> usable, but should be reviewed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

from inventory_config.schema import InventoryConfigurationSet
from inventory_engines.pricing import parse_trade_scheme
from inventory_kernel.models.product import ProductStage


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    ``is_valid`` returns ``True`` only when ``errors`` is empty.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_configuration(config: InventoryConfigurationSet) -> ConfigValidationResult:
    """Run every check and collect the findings."""
    result = ConfigValidationResult()

    _validate_unique_names(config, result)
    _validate_ledger(config, result)
    _validate_products(config, result)
    _validate_processes(config, result)
    _validate_price_presets(config, result)

    return result


def _duplicates(names: list[str]) -> set[str]:
    seen: set[str] = set()
    dupes: set[str] = set()
    for name in names:
        if name in seen:
            dupes.add(name)
        seen.add(name)
    return dupes


def _validate_unique_names(
    config: InventoryConfigurationSet, result: ConfigValidationResult
) -> None:
    for kind, names in (
        ("location", [loc.name for loc in config.locations]),
        ("product", [p.name for p in config.products]),
        ("process", [p.name for p in config.processes]),
        ("price preset", [p.product for p in config.price_presets]),
    ):
        for name in sorted(_duplicates(names)):
            result.add_error(f"Duplicate {kind}: {name} appears more than once")


def _validate_ledger(
    config: InventoryConfigurationSet, result: ConfigValidationResult
) -> None:
    location_names = {loc.name for loc in config.locations}
    if config.ledger.default_location not in location_names:
        result.add_error(
            f"Default location '{config.ledger.default_location}' is not a declared location"
        )
    if config.ledger.carton_size <= 0:
        result.add_error(
            f"Carton size must be positive, got {config.ledger.carton_size}"
        )
    if not config.ledger.invoice_prefix:
        result.add_error("Invoice prefix must not be empty")


def _validate_products(
    config: InventoryConfigurationSet, result: ConfigValidationResult
) -> None:
    stages = {s.value for s in ProductStage}
    for product in config.products:
        if product.stage not in stages:
            result.add_error(
                f"Product '{product.name}' has unknown stage '{product.stage}'"
            )
        if product.min_stock is not None and product.min_stock < 0:
            result.add_error(f"Product '{product.name}' has negative min_stock")


def _validate_processes(
    config: InventoryConfigurationSet, result: ConfigValidationResult
) -> None:
    product_names = {p.name for p in config.products}
    used: set[str] = set()
    for process in config.processes:
        if not process.inputs:
            result.add_error(f"Process '{process.name}' has no inputs")

        input_names = [i.product for i in process.inputs]
        for name in sorted(_duplicates(input_names)):
            result.add_error(f"Process '{process.name}' lists input '{name}' more than once")

        for item in process.inputs:
            used.add(item.product)
            if item.product not in product_names:
                result.add_error(
                    f"Process '{process.name}' input '{item.product}' is not a declared product"
                )
            if item.ratio <= 0:
                result.add_error(
                    f"Process '{process.name}' input '{item.product}' has non-positive ratio"
                )

        used.add(process.output_product)
        if process.output_product not in product_names:
            result.add_error(
                f"Process '{process.name}' output '{process.output_product}' "
                "is not a declared product"
            )
        if process.output_product in input_names:
            result.add_error(f"Process '{process.name}' consumes its own output")
        if process.output_ratio <= 0:
            result.add_error(f"Process '{process.name}' has non-positive output ratio")

    for product in config.products:
        if product.stage == ProductStage.INTERMEDIATE.value and product.name not in used:
            result.add_warning(
                f"Intermediate product '{product.name}' is not used by any process"
            )


def _validate_price_presets(
    config: InventoryConfigurationSet, result: ConfigValidationResult
) -> None:
    product_names = {p.name for p in config.products}
    for preset in config.price_presets:
        if preset.product not in product_names:
            result.add_error(
                f"Price preset for '{preset.product}' does not name a declared product"
            )
        if preset.base_price < 0:
            result.add_error(f"Price preset for '{preset.product}' has negative base price")

        for key in sorted(_duplicates([r.price for r in preset.rules])):
            result.add_error(f"Price preset for '{preset.product}' repeats price '{key}'")

        for rule in preset.rules:
            try:
                Decimal(rule.price)
            except InvalidOperation:
                result.add_error(
                    f"Price preset for '{preset.product}' has non-numeric price '{rule.price}'"
                )
            if parse_trade_scheme(rule.trade_scheme) is None:
                result.add_error(
                    f"Price preset for '{preset.product}' at {rule.price}: "
                    f"trade scheme '{rule.trade_scheme}' is not buy+free"
                )
            if not 0 <= rule.discount_percentage <= 100:
                result.add_error(
                    f"Price preset for '{preset.product}' at {rule.price}: "
                    "discount percentage outside 0..100"
                )
