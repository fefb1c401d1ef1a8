"""
Configuration Loader (``inventory_config.loader``).

Responsibility
--------------
Loads the YAML fragment files of a configuration set and parses them into
typed ``inventory_config.schema`` dataclass instances.  This is
**build/test tooling only** -- the single public entry point for runtime
config is ``inventory_config.get_active_config()``.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required fields.
* Numbers are read through ``str`` into ``Decimal``.  NEVER float.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing root.yaml  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from inventory_config.schema import (
    InventoryConfigurationSet,
    LedgerSettings,
    LocationDef,
    PresetRuleDef,
    PricePresetDef,
    ProcessDef,
    ProcessInputDef,
    ProductDef,
)

# Fragment files read besides root.yaml, in a fixed order.
FRAGMENT_FILES = (
    "ledger.yaml",
    "locations.yaml",
    "products.yaml",
    "processes.yaml",
    "price_presets.yaml",
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, field: str) -> Decimal:
    """Parse a YAML scalar into Decimal via its text form."""
    if isinstance(value, bool):
        raise ValueError(f"{field}: expected a number, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{field}: expected a number, got {value!r}") from exc


def parse_ledger(data: dict[str, Any]) -> LedgerSettings:
    return LedgerSettings(
        default_location=data["default_location"],
        invoice_prefix=data.get("invoice_prefix", "INV"),
        carton_size=int(data.get("carton_size", 24)),
    )


def parse_location(data: dict[str, Any]) -> LocationDef:
    return LocationDef(name=data["name"], address=data.get("address"))


def parse_product(data: dict[str, Any]) -> ProductDef:
    min_stock = data.get("min_stock")
    return ProductDef(
        name=data["name"],
        stage=data["stage"],
        min_stock=parse_decimal(min_stock, f"{data['name']}.min_stock")
        if min_stock is not None
        else None,
    )


def parse_process(data: dict[str, Any]) -> ProcessDef:
    """
    Parse a ``ProcessDef`` from a dict.

    Expected shape::

        name: gift_set_assembly
        label: Gift Set Assembly
        inputs: [{product: Powder, ratio: 1}, ...]
        output: {product: Gift Set, ratio: 1}
    """
    name = data["name"]
    output = data["output"]
    return ProcessDef(
        name=name,
        label=data.get("label", name),
        inputs=tuple(
            ProcessInputDef(
                product=item["product"],
                ratio=parse_decimal(item.get("ratio", 1), f"{name}.inputs.ratio"),
            )
            for item in data.get("inputs", [])
        ),
        output_product=output["product"],
        output_ratio=parse_decimal(output.get("ratio", 1), f"{name}.output.ratio"),
    )


def parse_price_preset(data: dict[str, Any]) -> PricePresetDef:
    product = data["product"]
    return PricePresetDef(
        product=product,
        base_price=parse_decimal(data["base_price"], f"{product}.base_price"),
        rules=tuple(
            PresetRuleDef(
                price=str(rule["price"]),
                trade_scheme=str(rule["trade_scheme"]),
                discount_percentage=parse_decimal(
                    rule.get("discount_percentage", 0),
                    f"{product}.discount_percentage",
                ),
            )
            for rule in data.get("rules", [])
        ),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def load_configuration_set(set_dir: Path) -> InventoryConfigurationSet:
    """
    Read root.yaml plus every fragment present in ``set_dir`` and build the
    configuration set.  Absent fragments contribute nothing.
    """
    root = load_yaml_file(set_dir / "root.yaml")

    raw: dict[str, Any] = {"root": root}
    for filename in FRAGMENT_FILES:
        path = set_dir / filename
        if path.exists():
            raw.update(load_yaml_file(path))

    ledger_data = raw.get("ledger")
    if not ledger_data:
        raise KeyError(f"Configuration set {set_dir} declares no ledger settings")

    return InventoryConfigurationSet(
        config_id=root.get("config_id", set_dir.name),
        version=int(root.get("version", 1)),
        name=root.get("name", ""),
        ledger=parse_ledger(ledger_data),
        locations=tuple(parse_location(d) for d in raw.get("locations", [])),
        products=tuple(parse_product(d) for d in raw.get("products", [])),
        processes=tuple(parse_process(d) for d in raw.get("processes", [])),
        price_presets=tuple(parse_price_preset(d) for d in raw.get("price_presets", [])),
        checksum=compute_checksum(raw),
    )
