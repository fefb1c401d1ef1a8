"""
inventory_config -- single public entrypoint for inventory configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a validated, frozen
    ``InventoryConfigurationSet`` holding the locations, products,
    production processes, price presets and ledger settings.  YAML loading
    is internal tooling and never exposed to callers.

Architecture position:
    Configuration -- YAML-driven, validated on load.  This package sits
    above ``inventory_kernel`` and below ``inventory_services``.  The
    kernel MUST NEVER import from ``inventory_config``; bridges in this
    package translate configuration into kernel values (BomRegistry,
    price presets).

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - A set that fails validation is never returned.
    - Deterministic identity: the same YAML fragments always produce the
      same checksum, which is also the BomRegistry version.

Failure modes:
    - ``FileNotFoundError`` -- no such configuration set.
    - ``ConfigurationError`` -- validation failures (all errors listed).

Audit relevance:
    Every successful ``get_active_config()`` call emits an
    ``INVENTORY_CONFIG_TRACE`` log entry with the config_id, version and
    checksum.  Production records carry the same checksum, tying each one
    back to the bill of materials that governed it.
"""

from __future__ import annotations

from pathlib import Path

from inventory_config.loader import load_configuration_set
from inventory_config.schema import InventoryConfigurationSet
from inventory_config.validator import validate_configuration
from inventory_kernel.exceptions import ConfigurationError
from inventory_kernel.logging_config import get_logger

_logger = get_logger("config")

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"

DEFAULT_SET = "default"


def get_active_config(
    config_dir: Path | None = None,
    set_name: str = DEFAULT_SET,
) -> InventoryConfigurationSet:
    """The ONLY public configuration entrypoint.

    Guarantees:
        - The returned set has passed validation.
        - An ``INVENTORY_CONFIG_TRACE`` log entry is emitted on every
          successful call.

    Non-goals:
        - Does NOT cache across calls; callers hold the returned set.

    Args:
        config_dir: Override path to the configuration sets directory.
            Defaults to inventory_config/sets/.
        set_name: Subdirectory holding the set's root.yaml.

    Raises:
        FileNotFoundError: If the directory or its root.yaml is missing.
        ConfigurationError: If validation fails.
    """
    sets_dir = Path(config_dir) if config_dir is not None else _DEFAULT_CONFIG_DIR
    set_dir = sets_dir / set_name
    if not (set_dir / "root.yaml").exists():
        raise FileNotFoundError(f"Configuration set not found: {set_dir}")

    try:
        config = load_configuration_set(set_dir)
    except (KeyError, ValueError) as exc:
        raise ConfigurationError([f"{set_dir}: {exc}"]) from exc

    validation = validate_configuration(config)
    for warning in validation.warnings:
        _logger.warning("config_validation_warning", extra={"detail": warning})
    if not validation.is_valid:
        raise ConfigurationError(validation.errors)

    _logger.info(
        "INVENTORY_CONFIG_TRACE",
        extra={
            "trace_type": "INVENTORY_CONFIG_TRACE",
            "config_set_id": config.config_id,
            "config_set_version": config.version,
            "checksum": config.checksum,
            "location_count": len(config.locations),
            "product_count": len(config.products),
            "process_count": len(config.processes),
        },
    )
    return config


__all__ = [
    "InventoryConfigurationSet",
    "get_active_config",
]
