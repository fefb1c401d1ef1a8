"""
BOM -- production processes and the registry that holds them.

Responsibility:
    Describes every production process as a bill of materials: the input
    products (by name) consumed per unit produced and the output product
    yielded.  The BomRegistry is an immutable value built once from
    configuration and injected wherever BOM lookups are needed.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Built by inventory_config (YAML), consumed by ProductionService,
    MovementHistorySelector and StockSelector.

Invariants enforced:
    - Every ratio is strictly positive; a process has at least one input.
    - A registry never changes after construction; its ``version`` names
      the configuration it was built from, and production records store it.

Failure modes:
    - ValueError on a malformed process definition.
    - NotFoundError from ``BomRegistry.get()`` for an unknown process.
"""

from dataclasses import dataclass
from decimal import Decimal
from types import MappingProxyType
from typing import Iterator, Mapping

from inventory_kernel.exceptions import NotFoundError


@dataclass(frozen=True)
class ProcessInput:
    """One input line of a process: product name and units per unit produced."""

    product_name: str
    ratio: Decimal = Decimal("1")

    def __post_init__(self) -> None:
        if not self.product_name:
            raise ValueError("ProcessInput requires a product name")
        if self.ratio <= 0:
            raise ValueError(
                f"Input ratio for {self.product_name} must be positive, got {self.ratio}"
            )


@dataclass(frozen=True)
class ProductionProcess:
    """
    A named transformation of input products into one output product.

    Guarantees:
        ``inputs`` is a tuple (immutable) and non-empty.
    """

    name: str
    label: str
    inputs: tuple[ProcessInput, ...]
    output_product: str
    output_ratio: Decimal = Decimal("1")

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("ProductionProcess requires a name")
        if not self.inputs:
            raise ValueError(f"Process {self.name} has no inputs")
        if not self.output_product:
            raise ValueError(f"Process {self.name} has no output product")
        if self.output_ratio <= 0:
            raise ValueError(
                f"Output ratio for {self.name} must be positive, got {self.output_ratio}"
            )
        names = [i.product_name for i in self.inputs]
        if len(set(names)) != len(names):
            raise ValueError(f"Process {self.name} lists an input more than once")

    @property
    def input_names(self) -> tuple[str, ...]:
        return tuple(i.product_name for i in self.inputs)

    def required_inputs(self, quantity: Decimal) -> list[tuple[str, Decimal]]:
        """(product name, required quantity) for producing ``quantity`` units."""
        return [(i.product_name, i.ratio * quantity) for i in self.inputs]

    def output_quantity(self, quantity: Decimal) -> Decimal:
        return self.output_ratio * quantity

    def signed_delta(self, product_name: str, quantity: Decimal) -> Decimal | None:
        """
        Net quantity change this process applies to ``product_name`` when run
        ``quantity`` times, or None if the product is not involved.
        """
        delta: Decimal | None = None
        for i in self.inputs:
            if i.product_name == product_name:
                delta = -(i.ratio * quantity)
        if self.output_product == product_name:
            delta = (delta or Decimal("0")) + self.output_quantity(quantity)
        return delta

    def involves(self, product_name: str) -> bool:
        return product_name == self.output_product or product_name in self.input_names


class BomRegistry:
    """
    Immutable mapping of process name to ProductionProcess.

    Contract:
        Constructed explicitly (never a module-level global) and passed to
        the services and selectors that need it.

    Guarantees:
        - Lookups are read-only; the underlying mapping is a MappingProxyType.
        - ``version`` identifies the definition set.  Two registries with the
          same version describe the same processes.
    """

    __slots__ = ("_processes", "_version")

    def __init__(self, processes: list[ProductionProcess] | tuple[ProductionProcess, ...], version: str):
        by_name: dict[str, ProductionProcess] = {}
        for process in processes:
            if process.name in by_name:
                raise ValueError(f"Duplicate production process: {process.name}")
            by_name[process.name] = process
        self._processes: Mapping[str, ProductionProcess] = MappingProxyType(by_name)
        self._version = version

    @property
    def version(self) -> str:
        return self._version

    def get(self, name: str) -> ProductionProcess:
        """
        Resolve a process by name.

        Raises:
            NotFoundError: If no process of that name is registered.
        """
        process = self._processes.get(name)
        if process is None:
            raise NotFoundError("ProductionProcess", name)
        return process

    def find(self, name: str) -> ProductionProcess | None:
        return self._processes.get(name)

    def names(self) -> tuple[str, ...]:
        return tuple(self._processes)

    def processes_involving(self, product_name: str) -> tuple[ProductionProcess, ...]:
        return tuple(p for p in self._processes.values() if p.involves(product_name))

    def product_names(self) -> frozenset[str]:
        """Every product name any process consumes or yields."""
        names: set[str] = set()
        for process in self._processes.values():
            names.update(process.input_names)
            names.add(process.output_product)
        return frozenset(names)

    def __contains__(self, name: object) -> bool:
        return name in self._processes

    def __iter__(self) -> Iterator[ProductionProcess]:
        return iter(self._processes.values())

    def __len__(self) -> int:
        return len(self._processes)

    def __repr__(self) -> str:
        return f"<BomRegistry version={self._version[:12]} processes={len(self)}>"
