"""
inventory_services.ledger_orchestrator -- InventoryLedger, the ledger facade.

Responsibility:
    Wires every kernel service exactly once around one Session and one
    Clock, and gives callers a single object that records, reverses and
    reads stock transactions.  Every writing call is one unit of work: the
    orchestrator commits when the service returns and rolls back when it
    raises.

Architecture position:
    Services -- top of the stack.  Consumes inventory_config (for the
    BomRegistry, ledger settings and price presets), inventory_kernel
    services and selectors.  Nothing in the kernel imports this module.

Invariants enforced:
    - Single-instance lifecycle: one MovementRecorder shared by every
      engine, so all stock deltas pass through the same gate.
    - Atomicity: header, items and every stock delta of a transaction
      commit together or not at all.
    - Domain errors propagate unchanged after rollback; raw database errors
      surface as PersistenceFailure.

Failure modes:
    - ValidationError, NotFoundError, InsufficientStockError,
      AlreadyVoidedError, PartialApplicationError from the services.
    - PersistenceFailure when the database rejects the unit of work.
    - NotFoundError at construction when the default location has not been
      registered and ``sync_catalog`` is False.

Usage:
    config = get_active_config()
    ledger = InventoryLedger(session, config)
    ledger.record_purchase(soap_id, 100, date.today())
    ledger.record_production("gift_set_assembly", 5, date.today())
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from inventory_config.schema import InventoryConfigurationSet
from inventory_engines.pricing import PriceRule, ProductPreset, find_price_rule
from inventory_kernel.domain.bom import BomRegistry
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.customer_ledger import CustomerLedger, NullCustomerLedger
from inventory_kernel.domain.dtos import (
    ProductStock,
    ReversalResult,
    SaleInput,
    StockDiscrepancy,
    StockLevel,
    TransactionType,
)
from inventory_kernel.exceptions import InventoryKernelError, NotFoundError, PersistenceFailure
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.models.product import Location, Product, ProductStage
from inventory_kernel.models.transactions import (
    ProductionRecord,
    PurchaseRecord,
    SaleTransaction,
    Transfer,
    WastageRecord,
)
from inventory_kernel.selectors.movement_history_selector import (
    MovementHistory,
    MovementHistorySelector,
)
from inventory_kernel.selectors.stock_selector import StockSelector
from inventory_kernel.services.catalog_service import CatalogService
from inventory_kernel.services.movement_recorder import MovementRecorder
from inventory_kernel.services.production_service import ProductionService
from inventory_kernel.services.purchase_service import PurchaseService
from inventory_kernel.services.reversal_service import ReversalService
from inventory_kernel.services.sale_service import SaleService
from inventory_kernel.services.sequence_service import InvoiceNumberGenerator
from inventory_kernel.services.transfer_service import TransferService
from inventory_kernel.services.wastage_service import WastageService

logger = get_logger("services.ledger")

T = TypeVar("T")


class InventoryLedger:
    """Facade over the inventory ledger.

    Contract:
        Receives a Session and a validated InventoryConfigurationSet.
        Owns the transaction boundary of every writing method; reads go
        through the selectors without committing.

    Guarantees:
        - All services share the same Session, Clock and BomRegistry.
        - After any writing method returns, its effects are committed.
        - After any writing method raises, the session has been rolled back.
    """

    def __init__(
        self,
        session: Session,
        config: InventoryConfigurationSet,
        clock: Clock | None = None,
        customer_ledger: CustomerLedger | None = None,
        sync_catalog: bool = True,
    ) -> None:
        self._session = session
        self._config = config
        self._clock = clock or SystemClock()
        self._customer_ledger = customer_ledger or NullCustomerLedger()

        self.bom_registry: BomRegistry = config.bom_registry()
        self.price_presets: Mapping[str, ProductPreset] = config.presets()

        self.catalog = CatalogService(session)
        if sync_catalog:
            self.sync_catalog()

        default_location = self._find_location(config.ledger.default_location)
        if default_location is None:
            raise NotFoundError("Location", config.ledger.default_location)
        self.default_location_id: UUID = default_location.id

        # --- Singletons: created once, order matters (dependency graph) ---
        self.recorder = MovementRecorder(
            session, self._clock, default_location_id=self.default_location_id
        )
        self.invoice_numbers = InvoiceNumberGenerator(
            session, self._clock, prefix=config.ledger.invoice_prefix
        )
        self.production_service = ProductionService(
            session, self.bom_registry, self.recorder, self._clock
        )
        self.sale_service = SaleService(
            session,
            self.recorder,
            self.invoice_numbers,
            customer_ledger=self._customer_ledger,
            clock=self._clock,
        )
        self.transfer_service = TransferService(session, self.recorder, self._clock)
        self.wastage_service = WastageService(session, self.recorder, self._clock)
        self.purchase_service = PurchaseService(session, self.recorder, self._clock)
        self.reversal_service = ReversalService(
            session,
            self.recorder,
            customer_ledger=self._customer_ledger,
            clock=self._clock,
        )

        # Read side
        self.stock = StockSelector(
            session,
            self.bom_registry,
            carton_size=config.ledger.carton_size,
            draw_location_id=self.default_location_id,
        )
        self.history = MovementHistorySelector(session, self.bom_registry)

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    @contextmanager
    def _unit_of_work(self, operation: str) -> Iterator[None]:
        with LogContext.bind(operation=operation):
            try:
                yield
                self._session.commit()
            except InventoryKernelError:
                self._session.rollback()
                raise
            except SQLAlchemyError as exc:
                self._session.rollback()
                logger.error(
                    "unit_of_work_failed",
                    extra={"operation": operation, "error": str(exc)},
                )
                raise PersistenceFailure(operation, str(exc)) from exc
            except Exception:
                self._session.rollback()
                raise

    def _run(self, operation: str, func: Callable[[], T]) -> T:
        with self._unit_of_work(operation):
            return func()

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def _find_location(self, name: str) -> Location | None:
        return self._session.execute(
            select(Location).where(Location.name == name)
        ).scalar_one_or_none()

    def sync_catalog(self) -> None:
        """Register every configured location and product (idempotent)."""

        def _sync() -> None:
            for location in self._config.locations:
                self.catalog.register_location(location.name, location.address)
            for product in self._config.products:
                self.catalog.register_product(product.name, product.stage, product.min_stock)

        self._run("sync_catalog", _sync)

    def register_location(self, name: str, address: str | None = None) -> Location:
        return self._run(
            "register_location", lambda: self.catalog.register_location(name, address)
        )

    def register_product(
        self,
        name: str,
        stage: ProductStage | str = ProductStage.RAW,
        min_stock: Decimal | int | str | None = None,
    ) -> Product:
        return self._run(
            "register_product",
            lambda: self.catalog.register_product(name, stage, min_stock),
        )

    def product_id(self, name: str) -> UUID:
        """Look up a product id by name."""
        product_id = self._session.execute(
            select(Product.id).where(Product.name == name)
        ).scalar_one_or_none()
        if product_id is None:
            raise NotFoundError("Product", name)
        return product_id

    def location_id(self, name: str) -> UUID:
        location = self._find_location(name)
        if location is None:
            raise NotFoundError("Location", name)
        return location.id

    # ------------------------------------------------------------------
    # Engines
    # ------------------------------------------------------------------

    def record_production(
        self,
        process_name: str,
        quantity,
        production_date: date,
        notes: str | None = None,
    ) -> ProductionRecord:
        with LogContext.bind(transaction_type=TransactionType.PRODUCTION.value):
            return self._run(
                "record_production",
                lambda: self.production_service.record_production(
                    process_name, quantity, production_date, notes=notes
                ),
            )

    def record_sale(self, sale: SaleInput) -> SaleTransaction:
        with LogContext.bind(transaction_type=TransactionType.SALE.value):
            return self._run("record_sale", lambda: self.sale_service.record_sale(sale))

    def record_transfer(
        self,
        product_id: UUID,
        from_location_id: UUID,
        to_location_id: UUID,
        quantity,
        transfer_date: date,
        notes: str | None = None,
    ) -> Transfer:
        with LogContext.bind(transaction_type=TransactionType.TRANSFER.value):
            return self._run(
                "record_transfer",
                lambda: self.transfer_service.record_transfer(
                    product_id,
                    from_location_id,
                    to_location_id,
                    quantity,
                    transfer_date,
                    notes=notes,
                ),
            )

    def record_wastage(
        self,
        product_id: UUID,
        quantity,
        wastage_date: date,
        reason: str,
        location_id: UUID | None = None,
        notes: str | None = None,
    ) -> WastageRecord:
        with LogContext.bind(transaction_type=TransactionType.WASTAGE.value):
            return self._run(
                "record_wastage",
                lambda: self.wastage_service.record_wastage(
                    product_id,
                    quantity,
                    wastage_date,
                    reason,
                    location_id=location_id,
                    notes=notes,
                ),
            )

    def record_purchase(
        self,
        product_id: UUID,
        quantity,
        purchase_date: date,
        location_id: UUID | None = None,
        unit_price=None,
        supplier: str | None = None,
        notes: str | None = None,
    ) -> PurchaseRecord:
        with LogContext.bind(transaction_type=TransactionType.PURCHASE.value):
            return self._run(
                "record_purchase",
                lambda: self.purchase_service.record_purchase(
                    product_id,
                    quantity,
                    purchase_date,
                    location_id=location_id,
                    unit_price=unit_price,
                    supplier=supplier,
                    notes=notes,
                ),
            )

    def reverse_transaction(
        self,
        transaction_id: UUID,
        transaction_type: TransactionType | str,
        reason: str | None = None,
    ) -> ReversalResult:
        with LogContext.bind(
            transaction_id=str(transaction_id),
            transaction_type=str(getattr(transaction_type, "value", transaction_type)),
        ):
            return self._run(
                "reverse_transaction",
                lambda: self.reversal_service.reverse(transaction_id, transaction_type, reason),
            )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_movement_history(
        self, product_id: UUID, location_id: UUID | None = None
    ) -> MovementHistory:
        """Lazy, restartable history, newest first.  Unknown product raises now."""
        return self.history.history(product_id, location_id)

    def max_producible(self, process_name: str) -> Decimal:
        return self.stock.max_producible(process_name)

    def stock_report(self) -> list[ProductStock]:
        return self.stock.stock_report()

    def stock_by_location(self, product_id: UUID) -> list[StockLevel]:
        return self.stock.stock_by_location(product_id)

    def low_stock_products(self) -> list[ProductStock]:
        return self.stock.low_stock_products()

    def verify_invariants(self) -> list[StockDiscrepancy]:
        return self.stock.verify_invariants()

    def find_price_rule(self, product_name: str, entered_price) -> PriceRule | None:
        return find_price_rule(self.price_presets, product_name, entered_price)
