"""
SaleService -- records priced, multi-line sales.

Responsibility:
    Validate a SaleInput, check every line against the stock at its
    location, price the lines and the bill through the pricing engine,
    allocate an invoice number, and write the sale header, its items and one
    negative sale movement per item as a single batch.  Notifies the
    customer-ledger collaborator inside the same unit of work.

Architecture position:
    Kernel > Services.  Consumes inventory_engines.pricing (pure),
    InvoiceNumberGenerator, MovementRecorder and a CustomerLedger.
    Flushes only.

Invariants enforced:
    - Stock is checked line by line in order, cumulatively for lines that
      share a (product, location) pair; the first violating line aborts the
      sale before anything is written.
    - Stored money is rounded to 2 places with round_money(); the pricing
      engine itself never rounds.
    - A credit sale carries no payment.

Failure modes:
    - ValidationError: no items, empty buyer, non-positive quantity,
      negative or non-finite price/discount, credit sale with a payment.
    - NotFoundError: unknown product or location.
    - InsufficientStockError: one shortfall, for the first violating line.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from inventory_engines.pricing import ItemPrice, bill_totals, item_price
from inventory_kernel.db.types import round_money, to_decimal
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.customer_ledger import CustomerLedger, NullCustomerLedger
from inventory_kernel.domain.dtos import MovementSpec, SaleInput, SaleItemInput
from inventory_kernel.exceptions import (
    InsufficientStockError,
    StockShortfall,
    ValidationError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.movement import MovementType
from inventory_kernel.models.transactions import SaleItem, SaleTransaction
from inventory_kernel.services.base import BaseService
from inventory_kernel.services.movement_recorder import MovementRecorder
from inventory_kernel.services.sequence_service import InvoiceNumberGenerator

logger = get_logger("services.sale")


class SaleService(BaseService[SaleTransaction]):
    """
    Records sales.

    Contract:
        ``record_sale`` returns the flushed SaleTransaction (items loaded),
        or raises having written nothing the caller will commit.
    """

    def __init__(
        self,
        session: Session,
        recorder: MovementRecorder,
        invoice_numbers: InvoiceNumberGenerator,
        customer_ledger: CustomerLedger | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._recorder = recorder
        self._invoice_numbers = invoice_numbers
        self._customer_ledger = customer_ledger or NullCustomerLedger()
        self._clock = clock or SystemClock()

    def _validate(self, sale: SaleInput) -> list[Decimal]:
        if not sale.items:
            raise ValidationError("A sale needs at least one item", field="items")
        if not sale.buyer_reference or not sale.buyer_reference.strip():
            raise ValidationError("Buyer reference is required", field="buyer_reference")
        return [
            self._require_positive(item.quantity, f"items[{n}].quantity")
            for n, item in enumerate(sale.items)
        ]

    def _check_stock(self, items: tuple[SaleItemInput, ...], quantities: list[Decimal]) -> None:
        requested: dict[tuple[UUID, UUID], Decimal] = {}
        for item, quantity in zip(items, quantities):
            product = self._get_product(item.product_id)
            location = self._get_location(item.location_id)
            pair = (item.product_id, item.location_id)
            requested[pair] = requested.get(pair, Decimal("0")) + quantity
            available = self._stock_at(item.product_id, item.location_id)
            if requested[pair] > available:
                logger.warning(
                    "sale_rejected_insufficient_stock",
                    extra={
                        "product_id": str(product.id),
                        "location_id": str(location.id),
                        "available": available,
                        "requested": requested[pair],
                    },
                )
                raise InsufficientStockError(
                    [
                        StockShortfall(
                            product_id=str(product.id),
                            product_name=product.name,
                            required=requested[pair],
                            available=available,
                            location_id=str(location.id),
                            location_name=location.name,
                        )
                    ]
                )

    def _price(self, sale: SaleInput, quantities: list[Decimal]) -> list[ItemPrice]:
        prices = []
        for n, (item, quantity) in enumerate(zip(sale.items, quantities)):
            try:
                prices.append(
                    item_price(
                        quantity,
                        item.price_per_unit,
                        scheme=item.trade_scheme,
                        discount_percentage=item.discount_percentage,
                        discount_amount=item.discount_amount,
                    )
                )
            except ValidationError as exc:
                raise ValidationError(f"items[{n}]: {exc}", field=f"items[{n}].{exc.field}") from exc
        return prices

    def record_sale(self, sale: SaleInput) -> SaleTransaction:
        """
        Record a sale.

        Postconditions:
            SaleTransaction, its SaleItems and one sale movement per item are
            flushed; each (product, location) dropped by the line quantity;
            the customer ledger has been told about the sale.
        """
        quantities = self._validate(sale)
        self._check_stock(sale.items, quantities)

        prices = self._price(sale, quantities)
        totals = bill_totals(
            prices,
            bill_discount_amount=sale.bill_discount_amount,
            bill_discount_percentage=sale.bill_discount_percentage,
            credit_sale=sale.credit_sale,
            payment_received=sale.payment_received,
        )

        now = self._clock.now()
        items = [
            SaleItem(
                line_no=line_no,
                product_id=item.product_id,
                location_id=item.location_id,
                quantity=price.quantity,
                price_per_unit=price.unit_price,
                trade_scheme=item.trade_scheme or None,
                discount_percentage=to_decimal(item.discount_percentage),
                discount_amount=round_money(to_decimal(item.discount_amount)),
                total_price=round_money(price.total),
                final_price=round_money(price.final),
            )
            for line_no, (item, price) in enumerate(zip(sale.items, prices), start=1)
        ]
        header = SaleTransaction(
            invoice_number=self._invoice_numbers.next_invoice_number(),
            buyer_reference=sale.buyer_reference.strip(),
            contact_no=sale.contact_no,
            sale_date=sale.sale_date,
            bill_discount_percentage=to_decimal(sale.bill_discount_percentage),
            bill_discount_amount=round_money(to_decimal(sale.bill_discount_amount)),
            total_amount=round_money(totals.total_amount),
            final_amount=round_money(totals.final_amount),
            payment_received=round_money(totals.payment_received),
            credit_sale=sale.credit_sale,
            recorded_at=now,
            notes=sale.notes,
            items=items,
        )
        self.session.add(header)
        self.session.flush()

        specs = [
            MovementSpec(
                product_id=line.product_id,
                location_id=line.location_id,
                quantity_change=-line.quantity,
                movement_type=MovementType.SALE,
                source_transaction_id=header.id,
                notes=header.invoice_number,
            )
            for line in items
        ]
        self._recorder.apply_movements(specs, occurred_at=now)

        self._customer_ledger.record_sale(
            buyer_reference=header.buyer_reference,
            sale_id=header.id,
            final_amount=header.final_amount,
            payment_received=header.payment_received,
            credit_sale=header.credit_sale,
        )

        logger.info(
            "sale_recorded",
            extra={
                "sale_id": str(header.id),
                "invoice_number": header.invoice_number,
                "item_count": len(prices),
                "final_amount": header.final_amount,
                "credit_sale": header.credit_sale,
            },
        )
        return header
