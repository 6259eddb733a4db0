"""Sale ledger: immutable sale records paired with their stock decrement."""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import List

from . import log
from .data_manager import SaleRow
from .domain import (
    Clock,
    RecordSaleCommand,
    generate_id,
    local_day,
    local_time,
    require_date_range,
    require_positive_money,
    require_positive_quantity,
    round_money,
    system_clock,
)
from .errors import InsufficientStockError, NotFoundError
from .products import ProductLedger, check_stock_invariant
from .storage import LedgerStore


def most_recent_first(rows: List[SaleRow]) -> List[SaleRow]:
    return sorted(reversed(rows), key=lambda row: row.sale_date, reverse=True)


def compute_totals(quantity: Decimal, price_per_kg: Decimal, purchase_price: Decimal) -> tuple[Decimal, Decimal]:
    """Return ``(total_amount, profit)`` rounded to cents.

    Profit is taken from the already rounded total so the two stored figures
    always agree.
    """
    total_amount = round_money(quantity * price_per_kg)
    profit = round_money(total_amount - quantity * purchase_price)
    return total_amount, profit


class SaleLedger:
    """Records sales and answers sale history queries."""

    def __init__(self, store: LedgerStore, products: ProductLedger, *, clock: Clock = system_clock) -> None:
        self._store = store
        self._products = products
        self._clock = clock

    @property
    def store(self) -> LedgerStore:
        return self._store

    def record_sale(self, command: RecordSaleCommand) -> SaleRow:
        """Validate stock, decrement it and insert the sale as one unit.

        Totals are always derived here from the quantity, the unit price and
        the product's purchase price at the moment of sale.

        Args:
            command (RecordSaleCommand): Product id, quantity (> 0, one
                decimal) and price per kg (> 0, two decimals).

        Returns:
            SaleRow: The committed sale.

        Raises:
            NotFoundError: If the product is unknown.
            InsufficientStockError: If ``quantity`` exceeds current stock.
            ValidationError: If quantity or price are not positive.
        """
        quantity = require_positive_quantity(command.quantity)
        price_per_kg = require_positive_money(command.price_per_kg, "Price per kg")

        with self._store.transaction() as store:
            product = self._products.get(command.product_id)
            check_stock_invariant(product)
            if quantity > product.stock:
                log.warning(
                    "Rejected sale of %s from product '%s' with stock %s",
                    quantity,
                    product.product_id,
                    product.stock,
                )
                raise InsufficientStockError(
                    f"Insufficient stock for product '{product.product_id}': "
                    f"requested {quantity}, available {product.stock}"
                )

            total_amount, profit = compute_totals(quantity, price_per_kg, product.purchase_price)
            sale = SaleRow(
                sale_id=generate_id("S"),
                product_id=product.product_id,
                quantity=quantity,
                price_per_kg=price_per_kg,
                total_amount=total_amount,
                profit=profit,
                sale_date=local_time(self._clock()),
            )
            store.replace_product(
                replace(product, stock=product.stock - quantity),
                expected_version=product.version,
            )
            store.insert_sale(sale)

        log.info(
            "Recorded sale '%s' for product '%s' (quantity=%s, total=%s, profit=%s)",
            sale.sale_id,
            sale.product_id,
            sale.quantity,
            sale.total_amount,
            sale.profit,
        )
        return sale

    def get_sale(self, sale_id: str) -> SaleRow:
        sale = self._store.get_sale(sale_id)
        if sale is None:
            log.warning("Sale lookup failed for id '%s'", sale_id)
            raise NotFoundError(f"Unknown sale id: {sale_id}")
        return sale

    def list_sales(self) -> List[SaleRow]:
        """Every sale, most recent first."""
        return most_recent_first(self._store.all_sales())

    def list_sales_by_date(self, day: date) -> List[SaleRow]:
        """Sales whose local calendar day is ``day``."""
        return [sale for sale in self.list_sales() if local_day(sale.sale_date) == day]

    def list_sales_by_date_range(self, start: date, end: date) -> List[SaleRow]:
        """Sales whose local calendar day falls in ``[start, end]``.

        Raises:
            ValidationError: If ``start`` is after ``end``.
        """
        require_date_range(start, end)
        return [sale for sale in self.list_sales() if start <= local_day(sale.sale_date) <= end]
