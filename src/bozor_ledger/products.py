"""Product ledger: identity, pricing and stock level of every product."""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal
from typing import List, Optional

from . import log
from .constants import DEFAULT_LOW_STOCK_THRESHOLD, StockStatus
from .data_manager import ProductRow
from .domain import (
    Clock,
    CreateProductCommand,
    StockAdjustmentCommand,
    generate_id,
    local_time,
    require_name,
    require_nonnegative_quantity,
    require_nonzero_delta,
    require_positive_money,
    require_reason,
    system_clock,
)
from .errors import InvalidAdjustmentError, LedgerIntegrityError, NotFoundError
from .storage import LedgerStore


LOW_STATUS_LIMIT = Decimal("5")
MEDIUM_STATUS_LIMIT = Decimal("20")


def newest_first(rows: List[ProductRow]) -> List[ProductRow]:
    # Reverse first so equal timestamps still list the later insert first.
    return sorted(reversed(rows), key=lambda row: row.created_at, reverse=True)


def check_stock_invariant(product: ProductRow) -> None:
    """Abort the current operation if ``product`` already holds negative stock."""

    if product.stock < Decimal("0"):
        log.error("Product '%s' holds negative stock %s", product.product_id, product.stock)
        raise LedgerIntegrityError(
            f"Product '{product.product_id}' has negative stock {product.stock}"
        )


class ProductLedger:
    """Creates products and applies explicit stock adjustments."""

    def __init__(
        self,
        store: LedgerStore,
        *,
        clock: Clock = system_clock,
        low_stock_threshold: Decimal = DEFAULT_LOW_STOCK_THRESHOLD,
    ) -> None:
        self._store = store
        self._clock = clock
        self._low_stock_threshold = low_stock_threshold

    @property
    def store(self) -> LedgerStore:
        return self._store

    def create(self, command: CreateProductCommand) -> ProductRow:
        """Register a product with its prices and opening stock.

        Args:
            command (CreateProductCommand): Name, purchase and selling price
                (positive, two decimals at most) and initial stock (zero or
                more, one decimal at most).

        Returns:
            ProductRow: The stored product, version ``0``.

        Raises:
            ValidationError: If any field breaks the constraints above.
        """
        name = require_name(command.name)
        purchase_price = require_positive_money(command.purchase_price, "Purchase price")
        selling_price = require_positive_money(command.selling_price, "Selling price")
        stock = require_nonnegative_quantity(command.initial_stock, "Initial stock")

        product = ProductRow(
            product_id=generate_id("P"),
            name=name,
            purchase_price=purchase_price,
            selling_price=selling_price,
            stock=stock,
            created_at=local_time(self._clock()),
        )
        with self._store.transaction() as store:
            store.insert_product(product)
        log.info(
            "Created product '%s' (%s) purchase=%s selling=%s stock=%s",
            product.product_id,
            product.name,
            product.purchase_price,
            product.selling_price,
            product.stock,
        )
        return product

    def get(self, product_id: str) -> ProductRow:
        """Resolve a product by id.

        Raises:
            NotFoundError: If ``product_id`` is unknown.
        """
        product = self._store.get_product(product_id)
        if product is None:
            log.warning("Product lookup failed for id '%s'", product_id)
            raise NotFoundError(f"Unknown product id: {product_id}")
        return product

    def list(self) -> List[ProductRow]:
        """Return every product, newest first. Recomputed on each call."""
        return newest_first(self._store.all_products())

    def adjust_stock(self, command: StockAdjustmentCommand) -> Decimal:
        """Apply a signed stock correction and return the new stock level.

        The read, the check and the write happen inside one store transaction,
        so the check always sees the latest stock. Only the resulting level is
        kept; the reason goes to the log.

        Raises:
            NotFoundError: If the product is unknown.
            InvalidAdjustmentError: If the result would be negative.
            ValidationError: For a zero delta or an empty reason.
        """
        delta = require_nonzero_delta(command.delta)
        reason = require_reason(command.reason)

        with self._store.transaction() as store:
            product = self.get(command.product_id)
            check_stock_invariant(product)
            new_stock = product.stock + delta
            if new_stock < Decimal("0"):
                log.warning(
                    "Rejected adjustment of %s on product '%s' with stock %s",
                    delta,
                    product.product_id,
                    product.stock,
                )
                raise InvalidAdjustmentError(
                    f"Adjustment of {delta} would leave product '{product.product_id}' "
                    f"with negative stock ({new_stock})"
                )
            store.replace_product(replace(product, stock=new_stock), expected_version=product.version)

        log.info(
            "Adjusted stock of product '%s' by %s to %s (reason: %s)",
            product.product_id,
            delta,
            new_stock,
            reason,
        )
        return new_stock

    def set_stock(self, product_id: str, new_stock: Decimal, reason: str) -> Decimal:
        """Set stock to an absolute level by adjusting with the difference.

        Returns the current stock unchanged when it already equals
        ``new_stock``.
        """
        target = require_nonnegative_quantity(new_stock, "New stock")
        with self._store.transaction():
            current = self.get(product_id)
            if current.stock == target:
                log.debug("Stock of product '%s' already at %s", product_id, target)
                return current.stock
            return self.adjust_stock(
                StockAdjustmentCommand(product_id=product_id, delta=target - current.stock, reason=reason)
            )

    def stock_status(self, product: ProductRow) -> StockStatus:
        if product.stock <= Decimal("0"):
            return StockStatus.OUT
        if product.stock < LOW_STATUS_LIMIT:
            return StockStatus.LOW
        if product.stock < MEDIUM_STATUS_LIMIT:
            return StockStatus.MEDIUM
        return StockStatus.ADEQUATE

    def low_stock(self, threshold: Optional[Decimal] = None) -> List[ProductRow]:
        """Products whose stock is below ``threshold``, lowest stock first."""
        limit = self._low_stock_threshold if threshold is None else threshold
        rows = [row for row in self.list() if row.stock < limit]
        return sorted(rows, key=lambda row: row.stock)
