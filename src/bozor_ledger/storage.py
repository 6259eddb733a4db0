"""In-memory ledger store.

:class:`LedgerStore` owns the canonical product, sale and daily report records
for one shop. Callers construct an instance and hand it to the ledgers; there is
no module-level store.

All state sits behind one re-entrant lock. Writers go through
:meth:`LedgerStore.transaction`, which restores the pre-transaction snapshot if
the block raises, so a failed operation leaves nothing behind. Readers go
through :meth:`LedgerStore.read` so a sale is never visible without its stock
decrement.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Dict, Iterable, Iterator, List, Optional

from . import log
from .constants import DEFAULT_LOCK_TIMEOUT
from .data_manager import DailyReportRow, ProductRow, SaleRow
from .errors import ConflictError


@dataclass
class _State:
    products: Dict[str, ProductRow] = field(default_factory=dict)
    sales: Dict[str, SaleRow] = field(default_factory=dict)
    reports: Dict[date, DailyReportRow] = field(default_factory=dict)

    def copy(self) -> "_State":
        # Records are frozen, so copying the mappings is a full snapshot.
        return _State(dict(self.products), dict(self.sales), dict(self.reports))


class LedgerStore:
    """Thread-safe container for ledger records."""

    def __init__(
        self,
        *,
        products: Iterable[ProductRow] = (),
        sales: Iterable[SaleRow] = (),
        reports: Iterable[DailyReportRow] = (),
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
    ) -> None:
        self._lock = threading.RLock()
        self._lock_timeout = lock_timeout
        self._writer: Optional[int] = None
        self._state = _State(
            products={row.product_id: row for row in products},
            sales={row.sale_id: row for row in sales},
            reports={row.date: row for row in reports},
        )

    @contextmanager
    def _acquire(self) -> Iterator[None]:
        if not self._lock.acquire(timeout=self._lock_timeout):
            log.warning("Timed out after %.2fs waiting for the ledger lock", self._lock_timeout)
            raise ConflictError("Ledger is busy; retry the operation")
        try:
            yield
        finally:
            self._lock.release()

    @contextmanager
    def read(self) -> Iterator["LedgerStore"]:
        """Hold the lock while the caller takes a consistent snapshot."""

        with self._acquire():
            yield self

    @contextmanager
    def transaction(self) -> Iterator["LedgerStore"]:
        """Run the block as one all-or-nothing unit of work.

        Nested transactions join the outermost one; only the outermost block
        takes the snapshot and performs the rollback.

        Raises:
            ConflictError: If the lock cannot be acquired within the timeout.
        """

        with self._acquire():
            if self._writer == threading.get_ident():
                yield self
                return
            snapshot = self._state.copy()
            self._writer = threading.get_ident()
            try:
                yield self
            except BaseException:
                self._state = snapshot
                log.debug("Rolled back ledger transaction")
                raise
            finally:
                self._writer = None

    def _require_transaction(self) -> None:
        if self._writer != threading.get_ident():
            raise RuntimeError("Ledger mutations must run inside LedgerStore.transaction()")

    # Products

    def get_product(self, product_id: str) -> Optional[ProductRow]:
        with self.read():
            return self._state.products.get(product_id)

    def all_products(self) -> List[ProductRow]:
        with self.read():
            return list(self._state.products.values())

    def insert_product(self, row: ProductRow) -> None:
        self._require_transaction()
        if row.product_id in self._state.products:
            raise ConflictError(f"Product id already exists: {row.product_id}")
        self._state.products[row.product_id] = row

    def replace_product(self, row: ProductRow, *, expected_version: int) -> ProductRow:
        """Store ``row`` with a bumped version if nobody else wrote first.

        Raises:
            ConflictError: If the stored version differs from ``expected_version``.
        """
        self._require_transaction()
        current = self._state.products.get(row.product_id)
        if current is None or current.version != expected_version:
            found = None if current is None else current.version
            log.warning(
                "Version conflict on product '%s': expected %s, found %s",
                row.product_id,
                expected_version,
                found,
            )
            raise ConflictError(f"Product '{row.product_id}' was modified concurrently")
        stored = replace(row, version=expected_version + 1)
        self._state.products[row.product_id] = stored
        return stored

    # Sales

    def get_sale(self, sale_id: str) -> Optional[SaleRow]:
        with self.read():
            return self._state.sales.get(sale_id)

    def all_sales(self) -> List[SaleRow]:
        with self.read():
            return list(self._state.sales.values())

    def insert_sale(self, row: SaleRow) -> None:
        self._require_transaction()
        if row.sale_id in self._state.sales:
            raise ConflictError(f"Sale id already exists: {row.sale_id}")
        self._state.sales[row.sale_id] = row

    # Daily reports

    def get_report(self, day: date) -> Optional[DailyReportRow]:
        with self.read():
            return self._state.reports.get(day)

    def all_reports(self) -> List[DailyReportRow]:
        with self.read():
            return sorted(self._state.reports.values(), key=lambda row: row.date)

    def upsert_report(self, row: DailyReportRow) -> None:
        self._require_transaction()
        self._state.reports[row.date] = row
