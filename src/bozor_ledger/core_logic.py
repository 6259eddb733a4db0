"""Runtime wiring for the Bozor ledger.

This module turns ``config.ini`` and the ledger workbook into a populated
:class:`~bozor_ledger.storage.LedgerStore`, builds the four ledger components on
top of it, and writes the store back to the workbook when asked. Every business
rule lives in the component modules; this layer only orchestrates.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from openpyxl.workbook import Workbook

from . import data_manager, log
from .aggregator import Aggregator
from .constants import EXPECTED_SCHEMA_VERSION
from .domain import Clock, system_clock
from .products import ProductLedger
from .reports import ReportLedger
from .sales import SaleLedger
from .storage import LedgerStore


@dataclass(frozen=True)
class LedgerServices:
    """The four ledger components sharing one store and one clock."""

    products: ProductLedger
    sales: SaleLedger
    aggregator: Aggregator
    reports: ReportLedger


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration, workbook and store used by the ledgers."""

    settings: data_manager.ConfigSettings
    workbook: Workbook
    store: LedgerStore
    clock: Clock = field(default=system_clock, compare=False)


def build_services(
    store: LedgerStore,
    *,
    clock: Clock = system_clock,
    settings: Optional[data_manager.ConfigSettings] = None,
) -> LedgerServices:
    """Wire the ledger components around ``store``.

    Args:
        store (LedgerStore): Store instance owned by the caller.
        clock (Clock): Time source shared by every component. Tests pass a
            fixed clock here to control "today" and the submission gate.
        settings (ConfigSettings | None): Supplies the submission hour and the
            low-stock threshold. Package defaults apply when omitted.

    Returns:
        LedgerServices: Components ready for use.
    """
    product_kwargs = {}
    report_kwargs = {}
    if settings is not None:
        product_kwargs["low_stock_threshold"] = settings.low_stock_threshold
        report_kwargs["submission_hour"] = settings.submission_hour

    products = ProductLedger(store, clock=clock, **product_kwargs)
    sales = SaleLedger(store, products, clock=clock)
    aggregator = Aggregator(products, sales, clock=clock)
    reports = ReportLedger(store, aggregator, clock=clock, **report_kwargs)
    return LedgerServices(products=products, sales=sales, aggregator=aggregator, reports=reports)


def services_for(context: RuntimeContext) -> LedgerServices:
    return build_services(context.store, clock=context.clock, settings=context.settings)


def load_store(workbook: Workbook, *, lock_timeout: float) -> LedgerStore:
    """Hydrate a fresh :class:`LedgerStore` from the workbook sheets."""

    store = LedgerStore(
        products=data_manager.iter_products(workbook),
        sales=data_manager.iter_sales(workbook),
        reports=data_manager.iter_daily_reports(workbook),
        lock_timeout=lock_timeout,
    )
    log.debug(
        "Loaded %d products, %d sales, %d daily reports",
        len(store.all_products()),
        len(store.all_sales()),
        len(store.all_reports()),
    )
    return store


def write_store(store: LedgerStore, workbook: Workbook) -> None:
    """Copy a consistent snapshot of ``store`` into the workbook sheets."""

    with store.read():
        products = store.all_products()
        sales = store.all_sales()
        reports = store.all_reports()
    data_manager.write_products(workbook, products)
    data_manager.write_sales(workbook, sales)
    data_manager.write_daily_reports(workbook, reports)


def load_runtime_context(config_path: Optional[Path] = None, *, clock: Clock = system_clock) -> RuntimeContext:
    """Load configuration, open the workbook and hydrate the store.

    Args:
        config_path (Path | None): Optional override for ``config.ini``. When
            omitted the data layer searches upwards from the working directory.
        clock (Clock): Time source handed to the ledgers.

    Returns:
        RuntimeContext: Context ready for :func:`services_for`.

    Raises:
        FileNotFoundError: If the configuration file or workbook is missing.
        KeyError: When mandatory configuration options are missing.
    """
    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    workbook = data_manager.open_workbook(settings.data_file)
    store = load_store(workbook, lock_timeout=settings.lock_timeout)
    log.info("Loaded runtime context for workbook '%s'", settings.data_file)
    return RuntimeContext(settings=settings, workbook=workbook, store=store, clock=clock)


def ensure_schema_version(context: RuntimeContext) -> None:
    """Refuse to work against a workbook written for another schema.

    Raises:
        RuntimeError: If the configured schema version differs from
            ``EXPECTED_SCHEMA_VERSION``.
    """
    found = context.settings.schema_version
    if found == EXPECTED_SCHEMA_VERSION:
        return
    message = (
        f"Ledger '{context.settings.shop_name}' uses schema {found}, "
        f"this version of bozor-ledger needs {EXPECTED_SCHEMA_VERSION}"
    )
    log.error("Workbook schema mismatch for %s: %s", context.settings.data_file, message)
    raise RuntimeError(f"Workbook schema mismatch: {message}")


def persist_context(context: RuntimeContext) -> None:
    """Write the store into the workbook and save it to the configured path."""

    write_store(context.store, context.workbook)
    data_manager.save_workbook(context.workbook, context.settings.data_file)
    log.info(
        "Saved %d products and %d sales to '%s'",
        len(context.store.all_products()),
        len(context.store.all_sales()),
        context.settings.data_file,
    )


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reload the workbook from disk, discarding unsaved changes.

    Returns:
        RuntimeContext: New context with a freshly loaded workbook and store.

    Raises:
        FileNotFoundError: If the backing workbook cannot be reloaded.
    """
    workbook = data_manager.open_workbook(context.settings.data_file)
    store = load_store(workbook, lock_timeout=context.settings.lock_timeout)
    log.info("Reloaded workbook '%s'", context.settings.data_file)
    return RuntimeContext(settings=context.settings, workbook=workbook, store=store, clock=context.clock)
