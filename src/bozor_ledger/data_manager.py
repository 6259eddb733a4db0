"""Data access layer for the Bozor ledger.

This module provides low-level helpers that read from and write to the ledger
workbook. Business rules belong elsewhere.

The public API is designed around three responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: opening and persisting the Excel file.
3. Sheet operations: turning rows into typed records and back.
"""


from __future__ import annotations

import configparser
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Iterable, Optional, Sequence
from zipfile import BadZipFile

from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.workbook import Workbook
import openpyxl

from . import log
from .constants import (
    DEFAULT_LOCK_TIMEOUT,
    DEFAULT_LOW_STOCK_THRESHOLD,
    DEFAULT_SUBMISSION_HOUR,
    SheetName,
)
from .domain import local_time


CONFIG_FILE_NAME = "config.ini"
PRODUCTS_SHEET = SheetName.PRODUCTS.value
SALES_SHEET = SheetName.SALES.value
DAILY_REPORTS_SHEET = SheetName.DAILY_REPORTS.value

SHEET_COLUMNS: dict[str, tuple[str, ...]] = {
    PRODUCTS_SHEET: (
        "ProductID",
        "Name",
        "PurchasePrice",
        "SellingPrice",
        "Stock",
        "CreatedAt",
        "Version",
    ),
    SALES_SHEET: (
        "SaleID",
        "ProductID",
        "Quantity",
        "PricePerKg",
        "TotalAmount",
        "Profit",
        "SaleDate",
    ),
    DAILY_REPORTS_SHEET: (
        "ReportID",
        "Date",
        "TotalSales",
        "TotalProfit",
        "TotalCost",
        "IsSubmitted",
        "SubmittedAt",
    ),
}


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    shop_name: str
    schema_version: str
    submission_hour: int = DEFAULT_SUBMISSION_HOUR
    low_stock_threshold: Decimal = DEFAULT_LOW_STOCK_THRESHOLD
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT


@dataclass(frozen=True)
class ProductRow:
    """In-memory view of a row from the ``Products`` sheet."""

    product_id: str
    name: str
    purchase_price: Decimal
    selling_price: Decimal
    stock: Decimal
    created_at: datetime
    version: int = 0


@dataclass(frozen=True)
class SaleRow:
    """In-memory view of a row from the ``Sales`` sheet."""

    sale_id: str
    product_id: str
    quantity: Decimal
    price_per_kg: Decimal
    total_amount: Decimal
    profit: Decimal
    sale_date: datetime


@dataclass(frozen=True)
class DailyReportRow:
    """In-memory view of a row from the ``DailyReports`` sheet."""

    report_id: str
    date: date
    total_sales: Decimal
    total_profit: Decimal
    total_cost: Decimal
    is_submitted: bool
    submitted_at: Optional[datetime]


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Return ``explicit_path`` unchecked, or the nearest ``config.ini`` upwards.

    The search starts in the working directory, so the CLI can be run from any
    folder below the shop's ledger directory.

    Raises:
        FileNotFoundError: If no directory up to the filesystem root holds one.
    """

    if explicit_path:
        return explicit_path

    cwd = Path.cwd()
    found = next(
        (folder / CONFIG_FILE_NAME for folder in (cwd, *cwd.parents) if (folder / CONFIG_FILE_NAME).is_file()),
        None,
    )
    if found is None:
        raise FileNotFoundError(f"No {CONFIG_FILE_NAME} in {cwd} or any parent directory")
    log.debug("Using configuration file %s", found)
    return found


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Parse ``config_path`` (``~`` expanded) into a ``ConfigParser``.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist.
        ValueError: If the file is not valid INI syntax.
    """

    resolved = Path(config_path).expanduser().resolve()
    if not resolved.is_file():
        raise FileNotFoundError(f"Configuration file not found: {resolved}")

    parser = configparser.ConfigParser()
    try:
        parser.read(resolved, encoding="utf-8")
    except configparser.Error as exc:
        raise ValueError(f"Malformed configuration file {resolved}: {exc}") from exc
    return parser


def _resolve_data_file(raw: str, base_path: Optional[Path]) -> Path:
    path = Path(raw).expanduser()
    if path.is_absolute():
        return path
    return ((base_path or Path.cwd()) / path).resolve()


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    ``[System]`` entries are mandatory. ``[Reports]``, ``[Inventory]`` and
    ``[Concurrency]`` are optional and fall back to the package defaults.
    Relative ``DataFile`` entries are anchored at ``base_path`` (or the current
    working directory when omitted).

    Raises:
        KeyError: If a required section or option is missing.
        ValueError: If an optional numeric option is malformed or out of range.
    """

    try:
        system = {key: parser.get("System", key) for key in ("DataFile", "ShopName", "SchemaVersion")}
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    submission_hour = parser.getint("Reports", "SubmissionHour", fallback=DEFAULT_SUBMISSION_HOUR)
    if not 0 <= submission_hour <= 23:
        raise ValueError(f"SubmissionHour must be between 0 and 23, got {submission_hour}")

    threshold_raw = parser.get("Inventory", "LowStockThreshold", fallback="").strip()
    try:
        low_stock_threshold = Decimal(threshold_raw) if threshold_raw else DEFAULT_LOW_STOCK_THRESHOLD
    except InvalidOperation as exc:
        raise ValueError(f"LowStockThreshold is not a number: {threshold_raw!r}") from exc

    lock_timeout = parser.getfloat("Concurrency", "LockTimeout", fallback=DEFAULT_LOCK_TIMEOUT)
    if lock_timeout <= 0:
        raise ValueError(f"LockTimeout must be positive, got {lock_timeout}")

    return ConfigSettings(
        data_file=_resolve_data_file(system["DataFile"], base_path),
        shop_name=system["ShopName"],
        schema_version=system["SchemaVersion"],
        submission_hour=submission_hour,
        low_stock_threshold=low_stock_threshold,
        lock_timeout=lock_timeout,
    )


def open_workbook(data_file: Path) -> Workbook:
    """Load the ledger workbook and check that every ledger sheet is present.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist.
        ValueError: If the file is not an ``.xlsx`` workbook or lacks a sheet
            from :data:`SHEET_COLUMNS`.
    """

    path = Path(data_file).expanduser().resolve()
    if not path.is_file():
        raise FileNotFoundError(f"Workbook not found: {path}")

    try:
        workbook = openpyxl.load_workbook(path)
    except (InvalidFileException, BadZipFile) as exc:
        raise ValueError(f"{path} is not a readable .xlsx workbook: {exc}") from exc

    missing = [name for name in SHEET_COLUMNS if name not in workbook.sheetnames]
    if missing:
        raise ValueError(f"Workbook {path} is missing sheet(s): {', '.join(missing)}")
    return workbook


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Save to ``destination`` through a sibling temp file, creating folders.

    The target is only replaced once the new file is fully written, so an
    interrupted save never leaves a truncated ledger behind.
    """

    target = Path(destination).expanduser().resolve()
    target.parent.mkdir(parents=True, exist_ok=True)
    staging = target.with_name(f".{target.name}.saving")
    try:
        workbook.save(staging)
        staging.replace(target)
    finally:
        staging.unlink(missing_ok=True)


def _iter_raw_rows(workbook: Workbook, sheet_name: str) -> Iterable[Sequence[object]]:
    sheet = workbook[sheet_name]
    for raw in sheet.iter_rows(min_row=2, values_only=True):
        # skip fully empty rows
        if any(cell is not None for cell in raw):
            yield raw


def iter_products(workbook: Workbook) -> Iterable[ProductRow]:
    """Yield typed product records from the ``Products`` worksheet."""

    for raw in _iter_raw_rows(workbook, PRODUCTS_SHEET):
        yield deserialize_product(raw)


def iter_sales(workbook: Workbook) -> Iterable[SaleRow]:
    """Yield typed sale records from the ``Sales`` worksheet."""

    for raw in _iter_raw_rows(workbook, SALES_SHEET):
        yield deserialize_sale(raw)


def iter_daily_reports(workbook: Workbook) -> Iterable[DailyReportRow]:
    """Yield typed daily report records from the ``DailyReports`` worksheet."""

    for raw in _iter_raw_rows(workbook, DAILY_REPORTS_SHEET):
        yield deserialize_daily_report(raw)


def replace_sheet_rows(workbook: Workbook, sheet_name: str, rows: Iterable[Sequence[object]]) -> int:
    """Overwrite every data row of ``sheet_name`` while keeping its header.

    Returns:
        int: Number of rows written.
    """

    sheet = workbook[sheet_name]
    if sheet.max_row > 1:
        sheet.delete_rows(2, sheet.max_row - 1)
    # Worksheet.append keeps its cursor past deleted rows, so address cells directly.
    count = 0
    for row_index, row in enumerate(rows, start=2):
        for column_index, value in enumerate(row, start=1):
            sheet.cell(row=row_index, column=column_index, value=value)
        count += 1
    log.debug("Wrote %d rows to sheet '%s'", count, sheet_name)
    return count


def write_products(workbook: Workbook, records: Iterable[ProductRow]) -> int:
    return replace_sheet_rows(workbook, PRODUCTS_SHEET, (serialize_product(r) for r in records))


def write_sales(workbook: Workbook, records: Iterable[SaleRow]) -> int:
    return replace_sheet_rows(workbook, SALES_SHEET, (serialize_sale(r) for r in records))


def write_daily_reports(workbook: Workbook, records: Iterable[DailyReportRow]) -> int:
    return replace_sheet_rows(workbook, DAILY_REPORTS_SHEET, (serialize_daily_report(r) for r in records))


def serialize_product(record: ProductRow) -> list[object]:
    """Convert a product record into the ``Products`` column ordering.

    Decimals are written as text so a save/load cycle never goes through
    binary floating point.
    """

    return [
        record.product_id,
        record.name,
        str(record.purchase_price),
        str(record.selling_price),
        str(record.stock),
        record.created_at.isoformat(),
        record.version,
    ]


def serialize_sale(record: SaleRow) -> list[object]:
    """Convert a sale record into the ``Sales`` column ordering."""

    return [
        record.sale_id,
        record.product_id,
        str(record.quantity),
        str(record.price_per_kg),
        str(record.total_amount),
        str(record.profit),
        record.sale_date.isoformat(),
    ]


def serialize_daily_report(record: DailyReportRow) -> list[object]:
    """Convert a daily report into the ``DailyReports`` column ordering."""

    return [
        record.report_id,
        record.date.isoformat(),
        str(record.total_sales),
        str(record.total_profit),
        str(record.total_cost),
        record.is_submitted,
        record.submitted_at.isoformat() if record.submitted_at is not None else None,
    ]


def _to_decimal(raw: object, default: str = "0") -> Decimal:
    return Decimal(str(raw)) if raw is not None else Decimal(default)


def _to_text(raw: object) -> str:
    return "" if raw is None else str(raw).strip()


def _to_datetime(raw: object) -> datetime:
    """Read a timestamp cell as an aware datetime.

    Cells typed into Excel by hand come back naive and are taken as local time.
    """
    moment = raw if isinstance(raw, datetime) else datetime.fromisoformat(str(raw))
    return local_time(moment)


def _to_date(raw: object) -> date:
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    return date.fromisoformat(str(raw))


def deserialize_product(raw_row: Sequence[object]) -> ProductRow:
    """Convert a raw ``Products`` row into a :class:`ProductRow`.

    Identifiers and names are coerced to ``str`` because Excel happily turns
    numeric-looking text into numbers. Blank text cells read as ``""`` and a
    blank version cell reads as ``0``.
    """

    product_id, name, purchase_raw, selling_raw, stock_raw, created_raw, version_raw = raw_row[:7]
    return ProductRow(
        product_id=_to_text(product_id),
        name=_to_text(name),
        purchase_price=_to_decimal(purchase_raw, "0.00"),
        selling_price=_to_decimal(selling_raw, "0.00"),
        stock=_to_decimal(stock_raw, "0.0"),
        created_at=_to_datetime(created_raw),
        version=int(version_raw) if version_raw is not None else 0,
    )


def deserialize_sale(raw_row: Sequence[object]) -> SaleRow:
    """Convert a raw ``Sales`` row into a :class:`SaleRow`."""

    (
        sale_id,
        product_id,
        quantity_raw,
        price_raw,
        total_raw,
        profit_raw,
        sale_date_raw,
    ) = raw_row[:7]
    return SaleRow(
        sale_id=_to_text(sale_id),
        product_id=_to_text(product_id),
        quantity=_to_decimal(quantity_raw),
        price_per_kg=_to_decimal(price_raw, "0.00"),
        total_amount=_to_decimal(total_raw, "0.00"),
        profit=_to_decimal(profit_raw, "0.00"),
        sale_date=_to_datetime(sale_date_raw),
    )


def deserialize_daily_report(raw_row: Sequence[object]) -> DailyReportRow:
    """Convert a raw ``DailyReports`` row into a :class:`DailyReportRow`.

    The submitted flag goes through ``bool`` coercion and an empty
    ``SubmittedAt`` cell stays ``None``.
    """

    (
        report_id,
        date_raw,
        sales_raw,
        profit_raw,
        cost_raw,
        submitted_raw,
        submitted_at_raw,
    ) = raw_row[:7]
    return DailyReportRow(
        report_id=_to_text(report_id),
        date=_to_date(date_raw),
        total_sales=_to_decimal(sales_raw, "0.00"),
        total_profit=_to_decimal(profit_raw, "0.00"),
        total_cost=_to_decimal(cost_raw, "0.00"),
        is_submitted=bool(submitted_raw),
        submitted_at=_to_datetime(submitted_at_raw) if submitted_at_raw is not None else None,
    )
