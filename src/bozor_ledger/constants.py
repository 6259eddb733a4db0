"""Constants shared across the Bozor ledger modules.

Keeps sheet names, precision rules and business thresholds in one place so the
workbook layer, the ledgers and the CLI agree on them.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum


# Schema version written to config.ini and checked before any mutation.
EXPECTED_SCHEMA_VERSION = "1.0.0"

MONEY_QUANTUM = Decimal("0.01")
QUANTITY_QUANTUM = Decimal("0.1")
MARGIN_QUANTUM = Decimal("0.1")

# Local wall-clock hour from which the daily report may be submitted.
DEFAULT_SUBMISSION_HOUR = 18
DEFAULT_LOW_STOCK_THRESHOLD = Decimal("10")
DEFAULT_LOCK_TIMEOUT = 5.0

TRAILING_WINDOW_DAYS = 7

WEEKDAY_LABELS: tuple[str, ...] = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)


class SheetName(str, Enum):
    """Enumerate the workbook sheet names managed by the data layer."""

    PRODUCTS = "Products"
    SALES = "Sales"
    DAILY_REPORTS = "DailyReports"


class StockStatus(str, Enum):
    """Coarse stock level buckets shown next to each product."""

    OUT = "OUT"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    ADEQUATE = "ADEQUATE"


class ReportState(str, Enum):
    """Lifecycle of the daily report for a single calendar date."""

    NO_REPORT = "NO_REPORT"
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "MONEY_QUANTUM",
    "QUANTITY_QUANTUM",
    "MARGIN_QUANTUM",
    "DEFAULT_SUBMISSION_HOUR",
    "DEFAULT_LOW_STOCK_THRESHOLD",
    "DEFAULT_LOCK_TIMEOUT",
    "TRAILING_WINDOW_DAYS",
    "WEEKDAY_LABELS",
    "SheetName",
    "StockStatus",
    "ReportState",
]
