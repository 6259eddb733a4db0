"""Commands, validation guards and numeric helpers shared by the ledgers.

The calling layer has already checked request shapes and types; the guards in
this module enforce the business constraints (positive prices, non-empty
names, supported precision) and raise :class:`~bozor_ledger.errors.ValidationError`
when they fail.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Callable, Optional

from . import log
from .constants import MARGIN_QUANTUM, MONEY_QUANTUM, QUANTITY_QUANTUM
from .errors import ValidationError


Clock = Callable[[], datetime]


@dataclass(frozen=True)
class CreateProductCommand:
    """User intent for registering a new product."""

    name: str
    purchase_price: Decimal
    selling_price: Decimal
    initial_stock: Decimal = Decimal("0")


@dataclass(frozen=True)
class RecordSaleCommand:
    """User intent for selling ``quantity`` of a product at ``price_per_kg``.

    Totals are deliberately absent: the sale ledger derives them.
    """

    product_id: str
    quantity: Decimal
    price_per_kg: Decimal


@dataclass(frozen=True)
class StockAdjustmentCommand:
    """Signed stock correction with a free-text reason."""

    product_id: str
    delta: Decimal
    reason: str


@dataclass(frozen=True)
class SubmitReportCommand:
    """Close-of-day request. ``None`` means today on the ledger clock."""

    date: Optional[date] = None


def system_clock() -> datetime:
    """Return the current local wall-clock time as an aware datetime."""

    return datetime.now().astimezone()


def local_time(moment: datetime) -> datetime:
    """Return ``moment`` as an aware datetime.

    Naive values are read as local wall-clock time and given the local offset.
    Aware values keep the offset they were recorded with.
    """

    return moment.astimezone() if moment.tzinfo is None else moment


def local_day(moment: datetime) -> date:
    """Calendar day of ``moment`` in the offset it was recorded with.

    Timestamps come from the ledger clock, which reports local time, so the
    recorded offset is the local one.
    """

    return moment.date()


def generate_id(prefix: str) -> str:
    """Return an opaque identifier such as ``P-3f2a9c0d1b7e``."""

    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def round_money(amount: Decimal) -> Decimal:
    """Round to cents, halves away from zero."""

    return amount.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def round_margin(amount: Decimal) -> Decimal:
    """Round a percentage to one decimal place, halves away from zero."""

    return amount.quantize(MARGIN_QUANTUM, rounding=ROUND_HALF_UP)


def _require_precision(value: Decimal, quantum: Decimal, label: str) -> Decimal:
    try:
        normalized = value.quantize(quantum, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        log.warning("%s magnitude validation failed: %s", label, value)
        raise ValidationError(f"{label} is too large: {value}") from exc
    if normalized != value:
        log.warning("%s precision validation failed: %s", label, value)
        raise ValidationError(f"{label} supports at most {-quantum.as_tuple().exponent} decimal place(s)")
    return normalized


def require_name(name: str) -> str:
    """Return ``name`` stripped of surrounding whitespace.

    Raises:
        ValidationError: If nothing is left after stripping.
    """
    stripped = name.strip() if name is not None else ""
    if not stripped:
        log.warning("Product name validation failed: %r", name)
        raise ValidationError("Product name must not be empty")
    return stripped


def require_positive_money(amount: Decimal, label: str = "Price") -> Decimal:
    """Validate that a price is strictly positive with at most two decimals.

    Returns:
        Decimal: ``amount`` normalized to two decimal places.

    Raises:
        ValidationError: If ``amount`` is zero, negative or too precise.
    """
    if not amount.is_finite() or amount <= Decimal("0"):
        log.warning("%s validation failed: %s", label, amount)
        raise ValidationError(f"{label} must be greater than zero")
    return _require_precision(amount, MONEY_QUANTUM, label)


def require_positive_quantity(quantity: Decimal, label: str = "Quantity") -> Decimal:
    """Validate that a quantity is strictly positive with one decimal at most.

    Returns:
        Decimal: ``quantity`` normalized to one decimal place.

    Raises:
        ValidationError: If ``quantity`` is zero, negative or too precise.
    """
    if not quantity.is_finite() or quantity <= Decimal("0"):
        log.warning("%s validation failed: %s", label, quantity)
        raise ValidationError(f"{label} must be greater than zero")
    return _require_precision(quantity, QUANTITY_QUANTUM, label)


def require_nonnegative_quantity(quantity: Decimal, label: str = "Stock") -> Decimal:
    """Validate that a stock level is zero or positive with one decimal at most.

    Raises:
        ValidationError: If ``quantity`` is negative or too precise.
    """
    if not quantity.is_finite() or quantity < Decimal("0"):
        log.warning("%s validation failed: %s", label, quantity)
        raise ValidationError(f"{label} must be zero or positive")
    return _require_precision(quantity, QUANTITY_QUANTUM, label)


def require_nonzero_delta(delta: Decimal) -> Decimal:
    """Validate a signed stock adjustment.

    Raises:
        ValidationError: If ``delta`` is zero or has more than one decimal.
    """
    if not delta.is_finite() or delta == Decimal("0"):
        log.warning("Stock adjustment delta validation failed: %s", delta)
        raise ValidationError("Stock adjustment must change the stock level")
    return _require_precision(delta, QUANTITY_QUANTUM, "Stock adjustment")


def require_reason(reason: str) -> str:
    """Return the stripped adjustment reason.

    Raises:
        ValidationError: If the reason is blank.
    """
    stripped = reason.strip() if reason is not None else ""
    if not stripped:
        log.warning("Stock adjustment rejected without a reason")
        raise ValidationError("Stock adjustments require a reason")
    return stripped


def require_date_range(start: date, end: date) -> None:
    """Check an inclusive date range.

    Raises:
        ValidationError: If ``start`` falls after ``end``.
    """
    if start > end:
        log.warning("Date range validation failed: %s > %s", start, end)
        raise ValidationError(f"Range start {start} is after range end {end}")


__all__ = [
    "Clock",
    "CreateProductCommand",
    "RecordSaleCommand",
    "StockAdjustmentCommand",
    "SubmitReportCommand",
    "system_clock",
    "local_time",
    "local_day",
    "generate_id",
    "round_money",
    "round_margin",
    "require_name",
    "require_positive_money",
    "require_positive_quantity",
    "require_nonnegative_quantity",
    "require_nonzero_delta",
    "require_reason",
    "require_date_range",
]
