"""Exception taxonomy raised by the ledger components.

Every :class:`BusinessRuleViolation` is recoverable at the caller boundary and
is raised before any state changes become visible. :class:`LedgerIntegrityError`
is reserved for invariant breaches that indicate a programming error.
"""

from __future__ import annotations


class BusinessRuleViolation(Exception):
    """Raised when a requested operation violates a domain constraint."""


class NotFoundError(BusinessRuleViolation):
    """Raised when a referenced product or daily report is unknown."""


class ValidationError(BusinessRuleViolation, ValueError):
    """Raised for empty names, non-positive prices or quantities, and similar."""


class InsufficientStockError(BusinessRuleViolation):
    """Raised when a sale asks for more than the product currently holds."""


class InvalidAdjustmentError(BusinessRuleViolation):
    """Raised when a stock adjustment would drive stock below zero."""


class EarlySubmissionError(BusinessRuleViolation):
    """Raised when the daily report is submitted before the cutoff hour."""


class ConflictError(BusinessRuleViolation):
    """Raised when a concurrent writer wins or the ledger lock cannot be taken."""


class LedgerIntegrityError(RuntimeError):
    """Raised when stored state already breaks a ledger invariant."""


__all__ = [
    "BusinessRuleViolation",
    "NotFoundError",
    "ValidationError",
    "InsufficientStockError",
    "InvalidAdjustmentError",
    "EarlySubmissionError",
    "ConflictError",
    "LedgerIntegrityError",
]
