"""Daily report ledger and its time-gated close-of-day submission.

A date starts in ``NO_REPORT``. Its ``DRAFT`` is whatever the aggregator would
compute right now and is never stored. Submitting stores the totals and moves
the date to ``SUBMITTED``. Submitting again refreshes the totals but keeps the
first ``submitted_at``.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from typing import Optional

from . import log
from .aggregator import Aggregator
from .constants import DEFAULT_SUBMISSION_HOUR, ReportState
from .data_manager import DailyReportRow
from .domain import Clock, SubmitReportCommand, generate_id, local_day, local_time, system_clock
from .errors import EarlySubmissionError, NotFoundError, ValidationError
from .storage import LedgerStore


class ReportLedger:
    """Owns one daily report per calendar date."""

    def __init__(
        self,
        store: LedgerStore,
        aggregator: Aggregator,
        *,
        clock: Clock = system_clock,
        submission_hour: int = DEFAULT_SUBMISSION_HOUR,
    ) -> None:
        self._store = store
        self._aggregator = aggregator
        self._clock = clock
        self._submission_hour = submission_hour

    def hours_until_open(self) -> int:
        """Whole hours left before submission opens today; ``0`` once open."""
        return max(0, self._submission_hour - self._clock().hour)

    def get_report(self, day: date) -> DailyReportRow:
        """Return the stored report for ``day``.

        Raises:
            NotFoundError: If nothing was stored for ``day``.
        """
        report = self._store.get_report(day)
        if report is None:
            log.warning("Daily report lookup failed for %s", day)
            raise NotFoundError(f"No daily report for {day.isoformat()}")
        return report

    def state(self, day: date) -> ReportState:
        report = self._store.get_report(day)
        if report is None:
            return ReportState.NO_REPORT
        return ReportState.SUBMITTED if report.is_submitted else ReportState.DRAFT

    def draft(self, day: Optional[date] = None) -> DailyReportRow:
        """Compute the report for ``day`` without storing or submitting it."""
        target = local_day(self._clock()) if day is None else day
        summary = self._aggregator.summarize_day(target)
        existing = self._store.get_report(target)
        return DailyReportRow(
            report_id=existing.report_id if existing is not None else "",
            date=target,
            total_sales=summary.total_sales,
            total_profit=summary.total_profit,
            total_cost=summary.total_cost,
            is_submitted=False,
            submitted_at=None,
        )

    def submit(self, command: Optional[SubmitReportCommand] = None) -> DailyReportRow:
        """Close the day: store freshly computed totals and mark them submitted.

        Args:
            command (SubmitReportCommand | None): Optional target date; defaults
                to today on the ledger clock.

        Returns:
            DailyReportRow: The stored report.

        Raises:
            EarlySubmissionError: If the local hour is before the cutoff.
            ValidationError: If the target date lies in the future.
        """
        now = local_time(self._clock())
        if now.hour < self._submission_hour:
            log.warning(
                "Rejected report submission at %s; opens at %02d:00",
                now.isoformat(),
                self._submission_hour,
            )
            raise EarlySubmissionError(
                f"Daily report can only be submitted after {self._submission_hour:02d}:00"
            )

        today = local_day(now)
        target = today if command is None or command.date is None else command.date
        if target > today:
            log.warning("Rejected report submission for future date %s", target)
            raise ValidationError(f"Cannot submit a report for a future date: {target.isoformat()}")

        with self._store.transaction() as store:
            summary = self._aggregator.summarize_day(target)
            existing = store.get_report(target)
            if existing is None:
                report = DailyReportRow(
                    report_id=generate_id("R"),
                    date=target,
                    total_sales=summary.total_sales,
                    total_profit=summary.total_profit,
                    total_cost=summary.total_cost,
                    is_submitted=True,
                    submitted_at=now,
                )
                action = "Created"
            else:
                report = replace(
                    existing,
                    report_id=existing.report_id or generate_id("R"),
                    total_sales=summary.total_sales,
                    total_profit=summary.total_profit,
                    total_cost=summary.total_cost,
                    is_submitted=True,
                    submitted_at=existing.submitted_at or now,
                )
                action = "Refreshed" if existing.is_submitted else "Submitted"
            store.upsert_report(report)

        log.info(
            "%s daily report for %s (sales=%s, profit=%s, cost=%s)",
            action,
            target.isoformat(),
            report.total_sales,
            report.total_profit,
            report.total_cost,
        )
        return report
