"""Scalar summaries over raw record lists."""

from __future__ import annotations

import math
from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Sequence

from schemas import (
    AttendanceRecord,
    AttendanceSummary,
    BillingSummary,
    ChapterPerformance,
    Invoice,
    Payment,
    SubjectTestSummary,
    TestResult,
)

_OVERDUE_INVOICE_STATUSES = {"issued", "partial"}


def round_half_up(value: float) -> int:
    """Round like a spreadsheet does: 0.5 goes away from zero."""

    if value < 0:
        return -math.floor(-value + 0.5)
    return math.floor(value + 0.5)


def percentage(numerator: float, denominator: float) -> int:
    """Whole-number percentage clamped to [0, 100]; 0 for an empty denominator."""

    if not denominator or denominator <= 0:
        return 0
    ratio = 100.0 * numerator / denominator
    if math.isnan(ratio):
        return 0
    return max(0, min(100, round_half_up(ratio)))


def attendance_percentage(records: Iterable[AttendanceRecord]) -> int:
    summary = attendance_summary(records)
    return percentage(summary.present_days, summary.total_days)


def attendance_summary(records: Iterable[AttendanceRecord]) -> AttendanceSummary:
    total = 0
    present = 0
    for record in records:
        total += 1
        if record.is_present:
            present += 1
    return AttendanceSummary(total_days=total, present_days=present, absent_days=total - present)


def chapter_completion_percentage(units: Sequence[ChapterPerformance]) -> int:
    completed = sum(1 for unit in units if unit.is_completed)
    return percentage(completed, len(units))


def _test_totals(results: Iterable[TestResult]) -> tuple[float, float, int]:
    obtained = 0.0
    total = 0.0
    count = 0
    for result in results:
        count += 1
        obtained += result.marks_obtained
        total += result.test.total_marks if result.test else 0.0
    return obtained, total, count


def test_average_percentage(results: Iterable[TestResult]) -> int:
    # Summed marks, so a heavier test weighs proportionally more.
    obtained, total, _ = _test_totals(results)
    return percentage(obtained, total)


def tests_by_subject(results: Iterable[TestResult]) -> List[SubjectTestSummary]:
    grouped: Dict[str, List[TestResult]] = defaultdict(list)
    for result in results:
        subject = result.test.subject if result.test else "Unknown"
        grouped[subject].append(result)

    summaries = []
    for subject in sorted(grouped):
        obtained, total, count = _test_totals(grouped[subject])
        summaries.append(
            SubjectTestSummary(
                subject=subject,
                tests_taken=count,
                marks_obtained=obtained,
                total_marks=total,
                percentage=percentage(obtained, total),
            )
        )
    return summaries


def outstanding_balance(invoices: Iterable[Invoice]) -> float:
    """Invoiced minus paid; negative values mean the family has overpaid."""

    invoiced = 0.0
    paid = 0.0
    for invoice in invoices:
        invoiced += invoice.total_amount
        paid += invoice.paid_amount
    return invoiced - paid


def is_invoice_overdue(invoice: Invoice, today: date) -> bool:
    status = (invoice.status or "").lower()
    if status == "overdue":
        return True
    return (
        invoice.due_date is not None
        and invoice.due_date < today
        and status in _OVERDUE_INVOICE_STATUSES
    )


def billing_summary(invoices: Sequence[Invoice], payments: Sequence[Payment], today: date) -> BillingSummary:
    return BillingSummary(
        total_invoiced=sum(i.total_amount for i in invoices),
        total_paid=sum(i.paid_amount for i in invoices),
        payments_received=sum(p.amount for p in payments),
        outstanding_balance=outstanding_balance(invoices),
        overdue_invoices=[i for i in invoices if is_invoice_overdue(i, today)],
    )


def subjects(*groups: Iterable[str | None]) -> List[str]:
    seen = set()
    for group in groups:
        seen.update(s for s in group if s)
    return sorted(seen)
