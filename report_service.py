"""Entry point that turns a report request into a :class:`StudentReport`.

``ReportService.build_report`` validates input, fans the repository reads
out concurrently, waits for all of them and then runs the pure engines via
:func:`compose_report`.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

import db
import summary
from engines.aggregator import ChapterAggregator
from engines.correlation import ChapterIndex, narrow_to_cohort
from engines.fanout import SelectionTracker, SourceOutcome, gather_sources
from engines.gaps import GapDetector
from engines import metrics
from engines.report_assembler import ReportAssembler, ReportDetails, ReportMetrics
from engines.validation import (
    StudentNotFound,
    coerce_instant,
    validate_student_id,
    validate_subject,
    validate_window,
)
from env_validation import get_env_float
from schemas import (
    MetricValue,
    MissedChapters,
    ReportWindow,
    SourceStatus,
    Student,
    StudentReport,
    SummaryResult,
)

logger = logging.getLogger(__name__)

# report section -> repository function
SOURCE_READERS: Dict[str, str] = {
    "attendance": "list_attendance",
    "taught_chapters": "list_taught_chapters",
    "completions": "list_completion_records",
    "tests": "list_test_results",
    "homework": "list_homework_records",
    "activities": "list_activities",
    "discipline": "list_discipline_issues",
    "invoices": "list_invoices",
    "payments": "list_payments",
}

UNAVAILABLE = "source_unavailable"

_AGGREGATOR = ChapterAggregator()
_GAP_DETECTOR = GapDetector()
_ASSEMBLER = ReportAssembler()


def _records(outcomes: Mapping[str, SourceOutcome], name: str) -> List[Any]:
    outcome = outcomes.get(name)
    if outcome is None or not outcome.ok:
        return []
    return list(outcome.records)


def _ok(outcomes: Mapping[str, SourceOutcome], *names: str) -> bool:
    return all(name in outcomes and outcomes[name].ok for name in names)


def _metric(available: bool, compute: Callable[[], float]) -> MetricValue:
    if not available:
        return MetricValue(value=None, available=False, reason=UNAVAILABLE)
    return MetricValue(value=float(compute()))


def compose_report(
    student: Student,
    window: ReportWindow,
    evaluated_at: datetime,
    subject_filter: Optional[str],
    outcomes: Mapping[str, SourceOutcome],
) -> StudentReport:
    """Run correlation, aggregation, metrics and gap detection over one snapshot.

    Deterministic for a given snapshot and evaluation instant. Sources that
    failed contribute no records and mark their dependent values unavailable.
    """

    attendance = _records(outcomes, "attendance")
    chapters = _records(outcomes, "taught_chapters")
    completions = _records(outcomes, "completions")
    test_results = _records(outcomes, "tests")
    homework = _records(outcomes, "homework")
    invoices = _records(outcomes, "invoices")
    payments = _records(outcomes, "payments")

    cohort = student.grade
    index = ChapterIndex(narrow_to_cohort(chapters, cohort))
    aggregation = _AGGREGATOR.aggregate(index, completions, test_results, homework)

    chapters_ok = _ok(outcomes, "taught_chapters", "completions")
    if not cohort:
        missed = MissedChapters(status="undetermined", reason="cohort_unknown")
    elif not chapters_ok:
        missed = MissedChapters(status="undetermined", reason=UNAVAILABLE)
    else:
        missed = _GAP_DETECTOR.missed_chapters(
            cohort,
            window,
            chapters,
            completions,
            covered_chapter_ids=aggregation.chapter_ids,
        )

    homework_ok = _ok(outcomes, "homework")
    overdue = _GAP_DETECTOR.overdue_homework(homework, evaluated_at) if homework_ok else []

    report_metrics = ReportMetrics(
        attendance_percentage=_metric(
            _ok(outcomes, "attendance"), lambda: metrics.attendance_percentage(attendance)
        ),
        chapter_completion_percentage=_metric(
            chapters_ok, lambda: metrics.chapter_completion_percentage(aggregation.chapters)
        ),
        test_average_percentage=_metric(
            _ok(outcomes, "tests"), lambda: metrics.test_average_percentage(test_results)
        ),
        outstanding_balance=_metric(
            _ok(outcomes, "invoices"), lambda: metrics.outstanding_balance(invoices)
        ),
        attendance_summary=metrics.attendance_summary(attendance) if _ok(outcomes, "attendance") else None,
        billing_summary=(
            metrics.billing_summary(invoices, payments, evaluated_at.date())
            if _ok(outcomes, "invoices", "payments")
            else None
        ),
        tests_by_subject=metrics.tests_by_subject(test_results),
        subjects=metrics.subjects(
            (c.subject for c in chapters),
            (r.test.subject for r in test_results if r.test),
            (r.homework.subject for r in homework if r.homework),
        ),
    )
    details = ReportDetails(
        attendance=attendance,
        invoices=invoices,
        payments=payments,
        activities=_records(outcomes, "activities"),
        discipline_issues=_records(outcomes, "discipline"),
        test_results=test_results,
        homework_records=homework,
    )
    sources = {
        name: SourceStatus(available=outcome.ok, error=outcome.error, record_count=len(outcome.records))
        for name, outcome in outcomes.items()
    }

    return _ASSEMBLER.assemble(
        student=student,
        window=window,
        evaluated_at=evaluated_at,
        subject_filter=subject_filter,
        aggregation=aggregation,
        missed=missed,
        overdue=overdue,
        overdue_available=homework_ok,
        metrics=report_metrics,
        details=details,
        sources=sources,
    )


class ReportService:
    """Builds student reports against a repository module or object.

    ``repository`` must expose ``get_student`` and the functions named in
    :data:`SOURCE_READERS`; the ``db`` module is the default.
    """

    def __init__(
        self,
        repository: Any = db,
        *,
        tracker: Optional[SelectionTracker] = None,
        source_timeout: Optional[float] = None,
        summarizer: Optional[Callable[[StudentReport], SummaryResult]] = None,
    ):
        self.repository = repository
        self.tracker = tracker if tracker is not None else SelectionTracker()
        self.source_timeout = source_timeout if source_timeout else None
        self.summarizer = summarizer or summary.generate_summary

    @classmethod
    def from_env(cls) -> "ReportService":
        return cls(source_timeout=get_env_float("REPORT_SOURCE_TIMEOUT"))

    def _reads(self, student_id: str, window: ReportWindow, subject: Optional[str]) -> Dict[str, Callable[[], List[Any]]]:
        return {
            name: functools.partial(getattr(self.repository, attr), student_id, window.start, window.end, subject)
            for name, attr in SOURCE_READERS.items()
        }

    async def build_report(
        self,
        student_id: Optional[str],
        window_start: Union[str, date, None] = None,
        window_end: Union[str, date, None] = None,
        subject: Optional[str] = None,
        now: Union[str, datetime, None] = None,
        selection_key: Optional[str] = None,
        include_summary: bool = False,
    ) -> StudentReport:
        # Fatal input is rejected before any source is read.
        student_id = validate_student_id(student_id)
        evaluated_at = coerce_instant(now)
        window = validate_window(window_start, window_end, evaluated_at)
        subject_filter = validate_subject(subject)

        student = await asyncio.to_thread(self.repository.get_student, student_id)
        if student is None:
            raise StudentNotFound(student_id)

        token = self.tracker.begin(selection_key)
        try:
            outcomes = await gather_sources(
                self._reads(student_id, window, subject_filter),
                timeout=self.source_timeout,
            )
            token.ensure_current()

            report = compose_report(student, window, evaluated_at, subject_filter, outcomes)
            failed = sorted(name for name, outcome in outcomes.items() if not outcome.ok)
            if failed:
                logger.warning("Report for %s built with unavailable sources: %s", student_id, ", ".join(failed))
            else:
                logger.info(
                    "Report for %s built: %d chapter units, %d missed, %d overdue",
                    student_id,
                    len(report.chapter_performance),
                    len(report.missed_chapters.chapters),
                    len(report.overdue_homework),
                )

            if include_summary:
                try:
                    result = await asyncio.to_thread(self.summarizer, report)
                except Exception as exc:
                    logger.warning("Summary for %s failed", student_id, exc_info=True)
                    result = SummaryResult(error=str(exc))
                token.ensure_current()
                report = report.with_summary(result)
            return report
        finally:
            token.release()
