"""Composes engine outputs into one immutable :class:`StudentReport`."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from engines.aggregator import AggregationResult
from engines.validation import ReportConsistencyError
from schemas import (
    Activity,
    AttendanceRecord,
    AttendanceSummary,
    BillingSummary,
    DisciplineIssue,
    HomeworkRecord,
    Invoice,
    MetricValue,
    MissedChapters,
    Payment,
    ReportWindow,
    SourceStatus,
    Student,
    StudentReport,
    SubjectTestSummary,
    TestResult,
)


@dataclass
class ReportMetrics:
    attendance_percentage: MetricValue
    chapter_completion_percentage: MetricValue
    test_average_percentage: MetricValue
    outstanding_balance: MetricValue
    attendance_summary: Optional[AttendanceSummary] = None
    billing_summary: Optional[BillingSummary] = None
    tests_by_subject: List[SubjectTestSummary] = field(default_factory=list)
    subjects: List[str] = field(default_factory=list)


@dataclass
class ReportDetails:
    attendance: List[AttendanceRecord] = field(default_factory=list)
    invoices: List[Invoice] = field(default_factory=list)
    payments: List[Payment] = field(default_factory=list)
    activities: List[Activity] = field(default_factory=list)
    discipline_issues: List[DisciplineIssue] = field(default_factory=list)
    test_results: List[TestResult] = field(default_factory=list)
    homework_records: List[HomeworkRecord] = field(default_factory=list)


class ReportAssembler:
    """Structural composition only; every value arrives already computed."""

    def assemble(
        self,
        *,
        student: Student,
        window: ReportWindow,
        evaluated_at: datetime,
        subject_filter: Optional[str],
        aggregation: AggregationResult,
        missed: MissedChapters,
        overdue: List[HomeworkRecord],
        overdue_available: bool,
        metrics: ReportMetrics,
        details: ReportDetails,
        sources: Dict[str, SourceStatus],
    ) -> StudentReport:
        chapter_ids = aggregation.chapter_ids
        if missed.is_determined and any(c.id in chapter_ids for c in missed.chapters):
            raise ReportConsistencyError("Missed chapters overlap chapter performance units")

        return StudentReport(
            student=student,
            window=window,
            evaluated_at=evaluated_at,
            subject_filter=subject_filter,
            attendance_percentage=metrics.attendance_percentage,
            chapter_completion_percentage=metrics.chapter_completion_percentage,
            test_average_percentage=metrics.test_average_percentage,
            outstanding_balance=metrics.outstanding_balance,
            chapter_performance=list(aggregation.chapters),
            missed_chapters=missed,
            overdue_homework=list(overdue),
            overdue_homework_available=overdue_available,
            uncorrelated_test_results=list(aggregation.uncorrelated_test_results),
            uncorrelated_homework=list(aggregation.uncorrelated_homework),
            uncorrelated_completions=list(aggregation.uncorrelated_completions),
            attendance=sorted(details.attendance, key=lambda r: (r.date, r.id)),
            attendance_summary=metrics.attendance_summary,
            invoices=list(details.invoices),
            payments=list(details.payments),
            billing_summary=metrics.billing_summary,
            activities=list(details.activities),
            discipline_issues=list(details.discipline_issues),
            test_results=sorted(details.test_results, key=lambda r: (r.date_taken, r.id), reverse=True),
            homework_records=list(details.homework_records),
            tests_by_subject=list(metrics.tests_by_subject),
            subjects=list(metrics.subjects),
            sources=dict(sources),
        )
