"""Pydantic schemas for source records and the assembled student report."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Literal

from pydantic import BaseModel, Field

__all__ = [
    "Student",
    "TaughtChapter",
    "CompletionRecord",
    "TestDefinition",
    "TestResult",
    "HomeworkAssignment",
    "HomeworkRecord",
    "AttendanceRecord",
    "Invoice",
    "Payment",
    "Activity",
    "DisciplineIssue",
    "ReportWindow",
    "CorrelatedHomework",
    "ChapterPerformance",
    "MetricValue",
    "MissedChapters",
    "SourceStatus",
    "AttendanceSummary",
    "BillingSummary",
    "SubjectTestSummary",
    "SummaryResult",
    "StudentReport",
]

CalendarDate = date
CorrelationConfidence = Literal["strong", "weak", "none"]
HomeworkStatus = Literal["assigned", "in_progress", "completed", "checked"]

_FROZEN = {"frozen": True}


class Student(BaseModel):
    model_config = _FROZEN

    id: str
    name: str = ""
    grade: str | None = Field(
        default=None,
        description="Cohort label; None when the student has not been placed in a grade.",
    )
    center_id: str | None = None


class TaughtChapter(BaseModel):
    model_config = _FROZEN

    id: str
    subject: str
    chapter: str
    topic: str = ""
    grade: str | None = None
    lesson_date: date
    notes: str | None = None
    center_id: str | None = None


class CompletionRecord(BaseModel):
    model_config = _FROZEN

    id: str
    student_id: str
    taught_chapter_id: str | None = Field(
        default=None,
        description="Reference to the taught chapter; records without one cannot be correlated.",
    )
    completed: bool = False
    evaluation_rating: int | None = Field(default=None, ge=1, le=5)
    teacher_notes: str | None = None
    completed_at: datetime | None = None


class TestDefinition(BaseModel):
    model_config = _FROZEN
    __test__ = False

    id: str
    name: str = ""
    subject: str
    taught_chapter_id: str | None = None
    total_marks: float = Field(default=0.0, ge=0.0)


class TestResult(BaseModel):
    model_config = _FROZEN
    __test__ = False

    id: str
    student_id: str
    test_id: str
    marks_obtained: float = 0.0
    date_taken: date
    test: TestDefinition | None = None


class HomeworkAssignment(BaseModel):
    model_config = _FROZEN

    id: str
    title: str = ""
    subject: str
    due_date: date


class HomeworkRecord(BaseModel):
    model_config = _FROZEN

    id: str
    student_id: str
    homework_id: str
    status: HomeworkStatus = "assigned"
    teacher_remarks: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    homework: HomeworkAssignment | None = None


class AttendanceRecord(BaseModel):
    model_config = _FROZEN

    id: str
    student_id: str
    date: CalendarDate
    status: str

    @property
    def is_present(self) -> bool:
        return self.status.strip().lower() == "present"


class Invoice(BaseModel):
    model_config = _FROZEN

    id: str
    student_id: str
    invoice_date: date
    due_date: date | None = None
    total_amount: float = 0.0
    paid_amount: float = 0.0
    status: str = "issued"


class Payment(BaseModel):
    model_config = _FROZEN

    id: str
    invoice_id: str
    amount: float = 0.0
    payment_date: date
    method: str | None = None


class Activity(BaseModel):
    model_config = _FROZEN

    id: str
    student_id: str
    title: str = ""
    activity_type: str | None = None
    activity_date: date
    involvement_score: int | None = None
    description: str | None = None


class DisciplineIssue(BaseModel):
    model_config = _FROZEN

    id: str
    student_id: str
    category: str | None = None
    description: str = ""
    severity: Literal["low", "medium", "high"] | None = None
    issue_date: date


class ReportWindow(BaseModel):
    """Inclusive date range applied to every source read of one report."""

    model_config = _FROZEN

    start: date
    end: date

    def contains(self, value: date) -> bool:
        return self.start <= value <= self.end


class CorrelatedHomework(BaseModel):
    model_config = _FROZEN

    record: HomeworkRecord
    confidence: CorrelationConfidence = Field(
        description="Subject-name joins are weak; they may attach to any chapter of the same subject.",
    )


class ChapterPerformance(BaseModel):
    model_config = _FROZEN

    chapter: TaughtChapter
    completion_records: List[CompletionRecord] = Field(default_factory=list)
    test_results: List[TestResult] = Field(default_factory=list)
    homework: List[CorrelatedHomework] = Field(default_factory=list)
    is_completed: bool = False
    average_rating: float | None = None
    test_marks_obtained: float = 0.0
    test_total_marks: float = 0.0


class MetricValue(BaseModel):
    """A derived scalar that can be flagged unavailable instead of reading as zero."""

    model_config = _FROZEN

    value: float | None = None
    available: bool = True
    reason: str | None = None


class MissedChapters(BaseModel):
    model_config = _FROZEN

    status: Literal["determined", "undetermined"] = "determined"
    reason: Literal["cohort_unknown", "source_unavailable"] | None = None
    chapters: List[TaughtChapter] = Field(default_factory=list)

    @property
    def is_determined(self) -> bool:
        return self.status == "determined"


class SourceStatus(BaseModel):
    model_config = _FROZEN

    available: bool = True
    error: str | None = None
    record_count: int = 0


class AttendanceSummary(BaseModel):
    model_config = _FROZEN

    total_days: int = 0
    present_days: int = 0
    absent_days: int = 0


class BillingSummary(BaseModel):
    model_config = _FROZEN

    total_invoiced: float = 0.0
    total_paid: float = 0.0
    payments_received: float = 0.0
    outstanding_balance: float = 0.0
    overdue_invoices: List[Invoice] = Field(default_factory=list)


class SubjectTestSummary(BaseModel):
    model_config = _FROZEN

    subject: str
    tests_taken: int = 0
    marks_obtained: float = 0.0
    total_marks: float = 0.0
    percentage: int = 0


class SummaryResult(BaseModel):
    model_config = _FROZEN

    text: str | None = None
    error: str | None = None
    model: str | None = None
    latency_ms: int | None = None


class StudentReport(BaseModel):
    model_config = _FROZEN

    student: Student
    window: ReportWindow
    evaluated_at: datetime
    subject_filter: str | None = None

    attendance_percentage: MetricValue
    chapter_completion_percentage: MetricValue
    test_average_percentage: MetricValue
    outstanding_balance: MetricValue

    chapter_performance: List[ChapterPerformance] = Field(default_factory=list)
    missed_chapters: MissedChapters
    overdue_homework: List[HomeworkRecord] = Field(default_factory=list)
    overdue_homework_available: bool = True

    uncorrelated_test_results: List[TestResult] = Field(default_factory=list)
    uncorrelated_homework: List[HomeworkRecord] = Field(default_factory=list)
    uncorrelated_completions: List[CompletionRecord] = Field(default_factory=list)

    attendance: List[AttendanceRecord] = Field(default_factory=list)
    attendance_summary: AttendanceSummary | None = None
    invoices: List[Invoice] = Field(default_factory=list)
    payments: List[Payment] = Field(default_factory=list)
    billing_summary: BillingSummary | None = None
    activities: List[Activity] = Field(default_factory=list)
    discipline_issues: List[DisciplineIssue] = Field(default_factory=list)
    test_results: List[TestResult] = Field(default_factory=list)
    homework_records: List[HomeworkRecord] = Field(default_factory=list)
    tests_by_subject: List[SubjectTestSummary] = Field(default_factory=list)
    subjects: List[str] = Field(default_factory=list)

    sources: Dict[str, SourceStatus] = Field(default_factory=dict)
    summary: SummaryResult | None = None

    def with_summary(self, summary: SummaryResult) -> "StudentReport":
        return self.model_copy(update={"summary": summary})

    def digest(self) -> Dict[str, Any]:
        """Compact view of the report used as input for text summarization."""

        def _metric(metric: MetricValue) -> Any:
            return metric.value if metric.available else "unavailable"

        missed: Any
        if self.missed_chapters.is_determined:
            missed = [f"{c.subject}: {c.chapter}" for c in self.missed_chapters.chapters]
        else:
            missed = f"undetermined ({self.missed_chapters.reason})"
        attendance = self.attendance_summary
        return {
            "student": self.student.name or self.student.id,
            "grade": self.student.grade,
            "window": [self.window.start.isoformat(), self.window.end.isoformat()],
            "attendance_percentage": _metric(self.attendance_percentage),
            "present_days": attendance.present_days if attendance is not None else "unavailable",
            "total_days": attendance.total_days if attendance is not None else "unavailable",
            "chapter_completion_percentage": _metric(self.chapter_completion_percentage),
            "test_average_percentage": _metric(self.test_average_percentage),
            "tests_by_subject": [
                {"subject": s.subject, "percentage": s.percentage, "tests": s.tests_taken}
                for s in self.tests_by_subject
            ],
            "recent_tests": [
                {
                    "name": r.test.name if r.test else r.test_id,
                    "subject": r.test.subject if r.test else None,
                    "marks": r.marks_obtained,
                    "total": r.test.total_marks if r.test else None,
                }
                for r in self.test_results[:5]
            ],
            "missed_chapters": missed,
            "overdue_homework": [
                r.homework.title if r.homework else r.homework_id for r in self.overdue_homework
            ],
            "discipline_issues": len(self.discipline_issues),
            "activities": len(self.activities),
        }
