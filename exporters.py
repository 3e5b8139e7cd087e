"""Flat CSV rendering of a :class:`StudentReport`.

One file, several sections. Each section starts with a single-cell title row
followed by a header row; sections are separated by a blank row.
"""

import csv
import io
from typing import Any, Iterable, List, Sequence

from schemas import MetricValue, StudentReport


def _metric(metric: MetricValue) -> Any:
    if not metric.available:
        return "unavailable"
    return metric.value


def _section(writer, title: str, header: Sequence[str], rows: Iterable[Sequence[Any]]) -> None:
    writer.writerow([title])
    writer.writerow(list(header))
    for row in rows:
        writer.writerow(["" if value is None else value for value in row])
    writer.writerow([])


def report_to_csv(report: StudentReport) -> str:
    output = io.StringIO()
    writer = csv.writer(output)

    student = report.student
    _section(
        writer,
        "Student",
        ["student_id", "name", "grade", "window_start", "window_end", "subject", "evaluated_at"],
        [[
            student.id,
            student.name,
            student.grade,
            report.window.start.isoformat(),
            report.window.end.isoformat(),
            report.subject_filter or "all",
            report.evaluated_at.isoformat(),
        ]],
    )

    _section(
        writer,
        "Metrics",
        ["metric", "value"],
        [
            ["attendance_percentage", _metric(report.attendance_percentage)],
            ["chapter_completion_percentage", _metric(report.chapter_completion_percentage)],
            ["test_average_percentage", _metric(report.test_average_percentage)],
            ["outstanding_balance", _metric(report.outstanding_balance)],
        ],
    )

    summary = report.attendance_summary
    if summary is None:
        attendance_rows = [["unavailable"] * 3]
    else:
        attendance_rows = [[summary.total_days, summary.present_days, summary.absent_days]]
    _section(writer, "Attendance", ["total_days", "present_days", "absent_days"], attendance_rows)

    billing = report.billing_summary
    if billing is None:
        finance_rows = [["unavailable"] * 5]
    else:
        finance_rows = [[
            f"{billing.total_invoiced:.2f}",
            f"{billing.total_paid:.2f}",
            f"{billing.payments_received:.2f}",
            f"{billing.outstanding_balance:.2f}",
            len(billing.overdue_invoices),
        ]]
    _section(
        writer,
        "Finance",
        ["total_invoiced", "total_paid", "payments_received", "outstanding_balance", "overdue_invoices"],
        finance_rows,
    )

    _section(
        writer,
        "Test results",
        ["date_taken", "test", "subject", "marks_obtained", "total_marks"],
        (
            [
                r.date_taken.isoformat(),
                r.test.name if r.test else r.test_id,
                r.test.subject if r.test else None,
                r.marks_obtained,
                r.test.total_marks if r.test else None,
            ]
            for r in report.test_results
        ),
    )

    _section(
        writer,
        "Chapter performance",
        ["lesson_date", "subject", "chapter", "completed", "average_rating", "tests", "homework", "homework_confidence"],
        (
            [
                unit.chapter.lesson_date.isoformat(),
                unit.chapter.subject,
                unit.chapter.chapter,
                "yes" if unit.is_completed else "no",
                unit.average_rating,
                len(unit.test_results),
                len(unit.homework),
                ";".join(sorted({h.confidence for h in unit.homework})),
            ]
            for unit in report.chapter_performance
        ),
    )

    missed = report.missed_chapters
    missed_rows: List[List[Any]]
    if missed.is_determined:
        missed_rows = [[c.lesson_date.isoformat(), c.subject, c.chapter] for c in missed.chapters]
    else:
        missed_rows = [["undetermined", missed.reason, ""]]
    _section(writer, "Missed chapters", ["lesson_date", "subject", "chapter"], missed_rows)

    _section(
        writer,
        "Homework",
        ["title", "subject", "due_date", "status", "overdue"],
        (
            [
                r.homework.title if r.homework else r.homework_id,
                r.homework.subject if r.homework else None,
                r.homework.due_date.isoformat() if r.homework else None,
                r.status,
                "yes" if r in report.overdue_homework else "no",
            ]
            for r in report.homework_records
        ),
    )

    _section(
        writer,
        "Activities",
        ["activity_date", "title", "type", "involvement_score"],
        (
            [a.activity_date.isoformat(), a.title, a.activity_type, a.involvement_score]
            for a in report.activities
        ),
    )

    _section(
        writer,
        "Discipline",
        ["issue_date", "category", "severity", "description"],
        (
            [d.issue_date.isoformat(), d.category, d.severity, d.description]
            for d in report.discipline_issues
        ),
    )

    if report.summary and report.summary.text:
        _section(writer, "Summary", ["text"], [[report.summary.text]])

    return output.getvalue()
