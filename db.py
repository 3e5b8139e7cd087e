"""SQLite-backed record repositories.

Each ``list_*`` function is a filtered read over one source stream:
``(student_id, window_start, window_end, subject=None)``. The ``upsert_*`` /
``record_*`` helpers exist so tests and local setups can populate the store;
the report engine itself never writes.
"""

import os
import sqlite3
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from db_pool import SQLiteConnectionPool
from schemas import (
    Activity,
    AttendanceRecord,
    CompletionRecord,
    DisciplineIssue,
    HomeworkAssignment,
    HomeworkRecord,
    Invoice,
    Payment,
    Student,
    TaughtChapter,
    TestDefinition,
    TestResult,
)

DB_PATH = os.getenv("DB_PATH", "data.db")


def _max_connections() -> int:
    try:
        return int(os.getenv("DB_MAX_CONNECTIONS", "10"))
    except ValueError:
        return 10


_pool = SQLiteConnectionPool(DB_PATH, max_connections=_max_connections())

DateLike = Union[date, datetime, str]


def _conn():
    """Return a context manager for acquiring a pooled SQLite connection."""
    return _pool.get_connection()


def _exec(sql: str, params: Iterable = ()):
    with _pool.get_connection() as con:
        cur = con.execute(sql, tuple(params))
        con.commit()
        return cur


def _query(sql: str, params: Iterable = ()) -> list[sqlite3.Row]:
    with _pool.get_connection() as con:
        cur = con.execute(sql, tuple(params))
        return cur.fetchall()


def init():
    if DB_PATH != ":memory:":
        Path(DB_PATH).parent.mkdir(parents=True, exist_ok=True)
    with _conn() as con:
        con.executescript(
            """
            PRAGMA foreign_keys = ON;

            CREATE TABLE IF NOT EXISTS students (
              id          TEXT PRIMARY KEY,
              name        TEXT NOT NULL DEFAULT '',
              grade       TEXT,
              center_id   TEXT,
              created_at  TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS lesson_plans (
              id          TEXT PRIMARY KEY,
              center_id   TEXT,
              subject     TEXT NOT NULL,
              chapter     TEXT NOT NULL,
              topic       TEXT NOT NULL DEFAULT '',
              grade       TEXT,
              lesson_date TEXT NOT NULL,
              notes       TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_lesson_plans_date ON lesson_plans(center_id, lesson_date DESC);

            CREATE TABLE IF NOT EXISTS student_chapters (
              id                TEXT PRIMARY KEY,
              student_id        TEXT NOT NULL,
              lesson_plan_id    TEXT,
              completed         INTEGER NOT NULL DEFAULT 0,
              evaluation_rating INTEGER CHECK (evaluation_rating BETWEEN 1 AND 5),
              teacher_notes     TEXT,
              completed_at      TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_student_chapters_student ON student_chapters(student_id);

            CREATE TABLE IF NOT EXISTS tests (
              id             TEXT PRIMARY KEY,
              name           TEXT NOT NULL DEFAULT '',
              subject        TEXT NOT NULL,
              lesson_plan_id TEXT,
              total_marks    REAL NOT NULL DEFAULT 0
            );

            CREATE TABLE IF NOT EXISTS test_results (
              id             TEXT PRIMARY KEY,
              student_id     TEXT NOT NULL,
              test_id        TEXT NOT NULL,
              marks_obtained REAL NOT NULL DEFAULT 0,
              date_taken     TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_test_results_student ON test_results(student_id, date_taken DESC);

            CREATE TABLE IF NOT EXISTS homework (
              id        TEXT PRIMARY KEY,
              title     TEXT NOT NULL DEFAULT '',
              subject   TEXT NOT NULL,
              due_date  TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS student_homework_records (
              id              TEXT PRIMARY KEY,
              student_id      TEXT NOT NULL,
              homework_id     TEXT NOT NULL,
              status          TEXT NOT NULL DEFAULT 'assigned'
                              CHECK (status IN ('assigned','in_progress','completed','checked')),
              teacher_remarks TEXT,
              created_at      TEXT,
              updated_at      TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_homework_records_student ON student_homework_records(student_id);

            CREATE TABLE IF NOT EXISTS attendance (
              id          TEXT PRIMARY KEY,
              student_id  TEXT NOT NULL,
              date        TEXT NOT NULL,
              status      TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_attendance_student ON attendance(student_id, date);

            CREATE TABLE IF NOT EXISTS invoices (
              id            TEXT PRIMARY KEY,
              student_id    TEXT NOT NULL,
              invoice_date  TEXT NOT NULL,
              due_date      TEXT,
              total_amount  REAL NOT NULL DEFAULT 0,
              paid_amount   REAL NOT NULL DEFAULT 0,
              status        TEXT NOT NULL DEFAULT 'issued'
            );

            CREATE TABLE IF NOT EXISTS payments (
              id            TEXT PRIMARY KEY,
              invoice_id    TEXT NOT NULL,
              amount        REAL NOT NULL DEFAULT 0,
              payment_date  TEXT NOT NULL,
              method        TEXT
            );

            CREATE TABLE IF NOT EXISTS activities (
              id             TEXT PRIMARY KEY,
              title          TEXT NOT NULL DEFAULT '',
              description    TEXT,
              activity_type  TEXT,
              activity_date  TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS student_activities (
              id                TEXT PRIMARY KEY,
              student_id        TEXT NOT NULL,
              activity_id       TEXT NOT NULL,
              involvement_score INTEGER
            );

            CREATE TABLE IF NOT EXISTS discipline_issues (
              id          TEXT PRIMARY KEY,
              student_id  TEXT NOT NULL,
              category    TEXT,
              description TEXT NOT NULL DEFAULT '',
              severity    TEXT CHECK (severity IN ('low','medium','high')),
              issue_date  TEXT NOT NULL
            );
            """
        )
        con.commit()


def ping() -> bool:
    rows = _query("SELECT 1 AS ok")
    return bool(rows and rows[0]["ok"] == 1)


# -------------- value helpers --------------
def _iso_date(value: Optional[DateLike]) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)[:10]


def _iso_timestamp(value: Optional[Union[datetime, str]]) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    return str(value)


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    return date.fromisoformat(str(value)[:10])


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return datetime.strptime(text, "%Y-%m-%d %H:%M:%S")


def _window(window_start: DateLike, window_end: DateLike) -> tuple[str, str]:
    return _iso_date(window_start), _iso_date(window_end)


# -------------- students --------------
def upsert_student(student_id: str, name: str = "", grade: Optional[str] = None, center_id: Optional[str] = None):
    _exec(
        """
        INSERT INTO students(id, name, grade, center_id) VALUES (?,?,?,?)
        ON CONFLICT(id) DO UPDATE SET
          name=excluded.name, grade=excluded.grade, center_id=excluded.center_id
        """,
        (student_id, name, grade, center_id),
    )


def get_student(student_id: str) -> Optional[Student]:
    rows = _query("SELECT id, name, grade, center_id FROM students WHERE id = ?", (student_id,))
    if not rows:
        return None
    row = rows[0]
    grade = row["grade"]
    return Student(
        id=row["id"],
        name=row["name"] or "",
        grade=grade if grade and grade.strip() else None,
        center_id=row["center_id"],
    )


# -------------- lesson plans (taught chapters) --------------
def upsert_taught_chapter(
    chapter_id: str,
    subject: str,
    chapter: str,
    lesson_date: DateLike,
    *,
    topic: str = "",
    grade: Optional[str] = None,
    center_id: Optional[str] = None,
    notes: Optional[str] = None,
):
    _exec(
        """
        INSERT INTO lesson_plans(id, center_id, subject, chapter, topic, grade, lesson_date, notes)
        VALUES (?,?,?,?,?,?,?,?)
        ON CONFLICT(id) DO UPDATE SET
          center_id=excluded.center_id, subject=excluded.subject, chapter=excluded.chapter,
          topic=excluded.topic, grade=excluded.grade, lesson_date=excluded.lesson_date,
          notes=excluded.notes
        """,
        (chapter_id, center_id, subject, chapter, topic, grade, _iso_date(lesson_date), notes),
    )


def _chapter_from_row(row: sqlite3.Row) -> TaughtChapter:
    return TaughtChapter(
        id=row["id"],
        subject=row["subject"],
        chapter=row["chapter"],
        topic=row["topic"] or "",
        grade=row["grade"],
        lesson_date=_parse_date(row["lesson_date"]),
        notes=row["notes"],
        center_id=row["center_id"],
    )


def list_taught_chapters(
    student_id: str,
    window_start: DateLike,
    window_end: DateLike,
    subject: Optional[str] = None,
) -> List[TaughtChapter]:
    """Lesson plans of the student's center taught inside the window, newest first."""
    start, end = _window(window_start, window_end)
    sql = """
        SELECT lp.id, lp.center_id, lp.subject, lp.chapter, lp.topic, lp.grade, lp.lesson_date, lp.notes
        FROM lesson_plans AS lp
        JOIN students AS s ON s.id = ?
        WHERE (s.center_id IS NULL OR lp.center_id IS NULL OR lp.center_id = s.center_id)
          AND lp.lesson_date BETWEEN ? AND ?
    """
    params: list[Any] = [student_id, start, end]
    if subject:
        sql += " AND lp.subject = ?"
        params.append(subject)
    sql += " ORDER BY lp.lesson_date DESC, lp.id ASC"
    return [_chapter_from_row(row) for row in _query(sql, params)]


# -------------- completion records --------------
def upsert_completion_record(
    record_id: str,
    student_id: str,
    taught_chapter_id: Optional[str],
    *,
    completed: bool = True,
    evaluation_rating: Optional[int] = None,
    teacher_notes: Optional[str] = None,
    completed_at: Optional[Union[datetime, str]] = None,
):
    _exec(
        """
        INSERT INTO student_chapters(id, student_id, lesson_plan_id, completed, evaluation_rating, teacher_notes, completed_at)
        VALUES (?,?,?,?,?,?,?)
        ON CONFLICT(id) DO UPDATE SET
          student_id=excluded.student_id, lesson_plan_id=excluded.lesson_plan_id,
          completed=excluded.completed, evaluation_rating=excluded.evaluation_rating,
          teacher_notes=excluded.teacher_notes, completed_at=excluded.completed_at
        """,
        (
            record_id,
            student_id,
            taught_chapter_id,
            1 if completed else 0,
            evaluation_rating,
            teacher_notes,
            _iso_timestamp(completed_at),
        ),
    )


def list_completion_records(
    student_id: str,
    window_start: DateLike,
    window_end: DateLike,
    subject: Optional[str] = None,
) -> List[CompletionRecord]:
    """Completion records whose chapter was taught inside the window.

    The window applies to the lesson date, not ``completed_at``, so a chapter
    finished after the window closed still shows up. Records without a
    chapter link fall back to their own completion date.
    """
    start, end = _window(window_start, window_end)
    sql = """
        SELECT sc.id, sc.student_id, sc.lesson_plan_id, sc.completed, sc.evaluation_rating,
               sc.teacher_notes, sc.completed_at
        FROM student_chapters AS sc
        LEFT JOIN lesson_plans AS lp ON lp.id = sc.lesson_plan_id
        WHERE sc.student_id = ?
          AND (
            (lp.id IS NOT NULL AND lp.lesson_date BETWEEN ? AND ?)
            OR (lp.id IS NULL AND substr(sc.completed_at, 1, 10) BETWEEN ? AND ?)
          )
    """
    params: list[Any] = [student_id, start, end, start, end]
    if subject:
        sql += " AND lp.subject = ?"
        params.append(subject)
    sql += " ORDER BY sc.completed_at DESC, sc.id ASC"
    return [
        CompletionRecord(
            id=row["id"],
            student_id=row["student_id"],
            taught_chapter_id=row["lesson_plan_id"],
            completed=bool(row["completed"]),
            evaluation_rating=row["evaluation_rating"],
            teacher_notes=row["teacher_notes"],
            completed_at=_parse_timestamp(row["completed_at"]),
        )
        for row in _query(sql, params)
    ]


# -------------- tests --------------
def upsert_test(
    test_id: str,
    subject: str,
    total_marks: float,
    *,
    name: str = "",
    taught_chapter_id: Optional[str] = None,
):
    _exec(
        """
        INSERT INTO tests(id, name, subject, lesson_plan_id, total_marks) VALUES (?,?,?,?,?)
        ON CONFLICT(id) DO UPDATE SET
          name=excluded.name, subject=excluded.subject,
          lesson_plan_id=excluded.lesson_plan_id, total_marks=excluded.total_marks
        """,
        (test_id, name, subject, taught_chapter_id, float(total_marks)),
    )


def upsert_test_result(result_id: str, student_id: str, test_id: str, marks_obtained: float, date_taken: DateLike):
    _exec(
        """
        INSERT INTO test_results(id, student_id, test_id, marks_obtained, date_taken) VALUES (?,?,?,?,?)
        ON CONFLICT(id) DO UPDATE SET
          student_id=excluded.student_id, test_id=excluded.test_id,
          marks_obtained=excluded.marks_obtained, date_taken=excluded.date_taken
        """,
        (result_id, student_id, test_id, float(marks_obtained), _iso_date(date_taken)),
    )


def list_test_results(
    student_id: str,
    window_start: DateLike,
    window_end: DateLike,
    subject: Optional[str] = None,
) -> List[TestResult]:
    start, end = _window(window_start, window_end)
    sql = """
        SELECT tr.id, tr.student_id, tr.test_id, tr.marks_obtained, tr.date_taken,
               t.id AS t_id, t.name AS t_name, t.subject AS t_subject,
               t.lesson_plan_id AS t_lesson_plan_id, t.total_marks AS t_total_marks
        FROM test_results AS tr
        LEFT JOIN tests AS t ON t.id = tr.test_id
        WHERE tr.student_id = ? AND tr.date_taken BETWEEN ? AND ?
    """
    params: list[Any] = [student_id, start, end]
    if subject:
        sql += " AND t.subject = ?"
        params.append(subject)
    sql += " ORDER BY tr.date_taken DESC, tr.id ASC"

    results: List[TestResult] = []
    for row in _query(sql, params):
        test = None
        if row["t_id"] is not None:
            test = TestDefinition(
                id=row["t_id"],
                name=row["t_name"] or "",
                subject=row["t_subject"],
                taught_chapter_id=row["t_lesson_plan_id"],
                total_marks=row["t_total_marks"] or 0.0,
            )
        results.append(
            TestResult(
                id=row["id"],
                student_id=row["student_id"],
                test_id=row["test_id"],
                marks_obtained=row["marks_obtained"] or 0.0,
                date_taken=_parse_date(row["date_taken"]),
                test=test,
            )
        )
    return results


# -------------- homework --------------
def upsert_homework(homework_id: str, subject: str, due_date: DateLike, *, title: str = ""):
    _exec(
        """
        INSERT INTO homework(id, title, subject, due_date) VALUES (?,?,?,?)
        ON CONFLICT(id) DO UPDATE SET title=excluded.title, subject=excluded.subject, due_date=excluded.due_date
        """,
        (homework_id, title, subject, _iso_date(due_date)),
    )


def upsert_homework_record(
    record_id: str,
    student_id: str,
    homework_id: str,
    status: str = "assigned",
    *,
    teacher_remarks: Optional[str] = None,
    created_at: Optional[Union[datetime, str]] = None,
    updated_at: Optional[Union[datetime, str]] = None,
):
    _exec(
        """
        INSERT INTO student_homework_records(id, student_id, homework_id, status, teacher_remarks, created_at, updated_at)
        VALUES (?,?,?,?,?,?,?)
        ON CONFLICT(id) DO UPDATE SET
          student_id=excluded.student_id, homework_id=excluded.homework_id, status=excluded.status,
          teacher_remarks=excluded.teacher_remarks, updated_at=excluded.updated_at
        """,
        (
            record_id,
            student_id,
            homework_id,
            status,
            teacher_remarks,
            _iso_timestamp(created_at or datetime.now(timezone.utc)),
            _iso_timestamp(updated_at),
        ),
    )


def list_homework_records(
    student_id: str,
    window_start: DateLike,
    window_end: DateLike,
    subject: Optional[str] = None,
) -> List[HomeworkRecord]:
    """Homework records whose assignment is due inside the window."""
    start, end = _window(window_start, window_end)
    sql = """
        SELECT r.id, r.student_id, r.homework_id, r.status, r.teacher_remarks, r.created_at, r.updated_at,
               h.title AS h_title, h.subject AS h_subject, h.due_date AS h_due_date
        FROM student_homework_records AS r
        JOIN homework AS h ON h.id = r.homework_id
        WHERE r.student_id = ? AND h.due_date BETWEEN ? AND ?
    """
    params: list[Any] = [student_id, start, end]
    if subject:
        sql += " AND h.subject = ?"
        params.append(subject)
    sql += " ORDER BY r.created_at DESC, r.id ASC"
    return [
        HomeworkRecord(
            id=row["id"],
            student_id=row["student_id"],
            homework_id=row["homework_id"],
            status=row["status"],
            teacher_remarks=row["teacher_remarks"],
            created_at=_parse_timestamp(row["created_at"]),
            updated_at=_parse_timestamp(row["updated_at"]),
            homework=HomeworkAssignment(
                id=row["homework_id"],
                title=row["h_title"] or "",
                subject=row["h_subject"],
                due_date=_parse_date(row["h_due_date"]),
            ),
        )
        for row in _query(sql, params)
    ]


# -------------- attendance --------------
def record_attendance(record_id: str, student_id: str, day: DateLike, status: str):
    _exec(
        """
        INSERT INTO attendance(id, student_id, date, status) VALUES (?,?,?,?)
        ON CONFLICT(id) DO UPDATE SET date=excluded.date, status=excluded.status
        """,
        (record_id, student_id, _iso_date(day), status),
    )


def list_attendance(
    student_id: str,
    window_start: DateLike,
    window_end: DateLike,
    subject: Optional[str] = None,
) -> List[AttendanceRecord]:
    start, end = _window(window_start, window_end)
    rows = _query(
        """
        SELECT id, student_id, date, status FROM attendance
        WHERE student_id = ? AND date BETWEEN ? AND ?
        ORDER BY date ASC, id ASC
        """,
        (student_id, start, end),
    )
    return [
        AttendanceRecord(id=row["id"], student_id=row["student_id"], date=_parse_date(row["date"]), status=row["status"])
        for row in rows
    ]


# -------------- finance --------------
def upsert_invoice(
    invoice_id: str,
    student_id: str,
    invoice_date: DateLike,
    total_amount: float,
    paid_amount: float = 0.0,
    *,
    due_date: Optional[DateLike] = None,
    status: str = "issued",
):
    _exec(
        """
        INSERT INTO invoices(id, student_id, invoice_date, due_date, total_amount, paid_amount, status)
        VALUES (?,?,?,?,?,?,?)
        ON CONFLICT(id) DO UPDATE SET
          invoice_date=excluded.invoice_date, due_date=excluded.due_date,
          total_amount=excluded.total_amount, paid_amount=excluded.paid_amount, status=excluded.status
        """,
        (invoice_id, student_id, _iso_date(invoice_date), _iso_date(due_date), float(total_amount), float(paid_amount), status),
    )


def record_payment(payment_id: str, invoice_id: str, amount: float, payment_date: DateLike, method: Optional[str] = None):
    _exec(
        """
        INSERT INTO payments(id, invoice_id, amount, payment_date, method) VALUES (?,?,?,?,?)
        ON CONFLICT(id) DO UPDATE SET amount=excluded.amount, payment_date=excluded.payment_date, method=excluded.method
        """,
        (payment_id, invoice_id, float(amount), _iso_date(payment_date), method),
    )


def list_invoices(
    student_id: str,
    window_start: DateLike,
    window_end: DateLike,
    subject: Optional[str] = None,
) -> List[Invoice]:
    start, end = _window(window_start, window_end)
    rows = _query(
        """
        SELECT id, student_id, invoice_date, due_date, total_amount, paid_amount, status
        FROM invoices
        WHERE student_id = ? AND invoice_date BETWEEN ? AND ?
        ORDER BY invoice_date DESC, id ASC
        """,
        (student_id, start, end),
    )
    return [
        Invoice(
            id=row["id"],
            student_id=row["student_id"],
            invoice_date=_parse_date(row["invoice_date"]),
            due_date=_parse_date(row["due_date"]),
            total_amount=row["total_amount"] or 0.0,
            paid_amount=row["paid_amount"] or 0.0,
            status=row["status"] or "issued",
        )
        for row in rows
    ]


def list_payments(
    student_id: str,
    window_start: DateLike,
    window_end: DateLike,
    subject: Optional[str] = None,
) -> List[Payment]:
    """Payments made in the window against any of the student's invoices."""
    start, end = _window(window_start, window_end)
    rows = _query(
        """
        SELECT p.id, p.invoice_id, p.amount, p.payment_date, p.method
        FROM payments AS p
        JOIN invoices AS i ON i.id = p.invoice_id
        WHERE i.student_id = ? AND p.payment_date BETWEEN ? AND ?
        ORDER BY p.payment_date DESC, p.id ASC
        """,
        (student_id, start, end),
    )
    return [
        Payment(
            id=row["id"],
            invoice_id=row["invoice_id"],
            amount=row["amount"] or 0.0,
            payment_date=_parse_date(row["payment_date"]),
            method=row["method"],
        )
        for row in rows
    ]


# -------------- enrichment activities --------------
def upsert_activity(
    activity_id: str,
    title: str,
    activity_date: DateLike,
    *,
    activity_type: Optional[str] = None,
    description: Optional[str] = None,
):
    _exec(
        """
        INSERT INTO activities(id, title, description, activity_type, activity_date) VALUES (?,?,?,?,?)
        ON CONFLICT(id) DO UPDATE SET
          title=excluded.title, description=excluded.description,
          activity_type=excluded.activity_type, activity_date=excluded.activity_date
        """,
        (activity_id, title, description, activity_type, _iso_date(activity_date)),
    )


def assign_activity(record_id: str, student_id: str, activity_id: str, involvement_score: Optional[int] = None):
    _exec(
        """
        INSERT INTO student_activities(id, student_id, activity_id, involvement_score) VALUES (?,?,?,?)
        ON CONFLICT(id) DO UPDATE SET involvement_score=excluded.involvement_score
        """,
        (record_id, student_id, activity_id, involvement_score),
    )


def list_activities(
    student_id: str,
    window_start: DateLike,
    window_end: DateLike,
    subject: Optional[str] = None,
) -> List[Activity]:
    start, end = _window(window_start, window_end)
    rows = _query(
        """
        SELECT sa.id, sa.student_id, sa.involvement_score,
               a.title, a.description, a.activity_type, a.activity_date
        FROM student_activities AS sa
        JOIN activities AS a ON a.id = sa.activity_id
        WHERE sa.student_id = ? AND a.activity_date BETWEEN ? AND ?
        ORDER BY a.activity_date DESC, sa.id ASC
        """,
        (student_id, start, end),
    )
    return [
        Activity(
            id=row["id"],
            student_id=row["student_id"],
            title=row["title"] or "",
            activity_type=row["activity_type"],
            activity_date=_parse_date(row["activity_date"]),
            involvement_score=row["involvement_score"],
            description=row["description"],
        )
        for row in rows
    ]


# -------------- discipline --------------
def record_discipline_issue(
    issue_id: str,
    student_id: str,
    issue_date: DateLike,
    description: str,
    *,
    category: Optional[str] = None,
    severity: Optional[str] = None,
):
    _exec(
        """
        INSERT INTO discipline_issues(id, student_id, category, description, severity, issue_date)
        VALUES (?,?,?,?,?,?)
        ON CONFLICT(id) DO UPDATE SET
          category=excluded.category, description=excluded.description,
          severity=excluded.severity, issue_date=excluded.issue_date
        """,
        (issue_id, student_id, category, description, severity, _iso_date(issue_date)),
    )


def list_discipline_issues(
    student_id: str,
    window_start: DateLike,
    window_end: DateLike,
    subject: Optional[str] = None,
) -> List[DisciplineIssue]:
    start, end = _window(window_start, window_end)
    rows = _query(
        """
        SELECT id, student_id, category, description, severity, issue_date
        FROM discipline_issues
        WHERE student_id = ? AND issue_date BETWEEN ? AND ?
        ORDER BY issue_date DESC, id ASC
        """,
        (student_id, start, end),
    )
    return [
        DisciplineIssue(
            id=row["id"],
            student_id=row["student_id"],
            category=row["category"],
            description=row["description"] or "",
            severity=row["severity"],
            issue_date=_parse_date(row["issue_date"]),
        )
        for row in rows
    ]


def export_student_records(student_id: str, window_start: DateLike, window_end: DateLike) -> Dict[str, Any]:
    """Raw dump of every source stream for one student, used for debugging reports."""
    readers = {
        "attendance": list_attendance,
        "taught_chapters": list_taught_chapters,
        "completions": list_completion_records,
        "tests": list_test_results,
        "homework": list_homework_records,
        "activities": list_activities,
        "discipline": list_discipline_issues,
        "invoices": list_invoices,
        "payments": list_payments,
    }
    return {
        name: [record.model_dump(mode="json") for record in reader(student_id, window_start, window_end)]
        for name, reader in readers.items()
    }
