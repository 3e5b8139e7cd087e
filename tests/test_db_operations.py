"""Test cases for the record repositories."""

from datetime import date

import db

START, END = "2024-03-01", "2024-03-31"


def test_get_student(seeded_db):
    student = db.get_student("s1")

    assert student.name == "Mia Keller"
    assert student.grade == "7"
    assert student.center_id == "c1"
    assert db.get_student("nobody") is None


def test_blank_grade_reads_as_unknown_cohort(temp_db):
    db.upsert_student("s9", name="New", grade="  ", center_id="c1")
    assert db.get_student("s9").grade is None


def test_taught_chapters_filtered_by_window_and_center(seeded_db):
    chapters = db.list_taught_chapters("s1", START, END)

    # Newest first; Fractions is from February and Statistics belongs to another center.
    assert [c.id for c in chapters] == ["ch_poem", "ch_geo", "ch_g8", "ch_cells", "ch_alg"]
    assert chapters[0].lesson_date == date(2024, 3, 14)


def test_taught_chapters_subject_filter(seeded_db):
    chapters = db.list_taught_chapters("s1", START, END, subject="Science")
    assert [c.id for c in chapters] == ["ch_cells"]


def test_completions_use_chapter_lesson_date(seeded_db):
    records = db.list_completion_records("s1", START, END)

    ids = {r.id for r in records}
    assert ids == {"cr1", "cr2"}
    late = next(r for r in records if r.id == "cr2")
    assert late.completed is True
    assert late.evaluation_rating == 5
    assert late.completed_at.month == 4


def test_completions_subject_filter(seeded_db):
    records = db.list_completion_records("s1", START, END, subject="Math")
    assert [r.id for r in records] == ["cr1"]


def test_test_results_carry_their_test(seeded_db):
    results = db.list_test_results("s1", START, END)

    assert [r.id for r in results] == ["tr2", "tr1"]
    algebra = results[1]
    assert algebra.test.taught_chapter_id == "ch_alg"
    assert algebra.test.total_marks == 50
    assert db.list_test_results("s1", START, END, subject="Science")[0].id == "tr2"


def test_homework_filtered_by_due_date(seeded_db):
    records = db.list_homework_records("s1", START, END)

    assert {r.id for r in records} == {"hr1", "hr2", "hr3"}
    assert all(r.homework is not None for r in records)
    assert {r.id for r in db.list_homework_records("s1", "2024-03-11", END)} == {"hr2", "hr3"}


def test_attendance_sorted_by_date(seeded_db):
    records = db.list_attendance("s1", START, END)

    assert [r.id for r in records] == ["a1", "a2", "a3", "a4"]
    assert records[1].is_present


def test_invoices_and_payments(seeded_db):
    invoices = db.list_invoices("s1", START, END)
    payments = db.list_payments("s1", START, END)

    assert [i.id for i in invoices] == ["inv2", "inv1"]
    assert invoices[1].due_date == date(2024, 3, 15)
    assert {p.id for p in payments} == {"p1", "p2"}
    assert db.list_payments("s2", START, END) == []


def test_activities_and_discipline(seeded_db):
    activities = db.list_activities("s1", START, END)
    issues = db.list_discipline_issues("s1", START, END)

    assert activities[0].title == "Science Fair"
    assert activities[0].involvement_score == 4
    assert issues[0].severity == "low"
    assert issues[0].category == "punctuality"


def test_upserts_are_idempotent(temp_db):
    db.upsert_student("s1", name="First", grade="7")
    db.upsert_student("s1", name="Renamed", grade="8")

    rows = db._query("SELECT COUNT(*) AS n FROM students")
    assert rows[0]["n"] == 1
    assert db.get_student("s1").name == "Renamed"


def test_export_student_records(seeded_db):
    dump = db.export_student_records("s1", START, END)

    assert set(dump) == {
        "attendance",
        "taught_chapters",
        "completions",
        "tests",
        "homework",
        "activities",
        "discipline",
        "invoices",
        "payments",
    }
    assert len(dump["attendance"]) == 4
    assert dump["invoices"][0]["invoice_date"] == "2024-03-10"


def test_ping(temp_db):
    assert db.ping() is True
