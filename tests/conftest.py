import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


NOW = "2024-03-20T10:00:00+00:00"
WINDOW = ("2024-03-01", "2024-03-31")


@pytest.fixture
def temp_db(monkeypatch, tmp_path):
    import db

    db_path = tmp_path / "test.db"
    monkeypatch.setattr(db, "DB_PATH", str(db_path))

    # Reset the connection pool for each test
    previous = db._pool
    db._pool = db.SQLiteConnectionPool(str(db_path), max_connections=10)
    db.init()
    yield str(db_path)
    db._pool.close_all()
    db._pool = previous


def seed_student_records(db, student_id="s1", grade="7"):
    """One month of records for a grade-7 student at center c1.

    Expected figures for March 2024, evaluated on 2024-03-20:
    attendance 3/4 present, chapter units Geometry/Cells/Algebra with two
    completed, Poetry missed, test marks 55/70, one overdue homework, balance 300.
    """

    db.upsert_student(student_id, name="Mia Keller", grade=grade, center_id="c1")
    db.upsert_student("s2", name="Other Student", grade="8", center_id="c1")

    db.upsert_taught_chapter("ch_alg", "Math", "Algebra", "2024-03-05", grade="7", center_id="c1")
    db.upsert_taught_chapter("ch_cells", "Science", "Cells", "2024-03-08", grade="7", center_id="c1")
    db.upsert_taught_chapter("ch_geo", "Math", "Geometry", "2024-03-12", grade="7", center_id="c1")
    db.upsert_taught_chapter("ch_poem", "English", "Poetry", "2024-03-14", grade="7", center_id="c1")
    db.upsert_taught_chapter("ch_old", "Math", "Fractions", "2024-02-10", grade="7", center_id="c1")
    db.upsert_taught_chapter("ch_g8", "Math", "Calculus", "2024-03-10", grade="8", center_id="c1")
    db.upsert_taught_chapter("ch_other_center", "Math", "Statistics", "2024-03-11", grade="7", center_id="c2")

    db.upsert_completion_record(
        "cr1", student_id, "ch_alg", completed=True, evaluation_rating=4, completed_at="2024-03-06T15:00:00+00:00"
    )
    # Finished after the window closed; the chapter still counts as completed.
    db.upsert_completion_record(
        "cr2", student_id, "ch_cells", completed=True, evaluation_rating=5, completed_at="2024-04-02T09:00:00+00:00"
    )
    db.upsert_completion_record("cr_old", student_id, "ch_old", completed=True, completed_at="2024-02-12T09:00:00+00:00")

    db.upsert_test("t_alg", "Math", 50, name="Algebra test", taught_chapter_id="ch_alg")
    db.upsert_test("t_quiz", "Science", 20, name="Science quiz")
    db.upsert_test_result("tr1", student_id, "t_alg", 40, "2024-03-07")
    db.upsert_test_result("tr2", student_id, "t_quiz", 15, "2024-03-15")
    db.upsert_test_result("tr_feb", student_id, "t_quiz", 5, "2024-02-15")
    db.upsert_test_result("tr_s2", "s2", "t_alg", 10, "2024-03-07")

    db.upsert_homework("hw1", "Math", "2024-03-10", title="Worksheet 1")
    db.upsert_homework("hw2", "Science", "2024-03-25", title="Lab report")
    db.upsert_homework("hw3", "Math", "2024-03-14", title="Worksheet 2")
    db.upsert_homework_record("hr1", student_id, "hw1", "assigned", created_at="2024-03-05T08:00:00+00:00")
    db.upsert_homework_record("hr2", student_id, "hw2", "assigned", created_at="2024-03-06T08:00:00+00:00")
    db.upsert_homework_record("hr3", student_id, "hw3", "completed", created_at="2024-03-07T08:00:00+00:00")

    db.record_attendance("a1", student_id, "2024-03-04", "present")
    db.record_attendance("a2", student_id, "2024-03-05", "Present")
    db.record_attendance("a3", student_id, "2024-03-06", "absent")
    db.record_attendance("a4", student_id, "2024-03-07", "present")
    db.record_attendance("a_feb", student_id, "2024-02-28", "absent")

    db.upsert_invoice("inv1", student_id, "2024-03-01", 500, 200, due_date="2024-03-15", status="partial")
    db.upsert_invoice("inv2", student_id, "2024-03-10", 300, 300, due_date="2024-03-31", status="paid")
    db.record_payment("p1", "inv1", 200, "2024-03-05", method="cash")
    db.record_payment("p2", "inv2", 300, "2024-03-12", method="card")

    db.upsert_activity("act1", "Science Fair", "2024-03-18", activity_type="competition")
    db.assign_activity("sa1", student_id, "act1", involvement_score=4)

    db.record_discipline_issue("d1", student_id, "2024-03-11", "Late to class", category="punctuality", severity="low")


@pytest.fixture
def seeded_db(temp_db):
    import db

    seed_student_records(db)
    return temp_db
