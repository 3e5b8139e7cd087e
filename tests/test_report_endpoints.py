"""FastAPI endpoint tests for the report routes, driven through the ASGI app."""

import asyncio
import json
from typing import Optional
from urllib.parse import urlencode

import app
from engines.fanout import SelectionTracker

NOW = "2024-03-20T10:00:00+00:00"


def _collect(messages):
    status = 500
    headers = {}
    body_bytes = b""
    for message in messages:
        if message["type"] == "http.response.start":
            status = message["status"]
            headers = {k.decode(): v.decode() for k, v in message.get("headers", [])}
        elif message["type"] == "http.response.body":
            body_bytes += message.get("body", b"")
    return status, headers, body_bytes


def _run_app(method: str, path: str, *, query: Optional[dict] = None):
    query_string = urlencode(query or {}, doseq=True).encode()
    scope = {
        "type": "http",
        "http_version": "1.1",
        "method": method.upper(),
        "path": path,
        "raw_path": path.encode(),
        "root_path": "",
        "scheme": "http",
        "query_string": query_string,
        "headers": [(b"host", b"testserver")],
        "client": ("testclient", 12345),
        "server": ("testserver", 80),
        "state": {},
    }

    messages = []

    async def receive():
        return {"type": "http.request", "body": b"", "more_body": False}

    async def send(message):
        messages.append(message)

    async def _call():
        await app.app(scope, receive, send)
        return _collect(messages)

    return asyncio.run(_call())


def _json(method, path, query=None):
    status, _, body = _run_app(method, path, query=query)
    return status, json.loads(body.decode("utf-8") or "{}")


def test_root_banner():
    status, payload = _json("GET", "/")
    assert status == 200
    assert payload["service"] == "student-report"


def test_health_reports_database(temp_db):
    status, payload = _json("GET", "/health")
    assert status == 200
    assert payload == {"status": "ok", "database": True}


def test_report_endpoint(seeded_db):
    status, payload = _json(
        "GET",
        "/students/s1/report",
        {"window_start": "2024-03-01", "window_end": "2024-03-31", "now": NOW},
    )

    assert status == 200
    assert payload["student"]["id"] == "s1"
    assert payload["attendance_percentage"] == {"value": 75.0, "available": True, "reason": None}
    assert [c["chapter"]["id"] for c in payload["chapter_performance"]] == ["ch_geo", "ch_cells", "ch_alg"]
    assert payload["missed_chapters"]["status"] == "determined"
    assert payload["overdue_homework"][0]["id"] == "hr1"
    assert payload["window"] == {"start": "2024-03-01", "end": "2024-03-31"}


def test_report_endpoint_subject_filter(seeded_db):
    status, payload = _json("GET", "/students/s1/report", {"subject": "Science", "now": NOW})

    assert status == 200
    assert payload["subject_filter"] == "Science"
    assert [c["chapter"]["id"] for c in payload["chapter_performance"]] == ["ch_cells"]


def test_unknown_student_is_404(temp_db):
    status, payload = _json("GET", "/students/ghost/report", {"now": NOW})
    assert status == 404
    assert "ghost" in payload["detail"]


def test_inverted_window_is_400(seeded_db):
    status, payload = _json(
        "GET",
        "/students/s1/report",
        {"window_start": "2024-03-31", "window_end": "2024-03-01", "now": NOW},
    )
    assert status == 400
    assert "after" in payload["detail"]


def test_superseded_selection_is_409(seeded_db, monkeypatch):
    tracker = SelectionTracker()
    monkeypatch.setattr(app.SERVICE, "tracker", tracker)
    original = app.SERVICE.repository.list_attendance

    def newer_selection_arrives(*args):
        tracker.begin("viewer")
        return original(*args)

    monkeypatch.setattr(app.SERVICE, "repository", _Wrapped(app.SERVICE.repository, list_attendance=newer_selection_arrives))

    status, payload = _json("GET", "/students/s1/report", {"now": NOW, "selection_key": "viewer"})

    assert status == 409
    assert "superseded" in payload["detail"]


class _Wrapped:
    def __init__(self, inner, **overrides):
        self._inner = inner
        self._overrides = overrides

    def __getattr__(self, name):
        if name in self._overrides:
            return self._overrides[name]
        return getattr(self._inner, name)


def test_export_returns_csv(seeded_db):
    status, headers, body = _run_app(
        "GET",
        "/students/s1/report/export",
        query={"window_start": "2024-03-01", "window_end": "2024-03-31", "now": NOW},
    )

    assert status == 200
    assert headers["content-type"].startswith("text/csv")
    assert "report_s1_2024-03-01_2024-03-31.csv" in headers["content-disposition"]
    text = body.decode("utf-8")
    assert text.startswith("Student")
    assert "Missed chapters" in text
