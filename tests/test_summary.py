import asyncio
import importlib
import json
import types
import unittest

import pytest
import requests

import env_validation
import summary
from report_service import SOURCE_READERS, ReportService
from schemas import Student


class _DummyResponse:
    def __init__(self, status_code, payload, requests_module):
        self.status_code = status_code
        self._payload = payload
        self.text = json.dumps(payload)
        self._requests_module = requests_module

    def json(self):
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise self._requests_module.HTTPError(response=self)


class _DummyRequests:
    RequestException = requests.RequestException

    class HTTPError(requests.RequestException):
        def __init__(self, *args, response=None, **kwargs):
            super().__init__(*args if args else ("HTTP error",))
            self.response = response

    def __init__(self, status_code=200, payload=None, error=None):
        self.calls = []
        self._status_code = status_code
        self._payload = payload if payload is not None else {
            "choices": [{"message": {"content": "  Mia had a steady month.  "}}],
            "usage": {"prompt_tokens": 120, "completion_tokens": 40},
        }
        self._error = error

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if self._error is not None:
            raise self._error
        return _DummyResponse(self._status_code, self._payload, self)


class SummaryTests(unittest.TestCase):
    def setUp(self):
        self._prev = (
            summary.requests,
            summary.SUMMARY_ENABLED,
            summary.SUMMARY_LLM_URL,
            summary.SUMMARY_API_KEY,
        )
        summary.SUMMARY_ENABLED = True
        summary.SUMMARY_LLM_URL = "http://llm.local/v1/chat/completions"
        summary.SUMMARY_API_KEY = "secret"

    def tearDown(self):
        (
            summary.requests,
            summary.SUMMARY_ENABLED,
            summary.SUMMARY_LLM_URL,
            summary.SUMMARY_API_KEY,
        ) = self._prev

    def _report(self):
        async def _empty_report():
            repository = types.SimpleNamespace(
                get_student=lambda student_id: Student(id=student_id, name="Mia", grade="7"),
                **{attr: (lambda *args: []) for attr in SOURCE_READERS.values()},
            )
            return await ReportService(repository).build_report(
                "s1", "2024-03-01", "2024-03-31", now="2024-03-20T10:00:00+00:00"
            )

        return asyncio.run(_empty_report())

    def test_posts_openai_style_payload(self):
        dummy = _DummyRequests()
        summary.requests = dummy

        result = summary.generate_summary(self._report())

        self.assertEqual(result.text, "Mia had a steady month.")
        self.assertIsNone(result.error)
        call = dummy.calls[0]
        self.assertEqual(call["url"], "http://llm.local/v1/chat/completions")
        self.assertEqual(call["headers"]["Authorization"], "Bearer secret")
        messages = call["json"]["messages"]
        self.assertEqual(messages[0]["role"], "system")
        self.assertIn('"attendance_percentage": 0.0', messages[1]["content"])
        self.assertIn("Recommendations", messages[1]["content"])

    def test_rate_limit_is_reported_not_raised(self):
        summary.requests = _DummyRequests(status_code=429, payload={"error": "slow down"})

        result = summary.generate_summary(self._report())

        self.assertIsNone(result.text)
        self.assertIn("rate limited", result.error)

    def test_transport_error_is_reported(self):
        summary.requests = _DummyRequests(error=requests.ConnectionError("refused"))

        result = summary.generate_summary(self._report())

        self.assertIsNone(result.text)
        self.assertIn("refused", result.error)

    def test_malformed_response(self):
        summary.requests = _DummyRequests(payload={"unexpected": True})

        result = summary.generate_summary(self._report())

        self.assertIsNone(result.text)
        self.assertIn("Unexpected LLM response", result.error)

    def test_disabled_summaries_make_no_call(self):
        dummy = _DummyRequests()
        summary.requests = dummy
        summary.SUMMARY_ENABLED = False

        result = summary.generate_summary(self._report())

        self.assertEqual(dummy.calls, [])
        self.assertIn("disabled", result.error)


def test_summary_timeout_comes_from_environment(monkeypatch):
    monkeypatch.setenv("SUMMARY_TIMEOUT", "12.5")
    try:
        importlib.reload(summary)
        assert summary.SUMMARY_TIMEOUT == 12.5

        monkeypatch.setenv("SUMMARY_TIMEOUT", "soon")
        with pytest.raises(env_validation.EnvironmentError, match="SUMMARY_TIMEOUT"):
            importlib.reload(summary)
    finally:
        monkeypatch.undo()
        importlib.reload(summary)
