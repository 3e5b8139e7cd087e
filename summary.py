"""Optional natural-language summary of a student report.

Posts a compact digest of the report to an OpenAI-style chat completions
endpoint. Every failure is folded into ``SummaryResult.error``; the report
itself is never affected.
"""

import json
import logging
import os
import time
from typing import Any, Dict, List, Optional
from uuid import uuid4

import requests

from env_validation import get_env_bool, get_env_float
from schemas import StudentReport, SummaryResult

logger = logging.getLogger(__name__)

SUMMARY_ENABLED = get_env_bool("SUMMARY_ENABLED")
SUMMARY_LLM_URL = os.getenv("SUMMARY_LLM_URL", "")
SUMMARY_MODEL_ID = os.getenv("SUMMARY_MODEL_ID", "gpt-4o-mini")
SUMMARY_API_KEY = os.getenv("SUMMARY_API_KEY", "")
SUMMARY_TIMEOUT = get_env_float("SUMMARY_TIMEOUT", 30.0)
SUMMARY_MAX_TOKENS = 600

_LLM_LOGGER = logging.getLogger("report.llm")
if not _LLM_LOGGER.handlers:
    _handler = logging.StreamHandler()
    _handler.setFormatter(logging.Formatter("%(message)s"))
    _LLM_LOGGER.addHandler(_handler)
_LLM_LOGGER.setLevel(logging.INFO)
_LLM_LOGGER.propagate = False

SYSTEM_PROMPT = (
    "You are an experienced class teacher writing a progress note for a student's parents. "
    "Be factual, warm and concise. Use only the figures you are given; when a value is "
    "marked unavailable, say that it could not be determined instead of guessing."
)

_SECTIONS = (
    "Overall performance",
    "Attendance",
    "Strengths and weaknesses by subject",
    "Areas that need attention (missed chapters, overdue homework)",
    "Recommendations for the coming weeks",
)


def build_messages(report: StudentReport) -> List[Dict[str, str]]:
    digest = json.dumps(report.digest(), ensure_ascii=False, default=str)
    sections = "\n".join(f"- {title}" for title in _SECTIONS)
    user = (
        "Write a short report summary with these sections:\n"
        f"{sections}\n\n"
        "Keep it under 250 words. Report data (JSON):\n"
        f"{digest}"
    )
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": user},
    ]


def _http_error_message(response: Any) -> str:
    status = getattr(response, "status_code", None)
    if status == 429:
        return "Summary service is rate limited; try again later."
    if status == 402:
        return "Summary service quota exhausted."
    text = getattr(response, "text", "") or ""
    return f"LLM-HTTP {status}: {text[:300]}"


def _extract_text(data: Any) -> Optional[str]:
    try:
        return data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        pass
    try:
        return data["choices"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return None


def generate_summary(report: StudentReport) -> SummaryResult:
    """Ask the configured model for a summary.

    Transport, HTTP and decoding failures are reported in the result, not raised.
    """

    if not SUMMARY_ENABLED:
        return SummaryResult(error="Summaries are disabled.")
    if not SUMMARY_LLM_URL:
        return SummaryResult(error="SUMMARY_LLM_URL is not configured.")

    payload = {
        "model": SUMMARY_MODEL_ID,
        "messages": build_messages(report),
        "temperature": 0.3,
        "max_tokens": SUMMARY_MAX_TOKENS,
    }
    headers = {"Content-Type": "application/json"}
    if SUMMARY_API_KEY:
        headers["Authorization"] = f"Bearer {SUMMARY_API_KEY}"

    request_id = str(uuid4())
    start = time.perf_counter()
    text: Optional[str] = None
    error: Optional[str] = None
    tokens_in: Optional[int] = None
    tokens_out: Optional[int] = None
    try:
        response = requests.post(SUMMARY_LLM_URL, json=payload, headers=headers, timeout=SUMMARY_TIMEOUT)
        response.raise_for_status()
        data = response.json()
        usage = data.get("usage") if isinstance(data, dict) else None
        if isinstance(usage, dict):
            tokens_in = usage.get("prompt_tokens")
            tokens_out = usage.get("completion_tokens")
        text = _extract_text(data)
        if not text or not str(text).strip():
            error = "Unexpected LLM response: no summary text"
            text = None
        else:
            text = str(text).strip()
    except requests.HTTPError as exc:
        error = _http_error_message(exc.response)
    except requests.RequestException as exc:
        error = f"LLM error: {exc}"
    except ValueError as exc:
        error = f"Unexpected LLM response: {exc}"
    finally:
        latency_ms = int((time.perf_counter() - start) * 1000)
        log_record = {
            "event": "summary_call",
            "request_id": request_id,
            "student_id": report.student.id,
            "model": SUMMARY_MODEL_ID,
            "latency_ms": latency_ms,
            "tokens_in": tokens_in,
            "tokens_out": tokens_out,
            "ok": error is None,
        }
        _LLM_LOGGER.info(json.dumps(log_record, ensure_ascii=False))

    if error:
        logger.warning("Summary for %s failed: %s", report.student.id, error)
    return SummaryResult(text=text, error=error, model=SUMMARY_MODEL_ID, latency_ms=latency_ms)
