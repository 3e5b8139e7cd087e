"""Input validation for report requests.

Everything here runs before any repository read; a failure means no report
is produced at all.
"""

import calendar
from datetime import date, datetime, timezone
from typing import Optional, Tuple, Union

from schemas import ReportWindow


class ValidationError(Exception):
    """Base class for validation errors."""
    pass


class ReportInputError(ValidationError):
    """Raised when a report request is malformed (missing student, inverted window)."""
    pass


class StudentNotFound(ValidationError):
    """Raised when the requested student does not exist."""

    def __init__(self, student_id: str):
        super().__init__(f"Unknown student: {student_id}")
        self.student_id = student_id


class ReportConsistencyError(Exception):
    """Raised when engine outputs contradict each other during report assembly."""
    pass


def _coerce_date(value: Union[str, date, datetime, None], name: str) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError as exc:
        raise ReportInputError(f"{name} must be an ISO date (YYYY-MM-DD), got {value!r}") from exc


def coerce_instant(value: Union[str, datetime, None]) -> datetime:
    """Return a timezone-aware evaluation instant; ``None`` means now."""

    if value is None or value == "":
        return datetime.now(timezone.utc)
    if isinstance(value, datetime):
        instant = value
    else:
        try:
            instant = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError as exc:
            raise ReportInputError(f"now must be an ISO timestamp, got {value!r}") from exc
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant


def month_window(instant: Union[date, datetime]) -> Tuple[date, date]:
    """Calendar month containing ``instant``."""

    day = instant.date() if isinstance(instant, datetime) else instant
    last = calendar.monthrange(day.year, day.month)[1]
    return day.replace(day=1), day.replace(day=last)


def validate_student_id(student_id: Optional[str]) -> str:
    if student_id is None or not str(student_id).strip():
        raise ReportInputError("student_id is required")
    return str(student_id).strip()


def validate_window(
    window_start: Union[str, date, datetime, None],
    window_end: Union[str, date, datetime, None],
    evaluated_at: datetime,
) -> ReportWindow:
    """Build the report window, defaulting missing bounds to the evaluation month.

    Raises ReportInputError if the window is inverted.
    """
    start = _coerce_date(window_start, "window_start")
    end = _coerce_date(window_end, "window_end")
    default_start, default_end = month_window(evaluated_at)
    start = start or default_start
    end = end or default_end
    if start > end:
        raise ReportInputError(
            f"window_start {start.isoformat()} is after window_end {end.isoformat()}"
        )
    return ReportWindow(start=start, end=end)


def validate_subject(subject: Optional[str]) -> Optional[str]:
    if subject is None:
        return None
    cleaned = subject.strip()
    if not cleaned or cleaned.lower() == "all":
        return None
    return cleaned
