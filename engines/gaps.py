"""Derived gaps: taught chapters never completed and homework past its due date."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Iterable, List, Optional

from engines.correlation import completion_keys, order_chapters
from schemas import (
    CompletionRecord,
    HomeworkRecord,
    MissedChapters,
    ReportWindow,
    TaughtChapter,
)

logger = logging.getLogger(__name__)

DONE_STATUSES = frozenset({"completed", "checked"})


def _as_date(instant: datetime | date) -> date:
    if isinstance(instant, datetime):
        return instant.date()
    return instant


class GapDetector:
    def missed_chapters(
        self,
        cohort: Optional[str],
        window: ReportWindow,
        chapters: Iterable[TaughtChapter],
        completions: Iterable[CompletionRecord],
        covered_chapter_ids: Iterable[str] = (),
    ) -> MissedChapters:
        """Chapters taught to the student's cohort in the window with no completion record.

        Completion records count whatever their own timestamp, so a chapter
        finished after the window closed is not missed. Chapters listed in
        ``covered_chapter_ids`` already have a performance unit and are left
        out so the two lists stay disjoint.
        """

        if not cohort:
            return MissedChapters(status="undetermined", reason="cohort_unknown")

        completed_ids = completion_keys(completions)
        covered = set(covered_chapter_ids)
        missed = [
            chapter
            for chapter in chapters
            if chapter.grade == cohort
            and window.contains(chapter.lesson_date)
            and chapter.id not in completed_ids
            and chapter.id not in covered
        ]
        deduped = {c.id: c for c in missed}
        return MissedChapters(status="determined", chapters=order_chapters(deduped.values()))

    def overdue_homework(
        self,
        records: Iterable[HomeworkRecord],
        evaluated_at: datetime | date,
    ) -> List[HomeworkRecord]:
        """Homework due strictly before the evaluation date and not yet handed in."""

        today = _as_date(evaluated_at)
        overdue = []
        for record in records:
            if record.status in DONE_STATUSES:
                continue
            if record.homework is None:
                logger.debug("Homework record %s has no assignment; skipping overdue check", record.id)
                continue
            if record.homework.due_date < today:
                overdue.append(record)
        overdue.sort(key=lambda r: (r.homework.due_date, r.id))
        return overdue
