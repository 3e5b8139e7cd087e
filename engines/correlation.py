"""Correlation keys that tie test, homework and completion records to taught chapters."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional

from schemas import CompletionRecord, HomeworkRecord, TaughtChapter, TestResult

STRONG = "strong"
WEAK = "weak"
NONE = "none"


@dataclass(frozen=True)
class CorrelationKey:
    chapter_id: Optional[str]
    confidence: str  # 'strong', 'weak', 'none'

    @property
    def resolved(self) -> bool:
        return self.chapter_id is not None


_UNRESOLVED = CorrelationKey(chapter_id=None, confidence=NONE)


def chapter_sort_key(chapter: TaughtChapter):
    """Newest lesson first, chapter id as a stable tie-breaker."""

    return (-chapter.lesson_date.toordinal(), chapter.id)


def order_chapters(chapters: Iterable[TaughtChapter]) -> List[TaughtChapter]:
    return sorted(chapters, key=chapter_sort_key)


class ChapterIndex:
    """Lookup structure over the taught chapters visible to one report."""

    def __init__(self, chapters: Iterable[TaughtChapter]):
        self._by_id: Dict[str, TaughtChapter] = {}
        for chapter in order_chapters(chapters):
            self._by_id.setdefault(chapter.id, chapter)
        self._ordered: List[TaughtChapter] = list(self._by_id.values())
        self._first_by_subject: Dict[str, TaughtChapter] = {}
        for chapter in self._ordered:
            self._first_by_subject.setdefault(chapter.subject, chapter)

    def __contains__(self, chapter_id: object) -> bool:
        return chapter_id in self._by_id

    def get(self, chapter_id: Optional[str]) -> Optional[TaughtChapter]:
        if chapter_id is None:
            return None
        return self._by_id.get(chapter_id)

    def first_for_subject(self, subject: Optional[str]) -> Optional[TaughtChapter]:
        if not subject:
            return None
        return self._first_by_subject.get(subject)


def key_for_completion(record: CompletionRecord, index: ChapterIndex) -> CorrelationKey:
    if record.taught_chapter_id and record.taught_chapter_id in index:
        return CorrelationKey(record.taught_chapter_id, STRONG)
    return _UNRESOLVED


def key_for_test_result(result: TestResult, index: ChapterIndex) -> CorrelationKey:
    # Results without an explicit chapter link still count towards the test average.
    chapter_id = result.test.taught_chapter_id if result.test else None
    if chapter_id and chapter_id in index:
        return CorrelationKey(chapter_id, STRONG)
    return _UNRESOLVED


def key_for_homework(record: HomeworkRecord, index: ChapterIndex) -> CorrelationKey:
    """Attach homework to the first chapter sharing its subject.

    Assignments carry no chapter reference, so the match is by subject name
    only and may land on any chapter of that subject. The key is tagged
    ``weak`` so consumers can render it as a best-effort association.
    """

    subject = record.homework.subject if record.homework else None
    chapter = index.first_for_subject(subject)
    if chapter is None:
        return _UNRESOLVED
    return CorrelationKey(chapter.id, WEAK)


def completion_keys(records: Iterable[CompletionRecord]) -> set[str]:
    """Chapter ids referenced by any completion record, regardless of index membership."""

    return {r.taught_chapter_id for r in records if r.taught_chapter_id}


def narrow_to_cohort(chapters: Iterable[TaughtChapter], cohort: Optional[str]) -> List[TaughtChapter]:
    if not cohort:
        return list(chapters)
    return [c for c in chapters if c.grade == cohort]


def summarize_keys(keys: Mapping[str, CorrelationKey]) -> Dict[str, int]:
    counts = {STRONG: 0, WEAK: 0, NONE: 0}
    for key in keys.values():
        counts[key.confidence] = counts.get(key.confidence, 0) + 1
    return counts
