"""Groups chapter-related records into one performance unit per taught chapter."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from engines.correlation import (
    ChapterIndex,
    CorrelationKey,
    chapter_sort_key,
    key_for_completion,
    key_for_homework,
    key_for_test_result,
    summarize_keys,
)
from schemas import (
    ChapterPerformance,
    CompletionRecord,
    CorrelatedHomework,
    HomeworkRecord,
    TestResult,
)

logger = logging.getLogger(__name__)


@dataclass
class _ChapterBucket:
    completion_records: List[CompletionRecord] = field(default_factory=list)
    test_results: List[TestResult] = field(default_factory=list)
    homework: List[CorrelatedHomework] = field(default_factory=list)


@dataclass
class AggregationResult:
    chapters: List[ChapterPerformance]
    uncorrelated_test_results: List[TestResult]
    uncorrelated_homework: List[HomeworkRecord]
    uncorrelated_completions: List[CompletionRecord]

    @property
    def chapter_ids(self) -> set[str]:
        return {unit.chapter.id for unit in self.chapters}


def _average_rating(records: Iterable[CompletionRecord]):
    ratings = [r.evaluation_rating for r in records if r.evaluation_rating is not None]
    if not ratings:
        return None
    return round(sum(ratings) / len(ratings), 1)


class ChapterAggregator:
    """Builds :class:`ChapterPerformance` units from correlated records.

    A taught chapter is emitted only when at least one record correlates to
    it. Duplicate completion records for the same chapter are kept as a
    list; picking the authoritative one is left to the presentation layer.
    """

    def aggregate(
        self,
        index: ChapterIndex,
        completions: Iterable[CompletionRecord],
        test_results: Iterable[TestResult],
        homework_records: Iterable[HomeworkRecord],
    ) -> AggregationResult:
        buckets: Dict[str, _ChapterBucket] = {}
        keys: Dict[str, CorrelationKey] = {}
        unmatched_completions: List[CompletionRecord] = []
        unmatched_tests: List[TestResult] = []
        unmatched_homework: List[HomeworkRecord] = []

        for record in completions:
            key = key_for_completion(record, index)
            keys[f"completion:{record.id}"] = key
            if not key.resolved:
                unmatched_completions.append(record)
                continue
            buckets.setdefault(key.chapter_id, _ChapterBucket()).completion_records.append(record)

        for result in test_results:
            key = key_for_test_result(result, index)
            keys[f"test:{result.id}"] = key
            if not key.resolved:
                unmatched_tests.append(result)
                continue
            buckets.setdefault(key.chapter_id, _ChapterBucket()).test_results.append(result)

        for record in homework_records:
            key = key_for_homework(record, index)
            keys[f"homework:{record.id}"] = key
            if not key.resolved:
                unmatched_homework.append(record)
                continue
            buckets.setdefault(key.chapter_id, _ChapterBucket()).homework.append(
                CorrelatedHomework(record=record, confidence=key.confidence)
            )

        units = [self._build_unit(index, chapter_id, bucket) for chapter_id, bucket in buckets.items()]
        units.sort(key=lambda unit: chapter_sort_key(unit.chapter))

        logger.debug(
            "Aggregated %d chapter units (keys: %s)", len(units), summarize_keys(keys)
        )
        return AggregationResult(
            chapters=units,
            uncorrelated_test_results=unmatched_tests,
            uncorrelated_homework=unmatched_homework,
            uncorrelated_completions=unmatched_completions,
        )

    @staticmethod
    def _build_unit(index: ChapterIndex, chapter_id: str, bucket: _ChapterBucket) -> ChapterPerformance:
        chapter = index.get(chapter_id)
        obtained = sum(r.marks_obtained for r in bucket.test_results)
        total = sum(r.test.total_marks for r in bucket.test_results if r.test)
        return ChapterPerformance(
            chapter=chapter,
            completion_records=list(bucket.completion_records),
            test_results=list(bucket.test_results),
            homework=list(bucket.homework),
            is_completed=any(r.completed for r in bucket.completion_records),
            average_rating=_average_rating(bucket.completion_records),
            test_marks_obtained=obtained,
            test_total_marks=total,
        )
