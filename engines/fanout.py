"""Concurrent source reads with a join barrier and stale-selection protection."""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any, Callable, Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)


class SourceUnavailable(RuntimeError):
    """Raised when a single source read fails or times out."""


class ReportSuperseded(RuntimeError):
    """Raised when a newer selection replaced the one a computation was started for."""

    def __init__(self, key: str, generation: int, current: Optional[int]):
        super().__init__(
            f"Selection {key!r} generation {generation} superseded by generation {current}"
        )
        self.key = key
        self.generation = generation
        self.current = current


@dataclass
class SourceOutcome:
    name: str
    records: List[Any] = field(default_factory=list)
    error: Optional[str] = None
    latency_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


class SelectionToken:
    """Identifies one report computation within a selection stream."""

    def __init__(self, tracker: Optional["SelectionTracker"], key: Optional[str], generation: int):
        self._tracker = tracker
        self.key = key
        self.generation = generation

    def is_current(self) -> bool:
        if self._tracker is None or self.key is None:
            return True
        return self._tracker.current_generation(self.key) == self.generation

    def ensure_current(self) -> None:
        if not self.is_current():
            current = self._tracker.current_generation(self.key) if self._tracker is not None else None
            raise ReportSuperseded(self.key or "", self.generation, current)

    def release(self) -> None:
        if self._tracker is not None and self.key is not None:
            self._tracker.release(self)


class SelectionTracker:
    """Monotonic generation counter per selection key (e.g. a viewer session).

    Starting a new selection for a key invalidates every token issued earlier
    for that key, so a slow computation can't overwrite a newer report.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._generation = 0
        self._current: Dict[str, int] = {}

    def begin(self, key: Optional[str]) -> SelectionToken:
        if key is None:
            return SelectionToken(None, None, 0)
        with self._lock:
            self._generation += 1
            self._current[key] = self._generation
            return SelectionToken(self, key, self._generation)

    def current_generation(self, key: str) -> Optional[int]:
        with self._lock:
            return self._current.get(key)

    def release(self, token: SelectionToken) -> None:
        with self._lock:
            if self._current.get(token.key) == token.generation:
                del self._current[token.key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._current)


async def _read_source(name: str, read: Callable[[], List[Any]], timeout: Optional[float]) -> SourceOutcome:
    start = perf_counter()
    call = asyncio.to_thread(read)
    if timeout:
        try:
            records = await asyncio.wait_for(call, timeout)
        except asyncio.TimeoutError as exc:
            raise SourceUnavailable(f"{name} timed out after {timeout:g}s") from exc
    else:
        records = await call
    return SourceOutcome(
        name=name,
        records=list(records or []),
        latency_ms=int((perf_counter() - start) * 1000),
    )


async def gather_sources(
    reads: Mapping[str, Callable[[], List[Any]]],
    *,
    timeout: Optional[float] = None,
) -> Dict[str, SourceOutcome]:
    """Run every read concurrently and wait for all of them.

    A failing read becomes an outcome with ``error`` set; it never aborts the
    other reads.
    """

    tasks: Dict[str, asyncio.Task[SourceOutcome]] = {
        name: asyncio.create_task(_read_source(name, read, timeout)) for name, read in reads.items()
    }
    results = await asyncio.gather(*tasks.values(), return_exceptions=True)

    outcomes: Dict[str, SourceOutcome] = {}
    for name, result in zip(tasks.keys(), results):
        if isinstance(result, BaseException):
            if isinstance(result, asyncio.CancelledError):
                raise result
            message = str(result) or type(result).__name__
            logger.warning("Source %s unavailable: %s", name, message)
            outcomes[name] = SourceOutcome(name=name, error=message)
        else:
            outcomes[name] = result
    logger.debug(
        "Fan-out complete: %s",
        {name: (o.latency_ms if o.ok else "error") for name, o in outcomes.items()},
    )
    return outcomes
