"""Scheduled ingestion: fetch, transform, store and track, once per tick.

Cycles run one at a time on the scheduler thread. The schedule is fixed-rate:
tick ``k`` is due at ``origin + k * interval`` where ``origin`` is the moment
the loop started. A cycle that runs past one or more tick boundaries makes
those ticks lapse; the next cycle starts at the next boundary still ahead.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import math
from threading import Event
import time
from typing import Callable

from ingester.errors import FetchError, StoreError, TrackerWriteError, TransformError
from ingester.fetcher import RecordFetcher
from ingester.store import RecordStore
from ingester.tracker import StatusTracker
from ingester.transformer import RecordTransformer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CycleResult:
    success: bool
    count: int = 0
    error: str | None = None
    abandoned: bool = False


ABANDONED = CycleResult(success=False, abandoned=True)


def next_tick(origin: float, now: float, interval: float, last_tick: int) -> int:
    """Index of the first tick after ``last_tick`` that is not already in the past."""
    if interval <= 0:
        raise ValueError("interval must be positive")
    due = math.ceil((now - origin) / interval)
    return max(last_tick + 1, due)


class IngestionOrchestrator:
    def __init__(
        self,
        *,
        fetcher: RecordFetcher,
        transformer: RecordTransformer,
        store: RecordStore,
        tracker: StatusTracker,
        interval_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._fetcher = fetcher
        self._transformer = transformer
        self._store = store
        self._tracker = tracker
        self._interval_seconds = interval_seconds
        self._clock = clock

    @property
    def interval_seconds(self) -> float:
        return self._interval_seconds

    def run(self, cancel: Event) -> None:
        origin = self._clock()
        tick = 0
        logger.info("scheduler started interval=%.3fs", self._interval_seconds)

        while True:
            self._run_guarded(cancel)
            if cancel.is_set():
                break

            upcoming = next_tick(origin, self._clock(), self._interval_seconds, tick)
            if upcoming > tick + 1:
                logger.warning(
                    "ingestion cycle overran its interval skipped_ticks=%d",
                    upcoming - tick - 1,
                )
            tick = upcoming

            delay = origin + tick * self._interval_seconds - self._clock()
            if cancel.wait(max(0.0, delay)):
                break

        logger.info("scheduler stopped")

    def _run_guarded(self, cancel: Event) -> None:
        try:
            self.run_cycle(cancel)
        except Exception:
            logger.exception("ingestion cycle crashed")

    def run_cycle(self, cancel: Event) -> CycleResult:
        if cancel.is_set():
            logger.info("ingestion cycle abandoned before start")
            return ABANDONED

        logger.info("starting data ingestion")
        started = time.perf_counter()

        try:
            raw_records = self._fetcher.fetch()
            enriched = self._transformer.transform(raw_records)
        except (FetchError, TransformError) as exc:
            return self._fail(exc)

        if cancel.is_set():
            logger.info("ingestion cycle abandoned after fetch fetched=%d", len(raw_records))
            return ABANDONED

        try:
            stored = self._store.write(enriched)
        except StoreError as exc:
            return self._fail(exc)

        count = len(stored)
        try:
            self._tracker.record_success(count)
        except TrackerWriteError as exc:
            logger.error("error recording success count=%d error=%s", count, exc)

        duration_ms = int((time.perf_counter() - started) * 1000)
        logger.info("successfully ingested records count=%d duration_ms=%d", count, duration_ms)
        return CycleResult(success=True, count=count)

    def _fail(self, exc: Exception) -> CycleResult:
        logger.error("ingestion cycle failed stage=%s error=%s", _stage_of(exc), exc)
        try:
            self._tracker.record_failure(exc)
        except TrackerWriteError as track_exc:
            logger.error("error recording failure error=%s", track_exc)
        return CycleResult(success=False, error=str(exc))


def _stage_of(exc: Exception) -> str:
    if isinstance(exc, FetchError):
        return "fetch"
    if isinstance(exc, TransformError):
        return "transform"
    return "store"
