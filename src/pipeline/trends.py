"""Trend pipeline - fetch candidates, score them, cluster the record set.

One ``run_once()`` call is a full cycle:

1. fan out to every source adapter on daemon threads, at most
   ``max_workers`` fetching at once, all bounded by ``fetch_timeout``;
2. for each candidate, serially: look up the stored record, extract
   keywords, score against the stored snapshot, upsert;
3. once every upsert has returned, snapshot the store and recompute
   clusters from scratch.

Only one cycle runs at a time per store: a call that arrives while
another run holds the pipeline or the store (possibly from another
process) returns a summary with ``skipped=True``.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import UTC, datetime
from pathlib import Path
from time import monotonic

from trendscout.config import TrendscoutConfig
from trendscout.errors import RecordPersistError
from trendscout.trends.clustering import cluster_records
from trendscout.trends.keywords import extract_keywords
from trendscout.trends.models import (
    CandidateItem,
    FetchResult,
    RunSummary,
    SourceReport,
    TrendRecord,
)
from trendscout.trends.scoring import score_candidate
from trendscout.trends.sources import get_configured_sources
from trendscout.trends.sources.base import SourceAdapter
from trendscout.trends.store import JsonTrendStore, TrendStore

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


def merge_candidate(
    candidate: CandidateItem,
    previous: TrendRecord | None,
    keywords: list[str],
) -> TrendRecord:
    """Build the record to store for a sighting.

    Content fields come from the candidate, except an empty description
    which keeps the stored one. Metrics are merged field-wise so values
    only known from an earlier sighting survive. Scores are left for the
    scoring step.
    """
    if previous is None:
        return TrendRecord(
            source=candidate.source,
            source_id=candidate.source_id,
            title=candidate.title,
            url=candidate.url,
            description=candidate.description,
            metrics=candidate.metrics.model_copy(),
            keywords=keywords,
        )

    return previous.model_copy(
        update={
            "title": candidate.title,
            "url": candidate.url,
            "description": candidate.description or previous.description,
            "metrics": previous.metrics.merged_with(candidate.metrics),
            "keywords": keywords,
        },
        deep=True,
    )


class TrendPipeline:
    """Coordinates adapters, the store, scoring and clustering."""

    def __init__(
        self,
        store: TrendStore,
        sources: Sequence[SourceAdapter],
        *,
        fetch_timeout: float = 120.0,
        max_workers: int = 4,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._store = store
        self._sources = list(sources)
        self._fetch_timeout = fetch_timeout
        self._max_workers = max(max_workers, 1)
        self._clock = clock
        self._run_lock = threading.Lock()
        self._inflight: dict[int, Future[FetchResult]] = {}

    @classmethod
    def from_config(
        cls,
        config: TrendscoutConfig,
        *,
        store: TrendStore | None = None,
    ) -> TrendPipeline:
        if store is None:
            store = JsonTrendStore(Path(config.store.directory).expanduser())
        return cls(
            store,
            get_configured_sources(config),
            fetch_timeout=config.pipeline.fetch_timeout,
            max_workers=config.pipeline.max_workers,
        )

    @property
    def store(self) -> TrendStore:
        return self._store

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    def run_once(self) -> RunSummary:
        """Run one full cycle unless another is already in progress.

        Raises:
            StoreUnavailableError: If the store cannot be read or written.
        """
        if not self._run_lock.acquire(blocking=False):
            logger.info("Trend run already in progress; ignoring trigger")
            return self._skipped_summary()
        try:
            with self._store.exclusive_run() as acquired:
                if not acquired:
                    logger.info("Trend store busy with another run; ignoring trigger")
                    return self._skipped_summary()
                return self._run()
        finally:
            self._run_lock.release()

    def _skipped_summary(self) -> RunSummary:
        now = self._clock()
        return RunSummary(skipped=True, started_at=now, finished_at=now)

    def _run(self) -> RunSummary:
        summary = RunSummary(started_at=self._clock())

        candidates = self.fetch_candidates(summary)
        logger.info("Processing %d total candidates", len(candidates))
        self.process_candidates(candidates, summary)

        # All upserts above have returned; the snapshot sees every one.
        records = self._store.list_all()
        result = cluster_records(records)
        self._store.assign_clusters(result)
        summary.clusters = result.cluster_count

        summary.finished_at = self._clock()
        logger.info(
            "Trend run finished: %d processed, %d skipped, %d duplicates, %d clusters",
            summary.processed,
            summary.skipped_records,
            summary.duplicates_dropped,
            summary.clusters,
        )
        return summary

    # ── fetch phase ──────────────────────────────────────────────

    def fetch_candidates(self, summary: RunSummary) -> list[CandidateItem]:
        """Fetch from every adapter concurrently, in adapter order.

        An adapter that has not returned within ``fetch_timeout`` of the
        fan-out contributes nothing; its thread is abandoned, not joined.
        An adapter whose fetch from an earlier run is still going is not
        started again and is reported as busy.
        """
        slots = threading.BoundedSemaphore(self._max_workers)
        started: list[tuple[str, Future[FetchResult]]] = []
        for index, adapter in enumerate(self._sources):
            name = str(adapter.source)
            previous = self._inflight.get(index)
            if previous is not None and not previous.done():
                message = "still running from a previous run"
                logger.warning("%s: %s", name, message)
                summary.add_report(SourceReport(source=name, errors=[message]))
                continue
            future = _start_fetch(adapter, slots)
            self._inflight[index] = future
            started.append((name, future))

        deadline = monotonic() + self._fetch_timeout
        candidates: list[CandidateItem] = []
        for name, future in started:
            try:
                result = future.result(timeout=max(deadline - monotonic(), 0))
            except FutureTimeoutError:
                future.cancel()
                message = f"timed out after {self._fetch_timeout:g}s"
                logger.warning("%s: %s", name, message)
                summary.add_report(SourceReport(source=name, errors=[message]))
                continue
            except Exception as exc:
                logger.warning("%s: fetch raised", name, exc_info=True)
                summary.add_report(SourceReport(source=name, errors=[str(exc)]))
                continue

            summary.add_report(result.report())
            candidates.extend(result.items)
        return candidates

    # ── per-record phase ─────────────────────────────────────────

    def process_candidates(
        self, candidates: Sequence[CandidateItem], summary: RunSummary
    ) -> None:
        """Score and upsert candidates one at a time.

        A second candidate with an identity already handled this run is
        dropped so no record gets velocity credit twice in one cycle.
        """
        seen: set[tuple[str, str]] = set()
        for candidate in candidates:
            if candidate.key in seen:
                summary.duplicates_dropped += 1
                logger.debug("Dropping duplicate candidate %s/%s", *candidate.key)
                continue
            seen.add(candidate.key)

            try:
                self.process_candidate(candidate)
            except RecordPersistError as exc:
                summary.skipped_records += 1
                logger.warning("Skipping candidate: %s", exc)
                continue
            summary.processed += 1

    def process_candidate(
        self, candidate: CandidateItem, *, now: datetime | None = None
    ) -> TrendRecord:
        """Lookup → keywords → score → upsert for one candidate."""
        now = now or self._clock()
        previous = self._store.find(candidate.source, candidate.source_id)

        keywords = extract_keywords(candidate.title)
        record = merge_candidate(candidate, previous, keywords)
        scores = score_candidate(
            record.source,
            record.metrics,
            previous,
            now=now,
            first_seen=record.first_seen or now,
        )
        record = record.model_copy(update=scores.model_dump())

        logger.debug(
            "%s/%s scored %.2f (v=%.2f r=%.2f e=%.2f)",
            record.source,
            record.source_id,
            scores.rising_score,
            scores.velocity,
            scores.recency,
            scores.engagement,
        )
        return self._store.upsert(
            record,
            now=now,
            previous_last_seen=previous.last_seen if previous is not None else None,
        )


def _start_fetch(
    adapter: SourceAdapter, slots: threading.BoundedSemaphore
) -> Future[FetchResult]:
    """Run ``adapter.fetch()`` on a daemon thread, at most ``slots`` at once.

    Daemon threads do not hold up interpreter exit, so an abandoned
    fetch never keeps the CLI process alive.
    """
    future: Future[FetchResult] = Future()

    def target() -> None:
        with slots:
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(adapter.fetch())
            except Exception as exc:
                future.set_exception(exc)

    threading.Thread(
        target=target,
        name=f"trend-source-{adapter.source}",
        daemon=True,
    ).start()
    return future
