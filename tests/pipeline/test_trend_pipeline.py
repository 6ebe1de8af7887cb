"""Tests for the trend pipeline orchestrator."""

from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from trendscout.errors import RecordPersistError, StoreUnavailableError
from trendscout.pipeline.trends import TrendPipeline, merge_candidate
from trendscout.trends.models import CandidateItem, FetchResult, RawMetrics, TrendRecord
from trendscout.trends.store import JsonTrendStore

T0 = datetime(2025, 1, 6, 12, 0, tzinfo=UTC)


class FakeClock:
    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeSource:
    """Duck-typed adapter returning canned candidates."""

    def __init__(
        self,
        source: str,
        items: list[CandidateItem] | None = None,
        errors: list[str] | None = None,
    ) -> None:
        self.source = source
        self.items = items or []
        self.errors = errors or []
        self.calls = 0

    def fetch(self) -> FetchResult:
        self.calls += 1
        return FetchResult(
            source=self.source,
            items=[item.model_copy(deep=True) for item in self.items],
            errors=list(self.errors),
        )


class BlockingSource(FakeSource):
    """Blocks inside fetch() until released."""

    def __init__(self, source: str, items: list[CandidateItem] | None = None) -> None:
        super().__init__(source, items)
        self.started = threading.Event()
        self.release = threading.Event()
        self.entered = 0

    def fetch(self) -> FetchResult:
        self.entered += 1
        self.started.set()
        self.release.wait(timeout=5)
        return super().fetch()


class LateFailingSource(FakeSource):
    """First fetch overruns the deadline and then reports an error."""

    def __init__(self, source: str, items: list[CandidateItem] | None = None) -> None:
        super().__init__(source, items)
        self.release = threading.Event()

    def fetch(self) -> FetchResult:
        self.calls += 1
        if self.calls == 1:
            self.release.wait(timeout=5)
            return FetchResult(source=self.source, errors=["stale error from run 1"])
        return FetchResult(source=self.source, items=list(self.items))


class RacingStore(JsonTrendStore):
    """Lets a second writer update ``r1`` between find() and upsert()."""

    def __init__(self, data_dir: Path) -> None:
        super().__init__(data_dir)
        self.raced = False

    def find(self, source, source_id):
        found = super().find(source, source_id)
        if source_id == "r1" and not self.raced:
            self.raced = True
            JsonTrendStore(self.path.parent).upsert(
                TrendRecord(
                    source=source,
                    source_id=source_id,
                    title="Written elsewhere",
                    engagement=7.0,
                ),
                now=T0 - timedelta(minutes=5),
            )
        return found


def _candidate(source_id: str, title: str, source: str = "reddit", **metrics: object) -> CandidateItem:
    return CandidateItem(
        source=source,
        source_id=source_id,
        title=title,
        url=f"https://example.com/{source_id}",
        metrics=RawMetrics(**metrics),  # type: ignore[arg-type]
    )


@pytest.fixture
def store(tmp_path: Path) -> JsonTrendStore:
    return JsonTrendStore(tmp_path)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


class TestMergeCandidate:
    def test_new_record(self):
        candidate = _candidate("a", "Title", upvotes=5)
        record = merge_candidate(candidate, None, ["title"])
        assert record.key == ("reddit", "a")
        assert record.metrics.upvotes == 5
        assert record.keywords == ["title"]
        assert record.cluster is None

    def test_existing_record_keeps_description_and_created_at(self):
        created = T0 - timedelta(hours=5)
        previous = TrendRecord(
            source="reddit",
            source_id="a",
            title="Old",
            description="Old description",
            metrics=RawMetrics(upvotes=1, created_at=created),
            keywords=["old"],
            cluster="cluster-4",
            first_seen=T0 - timedelta(hours=4),
            last_seen=T0 - timedelta(hours=1),
        )
        candidate = CandidateItem(
            source="reddit",
            source_id="a",
            title="New",
            description="",
            metrics=RawMetrics(upvotes=9),
        )
        record = merge_candidate(candidate, previous, ["new"])

        assert record.title == "New"
        assert record.description == "Old description"
        assert record.metrics.upvotes == 9
        assert record.metrics.created_at == created
        assert record.keywords == ["new"]
        assert record.first_seen == previous.first_seen


class TestRunOnce:
    def test_fetches_scores_and_clusters(self, store, clock):
        reddit = FakeSource(
            "reddit",
            [
                _candidate("r1", "AI chatbot startup raises seed", upvotes=99, comments=9),
                _candidate("r2", "AI chatbot startup funding frenzy", upvotes=10),
            ],
        )
        github = FakeSource(
            "github", [_candidate("g1", "octo/ai", source="github", stars=500)]
        )
        pipeline = TrendPipeline(store, [reddit, github], clock=clock)

        summary = pipeline.run_once()

        assert summary.processed == 3
        assert summary.per_source_counts == {"reddit": 2, "github": 1}
        assert summary.per_source_errors == {"reddit": [], "github": []}
        assert summary.clusters == 2
        assert summary.skipped is False
        assert summary.finished_at == T0

        r1 = store.find("reddit", "r1")
        r2 = store.find("reddit", "r2")
        assert r1.keywords == ["chatbot", "startup", "raises", "seed"]
        assert r1.cluster == r2.cluster == "cluster-0"
        assert store.find("github", "g1").cluster == "cluster-1"
        assert r1.first_seen == T0
        assert r1.rising_score > 0

    def test_second_run_updates_without_duplicates(self, store, clock):
        source = FakeSource("reddit", [_candidate("r1", "Rust compiler news", upvotes=10)])
        pipeline = TrendPipeline(store, [source], clock=clock)
        pipeline.run_once()
        first = store.find("reddit", "r1")

        clock.advance(hours=2)
        source.items = [_candidate("r1", "Rust compiler news", upvotes=200)]
        pipeline.run_once()

        assert len(store.list_all()) == 1
        second = store.find("reddit", "r1")
        assert second.first_seen == T0
        assert second.last_seen == T0 + timedelta(hours=2)
        assert second.metrics.upvotes == 200
        assert second.velocity == pytest.approx(
            (second.engagement - first.engagement) / 2, abs=0.01
        )

    def test_failed_source_recorded_and_run_continues(self, store, clock):
        broken = FakeSource("hackernews", errors=["timeout talking to HN"])
        working = FakeSource("reddit", [_candidate("r1", "Still works")])
        pipeline = TrendPipeline(store, [broken, working], clock=clock)

        summary = pipeline.run_once()

        assert summary.per_source_counts == {"hackernews": 0, "reddit": 1}
        assert summary.per_source_errors["hackernews"] == ["timeout talking to HN"]
        assert summary.processed == 1

    def test_duplicate_candidates_dropped(self, store, clock):
        source = FakeSource(
            "reddit",
            [_candidate("r1", "Same thing", upvotes=5), _candidate("r1", "Same thing", upvotes=50)],
        )
        summary = TrendPipeline(store, [source], clock=clock).run_once()

        assert summary.processed == 1
        assert summary.duplicates_dropped == 1
        assert store.find("reddit", "r1").metrics.upvotes == 5

    def test_unknown_source_scores_zero_engagement(self, store, clock):
        source = FakeSource(
            "mastodon", [_candidate("m1", "Federated timelines", source="mastodon", upvotes=999)]
        )
        summary = TrendPipeline(store, [source], clock=clock).run_once()

        record = store.find("mastodon", "m1")
        assert summary.processed == 1
        assert record.engagement == 0.0
        assert record.velocity == 0.0

    def test_persist_error_skips_candidate(self, tmp_path, clock):
        class FlakyStore(JsonTrendStore):
            def upsert(self, record, **kwargs):
                if record.source_id == "bad":
                    raise RecordPersistError(record.source, record.source_id, "boom")
                return super().upsert(record, **kwargs)

        store = FlakyStore(tmp_path)
        source = FakeSource("reddit", [_candidate("bad", "Bad one"), _candidate("ok", "Good one")])
        summary = TrendPipeline(store, [source], clock=clock).run_once()

        assert summary.processed == 1
        assert summary.skipped_records == 1
        assert store.find("reddit", "bad") is None
        assert store.find("reddit", "ok") is not None

    def test_store_unavailable_aborts(self, tmp_path, clock):
        class DeadStore(JsonTrendStore):
            def find(self, source, source_id):
                raise StoreUnavailableError("connection refused")

        source = FakeSource("reddit", [_candidate("r1", "Anything")])
        pipeline = TrendPipeline(DeadStore(tmp_path), [source], clock=clock)

        with pytest.raises(StoreUnavailableError):
            pipeline.run_once()
        assert not pipeline.is_running

    def test_slow_source_times_out(self, store, clock):
        slow = BlockingSource("github", [_candidate("g1", "Never arrives", source="github")])
        fast = FakeSource("reddit", [_candidate("r1", "Arrives")])
        pipeline = TrendPipeline(store, [slow, fast], clock=clock, fetch_timeout=0.05)

        try:
            summary = pipeline.run_once()
        finally:
            slow.release.set()

        assert summary.per_source_counts == {"github": 0, "reddit": 1}
        assert "timed out" in summary.per_source_errors["github"][0]
        assert store.find("github", "g1") is None

    def test_no_sources(self, store, clock):
        summary = TrendPipeline(store, [], clock=clock).run_once()
        assert summary.processed == 0
        assert summary.clusters == 0

    def test_clusters_recomputed_from_scratch(self, store, clock):
        source = FakeSource(
            "reddit",
            [_candidate("r1", "quantum error correction"), _candidate("r2", "quantum error bars")],
        )
        pipeline = TrendPipeline(store, [source], clock=clock)
        pipeline.run_once()
        assert store.find("reddit", "r2").cluster == "cluster-0"

        clock.advance(hours=1)
        source.items = [_candidate("r2", "sourdough baking tips")]
        pipeline.run_once()

        assert store.find("reddit", "r1").cluster == "cluster-0"
        assert store.find("reddit", "r2").cluster == "cluster-1"


class TestRunExclusion:
    def test_overlapping_trigger_is_noop(self, store, clock):
        blocking = BlockingSource("reddit", [_candidate("r1", "Only once", upvotes=10)])
        pipeline = TrendPipeline(store, [blocking], clock=clock)

        results = []
        worker = threading.Thread(target=lambda: results.append(pipeline.run_once()))
        worker.start()
        try:
            assert blocking.started.wait(timeout=5)
            assert pipeline.is_running

            overlapping = pipeline.run_once()
            assert overlapping.skipped is True
            assert overlapping.processed == 0
            assert store.list_all() == []
        finally:
            blocking.release.set()
            worker.join(timeout=5)

        assert results[0].processed == 1
        assert blocking.calls == 1
        assert len(store.list_all()) == 1
        assert not pipeline.is_running

    def test_store_on_same_directory_skips_while_run_in_progress(self, tmp_path, clock):
        blocking = BlockingSource("reddit", [_candidate("r1", "First pipeline")])
        first = TrendPipeline(JsonTrendStore(tmp_path), [blocking], clock=clock)
        other_source = FakeSource("reddit", [_candidate("r2", "Second pipeline")])
        second = TrendPipeline(JsonTrendStore(tmp_path), [other_source], clock=clock)

        results = []
        worker = threading.Thread(target=lambda: results.append(first.run_once()))
        worker.start()
        try:
            assert blocking.started.wait(timeout=5)
            overlapping = second.run_once()
        finally:
            blocking.release.set()
            worker.join(timeout=5)

        assert overlapping.skipped is True
        assert other_source.calls == 0
        assert results[0].processed == 1

        assert second.run_once().processed == 1
        stored = JsonTrendStore(tmp_path).list_all()
        assert [r.source_id for r in stored] == ["r1", "r2"]


class TestConcurrentWriters:
    def test_record_changed_between_find_and_upsert_is_skipped(self, tmp_path, clock):
        store = RacingStore(tmp_path)
        source = FakeSource(
            "reddit",
            [_candidate("r1", "Raced record", upvotes=50), _candidate("r2", "Calm record")],
        )

        summary = TrendPipeline(store, [source], clock=clock).run_once()

        assert summary.skipped_records == 1
        assert summary.processed == 1
        assert summary.finished_at == T0

        record = JsonTrendStore(tmp_path).find("reddit", "r1")
        assert record.title == "Written elsewhere"
        assert record.engagement == 7.0
        assert record.last_seen == T0 - timedelta(minutes=5)
        assert all(r.cluster is not None for r in store.list_all())


class TestFetchIsolation:
    def test_late_errors_do_not_leak_into_next_run(self, store, clock):
        source = LateFailingSource("reddit", [_candidate("r1", "Fresh data")])
        pipeline = TrendPipeline(store, [source], clock=clock, fetch_timeout=0.5)

        try:
            first = pipeline.run_once()
        finally:
            source.release.set()
        assert "timed out" in first.per_source_errors["reddit"][0]
        # The abandoned fetch finishes after its run has ended.
        pipeline._inflight[0].result(timeout=5)

        clock.advance(hours=1)
        second = pipeline.run_once()

        assert second.per_source_errors == {"reddit": []}
        assert second.per_source_counts == {"reddit": 1}
        assert store.find("reddit", "r1") is not None

    def test_adapter_still_running_is_not_restarted(self, store, clock):
        slow = BlockingSource("github", [_candidate("g1", "Slow", source="github")])
        fast = FakeSource("reddit", [_candidate("r1", "Quick")])
        pipeline = TrendPipeline(store, [slow, fast], clock=clock, fetch_timeout=0.5)

        try:
            pipeline.run_once()
            clock.advance(hours=1)
            second = pipeline.run_once()
        finally:
            slow.release.set()

        assert slow.entered == 1
        assert second.per_source_errors["github"] == ["still running from a previous run"]
        assert second.per_source_counts == {"github": 0, "reddit": 1}

        pipeline._inflight[0].result(timeout=5)
        clock.advance(hours=1)
        third = pipeline.run_once()
        assert slow.entered == 2
        assert third.per_source_errors["github"] != ["still running from a previous run"]

    def test_fetch_threads_are_daemons(self, store, clock):
        seen = []

        class ThreadRecordingSource(FakeSource):
            def fetch(self):
                seen.append(threading.current_thread().daemon)
                return super().fetch()

        TrendPipeline(store, [ThreadRecordingSource("reddit")], clock=clock).run_once()
        assert seen == [True]


class TestProcessCandidate:
    def test_does_not_touch_cluster(self, store, clock):
        source = FakeSource("reddit", [_candidate("r1", "Cluster owner test")])
        pipeline = TrendPipeline(store, [source], clock=clock)
        pipeline.run_once()
        assert store.find("reddit", "r1").cluster == "cluster-0"

        clock.advance(hours=1)
        record = pipeline.process_candidate(_candidate("r1", "Totally different words"))
        assert record.cluster == "cluster-0"

    def test_same_instant_resighting_has_zero_velocity(self, store, clock):
        pipeline = TrendPipeline(store, [], clock=clock)
        pipeline.process_candidate(_candidate("r1", "Hello there", upvotes=10))
        record = pipeline.process_candidate(_candidate("r1", "Hello there", upvotes=500))
        assert record.velocity == 0.0
        assert len(store.list_all()) == 1


class TestFromConfig:
    def test_builds_store_and_sources(self, tmp_path):
        from trendscout.config import PipelineConfig, StoreConfig, TrendscoutConfig

        config = TrendscoutConfig(
            store=StoreConfig(directory=str(tmp_path)),
            pipeline=PipelineConfig(sources=["github", "rss"]),
        )
        pipeline = TrendPipeline.from_config(config)

        assert isinstance(pipeline.store, JsonTrendStore)
        assert pipeline.store.path.parent == tmp_path
        assert [str(s.source) for s in pipeline._sources] == ["github", "rss"]
