"""Trend record storage.

``TrendStore`` is the contract the pipeline reads and writes through.
``JsonTrendStore`` persists all records in a single JSON file that any
number of processes may share: writes happen under an exclusive file
lock after re-reading the file, and are published atomically.
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, Field

from trendscout.errors import DuplicateRecordError, RecordPersistError, StoreUnavailableError
from trendscout.trends.models import ClusterResult, TrendRecord

logger = logging.getLogger(__name__)

STORE_FILENAME = ".trendscout-trends.json"
WRITE_LOCK_FILENAME = STORE_FILENAME + ".lock"
RUN_LOCK_FILENAME = ".trendscout-run.lock"

DEFAULT_TOP_LIMIT = 50
DEFAULT_SOURCE_LIMIT = 20

_UNCHECKED = object()


@contextmanager
def file_lock(path: Path, *, blocking: bool = True) -> Iterator[bool]:
    """Hold an exclusive ``flock`` on *path* for the duration of the block.

    Yields True once the lock is held. With ``blocking=False`` it yields
    False straight away when another holder has the lock; the lock is
    per open file, so two stores in one process also exclude each other.

    Raises:
        StoreUnavailableError: If the lock file cannot be opened.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o644)
    except OSError as exc:
        raise StoreUnavailableError(f"Cannot open lock file {path}: {exc}") from exc

    try:
        acquired = True
        try:
            fcntl.flock(fd, fcntl.LOCK_EX if blocking else fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            acquired = False
        try:
            yield acquired
        finally:
            if acquired:
                fcntl.flock(fd, fcntl.LOCK_UN)
    finally:
        os.close(fd)


class TrendStore(ABC):
    """Repository contract for trend records.

    Implementations must keep exactly one record per
    ``(source, source_id)`` and make each upsert all-or-nothing.
    """

    @abstractmethod
    def find(self, source: str, source_id: str) -> TrendRecord | None:
        """Return the record for an identity, or None."""

    @abstractmethod
    def upsert(
        self,
        record: TrendRecord,
        *,
        now: datetime | None = None,
        previous_last_seen: datetime | None | object = _UNCHECKED,
    ) -> TrendRecord:
        """Create or update a record by identity.

        Sets ``last_seen`` to *now* on every call and ``first_seen`` only
        on creation. The stored ``cluster`` is never changed here.

        If *previous_last_seen* is given, the write only proceeds when the
        stored record's ``last_seen`` still matches it (None meaning "no
        record yet"); otherwise :class:`DuplicateRecordError` is raised.
        """

    @abstractmethod
    def list_all(self) -> list[TrendRecord]:
        """Return every record in a stable order."""

    @abstractmethod
    def assign_clusters(self, result: ClusterResult) -> int:
        """Replace all cluster assignments with *result*. Returns records updated."""

    @contextmanager
    def exclusive_run(self) -> Iterator[bool]:
        """Claim the store for one pipeline run.

        Yields False when another run already holds it. Stores with no
        cross-process state always yield True.
        """
        yield True

    def list_top_by_score(self, limit: int = DEFAULT_TOP_LIMIT) -> list[TrendRecord]:
        """Records ordered by descending rising score."""
        records = sorted(self.list_all(), key=lambda r: r.rising_score, reverse=True)
        return records[:limit]

    def list_by_source(self, source: str, limit: int = DEFAULT_SOURCE_LIMIT) -> list[TrendRecord]:
        """One source's records ordered by descending rising score."""
        records = [r for r in self.list_all() if r.source == source]
        records.sort(key=lambda r: r.rising_score, reverse=True)
        return records[:limit]

    def count_by_source(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for record in self.list_all():
            counts[record.source] = counts.get(record.source, 0) + 1
        return counts


class _StoreData(BaseModel):
    """Internal wrapper for JSON serialization."""

    records: list[TrendRecord] = Field(default_factory=list)


class JsonTrendStore(TrendStore):
    """JSON-file-backed trend store.

    Records keep their insertion order, which is the order
    :meth:`list_all` returns and clustering consumes. Reads pick up
    changes other processes made to the file; every write re-reads the
    file under the write lock first, so the optimistic
    ``previous_last_seen`` check sees other writers too.
    """

    def __init__(self, data_dir: Path) -> None:
        data_dir = Path(data_dir)
        self._path = data_dir / STORE_FILENAME
        self._write_lock_path = data_dir / WRITE_LOCK_FILENAME
        self._run_lock_path = data_dir / RUN_LOCK_FILENAME
        self._lock = threading.RLock()
        self._records: dict[tuple[str, str], TrendRecord] = {}
        self._signature: tuple[int, int, int, int] | None = None
        self._sync(force=True)

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def exclusive_run(self) -> Iterator[bool]:
        with file_lock(self._run_lock_path, blocking=False) as acquired:
            if acquired:
                with self._lock:
                    self._sync(force=True)
            else:
                logger.info("Trend store %s is held by another run", self._path.parent)
            yield acquired

    # ── Private helpers ──────────────────────────────────────────

    def _stat(self) -> tuple[int, int, int, int] | None:
        try:
            st = self._path.stat()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StoreUnavailableError(f"Cannot stat {self._path}: {exc}") from exc
        return (st.st_ino, st.st_mtime_ns, st.st_ctime_ns, st.st_size)

    def _sync(self, *, force: bool = False) -> None:
        """Reload records if the file was replaced since the last load."""
        signature = self._stat()
        if not force and signature == self._signature:
            return
        records: dict[tuple[str, str], TrendRecord] = {}
        for record in self._load().records:
            if record.key in records:
                logger.warning("Dropping duplicate stored record %s/%s", *record.key)
                continue
            records[record.key] = record
        self._records = records
        self._signature = signature

    def _load(self) -> _StoreData:
        if not self._path.exists():
            return _StoreData()
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            return _StoreData.model_validate(raw)
        except OSError as exc:
            raise StoreUnavailableError(f"Cannot read {self._path}: {exc}") from exc
        except (json.JSONDecodeError, ValueError, KeyError):
            logger.warning("Corrupt trend store at %s, starting fresh", self._path)
            return _StoreData()

    def _save(self) -> None:
        data = _StoreData(records=list(self._records.values()))
        payload = data.model_dump_json(indent=2)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._path.parent, prefix=".trendscout-", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(payload)
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise StoreUnavailableError(f"Cannot write {self._path}: {exc}") from exc
        self._signature = self._stat()

    # ── Write operations ─────────────────────────────────────────

    def upsert(
        self,
        record: TrendRecord,
        *,
        now: datetime | None = None,
        previous_last_seen: datetime | None | object = _UNCHECKED,
    ) -> TrendRecord:
        if not record.source or not record.source_id:
            raise RecordPersistError(
                record.source, record.source_id, "source and source_id are required"
            )
        now = now or datetime.now(UTC)

        with self._lock, file_lock(self._write_lock_path):
            self._sync(force=True)
            existing = self._records.get(record.key)
            if previous_last_seen is not _UNCHECKED:
                current = existing.last_seen if existing is not None else None
                if current != previous_last_seen:
                    raise DuplicateRecordError(
                        record.source, record.source_id, "record changed since it was read"
                    )

            stored = record.model_copy(deep=True)
            if existing is not None:
                stored.first_seen = existing.first_seen
                stored.cluster = existing.cluster
            else:
                stored.first_seen = record.first_seen or now
                stored.cluster = None
            stored.last_seen = now

            self._records[record.key] = stored
            try:
                self._save()
            except StoreUnavailableError:
                if existing is None:
                    del self._records[record.key]
                else:
                    self._records[record.key] = existing
                raise

            return stored.model_copy(deep=True)

    def assign_clusters(self, result: ClusterResult) -> int:
        clusters = {(a.source, a.source_id): a.cluster for a in result.assignments}
        with self._lock, file_lock(self._write_lock_path):
            self._sync(force=True)
            snapshot = {key: record.cluster for key, record in self._records.items()}
            updated = 0
            for key, record in self._records.items():
                cluster = clusters.get(key)
                if record.cluster != cluster:
                    record.cluster = cluster
                    updated += 1
            if not updated:
                return 0
            try:
                self._save()
            except StoreUnavailableError:
                for key, cluster in snapshot.items():
                    self._records[key].cluster = cluster
                raise
            return updated

    # ── Read operations ──────────────────────────────────────────

    def find(self, source: str, source_id: str) -> TrendRecord | None:
        with self._lock:
            self._sync()
            record = self._records.get((source, source_id))
            return record.model_copy(deep=True) if record is not None else None

    def list_all(self) -> list[TrendRecord]:
        with self._lock:
            self._sync()
            return [record.model_copy(deep=True) for record in self._records.values()]

    def __len__(self) -> int:
        with self._lock:
            self._sync()
            return len(self._records)
