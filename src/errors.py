"""Error taxonomy for the trend pipeline.

Recovery happens at the narrowest boundary that can keep the run going:

  SourceFetchError     - one adapter failed; it returns no items.
  RecordPersistError   - one upsert failed; that candidate is skipped.
  EnrichmentError      - optional scrape failed; the metric stays 0.
  StoreUnavailableError - the store itself is gone; the run aborts.
"""

from __future__ import annotations


class TrendscoutError(Exception):
    """Base error for trendscout."""


class SourceFetchError(TrendscoutError):
    """A source adapter could not fetch from its upstream."""

    def __init__(self, source: str, message: str, *, status: int | None = None) -> None:
        self.source = source
        self.status = status
        super().__init__(f"{source}: {message}")


class RecordPersistError(TrendscoutError):
    """A single record could not be written to the store."""

    def __init__(self, source: str, source_id: str, message: str) -> None:
        self.source = source
        self.source_id = source_id
        super().__init__(f"{source}/{source_id}: {message}")


class DuplicateRecordError(RecordPersistError):
    """Two writers raced for the same ``(source, source_id)`` identity."""


class EnrichmentError(TrendscoutError):
    """Optional secondary scrape failed."""


class StoreUnavailableError(TrendscoutError):
    """The backing store cannot be read or written."""
