"""Base class for source adapters."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import UTC, datetime

from trendscout.config import TrendscoutConfig
from trendscout.trends.models import CandidateItem, FetchResult, TrendSource
from trendscout.trends.pacing import Pacer

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(UTC)


class SourceAdapter(ABC):
    """Base class for source-specific fetch + normalize adapters.

    Subclasses implement ``_fetch_items()``. The public ``fetch()`` never
    raises: any failure is logged and turned into a :class:`FetchResult`
    with no items and the error message. Each adapter owns a
    :class:`Pacer` that spaces its upstream requests.
    """

    def __init__(
        self,
        *,
        config: TrendscoutConfig,
        pacer: Pacer | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._config = config
        self._pacer = pacer if pacer is not None else Pacer(self.min_interval)
        self._clock = clock

    @property
    @abstractmethod
    def source(self) -> TrendSource:
        """The source this adapter handles."""

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """Whether this adapter has enough config to run."""

    @property
    def min_interval(self) -> float:
        """Minimum seconds between upstream requests."""
        return 0.0

    @property
    def pacer(self) -> Pacer:
        return self._pacer

    @abstractmethod
    def _fetch_items(self, errors: list[str]) -> list[CandidateItem]:
        """Fetch and normalize items. May raise.

        Partial failures that do not stop the fetch go into *errors*
        via :meth:`_record_error`.
        """

    def fetch(self) -> FetchResult:
        """Fetch candidates, degrading to no items on failure."""
        result = FetchResult(source=self.source.value)
        try:
            result.items = self._fetch_items(result.errors)
        except Exception as exc:
            logger.warning("Failed to fetch %s", self.source, exc_info=True)
            result.errors.append(str(exc))
            return result
        logger.info("%s: %d candidates", self.source, len(result.items))
        return result

    def _record_error(self, errors: list[str], message: str) -> None:
        """Note a partial failure that did not stop the fetch."""
        logger.warning("%s: %s", self.source, message)
        errors.append(message)

    def _candidate(self, **fields: object) -> CandidateItem:
        return CandidateItem(source=self.source.value, **fields)  # type: ignore[arg-type]
