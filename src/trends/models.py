"""Pure data models for the trend pipeline.

All Pydantic models and enums live here. No I/O, no business logic.
Services import from this module; this module only imports from stdlib
and third-party packages.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Source enums
# ---------------------------------------------------------------------------


class TrendSource(StrEnum):
    """Supported upstream sources."""

    REDDIT = "reddit"
    HACKERNEWS = "hackernews"
    GITHUB = "github"
    RSS = "rss"


# ---------------------------------------------------------------------------
# Candidate + record models
# ---------------------------------------------------------------------------


class RawMetrics(BaseModel):
    """Source-specific counters as reported upstream."""

    upvotes: int = 0
    comments: int = 0
    views: int = 0
    stars: int = 0
    created_at: datetime | None = None

    def merged_with(self, newer: RawMetrics) -> RawMetrics:
        """Overlay the non-null fields explicitly set on *newer* onto a copy of self."""
        return self.model_copy(update=newer.model_dump(exclude_unset=True, exclude_none=True))


class CandidateItem(BaseModel):
    """A raw item from one source, before it becomes a TrendRecord."""

    source: str
    source_id: str
    title: str
    url: str = ""
    description: str = ""
    metrics: RawMetrics = Field(default_factory=RawMetrics)

    @property
    def key(self) -> tuple[str, str]:
        return (self.source, self.source_id)


class Scores(BaseModel):
    """Derived score fields, each rounded to two decimals."""

    rising_score: float = 0.0
    velocity: float = 0.0
    engagement: float = 0.0
    recency: float = 0.0


class TrendRecord(BaseModel):
    """Canonical stored entity, unique per ``(source, source_id)``.

    ``rising_score``/``velocity``/``engagement``/``recency`` are only
    written by the scoring engine. ``cluster`` is only written by the
    clustering engine via ``TrendStore.assign_clusters``.
    """

    source: str
    source_id: str
    title: str
    url: str = ""
    description: str = ""
    metrics: RawMetrics = Field(default_factory=RawMetrics)

    rising_score: float = 0.0
    velocity: float = 0.0
    engagement: float = 0.0
    recency: float = 0.0

    keywords: list[str] = Field(default_factory=list)
    cluster: str | None = None

    first_seen: datetime | None = None
    last_seen: datetime | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.source, self.source_id)

    @property
    def scores(self) -> Scores:
        return Scores(
            rising_score=self.rising_score,
            velocity=self.velocity,
            engagement=self.engagement,
            recency=self.recency,
        )


# ---------------------------------------------------------------------------
# Clustering output
# ---------------------------------------------------------------------------


class ClusterAssignment(BaseModel):
    """One record's cluster for a single clustering run."""

    source: str
    source_id: str
    cluster: str


class ClusterResult(BaseModel):
    """Output of one clustering invocation.

    ``cluster_count`` is the run-local id counter; ids are only
    meaningful within the run that produced them.
    """

    assignments: list[ClusterAssignment] = Field(default_factory=list)
    keywords: dict[str, list[str]] = Field(default_factory=dict)
    cluster_count: int = 0

    def cluster_of(self, source: str, source_id: str) -> str | None:
        for assignment in self.assignments:
            if assignment.source == source and assignment.source_id == source_id:
                return assignment.cluster
        return None


# ---------------------------------------------------------------------------
# Run reporting
# ---------------------------------------------------------------------------


class SourceReport(BaseModel):
    """What one adapter produced during a run."""

    source: str
    count: int = 0
    errors: list[str] = Field(default_factory=list)


class FetchResult(BaseModel):
    """Items and partial-failure messages from one ``fetch()`` call.

    Every call builds its own instance; adapters keep no error state.
    """

    source: str
    items: list[CandidateItem] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    def report(self) -> SourceReport:
        return SourceReport(source=self.source, count=len(self.items), errors=list(self.errors))


class RunSummary(BaseModel):
    """Result of a single ``TrendPipeline.run_once()`` call."""

    processed: int = 0
    per_source_counts: dict[str, int] = Field(default_factory=dict)
    per_source_errors: dict[str, list[str]] = Field(default_factory=dict)
    skipped_records: int = 0
    duplicates_dropped: int = 0
    clusters: int = 0
    skipped: bool = False
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None

    def add_report(self, report: SourceReport) -> None:
        self.per_source_counts[report.source] = report.count
        self.per_source_errors[report.source] = list(report.errors)

    @property
    def total_candidates(self) -> int:
        return sum(self.per_source_counts.values())
