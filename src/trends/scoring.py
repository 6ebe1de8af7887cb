"""Rising score computation.

The rising score estimates how likely an item is to still be climbing:

    rising = 0.4 * velocity + 0.3 * recency + 0.3 * engagement

* engagement - per-source ``sum(log(metric + 1) * weight)``
* recency    - ``100 / (hours_since_creation + 1)``, in (0, 100]
* velocity   - engagement gained per hour since the previous sighting,
  or ``engagement * 0.5`` on first sighting; clamped to [0, 100]

Each component is rounded to two decimals before being combined.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from trendscout.trends.models import RawMetrics, Scores, TrendRecord, TrendSource

logger = logging.getLogger(__name__)

VELOCITY_WEIGHT = 0.4
RECENCY_WEIGHT = 0.3
ENGAGEMENT_WEIGHT = 0.3

MAX_VELOCITY = 100.0
COLD_START_FACTOR = 0.5


def round2(value: float) -> float:
    """Round half-up to two decimals."""
    return math.floor(value * 100 + 0.5) / 100


# ── engagement ───────────────────────────────────────────────────────


class EngagementFormula(Protocol):
    """Maps a source's raw counters to a single engagement scalar."""

    def compute(self, metrics: RawMetrics) -> float: ...


@dataclass(frozen=True)
class LogWeightedEngagement:
    """``sum(log(metric + 1) * weight)`` over a fixed set of counters."""

    weights: tuple[tuple[str, float], ...]

    def compute(self, metrics: RawMetrics) -> float:
        total = 0.0
        for field, weight in self.weights:
            value = max(getattr(metrics, field), 0)
            total += math.log(value + 1) * weight
        return total


ENGAGEMENT_FORMULAS: dict[TrendSource, EngagementFormula] = {
    TrendSource.REDDIT: LogWeightedEngagement((("upvotes", 10.0), ("comments", 5.0))),
    TrendSource.HACKERNEWS: LogWeightedEngagement((("upvotes", 12.0), ("comments", 6.0))),
    TrendSource.GITHUB: LogWeightedEngagement((("stars", 15.0),)),
    # RSS upvotes come from the optional page scrape and default to 0
    TrendSource.RSS: LogWeightedEngagement((("upvotes", 8.0),)),
}

_missing = set(TrendSource) - set(ENGAGEMENT_FORMULAS)
if _missing:
    raise RuntimeError(f"No engagement formula for sources: {sorted(_missing)}")


def formula_for(source: str) -> EngagementFormula | None:
    """Return the formula for *source*, or None if the source is unknown."""
    try:
        return ENGAGEMENT_FORMULAS[TrendSource(source)]
    except ValueError:
        return None


def compute_engagement(source: str, metrics: RawMetrics) -> float:
    """Unrounded engagement; 0 for sources without a formula."""
    formula = formula_for(source)
    if formula is None:
        logger.debug("No engagement formula for source %r; using 0", source)
        return 0.0
    return formula.compute(metrics)


# ── recency / velocity ───────────────────────────────────────────────


def _hours_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 3600


def compute_recency(
    created_at: datetime | None,
    first_seen: datetime | None,
    now: datetime,
) -> float:
    """Decay score from item age; creation time wins over first sighting."""
    reference = created_at or first_seen or now
    hours_old = max(_hours_between(reference, now), 0.0)
    return 100 / (hours_old + 1)


def compute_velocity(
    engagement: float,
    previous: TrendRecord | None,
    now: datetime,
) -> float:
    """Engagement gained per hour since *previous* was last seen."""
    if previous is None or previous.last_seen is None:
        velocity = engagement * COLD_START_FACTOR
    else:
        hours = _hours_between(previous.last_seen, now)
        if hours <= 0:
            return 0.0
        velocity = max(0.0, (engagement - previous.engagement) / hours)
    return min(velocity, MAX_VELOCITY)


# ── composite ────────────────────────────────────────────────────────


def combine_scores(velocity: float, recency: float, engagement: float) -> Scores:
    """Round each component and combine them into the rising score."""
    velocity = round2(velocity)
    recency = round2(recency)
    engagement = round2(engagement)
    rising = (
        VELOCITY_WEIGHT * velocity
        + RECENCY_WEIGHT * recency
        + ENGAGEMENT_WEIGHT * engagement
    )
    return Scores(
        rising_score=round2(rising),
        velocity=velocity,
        engagement=engagement,
        recency=recency,
    )


def score_candidate(
    source: str,
    metrics: RawMetrics,
    previous: TrendRecord | None,
    *,
    now: datetime,
    first_seen: datetime | None = None,
) -> Scores:
    """Score one sighting of an item.

    Args:
        source: Source name; unknown sources score 0 engagement.
        metrics: Current (merged) raw metrics.
        previous: Stored record for the same identity, or None on first
            sighting.
        now: Time of this sighting.
        first_seen: Fallback creation time when metrics lack one.
            Defaults to ``previous.first_seen``.

    Returns:
        Rounded score components.
    """
    if first_seen is None and previous is not None:
        first_seen = previous.first_seen

    engagement = compute_engagement(source, metrics)
    recency = compute_recency(metrics.created_at, first_seen, now)
    velocity = compute_velocity(engagement, previous, now)
    return combine_scores(velocity, recency, engagement)
