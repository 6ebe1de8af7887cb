"""Source adapters - fan-in to the canonical CandidateItem model."""

from __future__ import annotations

import logging
from typing import Any

from trendscout.config import TrendscoutConfig
from trendscout.trends.models import TrendSource
from trendscout.trends.sources.base import SourceAdapter

logger = logging.getLogger(__name__)


def create_source(
    source: TrendSource | str,
    *,
    config: TrendscoutConfig,
    **kwargs: Any,
) -> SourceAdapter:
    """Create an adapter for the given source.

    Args:
        source: The source to create an adapter for.
        config: Trendscout configuration.
        **kwargs: Passed to the adapter (``pacer``, ``clock``).

    Returns:
        A SourceAdapter instance. Caller should check
        ``adapter.is_configured`` before calling ``fetch()``.

    Raises:
        ValueError: If the source is unknown.
    """
    if isinstance(source, str):
        source = TrendSource(source)

    from trendscout.trends.sources.github import GitHubSource
    from trendscout.trends.sources.hackernews import HackerNewsSource
    from trendscout.trends.sources.reddit import RedditSource
    from trendscout.trends.sources.rss import RSSSource

    adapters: dict[TrendSource, type[SourceAdapter]] = {
        TrendSource.REDDIT: RedditSource,
        TrendSource.HACKERNEWS: HackerNewsSource,
        TrendSource.GITHUB: GitHubSource,
        TrendSource.RSS: RSSSource,
    }

    if source in adapters:
        return adapters[source](config=config, **kwargs)

    raise ValueError(f"Unknown trend source: {source!r}")


def get_configured_sources(config: TrendscoutConfig) -> list[SourceAdapter]:
    """Return adapters for every enabled source that has valid configuration."""
    result: list[SourceAdapter] = []
    for name in config.pipeline.sources:
        try:
            adapter = create_source(name, config=config)
        except ValueError:
            logger.warning("Ignoring unknown source in config: %s", name)
            continue
        if adapter.is_configured:
            result.append(adapter)
    return result
