"""Hacker News adapter: newest and best stories from the Firebase API."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime
from typing import Any

from trendscout.errors import SourceFetchError
from trendscout.trends.models import CandidateItem, RawMetrics, TrendSource
from trendscout.trends.sources.base import SourceAdapter
from trendscout.trends.sources.http import fetch_json

logger = logging.getLogger(__name__)

HN_API_URL = "https://hacker-news.firebaseio.com/v0"
HN_ITEM_URL = "https://news.ycombinator.com/item?id={id}"
STORY_LISTS = ("newstories", "beststories")


class HackerNewsSource(SourceAdapter):
    """Unions the newest and best story id lists, then batch-fetches details.

    Only non-deleted items of type ``story`` become candidates.
    """

    @property
    def source(self) -> TrendSource:
        return TrendSource.HACKERNEWS

    @property
    def is_configured(self) -> bool:
        return self._config.hackernews.is_configured

    @property
    def min_interval(self) -> float:
        return self._config.hackernews.min_interval

    def _fetch_items(self, errors: list[str]) -> list[CandidateItem]:
        cfg = self._config.hackernews

        ids: list[int] = []
        for endpoint in STORY_LISTS:
            ids.extend(self._fetch_ids(endpoint, errors))
        unique_ids = list(dict.fromkeys(ids))[: cfg.max_items]
        if not unique_ids:
            return []

        with ThreadPoolExecutor(max_workers=max(cfg.workers, 1)) as pool:
            stories = list(pool.map(self._fetch_story, unique_ids))

        items: list[CandidateItem] = []
        for story in stories:
            if not story or story.get("type") != "story" or story.get("deleted"):
                continue
            items.append(self._story_to_item(story))
        return items

    def _fetch_ids(self, endpoint: str, errors: list[str]) -> list[int]:
        self._pacer.wait()
        try:
            data = fetch_json(
                f"{HN_API_URL}/{endpoint}.json",
                source=self.source,
                timeout=self._config.hackernews.list_timeout,
            )
        except SourceFetchError as exc:
            self._record_error(errors, f"{endpoint}: {exc}")
            return []
        if not isinstance(data, list):
            self._record_error(errors, f"{endpoint}: expected a list of ids")
            return []
        return data[: self._config.hackernews.list_limit]

    def _fetch_story(self, story_id: int) -> dict[str, Any] | None:
        try:
            return fetch_json(
                f"{HN_API_URL}/item/{story_id}.json",
                source=self.source,
                timeout=self._config.hackernews.timeout,
            )
        except SourceFetchError:
            logger.debug("Failed to fetch HN item %s", story_id, exc_info=True)
            return None

    def _story_to_item(self, story: dict[str, Any]) -> CandidateItem:
        story_id = story["id"]
        created_at = None
        if story.get("time") is not None:
            created_at = datetime.fromtimestamp(float(story["time"]), tz=UTC)

        return self._candidate(
            source_id=str(story_id),
            title=story.get("title") or "Untitled",
            url=story.get("url") or HN_ITEM_URL.format(id=story_id),
            description="",
            metrics=RawMetrics(
                upvotes=int(story.get("score") or 0),
                comments=int(story.get("descendants") or 0),
                created_at=created_at,
            ),
        )
