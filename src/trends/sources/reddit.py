"""Reddit adapter: rising and new listings from tech subreddits."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from trendscout.errors import SourceFetchError
from trendscout.trends.models import CandidateItem, RawMetrics, TrendSource
from trendscout.trends.sources.base import SourceAdapter
from trendscout.trends.sources.http import fetch_json

logger = logging.getLogger(__name__)

REDDIT_LISTING_URL = "https://www.reddit.com/r/{subreddit}/{listing}.json"
REDDIT_BASE_URL = "https://reddit.com"
DESCRIPTION_LIMIT = 200


class RedditSource(SourceAdapter):
    """Polls each configured subreddit's ``rising`` then ``new`` listing.

    Uses the public JSON endpoints (no auth). Posts are deduplicated by
    id within a subreddit, keeping the first sighting's position.
    """

    @property
    def source(self) -> TrendSource:
        return TrendSource.REDDIT

    @property
    def is_configured(self) -> bool:
        return self._config.reddit.is_configured

    @property
    def min_interval(self) -> float:
        return self._config.reddit.min_interval

    def _fetch_items(self, errors: list[str]) -> list[CandidateItem]:
        cfg = self._config.reddit
        listings = (("rising", cfg.rising_limit), ("new", cfg.new_limit))

        items: list[CandidateItem] = []
        for subreddit in cfg.subreddits:
            unique: dict[str, CandidateItem] = {}
            for listing, limit in listings:
                try:
                    posts = self._fetch_listing(subreddit, listing, limit)
                except SourceFetchError as exc:
                    self._record_error(errors, f"r/{subreddit}/{listing}: {exc}")
                    continue
                for post in posts:
                    unique.setdefault(post.source_id, post)
            items.extend(unique.values())

        return items

    def _fetch_listing(self, subreddit: str, listing: str, limit: int) -> list[CandidateItem]:
        self._pacer.wait()
        data = fetch_json(
            REDDIT_LISTING_URL.format(subreddit=subreddit, listing=listing),
            source=self.source,
            timeout=self._config.reddit.timeout,
            params={"limit": limit},
        )
        try:
            children = data["data"]["children"]
        except (KeyError, TypeError) as exc:
            raise SourceFetchError(self.source, f"Unexpected listing shape for r/{subreddit}") from exc

        items: list[CandidateItem] = []
        for child in children:
            item = self._post_to_item(child.get("data") or {})
            if item is not None:
                items.append(item)
        return items

    def _post_to_item(self, post: dict[str, Any]) -> CandidateItem | None:
        post_id = post.get("id")
        title = post.get("title")
        if not post_id or not title:
            return None

        url = post.get("url") or post.get("permalink") or ""
        if not url.startswith("http"):
            url = f"{REDDIT_BASE_URL}{url}"

        created_at = None
        if post.get("created_utc") is not None:
            created_at = datetime.fromtimestamp(float(post["created_utc"]), tz=UTC)

        return self._candidate(
            source_id=str(post_id),
            title=title,
            url=url,
            description=(post.get("selftext") or "")[:DESCRIPTION_LIMIT],
            metrics=RawMetrics(
                upvotes=int(post.get("ups") or 0),
                comments=int(post.get("num_comments") or 0),
                created_at=created_at,
            ),
        )
