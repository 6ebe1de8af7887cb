"""RSS/Atom feed adapter with optional vote scraping."""

from __future__ import annotations

import logging
import re
from calendar import timegm
from datetime import UTC, datetime
from urllib.parse import urlparse

import feedparser
from bs4 import BeautifulSoup

from trendscout.errors import EnrichmentError, SourceFetchError
from trendscout.trends.models import CandidateItem, RawMetrics, TrendSource
from trendscout.trends.sources.base import SourceAdapter
from trendscout.trends.sources.http import fetch_bytes

logger = logging.getLogger(__name__)

_BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
)

# Known page markup exposing a vote count, keyed by host suffix.
VOTE_SELECTORS: dict[str, str] = {
    "producthunt.com": '[data-test="vote-button"]',
}

_LEADING_INT_RE = re.compile(r"\d+")


class RSSSource(SourceAdapter):
    """Parses the configured feeds into candidates.

    The first ``rss.scrape_limit`` linked items of each feed get one
    attempt at scraping a vote count from the linked page. A failed
    scrape leaves ``upvotes`` at 0.
    """

    @property
    def source(self) -> TrendSource:
        return TrendSource.RSS

    @property
    def is_configured(self) -> bool:
        return self._config.rss.is_configured

    @property
    def min_interval(self) -> float:
        return self._config.rss.min_interval

    def _fetch_items(self, errors: list[str]) -> list[CandidateItem]:
        cfg = self._config.rss

        items: list[CandidateItem] = []
        for url in _unique(cfg.feeds):
            try:
                feed_items = self._parse_feed(url)
            except SourceFetchError as exc:
                self._record_error(errors, str(exc))
                continue

            for item in feed_items[: cfg.scrape_limit]:
                if item.url:
                    item.metrics.upvotes = self._scrape_engagement(item.url)

            items.extend(feed_items)

        logger.info("Parsed %d items from %d RSS feeds", len(items), len(cfg.feeds))
        return items

    def _parse_feed(self, url: str) -> list[CandidateItem]:
        """Fetch and parse a single RSS/Atom feed URL."""
        self._pacer.wait()
        body = fetch_bytes(url, source=self.source, timeout=self._config.rss.timeout)
        feed = feedparser.parse(body)

        if feed.bozo and not feed.entries:
            raise SourceFetchError(self.source, f"Feed error for {url}: {feed.bozo_exception}")

        items: list[CandidateItem] = []
        for entry in feed.entries[: self._config.rss.max_items_per_feed]:
            items.append(self._entry_to_item(entry, feed_url=url))
        return items

    def _entry_to_item(
        self,
        entry: feedparser.FeedParserDict,
        *,
        feed_url: str = "",
    ) -> CandidateItem:
        """Convert a feedparser entry to a CandidateItem."""
        link = entry.get("link", "")
        title = entry.get("title", "")
        source_id = entry.get("id") or link or f"{feed_url}-{title}"

        return self._candidate(
            source_id=source_id,
            title=title or "Untitled",
            url=link,
            description=_strip_html(entry.get("summary", "")),
            metrics=RawMetrics(created_at=self._parse_date(entry) or self._clock()),
        )

    def _scrape_engagement(self, url: str) -> int:
        """Best-effort vote count for *url*; 0 when unknown or on failure."""
        try:
            return self._scrape_votes(url)
        except EnrichmentError as exc:
            logger.debug("Engagement scrape skipped for %s: %s", url, exc)
            return 0

    def _scrape_votes(self, url: str) -> int:
        selector = _selector_for(url)
        if selector is None:
            raise EnrichmentError(f"No vote markup known for {url}")

        try:
            html = fetch_bytes(
                url,
                source=self.source,
                timeout=self._config.rss.scrape_timeout,
                headers={"User-Agent": _BROWSER_USER_AGENT},
            )
        except SourceFetchError as exc:
            raise EnrichmentError(str(exc)) from exc

        element = BeautifulSoup(html, "html.parser").select_one(selector)
        if element is None:
            raise EnrichmentError(f"Vote markup not found on {url}")

        match = _LEADING_INT_RE.search(element.get_text().replace(",", ""))
        if match is None:
            raise EnrichmentError(f"Unparseable vote count on {url}")
        return int(match.group())

    @staticmethod
    def _parse_date(entry: feedparser.FeedParserDict) -> datetime | None:
        """Parse the published date from a feed entry."""
        for field in ("published_parsed", "updated_parsed"):
            time_struct = entry.get(field)
            if time_struct:
                try:
                    return datetime.fromtimestamp(timegm(time_struct), tz=UTC)
                except (ValueError, OverflowError):
                    continue
        return None


def _selector_for(url: str) -> str | None:
    host = (urlparse(url).hostname or "").lower()
    for suffix, selector in VOTE_SELECTORS.items():
        if host == suffix or host.endswith(f".{suffix}"):
            return selector
    return None


def _unique(urls: list[str]) -> list[str]:
    """Strip and deduplicate feed URLs, preserving order."""
    seen: set[str] = set()
    unique: list[str] = []
    for url in urls:
        normalized = url.strip()
        if normalized and normalized not in seen:
            seen.add(normalized)
            unique.append(normalized)
    return unique


def _strip_html(html: str) -> str:
    """Rough HTML tag stripping for feed content."""
    text = re.sub(r"<[^>]+>", "", html)
    text = text.replace("&amp;", "&")
    text = text.replace("&lt;", "<")
    text = text.replace("&gt;", ">")
    text = text.replace("&quot;", '"')
    text = text.replace("&#39;", "'")
    text = text.replace("&nbsp;", " ")
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()
