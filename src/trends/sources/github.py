"""GitHub adapter: recently created or pushed repositories gaining stars."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from trendscout.errors import SourceFetchError
from trendscout.trends.models import CandidateItem, RawMetrics, TrendSource
from trendscout.trends.sources.base import SourceAdapter
from trendscout.trends.sources.http import fetch_json

logger = logging.getLogger(__name__)

GITHUB_SEARCH_URL = "https://api.github.com/search/repositories"


class GitHubSource(SourceAdapter):
    """Runs one search per language for new repos, plus one for pushed repos.

    Results are deduplicated by repository id and capped at
    ``github.max_results``. Set ``GITHUB_TOKEN`` to lift the anonymous
    search rate limit.
    """

    @property
    def source(self) -> TrendSource:
        return TrendSource.GITHUB

    @property
    def is_configured(self) -> bool:
        return self._config.github.is_configured

    @property
    def min_interval(self) -> float:
        return self._config.github.min_interval

    def build_queries(self, now: datetime) -> list[str]:
        cfg = self._config.github
        since = (now - timedelta(days=cfg.lookback_days)).date().isoformat()
        queries = [
            f"created:>{since} stars:>{cfg.min_stars} language:{language}"
            for language in cfg.languages
        ]
        queries.append(f"pushed:>{since} stars:>{cfg.pushed_min_stars}")
        return queries

    def _fetch_items(self, errors: list[str]) -> list[CandidateItem]:
        repos: dict[int, dict[str, Any]] = {}
        for query in self.build_queries(self._clock()):
            try:
                found = self._search(query)
            except SourceFetchError as exc:
                if exc.status == 403:
                    logger.warning(
                        "GitHub API rate limit exceeded. Consider setting GITHUB_TOKEN."
                    )
                self._record_error(errors, f"{query!r}: {exc}")
                continue
            for repo in found:
                if repo.get("id") is not None:
                    repos[repo["id"]] = repo

        unique = list(repos.values())[: self._config.github.max_results]
        return [self._repo_to_item(repo) for repo in unique]

    def _search(self, query: str) -> list[dict[str, Any]]:
        cfg = self._config.github
        headers = {"Accept": "application/vnd.github.v3+json"}
        if cfg.token:
            headers["Authorization"] = f"token {cfg.token}"

        self._pacer.wait()
        data = fetch_json(
            GITHUB_SEARCH_URL,
            source=self.source,
            timeout=cfg.timeout,
            params={"q": query, "sort": "stars", "order": "desc", "per_page": cfg.per_page},
            headers=headers,
        )
        return list(data.get("items") or []) if isinstance(data, dict) else []

    def _repo_to_item(self, repo: dict[str, Any]) -> CandidateItem:
        created_at = None
        if repo.get("created_at"):
            created_at = datetime.fromisoformat(repo["created_at"].replace("Z", "+00:00"))

        return self._candidate(
            source_id=str(repo["id"]),
            title=repo.get("full_name") or repo.get("name") or "Untitled",
            url=repo.get("html_url") or "",
            description=repo.get("description") or "",
            metrics=RawMetrics(
                stars=int(repo.get("stargazers_count") or 0),
                created_at=created_at,
            ),
        )
