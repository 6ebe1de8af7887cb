"""Unified configuration loaded from .trendscout.toml, env vars, and CLI flags.

Loading order: defaults → TOML file → env vars → CLI flags.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".trendscout.toml"
CONFIG_SEARCH_PATHS = [
    Path("."),
]
GLOBAL_CONFIG_PATH = Path.home() / ".config" / "trendscout" / "config.toml"

USER_AGENT = "TrendScout/1.0"

DEFAULT_SUBREDDITS = [
    "programming",
    "technology",
    "MachineLearning",
    "artificial",
    "webdev",
    "startups",
    "Entrepreneur",
    "gamedev",
    "cscareerquestions",
]

DEFAULT_FEEDS = [
    "https://hnrss.org/newest",
    "https://www.producthunt.com/feed",
    "https://dev.to/feed",
    "https://www.smashingmagazine.com/feed/",
    "https://css-tricks.com/feed/",
    "https://feeds.feedburner.com/oreilly/radar",
]


class StoreConfig(BaseModel):
    """[store] section."""

    directory: str = "."


class PipelineConfig(BaseModel):
    """[pipeline] section."""

    sources: list[str] = Field(
        default_factory=lambda: ["reddit", "hackernews", "github", "rss"]
    )
    fetch_timeout: float = 120.0
    max_workers: int = 4


class RedditConfig(BaseModel):
    """[reddit] section."""

    subreddits: list[str] = Field(default_factory=lambda: list(DEFAULT_SUBREDDITS))
    rising_limit: int = 15
    new_limit: int = 10
    min_interval: float = 1.0
    timeout: float = 10.0

    @property
    def is_configured(self) -> bool:
        return bool(self.subreddits)


class HackerNewsConfig(BaseModel):
    """[hackernews] section."""

    list_limit: int = 50
    max_items: int = 60
    workers: int = 10
    min_interval: float = 0.5
    timeout: float = 5.0
    list_timeout: float = 10.0

    @property
    def is_configured(self) -> bool:
        return self.max_items > 0


class GitHubConfig(BaseModel):
    """[github] section."""

    token: str = ""
    languages: list[str] = Field(
        default_factory=lambda: ["javascript", "python", "typescript", "rust"]
    )
    lookback_days: int = 7
    min_stars: int = 5
    pushed_min_stars: int = 10
    per_page: int = 20
    max_results: int = 50
    min_interval: float = 1.0
    timeout: float = 10.0

    @property
    def is_configured(self) -> bool:
        return self.max_results > 0


class RSSConfig(BaseModel):
    """[rss] section."""

    feeds: list[str] = Field(default_factory=lambda: list(DEFAULT_FEEDS))
    max_items_per_feed: int = 15
    scrape_limit: int = 5
    min_interval: float = 2.0
    timeout: float = 10.0
    scrape_timeout: float = 5.0

    @property
    def is_configured(self) -> bool:
        return bool(self.feeds)


class TrendscoutConfig(BaseModel):
    """Top-level configuration."""

    store: StoreConfig = Field(default_factory=StoreConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    reddit: RedditConfig = Field(default_factory=RedditConfig)
    hackernews: HackerNewsConfig = Field(default_factory=HackerNewsConfig)
    github: GitHubConfig = Field(default_factory=GitHubConfig)
    rss: RSSConfig = Field(default_factory=RSSConfig)


def load_config(path: str | Path | None = None) -> TrendscoutConfig:
    """Load configuration from TOML file and environment variables.

    Search order:
    1. Explicit path (if provided)
    2. .trendscout.toml in CWD
    3. ~/.config/trendscout/config.toml

    Then overlay environment variables.

    Args:
        path: Explicit path to a TOML file.

    Returns:
        Merged TrendscoutConfig.
    """
    data: dict[str, object] = {}

    if path is not None:
        toml_path = Path(path)
        if toml_path.exists():
            data = _load_toml(toml_path)
        else:
            logger.warning("Config file not found: %s", toml_path)
    else:
        for search_dir in CONFIG_SEARCH_PATHS:
            candidate = search_dir / CONFIG_FILENAME
            if candidate.exists():
                data = _load_toml(candidate)
                logger.info("Loaded config from %s", candidate)
                break
        if not data and GLOBAL_CONFIG_PATH.exists():
            data = _load_toml(GLOBAL_CONFIG_PATH)
            logger.info("Loaded config from %s", GLOBAL_CONFIG_PATH)

    config = TrendscoutConfig.model_validate(data) if data else TrendscoutConfig()

    return _apply_env_vars(config)


def merge_cli_overrides(config: TrendscoutConfig, **cli_kwargs: object) -> TrendscoutConfig:
    """Overlay explicitly-set CLI flags onto the config.

    Only overrides values where the CLI flag was explicitly provided
    (i.e., not None).
    """
    data = config.model_dump()

    mapping: dict[str, tuple[str, str]] = {
        "store_directory": ("store", "directory"),
        "sources": ("pipeline", "sources"),
        "fetch_timeout": ("pipeline", "fetch_timeout"),
        "github_token": ("github", "token"),
    }

    for key, value in cli_kwargs.items():
        if value is None:
            continue
        if key in mapping:
            section, field = mapping[key]
            data[section][field] = value

    return TrendscoutConfig.model_validate(data)


def _load_toml(path: Path) -> dict[str, object]:
    """Load a TOML file and return the data dict."""
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError) as exc:
        logger.warning("Failed to parse %s: %s", path, exc)
        return {}


def _apply_env_vars(config: TrendscoutConfig) -> TrendscoutConfig:
    """Apply environment variable overrides to config."""
    data = config.model_dump()

    env_mapping: dict[str, tuple[str, str]] = {
        "GITHUB_TOKEN": ("github", "token"),
        "TRENDSCOUT_STORE_DIR": ("store", "directory"),
        "TRENDSCOUT_FETCH_TIMEOUT": ("pipeline", "fetch_timeout"),
    }

    for env_var, (section, field) in env_mapping.items():
        value = os.environ.get(env_var)
        if value is not None:
            data[section][field] = value

    sources_raw = os.environ.get("TRENDSCOUT_SOURCES")
    if sources_raw is not None:
        data["pipeline"]["sources"] = [
            s.strip() for s in sources_raw.split(",") if s.strip()
        ]

    return TrendscoutConfig.model_validate(data)
