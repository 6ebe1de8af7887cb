"""Trend domain - candidate normalization, scoring, clustering and storage."""

from trendscout.trends.clustering import cluster_records
from trendscout.trends.keywords import extract_keywords
from trendscout.trends.models import (
    CandidateItem,
    ClusterResult,
    FetchResult,
    RawMetrics,
    RunSummary,
    Scores,
    SourceReport,
    TrendRecord,
    TrendSource,
)
from trendscout.trends.scoring import score_candidate
from trendscout.trends.store import JsonTrendStore, TrendStore

__all__ = [
    "CandidateItem",
    "ClusterResult",
    "FetchResult",
    "JsonTrendStore",
    "RawMetrics",
    "RunSummary",
    "Scores",
    "SourceReport",
    "TrendRecord",
    "TrendSource",
    "TrendStore",
    "cluster_records",
    "extract_keywords",
    "score_candidate",
]
