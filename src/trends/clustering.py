"""Greedy keyword-overlap clustering over the full record set."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from trendscout.trends.models import ClusterAssignment, ClusterResult, TrendRecord

logger = logging.getLogger(__name__)

MIN_OVERLAP = 2
CLUSTER_PREFIX = "cluster-"


def cluster_records(
    records: Iterable[TrendRecord],
    min_overlap: int = MIN_OVERLAP,
) -> ClusterResult:
    """Assign every record to a cluster, first match wins.

    Records are visited in the given order. Each one joins the earliest
    created cluster whose accumulated keyword set shares at least
    *min_overlap* tokens with the record's keywords, growing that set
    with the record's keywords. Otherwise it seeds a new cluster.

    The result is order-dependent. Cluster ids are numbered from zero on
    every call and carry no meaning across calls.
    """
    clusters: list[tuple[str, set[str]]] = []
    ordered_keywords: dict[str, list[str]] = {}
    assignments: list[ClusterAssignment] = []
    next_id = 0

    for record in records:
        cluster_id: str | None = None
        for candidate_id, keyword_set in clusters:
            overlap = sum(1 for k in record.keywords if k in keyword_set)
            if overlap >= min_overlap:
                cluster_id = candidate_id
                for keyword in record.keywords:
                    if keyword not in keyword_set:
                        keyword_set.add(keyword)
                        ordered_keywords[candidate_id].append(keyword)
                break

        if cluster_id is None:
            cluster_id = f"{CLUSTER_PREFIX}{next_id}"
            next_id += 1
            clusters.append((cluster_id, set(record.keywords)))
            ordered_keywords[cluster_id] = list(dict.fromkeys(record.keywords))

        assignments.append(
            ClusterAssignment(
                source=record.source,
                source_id=record.source_id,
                cluster=cluster_id,
            )
        )

    logger.info("Clustered %d records into %d clusters", len(assignments), next_id)
    return ClusterResult(
        assignments=assignments,
        keywords=ordered_keywords,
        cluster_count=next_id,
    )
