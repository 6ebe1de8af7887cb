"""Pipeline modules - orchestration layer for trendscout.

  trends - sources -> scored, clustered trend records

Pipeline modules import domain logic via public APIs
(``trendscout.trends``, ``trendscout.trends.sources``).
"""

from trendscout.pipeline.trends import TrendPipeline, merge_candidate

__all__ = ["TrendPipeline", "merge_candidate"]
