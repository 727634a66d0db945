"""Ranking module.

Orients every metric so that larger is better, z-scores it across
configurations and aggregates the standardized scores into a composite.

Example Usage
-------------
>>> from normalization_ranker.core.ranking import Ranker
>>> result = Ranker().rank(rows, configurations)
>>> result.filter(scaling="tmm").to_frame()
"""

from .ranker import AGGREGATIONS, RankedEntry, RankedResult, Ranker, RankerConfig

__all__ = [
    "AGGREGATIONS",
    "RankedEntry",
    "RankedResult",
    "Ranker",
    "RankerConfig",
]
