"""
Building blocks of nearest-neighbour matching.

``PropensityScoreMatching`` wires these together; they are exposed for
callers who supply their own scores or want to inspect each step.
"""
from .._validation import validate_treatment
from ._config import Distance, Order, MatchingConfig, validate_config
from ._pools import Pools, partition_pools, order_treated
from ._caliper import caliper_threshold
from ._metrics import ScoreMetric, MahalanobisMetric
from ._engine import Matches, match_units
from ._assemble import assemble

__all__ = [
    "validate_treatment",
    "Distance", "Order", "MatchingConfig", "validate_config",
    "Pools", "partition_pools", "order_treated",
    "caliper_threshold",
    "ScoreMetric", "MahalanobisMetric",
    "Matches", "match_units",
    "assemble",
]
