import logging

from ._exceptions import (
    EmptyPool,
    InvalidConfiguration,
    MissingCovariates,
    MissingData,
    NonBinaryTreatment,
    SingularCovariance,
)
from .estimators.matching import PropensityScoreMatching, MatchResult
from .estimators.iptw import InverseProbabilityWeighting, IPTWResult
from .estimators.gcomp import GComputation, GCompResult
from .matching import Distance, Order, MatchingConfig
from ._assumptions import Assumption

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "PropensityScoreMatching", "MatchResult",
    "InverseProbabilityWeighting", "IPTWResult",
    "GComputation", "GCompResult",
    "Distance", "Order", "MatchingConfig",
    "Assumption",
    "InvalidConfiguration", "MissingData", "NonBinaryTreatment",
    "EmptyPool", "MissingCovariates", "SingularCovariance",
]
