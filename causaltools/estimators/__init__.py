from .matching import PropensityScoreMatching
from .iptw import InverseProbabilityWeighting
from .gcomp import GComputation

__all__ = ["PropensityScoreMatching", "InverseProbabilityWeighting", "GComputation"]
