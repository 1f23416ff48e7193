"""
Distance strategies, one per ``Distance`` member.

Both strategies take unit ids (1-based row positions) and return distances
from one treated unit to an array of candidate controls.
"""
from __future__ import annotations

import logging

import numpy as np
import scipy.linalg
from scipy.spatial.distance import cdist

from .._exceptions import SingularCovariance
from .._propensity import logit
from ._config import Distance

logger = logging.getLogger(__name__)

_RIDGE = 1e-8


class ScoreMetric:
    """
    Absolute score difference on the probability or the logit scale.

    Calipers are always applied on the logit scale, whichever scale ranks
    the candidates.
    """

    def __init__(self, scores: np.ndarray, distance: Distance = Distance.PROBABILITY) -> None:
        if not distance.uses_scores:
            raise ValueError(f"ScoreMetric does not support {distance.value!r} distance.")
        self._probability = np.asarray(scores, dtype=float)
        self._logit = logit(self._probability)
        self.distance = distance

    @property
    def values(self) -> np.ndarray:
        """Per-unit distance values on the ranking scale, indexed by ``id - 1``."""
        source = self._logit if self.distance is Distance.LOGIT else self._probability
        return source.copy()

    def distances(self, treated_id: int, control_ids: np.ndarray) -> np.ndarray:
        values = self._logit if self.distance is Distance.LOGIT else self._probability
        return np.abs(values[control_ids - 1] - values[treated_id - 1])

    def caliper_gaps(self, treated_id: int, control_ids: np.ndarray) -> np.ndarray:
        return np.abs(self._logit[control_ids - 1] - self._logit[treated_id - 1])


class MahalanobisMetric:
    """
    Mahalanobis distance in covariate space.

    The covariance is estimated once from the control rows, a small ridge is
    added to the diagonal, and the Cholesky factor is used to invert it. The
    inverse is reused for every comparison.
    """

    distance = Distance.MAHALANOBIS

    def __init__(self, covariates: np.ndarray, control_ids: np.ndarray, ridge: float = _RIDGE) -> None:
        X = np.asarray(covariates, dtype=float)
        if X.ndim == 1:
            X = X[:, None]
        self._X = X

        cov = np.atleast_2d(np.cov(X[np.asarray(control_ids) - 1], rowvar=False))
        identity = np.eye(cov.shape[0])
        cov = cov + ridge * identity
        try:
            factor = scipy.linalg.cho_factor(cov)
        except (np.linalg.LinAlgError, ValueError) as exc:
            raise SingularCovariance(
                f"Control-group covariance of {X.shape[1]} covariate(s) is not positive-definite "
                f"even after adding {ridge:g} * I: {exc}"
            ) from exc
        self._inverse = scipy.linalg.cho_solve(factor, identity)
        logger.debug("Inverted %dx%d control covariance (ridge %g)", *cov.shape, ridge)

    @property
    def inverse_covariance(self) -> np.ndarray:
        return self._inverse.copy()

    def distances(self, treated_id: int, control_ids: np.ndarray) -> np.ndarray:
        return cdist(
            self._X[[treated_id - 1]],
            self._X[control_ids - 1],
            metric="mahalanobis",
            VI=self._inverse,
        )[0]
