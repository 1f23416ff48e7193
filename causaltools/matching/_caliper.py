from __future__ import annotations

import logging
import math

import numpy as np

from .._propensity import logit

logger = logging.getLogger(__name__)


def caliper_threshold(scores: np.ndarray, caliper: float) -> float:
    """
    Convert a caliper in standard-deviation units into an absolute width on
    the logit scale.

    The standard deviation is taken over the logit of every unit's score,
    treated and control alike, before any control has been used. An
    infinite caliper returns ``math.inf`` (every candidate is eligible).
    """
    if not math.isfinite(caliper):
        return math.inf
    sd = float(np.std(logit(scores), ddof=1))
    threshold = caliper * sd
    logger.debug("Caliper %.4g SD -> %.6g on the logit scale (SD = %.6g)", caliper, threshold, sd)
    return threshold
