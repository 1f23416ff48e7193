from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from .._exceptions import EmptyPool
from ._config import Order

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Pools:
    """
    Unit identifiers split by treatment status.

    Identifiers are 1-based positions in the original row order, so unit
    ``i`` lives in row ``i - 1`` of every per-unit array.
    """

    ids: np.ndarray
    treated: np.ndarray
    control: np.ndarray


def partition_pools(treatment: np.ndarray) -> Pools:
    """Assign ids ``1..N`` and split them into treated and control pools."""
    treatment = np.asarray(treatment)
    ids = np.arange(1, len(treatment) + 1)
    treated = ids[treatment == 1]
    control = ids[treatment == 0]

    if treated.size == 0:
        raise EmptyPool("No treated units (treatment == 1) found; matching needs both groups.")
    if control.size == 0:
        raise EmptyPool("No control units (treatment == 0) found; matching needs both groups.")

    logger.debug("Partitioned %d units: %d treated, %d control", ids.size, treated.size, control.size)
    return Pools(ids=ids, treated=treated, control=control)


def order_treated(
    treated: np.ndarray,
    order: Order,
    scores: np.ndarray | None = None,
    rng: np.random.Generator | None = None,
) -> np.ndarray:
    """
    Return treated ids in the order they will pick controls.

    ``scores`` is indexed by row (``id - 1``). Sorting is stable, so ties
    keep original row order. Without scores (Mahalanobis matching) the
    ``largest`` and ``smallest`` policies leave row order untouched.
    ``random`` needs ``rng``; the same seed gives the same permutation.
    """
    treated = np.asarray(treated)

    if order is Order.RANDOM:
        if rng is None:
            raise ValueError("order='random' needs a seeded numpy Generator.")
        return rng.permutation(treated)

    if scores is None:
        return treated.copy()

    key = np.asarray(scores, dtype=float)[treated - 1]
    if order is Order.LARGEST:
        key = -key
    return treated[np.argsort(key, kind="stable")]
