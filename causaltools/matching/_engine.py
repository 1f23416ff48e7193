"""
Greedy nearest-neighbour matching.

Treated units pick controls one at a time, in the order produced by
``order_treated``. Without replacement every pick removes the control from
the set of available controls, so the treated-unit order changes which
controls later units can reach. With ``ratio > 1`` the picks happen in
rounds: every treated unit takes its nearest available control, then the
next round starts over with what is left.
"""
from __future__ import annotations

import logging
import math
import warnings
from dataclasses import dataclass, field

import numpy as np

from ._config import Distance

logger = logging.getLogger(__name__)


@dataclass
class Matches:
    """
    Cluster assignments produced by ``match_units``.

    ``clusters`` maps a cluster id (the treated unit's 1-based position in
    the matching order) to ``(treated_id, control_ids)``. ``unmatched`` holds
    treated ids that ended up without a single control, in matching order.
    """

    clusters: dict[int, tuple[int, list[int]]] = field(default_factory=dict)
    unmatched: list[int] = field(default_factory=list)

    @property
    def control_ids(self) -> list[int]:
        """Every control appearance, cluster by cluster."""
        return [c for _, (_, controls) in sorted(self.clusters.items()) for c in controls]


def _nearest(metric, treated_id: int, candidates: np.ndarray, k: int, threshold: float) -> np.ndarray:
    """
    Positions (into ``candidates``) of the ``k`` nearest eligible controls.

    ``candidates`` must be sorted by id so a stable sort breaks distance ties
    in favour of the smallest id.
    """
    if candidates.size == 0:
        return np.empty(0, dtype=int)

    positions = np.arange(candidates.size)
    dist = metric.distances(treated_id, candidates)
    if math.isfinite(threshold):
        eligible = metric.caliper_gaps(treated_id, candidates) <= threshold
        positions, dist = positions[eligible], dist[eligible]

    return positions[np.argsort(dist, kind="stable")[:k]]


def _match_round(
    treated: np.ndarray,
    controls: np.ndarray,
    available: np.ndarray,
    metric,
    threshold: float,
    round_no: int,
) -> tuple[np.ndarray, dict[int, int], list[int]]:
    """
    Give every treated unit its single nearest available control.

    Works on a copy of ``available`` and returns it with the picked controls
    switched off, together with ``{treated_id: control_id}`` and the treated
    ids that found nothing eligible.
    """
    available = available.copy()
    picks: dict[int, int] = {}
    missed: list[int] = []

    for i, t in enumerate(treated):
        open_pos = np.flatnonzero(available)

        if open_pos.size == 0 and metric.distance is Distance.MAHALANOBIS:
            warnings.warn(
                f"Control pool exhausted in round {round_no}: "
                f"{treated.size - i} treated unit(s) received no control in this round.",
                UserWarning,
                stacklevel=4,
            )
            break

        chosen = _nearest(metric, int(t), controls[open_pos], 1, threshold)
        if chosen.size == 0:
            missed.append(int(t))
            continue

        pos = open_pos[chosen[0]]
        picks[int(t)] = int(controls[pos])
        available[pos] = False

    return available, picks, missed


def match_units(
    treated: np.ndarray,
    controls: np.ndarray,
    metric,
    ratio: int = 1,
    replacement: bool = False,
    threshold: float = math.inf,
) -> Matches:
    """
    Match each treated unit to up to ``ratio`` controls.

    Parameters
    ----------
    treated : np.ndarray
        Treated ids in matching order.
    controls : np.ndarray
        Control ids. Their order does not matter.
    metric : ScoreMetric | MahalanobisMetric
        Distance strategy.
    ratio : int
        Maximum controls per treated unit.
    replacement : bool
        If ``True`` a control may join any number of clusters.
    threshold : float
        Absolute caliper width on the logit scale, ``math.inf`` for none.
    """
    treated = np.asarray(treated)
    controls = np.sort(np.asarray(controls))
    cluster_of = {int(t): i + 1 for i, t in enumerate(treated)}
    members: dict[int, list[int]] = {}

    if replacement:
        everyone = controls
        for t in treated:
            chosen = _nearest(metric, int(t), everyone, ratio, threshold)
            if chosen.size:
                members[int(t)] = [int(c) for c in everyone[chosen]]
    else:
        available = np.ones(controls.size, dtype=bool)
        for round_no in range(1, ratio + 1):
            available, picks, missed = _match_round(
                treated, controls, available, metric, threshold, round_no
            )
            for t, c in picks.items():
                members.setdefault(t, []).append(c)
            logger.debug(
                "Round %d: %d matched, %d without eligible control, %d controls left",
                round_no, len(picks), len(missed), int(available.sum()),
            )

    clusters = {cluster_of[t]: (t, cs) for t, cs in members.items()}
    unmatched = [int(t) for t in treated if int(t) not in members]
    return Matches(clusters=dict(sorted(clusters.items())), unmatched=unmatched)
