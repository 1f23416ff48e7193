from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from ._engine import Matches

logger = logging.getLogger(__name__)

ID_COL      = "id"
CLUSTER_COL = "cluster"
WEIGHT_COL  = "total_weight"
RESERVED_COLUMNS = (ID_COL, CLUSTER_COL, WEIGHT_COL)


def _membership(matches: Matches) -> pd.DataFrame:
    """One row per cluster member: treated unit first (rank 0), then its controls in pick order."""
    rows = []
    for cluster, (treated_id, controls) in matches.clusters.items():
        rows.append((cluster, treated_id, 0))
        rows.extend((cluster, c, rank) for rank, c in enumerate(controls, start=1))
    return pd.DataFrame(rows, columns=[CLUSTER_COL, ID_COL, "_rank"]).astype(int)


def _replacement_weights(members: pd.DataFrame) -> pd.DataFrame:
    """
    Collapse members to one row per unit with a normalised ``total_weight``.

    Within a cluster the treated unit weighs 1 and each control
    ``1 / (cluster size - 1)``. A control's weights are summed over every
    cluster it joined, then all totals are divided by the mean treated total.
    """
    size = members.groupby(CLUSTER_COL)[ID_COL].transform("size")
    members = members.assign(
        _weight=np.where(members["_rank"] == 0, 1.0, 1.0 / (size - 1))
    )
    per_unit = (
        members.groupby(ID_COL, sort=False)
        .agg(**{
            CLUSTER_COL: (CLUSTER_COL, "min"),
            "_rank": ("_rank", "min"),
            WEIGHT_COL: ("_weight", "sum"),
        })
        .reset_index()
    )
    treated_mean = per_unit.loc[per_unit["_rank"] == 0, WEIGHT_COL].mean()
    per_unit[WEIGHT_COL] = per_unit[WEIGHT_COL] / treated_mean
    return per_unit


def assemble(
    data: pd.DataFrame,
    matches: Matches,
    ratio: int,
    replacement: bool,
    discard: bool = False,
) -> pd.DataFrame:
    """
    Join cluster assignments back onto the full rows of ``data``.

    The output keeps every column of ``data`` and adds ``id`` and ``cluster``,
    plus ``total_weight`` when ``replacement`` is on. Unmatched treated units
    are left out. Without replacement and with ``discard=True``, clusters
    that did not collect all ``ratio`` controls are dropped. Rows come out
    sorted by cluster, each cluster's treated unit first.
    """
    frame = data.reset_index(drop=True).assign(**{ID_COL: np.arange(1, len(data) + 1)})
    members = _membership(matches)

    if replacement:
        members = _replacement_weights(members)
    elif discard:
        size = members.groupby(CLUSTER_COL)[ID_COL].transform("size")
        complete = size == ratio + 1
        logger.debug(
            "Discarding %d incomplete cluster(s)",
            members.loc[~complete, CLUSTER_COL].nunique(),
        )
        members = members[complete]

    members = members.sort_values([CLUSTER_COL, "_rank"], kind="stable")
    out = members.merge(frame, on=ID_COL, how="inner", validate="many_to_one")

    columns = [*data.columns, ID_COL, CLUSTER_COL]
    if replacement:
        columns.append(WEIGHT_COL)
    return out[columns].reset_index(drop=True)
