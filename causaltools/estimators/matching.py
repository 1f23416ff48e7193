from __future__ import annotations

import logging
import math
import warnings

import numpy as np
import pandas as pd

from .._assumptions import Assumption, assumption_lines
from .._exceptions import InvalidConfiguration
from .._propensity import check_link, covariate_matrix, fit_treatment_model, parse_formula
from .._validation import validate_treatment
from ..matching import (
    Distance,
    MahalanobisMetric,
    MatchingConfig,
    ScoreMetric,
    assemble,
    caliper_threshold,
    match_units,
    order_treated,
    partition_pools,
    validate_config,
)
from ..matching._assemble import RESERVED_COLUMNS
from ..matching._config import DEFAULT_SEED

logger = logging.getLogger(__name__)

MATCHING_ASSUMPTIONS: list[Assumption] = [
    Assumption("Conditional independence: no unobserved confounders given matched variables", testable=False),
    Assumption("Common support: overlap exists in characteristics between groups", testable=True),
    Assumption("Correct specification of the treatment model / matching variables", testable=False),
    Assumption("Stable Unit Treatment Value Assumption (SUTVA)", testable=False),
]


# ── Result ─────────────────────────────────────────────────────────────────────

class MatchResult:
    """
    The result of a nearest-neighbour matching run.

    ``dataset`` holds the matched rows with every original column plus
    ``id`` (1-based original row position) and ``cluster``. With replacement
    it also has ``total_weight``, and a control matched several times
    appears once. Treated units for which no control was eligible are not
    in ``dataset``; their ids are in ``unmatched_ids``.
    """

    def __init__(
        self,
        dataset: pd.DataFrame,
        unmatched_ids: list[int],
        clusters: dict[int, tuple[int, list[int]]],
        config: MatchingConfig,
        formula: str,
        treatment: str,
        link: str | None,
        threshold: float,
        n_treated: int,
        scores: pd.Series | None,
        model,
    ) -> None:
        self._dataset = dataset
        self._unmatched_ids = list(unmatched_ids)
        self._clusters = clusters
        self._config = config
        self._formula = formula
        self._treatment = treatment
        self._link = link
        self._threshold = threshold
        self._n_treated = n_treated
        self._scores = scores
        self._model = model

    @property
    def dataset(self) -> pd.DataFrame:
        """Matched rows: original columns plus ``id``, ``cluster`` (and ``total_weight``)."""
        return self._dataset.copy()

    @property
    def unmatched_ids(self) -> list[int]:
        """Ids of treated units that received no control at all."""
        return list(self._unmatched_ids)

    @property
    def clusters(self) -> dict[int, tuple[int, list[int]]]:
        """``{cluster id: (treated id, [control ids])}`` before any discarding."""
        return {k: (t, list(cs)) for k, (t, cs) in self._clusters.items()}

    @property
    def distance(self) -> str:
        return self._config.distance.value

    @property
    def ratio(self) -> int:
        return self._config.ratio

    @property
    def replacement(self) -> bool:
        return self._config.replacement

    @property
    def discard(self) -> bool:
        return self._config.discard

    @property
    def order(self) -> str:
        return self._config.order.value

    @property
    def seed(self) -> int:
        return self._config.seed

    @property
    def caliper(self) -> float:
        """Caliper in standard-deviation units, as requested."""
        return self._config.caliper

    @property
    def caliper_threshold(self) -> float:
        """Absolute caliper width on the logit scale (``inf`` when inactive)."""
        return self._threshold

    @property
    def link(self) -> str | None:
        """Link of the fitted treatment model; ``None`` when scores were supplied or for Mahalanobis."""
        return self._link

    @property
    def treatment(self) -> str:
        return self._treatment

    @property
    def scores(self) -> pd.Series | None:
        """Per-unit distance values (probability or logit) indexed by ``id``."""
        return None if self._scores is None else self._scores.copy()

    @property
    def model(self):
        """The fitted statsmodels GLM, or ``None`` if scores were supplied or not needed."""
        return self._model

    @property
    def n_treated(self) -> int:
        return self._n_treated

    @property
    def n_matched_treated(self) -> int:
        """Treated units that received at least one control."""
        return self._n_treated - len(self._unmatched_ids)

    @property
    def n_clusters(self) -> int:
        """Clusters kept in ``dataset``."""
        return int(self._dataset["cluster"].nunique())

    @property
    def assumptions(self) -> list[Assumption]:
        """Modelling assumptions required for a causal interpretation."""
        return list(MATCHING_ASSUMPTIONS)

    def summary(self) -> str:
        cfg = self._config
        ds = self._dataset
        n_controls = int((ds[self._treatment] == 0).sum())
        if math.isfinite(self._threshold):
            caliper = f"{cfg.caliper:g} SD  (|Δ logit| ≤ {self._threshold:.4f})"
        else:
            caliper = "none"
        metric = cfg.distance.value
        if self._link is not None:
            metric += f"  ({self._link} treatment model)"
        elif self._scores is not None:
            metric += "  (supplied scores)"

        lines = [
            "",
            f"Nearest-neighbour matching: {self._formula}",
            "─" * 54,
            f"  Distance             : {metric}",
            f"  Ratio                : 1:{cfg.ratio}  ({'with' if cfg.replacement else 'without'} replacement)",
            f"  Caliper              : {caliper}",
            f"  Order                : {cfg.order.value}" + (f"  (seed {cfg.seed})" if cfg.order.value == "random" else ""),
            "",
            f"  Treated units        : {self._n_treated:>10d}",
            f"  Matched treated      : {self.n_matched_treated:>10d}",
            f"  Unmatched treated    : {len(self._unmatched_ids):>10d}",
            f"  Clusters kept        : {self.n_clusters:>10d}" + ("  (incomplete discarded)" if cfg.discard and not cfg.replacement else ""),
            f"  Control rows         : {n_controls:>10d}",
            "",
            *assumption_lines(MATCHING_ASSUMPTIONS),
            "",
        ]
        return "\n".join(lines)

    def __repr__(self) -> str:
        return self.summary()


# ── Estimator ──────────────────────────────────────────────────────────────────

class PropensityScoreMatching:
    """
    Greedy nearest-neighbour matching on the propensity score or on
    Mahalanobis distance.

    1. Validates every option up front (constructor) and the treatment
       column (``fit``).
    2. Fits a binomial GLM of treatment on the formula's covariates, or,
       for Mahalanobis distance, inverts the control-group covariance.
    3. Orders treated units (``largest`` / ``smallest`` score first, or a
       seeded random permutation) and lets each pick its nearest eligible
       control, ``ratio`` times.
    4. Joins the clusters back onto the original rows.

    Without replacement the order matters: controls taken by earlier
    treated units are gone for later ones.

    Example::

        result = PropensityScoreMatching(
            "treatment ~ age + smoke + sex", ratio=2, caliper=0.2
        ).fit(df)
        print(result.summary())
        matched = result.dataset
    """

    def __init__(
        self,
        formula: str,
        *,
        distance: str = "probability",
        link: str = "logit",
        ratio: int = 1,
        replacement: bool = False,
        caliper: float = math.inf,
        order: str = "largest",
        seed: int = DEFAULT_SEED,
        discard: bool = False,
    ) -> None:
        self._formula = formula
        self._treatment, _ = parse_formula(formula)
        self._config = validate_config(
            distance=distance,
            ratio=ratio,
            replacement=replacement,
            caliper=caliper,
            order=order,
            seed=seed,
            discard=discard,
        )
        self._link = check_link(link) if self._config.distance.uses_scores else None

    @property
    def config(self) -> MatchingConfig:
        return self._config

    def _check_propensity(self, propensity, n: int) -> np.ndarray:
        scores = np.asarray(propensity, dtype=float)
        if scores.shape != (n,):
            raise InvalidConfiguration(
                f"propensity must have one value per row ({n}). Got shape: {scores.shape}"
            )
        if not np.all(np.isfinite(scores)) or scores.min() < 0 or scores.max() > 1:
            raise InvalidConfiguration("propensity values must be finite probabilities in [0, 1].")
        return scores

    def fit(self, data: pd.DataFrame, propensity=None) -> MatchResult:
        """
        Match treated to control units.

        Parameters
        ----------
        data : pd.DataFrame
            Must contain the formula's treatment column (0/1 or bool, no
            missing values) and its covariates.
        propensity : array-like, optional
            Pre-computed treatment probabilities, one per row. When given,
            no treatment model is fitted. Ignored for Mahalanobis distance.

        Raises
        ------
        ``InvalidConfiguration``
            Treatment column absent, reserved output column present, or a
            malformed ``propensity``.
        ``MissingData`` / ``NonBinaryTreatment``
            Treatment column has missing or non-0/1 values.
        ``EmptyPool``
            No treated or no control units.
        ``MissingCovariates`` / ``SingularCovariance``
            Mahalanobis covariates absent or their covariance not invertible.
        """
        cfg = self._config
        data = data.reset_index(drop=True).copy()

        treatment = validate_treatment(data, self._treatment)
        clash = [c for c in RESERVED_COLUMNS if c in data.columns]
        if clash:
            raise InvalidConfiguration(
                f"data already has column(s) {clash}, which matching adds to its output. Rename them first."
            )
        if cfg.discard and cfg.replacement:
            warnings.warn("discard is ignored when matching with replacement.", UserWarning, stacklevel=2)
        covariates = None
        if cfg.distance is Distance.MAHALANOBIS:
            covariates = covariate_matrix(data, self._formula)
            if propensity is not None:
                warnings.warn("propensity is ignored for Mahalanobis distance.", UserWarning, stacklevel=2)
            if math.isfinite(cfg.caliper):
                warnings.warn("caliper is ignored for Mahalanobis distance.", UserWarning, stacklevel=2)

        pools = partition_pools(treatment)
        rng = np.random.default_rng(cfg.seed)

        model = None
        scores = None
        threshold = math.inf
        if cfg.distance.uses_scores:
            if propensity is None:
                model, probability = fit_treatment_model(data, self._formula, self._treatment, self._link)
            else:
                probability = self._check_propensity(propensity, len(data))
            metric = ScoreMetric(probability, cfg.distance)
            scores = pd.Series(metric.values, index=pools.ids, name=cfg.distance.value)
            if cfg.caliper_active:
                threshold = caliper_threshold(probability, cfg.caliper)
        else:
            metric = MahalanobisMetric(covariates, pools.control)

        treated_order = order_treated(
            pools.treated,
            cfg.order,
            scores=None if scores is None else scores.to_numpy(),
            rng=rng,
        )
        matches = match_units(
            treated_order,
            pools.control,
            metric,
            ratio=cfg.ratio,
            replacement=cfg.replacement,
            threshold=threshold,
        )

        if matches.unmatched:
            shown = matches.unmatched[:10]
            more = "" if len(matches.unmatched) <= 10 else f" (+{len(matches.unmatched) - 10} more)"
            warnings.warn(
                f"{len(matches.unmatched)} of {pools.treated.size} treated unit(s) could not be matched: "
                f"ids {shown}{more}. See MatchResult.unmatched_ids.",
                UserWarning,
                stacklevel=2,
            )
        partial = [t for t, cs in matches.clusters.values() if len(cs) < cfg.ratio]
        if partial:
            outcome = "their clusters are discarded" if cfg.discard and not cfg.replacement else "their clusters are kept"
            warnings.warn(
                f"{len(partial)} matched treated unit(s) received fewer than {cfg.ratio} controls; "
                f"{outcome}. See MatchResult.clusters.",
                UserWarning,
                stacklevel=2,
            )

        dataset = assemble(
            data, matches, ratio=cfg.ratio, replacement=cfg.replacement, discard=cfg.discard
        )
        logger.debug("Matched dataset has %d rows in %d clusters", len(dataset), dataset["cluster"].nunique())

        return MatchResult(
            dataset=dataset,
            unmatched_ids=matches.unmatched,
            clusters=matches.clusters,
            config=cfg,
            formula=self._formula,
            treatment=self._treatment,
            link=None if model is None else self._link,
            threshold=threshold,
            n_treated=int(pools.treated.size),
            scores=scores,
            model=model,
        )
