from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from .._assumptions import Assumption, assumption_lines
from .._exceptions import InvalidConfiguration
from .._propensity import check_link, fit_treatment_model, parse_formula
from .._validation import validate_treatment

logger = logging.getLogger(__name__)

IPTW_ASSUMPTIONS: list[Assumption] = [
    Assumption("Conditional exchangeability: no unobserved confounders given the model covariates", testable=False),
    Assumption("Positivity: every unit has a non-zero probability of each treatment", testable=True),
    Assumption("Correct specification of the treatment model", testable=False),
    Assumption("Stable Unit Treatment Value Assumption (SUTVA)", testable=False),
]

WEIGHT_TYPES = ("unstabilized", "stabilized")


def _kish_ess(w: np.ndarray) -> float:
    return float(w.sum() ** 2 / (w ** 2).sum()) if w.size else 0.0


class IPTWResult:
    """
    Inverse probability of treatment weights.

    ``dataset`` is a copy of the input with two extra columns: ``predicted``
    (the fitted probability of treatment) and ``weight``.
    """

    def __init__(
        self,
        dataset: pd.DataFrame,
        model,
        type: str,
        truncate: tuple[float, float] | None,
        treatment: str,
        formula: str,
    ) -> None:
        self._dataset = dataset
        self._model = model
        self._type = type
        self._truncate = truncate
        self._treatment = treatment
        self._formula = formula

    @property
    def dataset(self) -> pd.DataFrame:
        return self._dataset.copy()

    @property
    def weights(self) -> pd.Series:
        return self._dataset["weight"].copy()

    @property
    def model(self):
        """The fitted statsmodels binomial GLM."""
        return self._model

    @property
    def type(self) -> str:
        return self._type

    @property
    def truncate(self) -> tuple[float, float] | None:
        return self._truncate

    @property
    def treatment(self) -> str:
        return self._treatment

    @property
    def effective_sample_size(self) -> dict[int, float]:
        """Kish effective sample size per treatment arm, ``{1: ess_treated, 0: ess_control}``."""
        t = self._dataset[self._treatment].astype(int).to_numpy()
        w = self._dataset["weight"].to_numpy()
        return {1: _kish_ess(w[t == 1]), 0: _kish_ess(w[t == 0])}

    @property
    def assumptions(self) -> list[Assumption]:
        return list(IPTW_ASSUMPTIONS)

    def summary(self) -> str:
        w = self._dataset["weight"]
        ess = self.effective_sample_size
        trunc = "none" if self._truncate is None else f"{self._truncate[0]:g}th – {self._truncate[1]:g}th percentile"
        lines = [
            "",
            f"IPTW weights: {self._formula}",
            "─" * 54,
            f"  Weight type          : {self._type}",
            f"  Truncation           : {trunc}",
            "",
            f"  Mean weight          : {w.mean():>10.4f}",
            f"  Min / max weight     : {w.min():.4f} / {w.max():.4f}",
            f"  ESS treated          : {ess[1]:>10.1f}",
            f"  ESS control          : {ess[0]:>10.1f}",
            "",
            *assumption_lines(IPTW_ASSUMPTIONS),
            "",
        ]
        return "\n".join(lines)

    def __repr__(self) -> str:
        return self.summary()


class InverseProbabilityWeighting:
    """
    Inverse probability of treatment weighting (IPTW).

    Fits a binomial GLM of treatment on the formula's covariates and turns
    the fitted probabilities ``p`` into weights:

    - ``unstabilized``: ``1/p`` for treated, ``1/(1-p)`` for controls.
    - ``stabilized``: ``P(T=1)/p`` for treated, ``(1-P(T=1))/(1-p)`` for
      controls, where ``P(T=1)`` is the share of treated units.

    ``truncate=(low, high)`` clips the weights to their ``low``th and
    ``high``th percentiles.

    Example::

        result = InverseProbabilityWeighting(
            "treatment ~ age + smoke", type="stabilized", truncate=(1, 99)
        ).fit(df)
        weighted = result.dataset
    """

    def __init__(
        self,
        formula: str,
        *,
        type: str = "unstabilized",
        truncate: tuple[float, float] | None = None,
        link: str = "logit",
    ) -> None:
        self._formula = formula
        self._treatment, _ = parse_formula(formula)

        key = type.lower() if isinstance(type, str) else type
        if key not in WEIGHT_TYPES:
            raise InvalidConfiguration(f"type must be one of {list(WEIGHT_TYPES)}. Got: {type!r}")
        self._type = key

        if truncate is not None:
            if len(truncate) != 2:
                raise InvalidConfiguration(f"truncate must be a (low, high) pair. Got: {truncate!r}")
            low, high = (float(v) for v in truncate)
            if not (0 <= low <= high <= 100):
                raise InvalidConfiguration(
                    f"truncate must be percentiles with 0 <= low <= high <= 100. Got: {truncate!r}"
                )
            truncate = (low, high)
        self._truncate = truncate
        self._link = check_link(link)

    def fit(self, data: pd.DataFrame) -> IPTWResult:
        """
        Compute weights for every row of ``data``.

        Raises
        ------
        ``InvalidConfiguration``
            Treatment column absent.
        ``MissingData`` / ``NonBinaryTreatment``
            Treatment column has missing or non-0/1 values.
        """
        df = data.copy()
        t = validate_treatment(df, self._treatment)

        model, p = fit_treatment_model(df, self._formula, self._treatment, self._link)

        if self._type == "unstabilized":
            weight = t / p + (1 - t) / (1 - p)
        else:
            p_treated = t.mean()
            weight = np.where(t == 1, p_treated / p, (1 - p_treated) / (1 - p))

        if self._truncate is not None:
            low, high = np.percentile(weight, self._truncate)
            logger.debug("Truncating weights to [%.4g, %.4g]", low, high)
            weight = np.clip(weight, low, high)

        df["predicted"] = p
        df["weight"] = weight
        return IPTWResult(df, model, self._type, self._truncate, self._treatment, self._formula)
