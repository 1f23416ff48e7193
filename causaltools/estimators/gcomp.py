from __future__ import annotations

import logging

import numpy as np
import pandas as pd
import statsmodels.api as sm
import statsmodels.formula.api as smf

from .._assumptions import Assumption, assumption_lines
from .._exceptions import InvalidConfiguration
from .._propensity import parse_formula
from .._validation import is_integer, validate_treatment

logger = logging.getLogger(__name__)

GCOMP_ASSUMPTIONS: list[Assumption] = [
    Assumption("Conditional exchangeability: no unobserved confounders given the model covariates", testable=False),
    Assumption("Positivity: both treatment levels occur at every covariate pattern", testable=True),
    Assumption("Correct specification of the outcome model", testable=False),
    Assumption("Stable Unit Treatment Value Assumption (SUTVA)", testable=False),
]

FAMILIES  = ("gaussian", "binomial")
CONTRASTS = ("difference", "ratio")

_BOOTSTRAP_SEED = 42


def _fit(formula: str, data: pd.DataFrame, family: str):
    if family == "gaussian":
        return smf.ols(formula, data=data).fit()
    return smf.glm(formula, data=data, family=sm.families.Binomial()).fit()


def _standardise(model, data: pd.DataFrame, treatment: str, contrast: str) -> float:
    """Predict every row under treatment and under control, then contrast the means."""
    pred_1 = np.asarray(model.predict(data.assign(**{treatment: 1.0})))
    pred_0 = np.asarray(model.predict(data.assign(**{treatment: 0.0})))
    if contrast == "difference":
        return float(np.mean(pred_1 - pred_0))
    return float(np.mean(pred_1) / np.mean(pred_0))


class GCompResult:
    """
    The result of a g-computation (standardisation) estimate.

    ``effect`` is the average treatment effect on the chosen contrast scale.
    ``std_err`` is the bootstrap standard error, or NaN when the estimator
    was run without bootstrap.
    """

    def __init__(
        self,
        effect: float,
        model,
        bootstrap_effects: np.ndarray,
        treatment: str,
        formula: str,
        family: str,
        contrast: str,
    ) -> None:
        self._effect = effect
        self._model = model
        self._bootstrap_effects = bootstrap_effects
        self._treatment = treatment
        self._formula = formula
        self._family = family
        self._contrast = contrast

    @property
    def effect(self) -> float:
        """ATE: mean(Y | do(T=1)) minus (or divided by) mean(Y | do(T=0))."""
        return self._effect

    @property
    def std_err(self) -> float:
        if self._bootstrap_effects.size < 2:
            return float("nan")
        return float(np.std(self._bootstrap_effects, ddof=1))

    @property
    def conf_int(self) -> tuple[float, float]:
        """Bootstrap percentile 95% confidence interval (NaNs without bootstrap)."""
        if self._bootstrap_effects.size < 2:
            return (float("nan"), float("nan"))
        return (
            float(np.percentile(self._bootstrap_effects, 2.5)),
            float(np.percentile(self._bootstrap_effects, 97.5)),
        )

    @property
    def bootstrap_effects(self) -> np.ndarray:
        return self._bootstrap_effects.copy()

    @property
    def model(self):
        """The fitted statsmodels outcome model."""
        return self._model

    @property
    def family(self) -> str:
        return self._family

    @property
    def contrast(self) -> str:
        return self._contrast

    @property
    def assumptions(self) -> list[Assumption]:
        return list(GCOMP_ASSUMPTIONS)

    def summary(self) -> str:
        lo, hi = self.conf_int
        n_boot = self._bootstrap_effects.size
        lines = [
            "",
            f"G-computation: {self._formula}",
            f"  Estimand: ATE ({self._contrast}, {self._family} outcome model)",
            "─" * 54,
            f"  ATE estimate         : {self.effect:>10.4f}",
        ]
        if n_boot:
            lines += [
                f"  Std. error           : {self.std_err:>10.4f}  (bootstrap, N={n_boot})",
                f"  95% CI               : [{lo:.4f}, {hi:.4f}]  (bootstrap percentile)",
            ]
        else:
            lines.append("  Std. error           :        n/a  (run with bootstrap=True)")
        lines += ["", *assumption_lines(GCOMP_ASSUMPTIONS), ""]
        return "\n".join(lines)

    def __repr__(self) -> str:
        return self.summary()


class GComputation:
    """
    Parametric g-computation for a binary treatment.

    Fits an outcome model (OLS for ``gaussian``, logistic GLM for
    ``binomial``), predicts every unit's outcome with treatment switched on
    and off, and contrasts the two means. ``contrast="ratio"`` gives a
    risk ratio and is only available for the binomial family.

    Example::

        result = GComputation(
            "outcome ~ treatment + age + smoke", treatment="treatment", bootstrap=True
        ).fit(df)
        print(result.summary())
    """

    def __init__(
        self,
        formula: str,
        *,
        treatment: str,
        family: str = "gaussian",
        contrast: str = "difference",
        bootstrap: bool = False,
        n_bootstrap: int = 1000,
        seed: int = _BOOTSTRAP_SEED,
    ) -> None:
        self._formula = formula
        self._outcome, covariates = parse_formula(formula)

        if treatment not in covariates:
            raise InvalidConfiguration(
                f"treatment '{treatment}' must appear on the right-hand side of {formula!r}."
            )
        if family not in FAMILIES:
            raise InvalidConfiguration(f"family must be one of {list(FAMILIES)}. Got: {family!r}")
        if contrast not in CONTRASTS:
            raise InvalidConfiguration(f"contrast must be one of {list(CONTRASTS)}. Got: {contrast!r}")
        if contrast == "ratio" and family != "binomial":
            raise InvalidConfiguration("contrast='ratio' needs family='binomial'.")
        if not is_integer(n_bootstrap) or n_bootstrap < 1:
            raise InvalidConfiguration(f"n_bootstrap must be a positive integer. Got: {n_bootstrap!r}")
        if not is_integer(seed):
            raise InvalidConfiguration(f"seed must be an integer. Got: {seed!r}")

        self._treatment = treatment
        self._family = family
        self._contrast = contrast
        self._bootstrap = bool(bootstrap)
        self._n_bootstrap = int(n_bootstrap)
        self._seed = int(seed)

    def fit(self, data: pd.DataFrame) -> GCompResult:
        """
        Estimate the ATE, optionally with bootstrap uncertainty.

        Raises
        ------
        ``InvalidConfiguration``
            Treatment column absent.
        ``MissingData`` / ``NonBinaryTreatment``
            Treatment column has missing or non-0/1 values.
        """
        df = data.copy()
        df[self._treatment] = validate_treatment(df, self._treatment).astype(float)

        model = _fit(self._formula, df, self._family)
        effect = _standardise(model, df, self._treatment, self._contrast)

        boot = []
        if self._bootstrap:
            rng = np.random.default_rng(self._seed)
            n = len(df)
            for _ in range(self._n_bootstrap):
                sample = df.iloc[rng.integers(0, n, size=n)].reset_index(drop=True)
                boot_model = _fit(self._formula, sample, self._family)
                boot.append(_standardise(boot_model, sample, self._treatment, self._contrast))
            logger.debug("Ran %d bootstrap replicates", len(boot))

        return GCompResult(
            effect=effect,
            model=model,
            bootstrap_effects=np.array(boot, dtype=float),
            treatment=self._treatment,
            formula=self._formula,
            family=self._family,
            contrast=self._contrast,
        )
