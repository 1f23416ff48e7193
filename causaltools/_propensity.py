"""
Boundary to the treatment-model fit.

Parses a formula model specification (``"treatment ~ x1 + x2"``) with patsy
and fits the binomial regression that produces per-unit propensity scores.
Everything downstream only consumes the returned probability vector.
"""
from __future__ import annotations

import logging

import numpy as np
import pandas as pd
import statsmodels.api as sm
import statsmodels.formula.api as smf
from patsy import ModelDesc, PatsyError, dmatrix

from ._exceptions import InvalidConfiguration, MissingCovariates
from ._validation import validate_covariates

logger = logging.getLogger(__name__)

_EPS = 1e-12

LINKS = {
    "logit":  sm.families.links.Logit,
    "probit": sm.families.links.Probit,
}


def parse_formula(formula: str) -> tuple[str, list[str]]:
    """
    Split a model formula into its treatment (left-hand side) and the names
    referenced on the right-hand side, in order of first appearance.
    """
    if not isinstance(formula, str):
        raise InvalidConfiguration(
            f"formula must be a string such as 'treatment ~ x1 + x2'. Got: {formula!r}"
        )
    try:
        desc = ModelDesc.from_formula(formula)
    except Exception as exc:
        raise InvalidConfiguration(f"Could not parse formula {formula!r}: {exc}") from exc

    lhs = [f.name() for term in desc.lhs_termlist for f in term.factors]
    if len(lhs) != 1:
        raise InvalidConfiguration(
            f"formula must name exactly one treatment column on the left-hand side. "
            f"Got: {formula!r}"
        )

    covariates: list[str] = []
    for term in desc.rhs_termlist:
        for factor in term.factors:
            name = factor.name()
            if name not in covariates:
                covariates.append(name)
    return lhs[0], covariates


def check_link(link: str) -> str:
    """Normalise ``link`` and make sure it is one the treatment model supports."""
    key = link.lower() if isinstance(link, str) else link
    if key not in LINKS:
        raise InvalidConfiguration(
            f"link must be one of {sorted(LINKS)}. Got: {link!r}"
        )
    return key


def fit_treatment_model(
    data: pd.DataFrame,
    formula: str,
    treatment: str,
    link: str = "logit",
):
    """
    Fit a binomial GLM of treatment on the formula's covariates.

    Returns the fitted statsmodels result and the in-sample predicted
    probabilities as a 1-D array aligned with ``data``'s rows.
    """
    # Boolean treatment would be expanded to two columns by patsy.
    frame = data.assign(**{treatment: data[treatment].astype(float)})
    family = sm.families.Binomial(link=LINKS[check_link(link)]())
    model = smf.glm(formula, data=frame, family=family, missing="raise").fit()
    predicted = np.asarray(model.predict(), dtype=float)
    logger.debug("Fitted %s treatment model on %d rows", link, len(predicted))
    return model, predicted


def covariate_matrix(data: pd.DataFrame, formula: str) -> np.ndarray:
    """
    Design matrix of the formula's right-hand side, without the intercept.

    Terms are expanded by patsy exactly as for the treatment model, so
    ``C(x)``, string and boolean columns become dummy columns. Plain column
    names are checked first so that an absent or incomplete column raises
    ``MissingCovariates`` / ``MissingData`` rather than a patsy error.
    """
    _, covariates = parse_formula(formula)
    validate_covariates(data, [c for c in covariates if c.isidentifier()])

    rhs = ModelDesc([], ModelDesc.from_formula(formula).rhs_termlist)
    try:
        design = dmatrix(rhs, data, NA_action="raise", return_type="dataframe")
    except PatsyError as exc:
        raise MissingCovariates(
            f"Could not build covariates for {formula!r}: {exc}. "
            f"Known columns: {sorted(map(str, data.columns))}"
        ) from exc

    design = design.drop(columns="Intercept", errors="ignore")
    if design.shape[1] == 0:
        raise MissingCovariates(f"formula {formula!r} names no covariates to measure distance on.")
    logger.debug("Covariate matrix has %d column(s): %s", design.shape[1], list(design.columns))
    return design.to_numpy(dtype=float)


def logit(p: np.ndarray) -> np.ndarray:
    """Log-odds of ``p``, clipped away from 0 and 1 so the result stays finite."""
    p = np.clip(np.asarray(p, dtype=float), _EPS, 1.0 - _EPS)
    return np.log(p / (1.0 - p))
