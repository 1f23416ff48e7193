from __future__ import annotations

import numbers

import numpy as np
import pandas as pd

from ._exceptions import InvalidConfiguration, MissingCovariates, MissingData, NonBinaryTreatment


def is_integer(value) -> bool:
    """``True`` for ints (including numpy ints) but not for bools."""
    return isinstance(value, numbers.Integral) and not isinstance(value, (bool, np.bool_))


def is_bool(value) -> bool:
    return isinstance(value, (bool, np.bool_))


def validate_treatment(data: pd.DataFrame, treatment: str) -> np.ndarray:
    """
    Check the treatment column is present, complete and coded 0/1 (or
    False/True). Returns it as an int array.
    """
    if treatment not in data.columns:
        raise InvalidConfiguration(f"Treatment column '{treatment}' not found in dataframe.")

    col = data[treatment]
    if col.isna().any():
        raise MissingData(
            f"Treatment column '{treatment}' contains {int(col.isna().sum())} missing value(s)."
        )

    values = pd.unique(col)
    if not all(v in (0, 1) for v in values):
        raise NonBinaryTreatment(
            f"Treatment '{treatment}' must be coded as 0/1. "
            f"Found values: {sorted(map(str, values))}"
        )
    return col.to_numpy().astype(int)


def validate_covariates(data: pd.DataFrame, covariates: list[str]) -> None:
    """All ``covariates`` must be dataframe columns without missing values."""
    absent = [c for c in covariates if c not in data.columns]
    if absent:
        raise MissingCovariates(
            f"Covariates not found in dataframe: {absent}. "
            f"Known columns: {sorted(map(str, data.columns))}"
        )
    incomplete = [c for c in covariates if data[c].isna().any()]
    if incomplete:
        raise MissingData(f"Covariates contain missing values: {incomplete}")
