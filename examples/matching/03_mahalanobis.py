"""
Mahalanobis distance matching
=============================
Match directly in covariate space, scaling distances by the inverse
covariance of the control group instead of fitting a propensity model.
"""

import numpy as np
import pandas as pd
from causaltools import PropensityScoreMatching

RNG = np.random.default_rng(2)
N = 800

age         = RNG.normal(55, 10, size=N)
cholesterol = 180 + 0.8 * (age - 55) + RNG.normal(0, 25, size=N)
treatment   = RNG.binomial(1, 1 / (1 + np.exp(-(-1 + 0.06 * (age - 55)))))
df = pd.DataFrame({"treatment": treatment, "age": age, "cholesterol": cholesterol})

result = PropensityScoreMatching(
    "treatment ~ age + cholesterol", distance="mahalanobis", ratio=2
).fit(df)
print(result.summary())

balance = result.dataset.groupby("treatment")[["age", "cholesterol"]].mean()
print(balance)
