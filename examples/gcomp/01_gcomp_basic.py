"""
G-computation
=============
Fit an outcome model, predict every unit under treatment and under control,
and average the difference. Bootstrap gives the standard error.
"""

import numpy as np
import pandas as pd
from causaltools import GComputation

RNG = np.random.default_rng(4)
N = 2_000

age       = RNG.normal(50, 10, size=N)
treatment = RNG.binomial(1, 1 / (1 + np.exp(-0.08 * (age - 50))))
outcome   = 2.0 * treatment + 0.1 * age + RNG.normal(size=N)
df = pd.DataFrame({"treatment": treatment, "age": age, "outcome": outcome})

result = GComputation(
    "outcome ~ treatment + age", treatment="treatment", bootstrap=True, n_bootstrap=200
).fit(df)
print(result.summary())
