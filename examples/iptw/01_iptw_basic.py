"""
Inverse probability of treatment weighting
==========================================
Weight every unit by the inverse of its probability of the treatment it
actually received, then compare weighted outcome means.
"""

import numpy as np
import pandas as pd
from causaltools import InverseProbabilityWeighting

RNG = np.random.default_rng(3)
N = 2_000

age       = RNG.normal(50, 10, size=N)
smoke     = RNG.binomial(1, 0.3, size=N)
treatment = RNG.binomial(1, 1 / (1 + np.exp(-(-0.5 + 0.05 * (age - 50) + 0.8 * smoke))))
outcome   = 3.0 * treatment + 0.2 * age + 2 * smoke + RNG.normal(size=N)
df = pd.DataFrame({"treatment": treatment, "age": age, "smoke": smoke, "outcome": outcome})

result = InverseProbabilityWeighting(
    "treatment ~ age + smoke", type="stabilized", truncate=(1, 99)
).fit(df)
print(result.summary())

w = result.dataset
treated = w[w["treatment"] == 1]
control = w[w["treatment"] == 0]
ate = np.average(treated["outcome"], weights=treated["weight"]) - np.average(
    control["outcome"], weights=control["weight"]
)
print(f"Weighted difference in means: {ate:.3f}   (true effect 3.0)")
