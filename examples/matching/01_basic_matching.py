"""
Propensity score matching: basic example
=========================================
Match each smoker-cessation participant (treated) to the non-participant
with the closest propensity score, then compare outcomes in the matched sample.
"""

import numpy as np
import pandas as pd
from causaltools import PropensityScoreMatching

RNG = np.random.default_rng(0)
N = 3_000

# ── 1. Simulate data ──────────────────────────────────────────────────────────
age         = RNG.normal(55, 10, size=N)
smoke       = RNG.binomial(1, 0.3, size=N)
cholesterol = RNG.normal(200, 30, size=N)
logits      = -1.0 + 0.04 * (age - 55) + 0.6 * smoke + 0.01 * (cholesterol - 200)
treatment   = RNG.binomial(1, 1 / (1 + np.exp(-logits)))
bp          = 120 - 5.0 * treatment + 0.5 * (age - 55) + 4 * smoke + RNG.normal(0, 5, size=N)

df = pd.DataFrame({
    "treatment": treatment, "age": age, "smoke": smoke,
    "cholesterol": cholesterol, "blood_pressure": bp,
})

# ── 2. Match ──────────────────────────────────────────────────────────────────
result = PropensityScoreMatching("treatment ~ age + smoke + cholesterol").fit(df)
print(result.summary())

# ── 3. Compare outcomes in the matched sample ────────────────────────────────
matched = result.dataset
means = matched.groupby("treatment")["blood_pressure"].mean()
naive = df.groupby("treatment")["blood_pressure"].mean()
print(f"Naive difference   : {naive[1] - naive[0]:.3f}")
print(f"Matched difference : {means[1] - means[0]:.3f}   (true effect -5.0)")
