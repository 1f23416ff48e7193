"""
Ratio, caliper, replacement and ordering
========================================
The same data matched several ways. Without replacement the order in which
treated units pick controls changes the outcome; a caliper trades sample
size for closeness; with replacement, matched controls carry weights.
"""

import numpy as np
import pandas as pd
from causaltools import PropensityScoreMatching

RNG = np.random.default_rng(1)
N = 1_000

age       = RNG.normal(55, 10, size=N)
smoke     = RNG.binomial(1, 0.3, size=N)
logits    = -0.8 + 0.05 * (age - 55) + 0.7 * smoke
treatment = RNG.binomial(1, 1 / (1 + np.exp(-logits)))
df = pd.DataFrame({"treatment": treatment, "age": age, "smoke": smoke})

FORMULA = "treatment ~ age + smoke"

for order in ("largest", "smallest", "random"):
    r = PropensityScoreMatching(FORMULA, order=order, seed=2024).fit(df)
    print(f"order={order:<8}  rows={len(r.dataset)}  unmatched={len(r.unmatched_ids)}")

tight = PropensityScoreMatching(FORMULA, ratio=2, caliper=0.05, distance="logit").fit(df)
print(tight.summary())

partial = PropensityScoreMatching(FORMULA, ratio=3, discard=False).fit(df)
complete = PropensityScoreMatching(FORMULA, ratio=3, discard=True).fit(df)
print(f"ratio 3: {partial.n_clusters} clusters kept, {complete.n_clusters} complete")

weighted = PropensityScoreMatching(FORMULA, ratio=2, replacement=True).fit(df)
print(weighted.dataset.sort_values("total_weight", ascending=False).head())
