import math

import numpy as np
import pytest

from causaltools import EmptyPool, Order
from causaltools.matching import caliper_threshold, order_treated, partition_pools


class TestPartitionPools:
    def test_ids_follow_row_order(self):
        pools = partition_pools(np.array([1, 0, 0, 1, 0]))
        assert pools.ids.tolist() == [1, 2, 3, 4, 5]
        assert pools.treated.tolist() == [1, 4]
        assert pools.control.tolist() == [2, 3, 5]

    def test_empty_treated_pool(self):
        with pytest.raises(EmptyPool):
            partition_pools(np.array([0, 0, 0]))

    def test_empty_control_pool(self):
        with pytest.raises(EmptyPool):
            partition_pools(np.array([1, 1]))


class TestOrderTreated:
    # rows:            1    2    3    4    5
    scores = np.array([0.3, 0.9, 0.1, 0.9, 0.5])
    treated = np.array([1, 2, 4, 5])

    def test_largest_is_descending_with_stable_ties(self):
        out = order_treated(self.treated, Order.LARGEST, scores=self.scores)
        assert out.tolist() == [2, 4, 5, 1]

    def test_smallest_is_ascending_with_stable_ties(self):
        out = order_treated(self.treated, Order.SMALLEST, scores=self.scores)
        assert out.tolist() == [1, 5, 2, 4]

    def test_no_scores_keeps_row_order(self):
        out = order_treated(self.treated, Order.LARGEST)
        assert out.tolist() == [1, 2, 4, 5]

    def test_random_same_seed_same_order(self):
        a = order_treated(np.arange(1, 51), Order.RANDOM, rng=np.random.default_rng(123))
        b = order_treated(np.arange(1, 51), Order.RANDOM, rng=np.random.default_rng(123))
        assert a.tolist() == b.tolist()
        assert sorted(a.tolist()) == list(range(1, 51))

    def test_random_different_seed_different_order(self):
        a = order_treated(np.arange(1, 51), Order.RANDOM, rng=np.random.default_rng(1))
        b = order_treated(np.arange(1, 51), Order.RANDOM, rng=np.random.default_rng(2))
        assert a.tolist() != b.tolist()

    def test_random_needs_generator(self):
        with pytest.raises(ValueError, match="Generator"):
            order_treated(self.treated, Order.RANDOM)

    def test_input_not_modified(self):
        treated = self.treated.copy()
        order_treated(treated, Order.RANDOM, rng=np.random.default_rng(0))
        assert treated.tolist() == self.treated.tolist()


class TestCaliperThreshold:
    scores = np.array([0.9, 0.5, 0.1, 0.8, 0.4, 0.2])

    def test_infinite_caliper_disables_filtering(self):
        assert math.isinf(caliper_threshold(self.scores, math.inf))

    def test_scaled_by_logit_sd_of_all_units(self):
        logits = np.log(self.scores / (1 - self.scores))
        expected = 0.25 * np.std(logits, ddof=1)
        assert caliper_threshold(self.scores, 0.25) == pytest.approx(expected)

    def test_known_value(self):
        assert caliper_threshold(self.scores, 0.3) == pytest.approx(0.4954, abs=1e-3)

    def test_zero_caliper(self):
        assert caliper_threshold(self.scores, 0.0) == 0.0

    def test_extreme_scores_stay_finite(self):
        assert math.isfinite(caliper_threshold(np.array([0.0, 1.0, 0.5]), 0.2))
