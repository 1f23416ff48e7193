import math
import warnings

import numpy as np
import pandas as pd
import pytest

from causaltools import MatchResult, PropensityScoreMatching, SingularCovariance


N = 400
FORMULA = "treatment ~ age + smoke + sex + cholesterol"


def make_data(n=N):
    """Fixed seed so every call returns the same dataframe; about a third treated."""
    rng = np.random.default_rng(42)
    age         = rng.normal(55, 10, size=n)
    smoke       = rng.binomial(1, 0.3, size=n)
    sex         = rng.binomial(1, 0.5, size=n)
    cholesterol = rng.normal(200, 30, size=n)
    logits      = -1.0 + 0.04 * (age - 55) + 0.6 * smoke - 0.3 * sex + 0.01 * (cholesterol - 200)
    treatment   = rng.binomial(1, 1 / (1 + np.exp(-logits)))
    outcome     = 1.5 * treatment + 0.05 * age + rng.normal(size=n)
    return pd.DataFrame({
        "treatment": treatment,
        "age": age,
        "smoke": smoke,
        "sex": sex,
        "cholesterol": cholesterol,
        "outcome": outcome,
    })


def fit(**kwargs):
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", UserWarning)
        return PropensityScoreMatching(FORMULA, **kwargs).fit(make_data())


class TestDefaultMatching:
    @classmethod
    def setup_class(cls):
        cls.df     = make_data()
        cls.result = PropensityScoreMatching(FORMULA).fit(cls.df)

    def test_returns_match_result(self):
        assert isinstance(self.result, MatchResult)

    def test_records_defaults(self):
        assert self.result.distance == "probability"
        assert self.result.ratio == 1
        assert self.result.replacement is False
        assert self.result.order == "largest"
        assert self.result.link == "logit"

    def test_dataset_columns(self):
        ds = self.result.dataset
        assert len(ds) > 0
        assert list(ds.columns) == [*self.df.columns, "id", "cluster"]

    def test_unmatched_ids_are_ints(self):
        assert all(isinstance(i, int) for i in self.result.unmatched_ids)

    def test_every_treated_matched_without_caliper(self):
        assert self.result.unmatched_ids == []
        assert self.result.n_matched_treated == int(self.df["treatment"].sum())

    def test_each_cluster_is_one_treated_one_control(self):
        per_cluster = self.result.dataset.groupby("cluster")["treatment"].agg(["sum", "size"])
        assert (per_cluster["sum"] == 1).all()
        assert (per_cluster["size"] == 2).all()

    def test_model_is_statsmodels_glm(self):
        model = self.result.model
        assert model is not None
        assert np.allclose(np.asarray(model.predict()), self.result.scores.to_numpy())

    def test_scores_are_probabilities(self):
        s = self.result.scores
        assert ((s > 0) & (s < 1)).all()
        assert s.index.tolist() == list(range(1, N + 1))

    def test_supplied_propensity_reproduces_fit(self):
        again = PropensityScoreMatching(FORMULA).fit(self.df, propensity=self.result.scores.to_numpy())
        pd.testing.assert_frame_equal(again.dataset, self.result.dataset)
        assert again.model is None
        assert again.link is None
        assert "supplied scores" in again.summary()

    def test_input_not_modified(self):
        assert list(self.df.columns) == list(make_data().columns)
        pd.testing.assert_frame_equal(self.df, make_data())

    def test_summary(self):
        summary = self.result.summary()
        assert "Nearest-neighbour matching" in summary
        assert "probability" in summary
        assert "Unmatched treated" in summary
        assert repr(self.result) == summary

    def test_assumptions(self):
        assert len(self.result.assumptions) == 4
        assert any(a.testable for a in self.result.assumptions)


class TestConfigurations:
    def test_logit_distance(self):
        result = fit(distance="logit")
        assert result.distance == "logit"
        p = np.asarray(result.model.predict())
        assert np.allclose(result.scores.to_numpy(), np.log(p / (1 - p)))

    def test_probit_link(self):
        result = fit(link="probit")
        assert result.link == "probit"
        assert "Probit" in type(result.model.model.family.link).__name__

    def test_ratio_two(self):
        result = fit(ratio=2)
        assert result.ratio == 2
        sizes = result.dataset.groupby("cluster").size()
        assert (sizes <= 3).all()

    def test_replacement_weights(self):
        result = fit(replacement=True)
        ds = result.dataset
        assert result.replacement is True
        assert "total_weight" in ds.columns
        assert (ds["total_weight"] > 0).all()
        assert ds["id"].is_unique
        assert ds.loc[ds["treatment"] == 1, "total_weight"].mean() == pytest.approx(1.0)

    def test_discard_with_replacement_warns_and_does_nothing(self):
        with pytest.warns(UserWarning, match="discard is ignored"):
            result = PropensityScoreMatching(FORMULA, ratio=2, replacement=True, discard=True).fit(make_data())
        pd.testing.assert_frame_equal(result.dataset, fit(ratio=2, replacement=True).dataset)

    def test_boolean_treatment(self):
        df = make_data().assign(treatment=lambda d: d["treatment"].astype(bool))
        result = PropensityScoreMatching(FORMULA).fit(df)
        baseline = fit()
        assert result.dataset["id"].tolist() == baseline.dataset["id"].tolist()


class TestProperties:
    @pytest.mark.parametrize("ratio", [1, 3])
    @pytest.mark.parametrize("order", ["largest", "smallest", "random"])
    def test_no_control_reuse_without_replacement(self, ratio, order):
        ds = fit(ratio=ratio, order=order, caliper=0.2).dataset
        assert ds["id"].is_unique

    def test_order_changes_result(self):
        largest = fit(order="largest").dataset
        smallest = fit(order="smallest").dataset
        assert not largest.equals(smallest)

    def test_random_order_is_deterministic(self):
        a = fit(order="random", seed=123, ratio=2)
        b = fit(order="random", seed=123, ratio=2)
        pd.testing.assert_frame_equal(a.dataset, b.dataset)
        assert a.unmatched_ids == b.unmatched_ids

    def test_random_seed_not_affected_by_global_state(self):
        np.random.seed(0)
        a = fit(order="random", seed=5)
        np.random.seed(1)
        b = fit(order="random", seed=5)
        pd.testing.assert_frame_equal(a.dataset, b.dataset)

    @pytest.mark.parametrize("caliper", [0.01, 0.1, 0.5])
    def test_caliper_only_removes_matches(self, caliper):
        assert len(fit(caliper=math.inf).dataset) >= len(fit(caliper=caliper).dataset)

    def test_tight_caliper_leaves_units_unmatched(self):
        with pytest.warns(UserWarning, match="could not be matched"):
            result = PropensityScoreMatching(FORMULA, caliper=0.001).fit(make_data())
        assert len(result.unmatched_ids) > 0
        assert set(result.unmatched_ids).isdisjoint(result.dataset["id"])

    @pytest.mark.parametrize("ratio", [2, 5])
    def test_discard_only_removes_rows(self, ratio):
        keep = fit(ratio=ratio, discard=False).dataset
        drop = fit(ratio=ratio, discard=True).dataset
        assert len(keep) >= len(drop)
        assert (drop.groupby("cluster").size() == ratio + 1).all()

    def test_discard_with_high_ratio_drops_clusters(self):
        keep = fit(ratio=5, discard=False)
        drop = fit(ratio=5, discard=True)
        assert drop.n_clusters < keep.n_clusters


class TestMahalanobis:
    @classmethod
    def setup_class(cls):
        cls.df     = make_data()
        cls.result = PropensityScoreMatching(
            "treatment ~ age + cholesterol", distance="mahalanobis"
        ).fit(cls.df)

    def test_records_distance(self):
        assert self.result.distance == "mahalanobis"
        assert self.result.model is None
        assert self.result.scores is None
        assert self.result.link is None

    def test_all_treated_matched(self):
        assert self.result.unmatched_ids == []
        assert self.result.dataset["id"].is_unique

    def test_pairs_are_close_in_covariates(self):
        ds = self.result.dataset
        treated = ds[ds["treatment"] == 1].set_index("cluster")["age"]
        control = ds[ds["treatment"] == 0].set_index("cluster")["age"]
        matched_gap = (treated - control.loc[treated.index]).abs().mean()
        random_gap = (self.df["age"] - self.df["age"].sample(frac=1, random_state=0).to_numpy()).abs().mean()
        assert matched_gap < random_gap

    def test_caliper_ignored_with_warning(self):
        with pytest.warns(UserWarning, match="caliper is ignored"):
            result = PropensityScoreMatching(
                "treatment ~ age + cholesterol", distance="mahalanobis", caliper=0.1
            ).fit(self.df)
        assert math.isinf(result.caliper_threshold)
        pd.testing.assert_frame_equal(result.dataset, self.result.dataset)

    def test_propensity_ignored_with_warning(self):
        with pytest.warns(UserWarning, match="propensity is ignored"):
            PropensityScoreMatching(
                "treatment ~ age + cholesterol", distance="mahalanobis"
            ).fit(self.df, propensity=np.full(len(self.df), 0.5))

    def test_exhausted_controls(self):
        # 300 treated, 100 controls: the last 200 treated in line find nothing.
        df = self.df.assign(treatment=(np.arange(N) < 300).astype(int))
        with pytest.warns(UserWarning, match="exhausted"):
            result = PropensityScoreMatching(
                "treatment ~ age + cholesterol", distance="mahalanobis"
            ).fit(df)
        assert result.unmatched_ids == list(range(101, 301))
        assert result.n_clusters == 100

    def test_categorical_term_expands_like_numeric_indicator(self):
        categorical = PropensityScoreMatching(
            "treatment ~ age + cholesterol + C(sex)", distance="mahalanobis"
        ).fit(self.df)
        numeric = PropensityScoreMatching(
            "treatment ~ age + cholesterol + sex", distance="mahalanobis"
        ).fit(self.df)
        pd.testing.assert_frame_equal(categorical.dataset, numeric.dataset)

    def test_string_covariate_is_dummy_coded(self):
        labelled = self.df.assign(sex=self.df["sex"].map({0: "f", 1: "m"}))
        result = PropensityScoreMatching(
            "treatment ~ age + cholesterol + sex", distance="mahalanobis"
        ).fit(labelled)
        numeric = PropensityScoreMatching(
            "treatment ~ age + cholesterol + sex", distance="mahalanobis"
        ).fit(self.df)
        assert result.dataset["id"].tolist() == numeric.dataset["id"].tolist()
        assert set(result.dataset["sex"]) == {"f", "m"}

    def test_non_finite_covariates_raise(self):
        df = self.df.copy()
        df.loc[df.index[df["treatment"] == 0][0], "age"] = np.inf
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", RuntimeWarning)
            with pytest.raises(SingularCovariance):
                PropensityScoreMatching(
                    "treatment ~ age + cholesterol", distance="mahalanobis"
                ).fit(df)
