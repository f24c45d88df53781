#!/usr/bin/env python
"""
Unit tests for the empirical and logit-space mixture null models.
"""

import numpy as np
import pytest
from scipy.special import expit

from infodmr import null_model
from infodmr.exceptions import FitFailure, InputShapeError
from infodmr.null_model import (
    MACHINE_EPSILON,
    EmpiricalNullModel,
    MixtureNullModel,
    from_mixture_fit,
    from_replicate_pool,
    select_null_component,
)
from infodmr.signal import IntervalSignal


def separated_scores(seed, n=1000):
    """Two populations at logit means -2 and +2, sd 0.3 each."""
    rng = np.random.default_rng(seed)
    logits = np.concatenate((rng.normal(-2.0, 0.3, n), rng.normal(2.0, 0.3, n)))
    return expit(logits)


class TestEmpiricalNullModel:
    """Tests for the replicate-pool null model."""

    def test_pvalues_non_increasing(self):
        """Test that p-values never increase with the score."""
        rng = np.random.default_rng(0)
        model = from_replicate_pool([rng.uniform(0, 1, 500)])
        grid = np.linspace(-0.5, 1.5, 200)
        p_values = model.pvalues(grid)
        assert np.all(np.diff(p_values) <= 0)

    def test_pvalue_at_pool_minimum_close_to_one(self):
        """Test the p-value at the smallest pooled score."""
        pool = np.arange(1000, dtype=float)
        model = from_replicate_pool([pool])
        assert model(pool.min()) == pytest.approx(1.0, abs=1e-2)

    def test_pvalue_beyond_pool_maximum_is_epsilon(self):
        """Test that scores above the pool are floored at machine epsilon."""
        pool = np.arange(1000, dtype=float)
        model = from_replicate_pool([pool])
        p_value = model(pool.max() + 1.0)
        assert p_value == MACHINE_EPSILON
        assert p_value > 0

    def test_pools_several_sources(self):
        """Test pooling of arrays and signals into one null sample."""
        signal = IntervalSignal.from_records([("chr1", 0, 1, 0.2), ("chr1", 1, 2, 0.4)])
        model = from_replicate_pool([signal, np.array([0.6, np.nan])])
        assert isinstance(model, EmpiricalNullModel)
        np.testing.assert_array_equal(model.null_scores, [0.2, 0.4, 0.6])
        assert model(0.4) == pytest.approx(1.0 / 3.0)

    def test_empty_pool_raises(self):
        """Test that an empty pool is rejected."""
        with pytest.raises(InputShapeError):
            from_replicate_pool([])
        with pytest.raises(InputShapeError):
            from_replicate_pool([np.array([np.nan, np.inf])])

    def test_nan_scores_give_nan(self):
        """Test that NaN scores map to NaN p-values."""
        model = from_replicate_pool([np.arange(10.0)])
        p_values = model.pvalues([np.nan, 5.0])
        assert np.isnan(p_values[0])
        assert p_values[1] == pytest.approx(0.4)


class TestSelectNullComponent:
    """Tests for the null component rule."""

    def test_converged_uses_smaller_mean_component(self):
        """Test null selection after a converged fit."""
        assert select_null_component((0.5, -1.0), (0.2, 0.9), converged=True) == (-1.0, 0.9)
        assert select_null_component((-1.0, 0.5), (0.2, 0.9), converged=True) == (-1.0, 0.2)

    def test_unconverged_takes_max_mean_and_max_sd_independently(self):
        """Test the fallback null after an unconverged fit."""
        assert select_null_component((0.5, -1.0), (0.2, 0.9), converged=False) == (0.5, 0.9)
        assert select_null_component((-1.0, 0.5), (0.2, 0.9), converged=False) == (0.5, 0.9)


class TestMixtureNullModel:
    """Tests for the logit-space mixture null model."""

    @pytest.mark.parametrize("seed", [1, 2, 3, 4, 5])
    def test_separated_populations_select_lower_component(self, seed):
        """Test that the lower of two separated populations becomes the null."""
        model = from_mixture_fit(separated_scores(seed))

        assert model.converged
        assert model.null_mean == pytest.approx(-2.0, abs=0.1)
        assert model.null_sd == pytest.approx(0.3, abs=0.05)

    def test_unconverged_fit_uses_conservative_fallback(self):
        """Test that hitting the iteration cap selects the fallback null."""
        rng = np.random.default_rng(11)
        ambiguous = expit(rng.normal(-1.0, 1.0, 500))
        model = from_mixture_fit(ambiguous, max_iter=1)

        assert not model.converged
        assert model.null_mean == max(model.component_means)
        assert model.null_sd == max(model.component_sds)

    def test_boundary_scores(self):
        """Test p-values for scores at or beyond 0 and 1."""
        model = MixtureNullModel((-2.0, 1.0), (0.5, 0.5), converged=True)
        p_values = model.pvalues([0.0, 0.1, 0.3, 1.0, -0.5, 1.5])

        interior_min = min(p_values[1], p_values[2])
        assert p_values[0] == 1.0
        assert p_values[4] == 1.0
        assert p_values[3] == interior_min
        assert p_values[5] == interior_min
        assert p_values[3] > 0

    def test_upper_boundary_without_interior_scores(self):
        """Test the upper boundary when the batch has no interior scores."""
        model = MixtureNullModel((-2.0, 1.0), (0.5, 0.5), converged=True)
        np.testing.assert_array_equal(model.pvalues([1.0, 1.0]), [MACHINE_EPSILON, MACHINE_EPSILON])

    def test_infinite_scores_follow_boundary_policy(self):
        """Test that +inf takes the batch minimum, -inf maps to 1 and NaN stays NaN."""
        model = MixtureNullModel((-2.0, 1.0), (0.5, 0.5), converged=True)
        p_values = model.pvalues([0.2, np.inf, -np.inf, np.nan])

        assert p_values[1] == p_values[0]
        assert p_values[2] == 1.0
        assert np.isnan(p_values[3])

    def test_pvalue_is_logit_normal_upper_tail(self):
        """Test that p-values follow the logit-normal upper tail."""
        model = MixtureNullModel((-2.0, 1.0), (0.5, 0.5), converged=True)
        # Score at the null median has p = 0.5
        assert model(expit(-2.0)) == pytest.approx(0.5)
        assert model(0.9) < model(0.5) < model(0.1)

    def test_pvalues_floored_at_epsilon(self):
        """Test that tiny p-values are floored at machine epsilon."""
        model = MixtureNullModel((-2.0, 1.0), (0.1, 0.1), converged=True)
        assert model(0.999) == MACHINE_EPSILON

    def test_boundary_scores_excluded_from_fit(self):
        """Test that scores of 0 and 1 do not distort the fit."""
        scores = np.concatenate((separated_scores(7), np.zeros(500), np.ones(500)))
        model = from_mixture_fit(scores)
        assert model.null_mean == pytest.approx(-2.0, abs=0.1)

    def test_tolerance_applies_to_total_log_likelihood(self, monkeypatch):
        """Test that the stopping tolerance is scaled to the per-sample lower bound sklearn monitors."""
        recorded = {}

        class RecordingMixture(null_model.GaussianMixture):
            def fit(self, X, y=None):
                recorded["tol"] = self.tol
                recorded["n_samples"] = len(X)
                return super().fit(X, y)

        monkeypatch.setattr(null_model, "GaussianMixture", RecordingMixture)
        scores = np.concatenate((separated_scores(2), np.zeros(10), np.ones(10)))
        from_mixture_fit(scores, tol=1e-8)

        assert recorded["n_samples"] == 2000
        assert recorded["tol"] == pytest.approx(1e-8 / 2000)

    def test_too_few_distinct_values_raise(self):
        """Test that fewer than two distinct usable scores fail the fit."""
        with pytest.raises(FitFailure):
            from_mixture_fit(np.full(100, 0.3))
        with pytest.raises(FitFailure):
            from_mixture_fit(np.array([0.0, 1.0, 1.0, np.nan]))

    def test_describe_reports_kind(self):
        """Test the diagnostic description of a fitted model."""
        model = from_mixture_fit(separated_scores(1))
        description = model.describe()
        assert description["kind"] == "mixture"
        assert description["converged"] is True


if __name__ == "__main__":
    pytest.main()
