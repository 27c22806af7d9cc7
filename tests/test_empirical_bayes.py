"""
Tests for the empirical Bayes prior estimate and variance squeezing.
"""

import numpy as np
import pytest
from scipy.special import polygamma

from sexdeg.stats.empirical_bayes import fit_f_dist, squeeze_var, trigamma_inverse


class TestTrigammaInverse:

    @pytest.mark.parametrize("y", [0.05, 0.5, 1.0, 3.0, 25.0, 400.0])
    def test_inverts_trigamma(self, y):
        x = float(polygamma(1, y))
        assert trigamma_inverse(x) == pytest.approx(y, rel=1e-6)

    def test_non_positive(self):
        assert np.isinf(trigamma_inverse(0.0))
        assert np.isinf(trigamma_inverse(-1.0))

    def test_asymptotic_branches(self):
        assert trigamma_inverse(1e8) == pytest.approx(1 / np.sqrt(1e8))
        assert trigamma_inverse(1e-7) == pytest.approx(1e7)


class TestFitFDist:

    def test_recovers_prior(self):
        rng = np.random.default_rng(1)
        n_genes, df, d0, s0_sq = 20000, 4.0, 10.0, 0.5
        # s² = s0² × F(df, d0)
        sigma2 = s0_sq * (rng.chisquare(df, n_genes) / df) / (rng.chisquare(d0, n_genes) / d0)

        d0_hat, s0_sq_hat = fit_f_dist(sigma2, df)

        assert d0_hat == pytest.approx(d0, rel=0.3)
        assert s0_sq_hat == pytest.approx(s0_sq, rel=0.1)

    def test_identical_variances_pool_completely(self):
        d0, s0_sq = fit_f_dist(np.full(50, 0.3), 8.0)

        assert np.isinf(d0)
        assert s0_sq > 0

    def test_per_gene_df(self):
        rng = np.random.default_rng(2)
        sigma2 = rng.chisquare(6, 500) / 6
        df = np.where(np.arange(500) % 2 == 0, 6.0, 5.0)

        d0, s0_sq = fit_f_dist(sigma2, df)

        assert d0 > 0
        assert np.isfinite(s0_sq)

    def test_ignores_unusable_entries(self):
        rng = np.random.default_rng(3)
        sigma2 = rng.chisquare(4, 200) / 4
        with_junk = np.concatenate([sigma2, [np.nan, np.inf]])
        df = np.concatenate([np.full(200, 4.0), [4.0, 4.0]])

        assert fit_f_dist(with_junk, df) == pytest.approx(fit_f_dist(sigma2, 4.0))

    def test_degenerate_inputs(self):
        d0, s0_sq = fit_f_dist(np.array([]), 4.0)
        assert np.isinf(d0) and np.isnan(s0_sq)

        assert fit_f_dist(np.array([0.7]), 4.0) == (0.0, 0.7)

    def test_zero_variance_floored(self):
        rng = np.random.default_rng(4)
        sigma2 = np.concatenate([rng.chisquare(4, 100) / 4, [0.0]])
        d0, s0_sq = fit_f_dist(sigma2, 4.0)
        assert np.isfinite(s0_sq)


class TestSqueezeVar:

    def test_weighted_average(self):
        s2_post, df_total = squeeze_var(np.array([1.0, 4.0]), np.array([2.0, 6.0]), d0=4.0, s0_sq=2.0)

        np.testing.assert_allclose(s2_post, [(4 * 2 + 2 * 1) / 6, (4 * 2 + 6 * 4) / 10])
        np.testing.assert_allclose(df_total, [6.0, 10.0])

    def test_posterior_between_sample_and_prior(self):
        sigma2 = np.array([0.1, 0.5, 3.0])
        s2_post, _ = squeeze_var(sigma2, 4.0, d0=5.0, s0_sq=0.5)

        assert s2_post[0] > sigma2[0]
        assert s2_post[1] == pytest.approx(0.5)
        assert s2_post[2] < sigma2[2]

    def test_no_moderation(self):
        sigma2 = np.array([0.2, 1.5])
        s2_post, df_total = squeeze_var(sigma2, 3.0, d0=0.0, s0_sq=1.0)

        np.testing.assert_allclose(s2_post, sigma2)
        np.testing.assert_allclose(df_total, [3.0, 3.0])

    def test_infinite_prior_df(self):
        s2_post, df_total = squeeze_var(np.array([0.2, np.nan, 5.0]), 4.0, d0=np.inf, s0_sq=0.8)

        np.testing.assert_allclose(s2_post, [0.8, np.nan, 0.8])
        assert np.all(np.isinf(df_total))
