import numpy as np
import pytest
from scipy import stats

import importlib

ols_mod = importlib.import_module("eqtlbma.association.ols")
from eqtlbma.association.ols import OLSBatch, ols, ols_batch


def test_zero_genotype_variance_is_degenerate_fit() -> None:
    y = np.array([1.0, 2.5, 0.3, 4.0, 2.2])
    for n in (2, 3, 5):
        res = ols(np.full(n, 1.0), y[:n])
        assert res.betahat == 0.0
        assert np.isinf(res.sebetahat)
        assert res.pval == 1.0
        assert res.pve == 0.0
        if n > 2:
            expected_sigma = np.sqrt(np.sum((y[:n] - y[:n].mean()) ** 2) / (n - 2))
            assert res.sigmahat == pytest.approx(expected_sigma)


def test_noise_free_recovers_slope() -> None:
    g = np.array([0.0, 1.0, 2.0, 1.0, 0.0, 2.0])
    y = 0.5 + 1.7 * g

    res = ols(g, y)

    assert res.betahat == pytest.approx(1.7)
    assert res.sigmahat == pytest.approx(0.0, abs=1e-7)
    assert res.pve == pytest.approx(1.0)
    assert res.pval == pytest.approx(0.0, abs=1e-12)


def test_matches_scipy_linregress() -> None:
    rng = np.random.default_rng(3)
    g = rng.integers(0, 3, size=40).astype(float)
    y = 0.3 * g + rng.normal(size=40)

    res = ols(g, y)
    ref = stats.linregress(g, y)

    assert res.betahat == pytest.approx(ref.slope)
    assert res.sebetahat == pytest.approx(ref.stderr)
    assert res.pval == pytest.approx(ref.pvalue)
    assert res.pve == pytest.approx(ref.rvalue ** 2)


def test_matches_statsmodels_ols() -> None:
    sm = pytest.importorskip("statsmodels.api")
    rng = np.random.default_rng(11)
    g = rng.uniform(0, 2, size=25)
    y = -0.8 * g + rng.normal(scale=0.5, size=25)

    res = ols(g, y)
    fit = sm.OLS(y, sm.add_constant(g)).fit()

    assert res.betahat == pytest.approx(fit.params[1])
    assert res.sebetahat == pytest.approx(fit.bse[1])
    assert res.sigmahat == pytest.approx(np.sqrt(fit.scale))
    assert res.pval == pytest.approx(fit.f_pvalue)
    assert res.pve == pytest.approx(fit.rsquared)


def test_batch_skips_missing_pairs_per_marker() -> None:
    rng = np.random.default_rng(5)
    G = rng.integers(0, 3, size=(30, 3)).astype(float)
    y = G[:, 0] + rng.normal(size=30)
    G[[2, 7], 1] = np.nan
    y[4] = np.nan

    out = ols_batch(G, y)

    np.testing.assert_array_equal(out.n, [29, 27, 29])
    keep = ~np.isnan(G[:, 1]) & ~np.isnan(y)
    ref = stats.linregress(G[keep, 1], y[keep])
    assert out.betahat[1] == pytest.approx(ref.slope)
    assert out.pval[1] == pytest.approx(ref.pvalue)


def test_batch_with_fewer_than_two_pairs_keeps_nan() -> None:
    G = np.array([[1.0], [np.nan], [np.nan]])
    y = np.array([0.5, 1.0, 2.0])

    out = ols_batch(G, y)

    assert out.n[0] == 1
    assert np.isnan(out.betahat[0])
    assert np.isnan(out.pval[0])


def test_batch_reuses_buffer() -> None:
    G = np.array([[0.0, 1.0], [1.0, 1.0], [2.0, 1.0], [1.0, 1.0]])
    buffer = OLSBatch(2)

    first = ols_batch(G, np.array([0.1, 1.1, 2.0, 0.9]), out=buffer)
    second = ols_batch(G, np.array([2.0, 1.0, 0.1, 1.1]), out=buffer)

    assert first is buffer and second is buffer
    assert buffer.betahat[0] < 0
    assert np.isinf(buffer.sebetahat[1])

    with pytest.raises(ValueError):
        ols_batch(G, np.zeros(4), out=OLSBatch(3))


def test_qnorm_normalizes_per_marker() -> None:
    G = np.array([[0.0], [1.0], [2.0], [1.0], [0.0], [2.0]])
    y = np.array([1.0, 5.0, 100.0, 4.0, 0.5, 50.0])

    out = ols_batch(G, y, qnorm=True)
    qy = ols_mod.quantile_normalize(y)
    ref = stats.linregress(G[:, 0], qy)

    assert out.betahat[0] == pytest.approx(ref.slope)


def test_ols_rejects_bad_shapes() -> None:
    with pytest.raises(ValueError):
        ols(np.zeros(3), np.zeros(4))
    with pytest.raises(ValueError):
        ols(np.zeros(1), np.zeros(1))
