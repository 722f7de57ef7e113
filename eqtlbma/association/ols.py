"""
Simple linear regression of a phenotype on one marker at a time.

Model: y_i = mu + beta * g_i + e_i with e_i ~ N(0, sigma^2)

Algorithm (per marker j, closed form, no iterative solver):
- Keep the samples whose phenotype and genotype are both observed (NaN
  marks a missing value in the aligned vectors).
- Centered sums: vg = sum (g - gbar)^2, syy = sum (y - ybar)^2,
  sgy = sum (g - gbar)(y - ybar).
- vg <= 1e-8: the genotype does not vary, report beta=0, se=inf, p=1,
  R2=0 and sigma from the null residuals.
- Otherwise beta = sgy / vg, RSS = syy - beta * sgy,
  sigma = sqrt(RSS / (n - 2)) (null residuals when |beta| <= 1e-8),
  se = sigma / sqrt(vg), F = beta^2 vg / sigma^2 ~ F(1, n - 2),
  R2 = MSS / (MSS + RSS).

The sums are computed by a Numba kernel over all markers of a block, and
the F tails are evaluated afterwards in one vectorized scipy call.
"""

from typing import NamedTuple, Optional

import numba
import numpy as np
from scipy import special

from ..utils.stats import quantile_normalize

VG_TOL = 1e-8
BETA_TOL = 1e-8


class OLSResult(NamedTuple):
    betahat: float
    sebetahat: float
    sigmahat: float
    pval: float
    pve: float


class OLSBatch:
    """Per-marker regression outputs, reusable across calls of ``ols_batch``."""

    __slots__ = ('n', 'betahat', 'sebetahat', 'sigmahat', 'pval', 'pve', 'fstat')

    def __init__(self, n_markers: int):
        self.n = np.zeros(n_markers, dtype=np.int64)
        self.betahat = np.full(n_markers, np.nan)
        self.sebetahat = np.full(n_markers, np.nan)
        self.sigmahat = np.full(n_markers, np.nan)
        self.pval = np.full(n_markers, np.nan)
        self.pve = np.full(n_markers, np.nan)
        self.fstat = np.full(n_markers, np.nan)

    def __len__(self) -> int:
        return self.n.size

    def reset(self) -> None:
        self.n[:] = 0
        for arr in (self.betahat, self.sebetahat, self.sigmahat, self.pval, self.pve, self.fstat):
            arr[:] = np.nan


@numba.jit(nopython=True, cache=True, error_model='numpy')
def _ols_kernel(G, y, n_out, beta_out, se_out, sigma_out, fstat_out, pve_out):
    n_samples, n_markers = G.shape
    for j in range(n_markers):
        n = 0
        gm = 0.0
        ym = 0.0
        for i in range(n_samples):
            g = G[i, j]
            yi = y[i]
            if np.isnan(g) or np.isnan(yi):
                continue
            n += 1
            gm += g
            ym += yi
        n_out[j] = n
        if n < 2:
            continue
        gm /= n
        ym /= n

        vg = 0.0
        syy = 0.0
        sgy = 0.0
        for i in range(n_samples):
            g = G[i, j]
            yi = y[i]
            if np.isnan(g) or np.isnan(yi):
                continue
            dg = g - gm
            dy = yi - ym
            vg += dg * dg
            syy += dy * dy
            sgy += dg * dy

        if vg > VG_TOL:
            beta = sgy / vg
            rss1 = syy - beta * sgy
            if rss1 < 0.0:
                rss1 = 0.0
            if abs(beta) > BETA_TOL:
                sigma = np.sqrt(rss1 / (n - 2))
            else:
                # y not variable enough among samples
                sigma = np.sqrt(syy / (n - 2))
            mss = beta * beta * vg
            beta_out[j] = beta
            sigma_out[j] = sigma
            se_out[j] = sigma / np.sqrt(vg)
            if sigma > 0.0:
                fstat_out[j] = mss / (sigma * sigma)
            elif mss > 0.0:
                fstat_out[j] = np.inf
            else:
                fstat_out[j] = 0.0
            if mss + rss1 > 0.0:
                pve_out[j] = mss / (mss + rss1)
            else:
                pve_out[j] = 0.0
        else:
            beta_out[j] = 0.0
            sigma_out[j] = np.sqrt(syy / (n - 2))
            se_out[j] = np.inf
            fstat_out[j] = 0.0
            pve_out[j] = 0.0


def _fill_pvalues(out: OLSBatch) -> None:
    fitted = out.n > 1
    out.pval[~fitted] = np.nan
    if not np.any(fitted):
        return
    df = (out.n[fitted] - 2).astype(np.float64)
    with np.errstate(invalid='ignore', divide='ignore'):
        pval = special.fdtrc(1.0, df, out.fstat[fitted])
    # zero genotype variance is a degenerate fit, not a test
    pval[np.isinf(out.sebetahat[fitted])] = 1.0
    out.pval[fitted] = pval


def ols_batch(G: np.ndarray, y: np.ndarray, out: Optional[OLSBatch] = None,
              qnorm: bool = False) -> OLSBatch:
    """Regress one phenotype on each column of a genotype block.

    Args:
        G: Genotypes (n_samples x n_markers), NaN where missing
        y: Phenotype (n_samples,), NaN where missing
        out: Buffer to fill; allocated when None
        qnorm: Quantile-normalize the phenotype of each marker after
            dropping the samples missing for that marker

    Returns:
        The filled OLSBatch. Markers with fewer than two paired observations
        keep NaN statistics.
    """
    G = np.asarray(G, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    if G.ndim != 2 or G.shape[0] != y.shape[0]:
        raise ValueError("Genotype block must be (n_samples x n_markers) matching the phenotype")
    n_markers = G.shape[1]
    if out is None:
        out = OLSBatch(n_markers)
    elif len(out) != n_markers:
        raise ValueError(f"Buffer holds {len(out)} markers, block has {n_markers}")
    else:
        out.reset()

    if not qnorm:
        _ols_kernel(G, y, out.n, out.betahat, out.sebetahat, out.sigmahat, out.fstat, out.pve)
    else:
        y_observed = ~np.isnan(y)
        for j in range(n_markers):
            mask = y_observed & ~np.isnan(G[:, j])
            y_j = np.full_like(y, np.nan)
            y_j[mask] = quantile_normalize(y[mask])
            sl = slice(j, j + 1)
            _ols_kernel(G[:, sl], y_j, out.n[sl], out.betahat[sl], out.sebetahat[sl],
                        out.sigmahat[sl], out.fstat[sl], out.pve[sl])
    _fill_pvalues(out)
    return out


def ols(g: np.ndarray, y: np.ndarray) -> OLSResult:
    """Fit y = mu + beta * g on two aligned, fully observed vectors (n >= 2)."""
    g = np.asarray(g, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    if g.shape != y.shape or g.ndim != 1:
        raise ValueError("g and y must be 1-D vectors of equal length")
    if g.size < 2:
        raise ValueError("At least two observations are required")
    res = ols_batch(g[:, np.newaxis], y)
    return OLSResult(
        float(res.betahat[0]),
        float(res.sebetahat[0]),
        float(res.sigmahat[0]),
        float(res.pval[0]),
        float(res.pve[0]),
    )
