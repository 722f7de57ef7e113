"""
Scale-free summary statistics, corrected for small sample sizes.

For one subgroup with OLS outputs (n, betahat, se(betahat), sigmahat):
- bhat = betahat / sigmahat and sebhat = se / sigmahat remove the unit of
  the phenotype;
- the Student statistic |bhat / sebhat| with n - 2 degrees of freedom is
  mapped, through its tail probability, onto the standard-normal quantile
  t that has the same tail probability;
- bhat is rescaled so that bhat / sebhat equals t, and t takes the sign of
  betahat.

Subgroups with |t| <= 1e-8 (or a non-finite t), and subgroups with at most
one observation, get the no-evidence triple (0, inf, 0).
"""

from typing import NamedTuple

import numpy as np
from scipy import special, stats

T_TOL = 1e-8


class StdSumStats(NamedTuple):
    bhat: np.ndarray
    sebhat: np.ndarray
    t: np.ndarray

    def stack(self) -> np.ndarray:
        """Triples along the last axis: (..., 3)"""
        return np.stack([self.bhat, self.sebhat, self.t], axis=-1)


def standardize_sumstats(n, betahat, sebetahat, sigmahat) -> StdSumStats:
    """Standardize OLS outputs of any shape (element-wise)."""
    n = np.asarray(n)
    betahat = np.asarray(betahat, dtype=np.float64)
    sebetahat = np.asarray(sebetahat, dtype=np.float64)
    sigmahat = np.asarray(sigmahat, dtype=np.float64)

    with np.errstate(divide='ignore', invalid='ignore', over='ignore'):
        bhat = betahat / sigmahat
        sebhat = sebetahat / sigmahat
        df = np.where(n > 2, n - 2, np.nan).astype(np.float64)
        log_tail = stats.t.logsf(np.abs(bhat / sebhat), df)
        t_abs = -special.ndtri_exp(log_tail)
        t = np.copysign(t_abs, betahat)
        bhat_corr = t * sebhat
        sebhat_corr = bhat_corr / t
        t_corr = bhat_corr / sebhat_corr

    evidence = (n > 1) & np.isfinite(t) & (np.abs(t) > T_TOL)
    return StdSumStats(
        np.where(evidence, bhat_corr, 0.0),
        np.where(evidence, sebhat_corr, np.inf),
        np.where(evidence, t_corr, 0.0),
    )
