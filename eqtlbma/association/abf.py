"""
Approximate Bayes factors for the joint analysis of all subgroups.

Effect-size model (per grid point phi2, oma2): the standardized effect of
subgroup s is b_s = bbar + delta_s with bbar ~ N(0, oma2) and
delta_s ~ N(0, phi2). For the subgroups with evidence (n > 1, |t| > 1e-8):

    log10 ABF = l10ABF(bbarhat; var(bbarhat), oma2)
                + sum_s l10ABF(bhat_s; var(bhat_s), phi2)

    l10ABF(b; v, w) = 0.5 log10(v / (v + w)) + 0.5 T2 w / (v + w) / ln(10)

where bbarhat is the inverse-variance weighted mean of the bhat_s (weights
1 / (var(bhat_s) + phi2)) and T2 the squared z-score of the mean.

Configurations say which subgroups carry the effect. Subgroups outside a
configuration are treated as having no evidence. Labels are the sorted
1-based subgroup indices joined by "-"; "const" is the full set and comes
in three flavours (general grid, fixed effect, maximal heterogeneity).
"""

from itertools import combinations
from typing import Dict, Iterator, Optional, Tuple

import numpy as np

from ..utils.data_types import HyperGrid
from ..utils.stats import log10_weighted_sum, nan_log10_mean
from .standardize import T_TOL, StdSumStats

LN10 = np.log(10.0)

CONST = 'const'
CONST_FIX = 'const-fix'
CONST_MAXH = 'const-maxh'


def abf_from_std_sumstats(n, bhat, sebhat, t, phi2, oma2) -> np.ndarray:
    """log10 ABF from standardized summary statistics

    Args:
        n: Sample sizes, shape (..., n_subgroups)
        bhat, sebhat, t: Standardized triples, same shape as ``n``
        phi2, oma2: Scalars, or 1-D arrays of the same length (grid points)

    Returns:
        Array of shape (...) for scalar phi2/oma2, else (..., n_grid)
    """
    n = np.asarray(n)
    bhat = np.asarray(bhat, dtype=np.float64)
    sebhat = np.asarray(sebhat, dtype=np.float64)
    t = np.asarray(t, dtype=np.float64)
    phi2 = np.asarray(phi2, dtype=np.float64)
    oma2 = np.asarray(oma2, dtype=np.float64)
    scalar_grid = phi2.ndim == 0
    phi2 = np.atleast_1d(phi2)[:, np.newaxis]
    oma2 = np.atleast_1d(oma2)

    active = ((n > 1) & (np.abs(t) >= T_TOL))[..., np.newaxis, :]
    b = np.where(active, bhat[..., np.newaxis, :], 0.0)
    v = np.where(active, sebhat[..., np.newaxis, :] ** 2, 1.0)
    t2 = np.where(active, t[..., np.newaxis, :] ** 2, 0.0)

    with np.errstate(divide='ignore', invalid='ignore'):
        denom = v + phi2
        w = np.where(active, 1.0 / denom, 0.0)
        single = np.where(
            active,
            0.5 * np.log10(v) - 0.5 * np.log10(denom) + (0.5 * t2 * phi2 / denom) / LN10,
            0.0,
        )

        sum_w = w.sum(axis=-1)
        has_w = sum_w != 0
        bbar = np.where(has_w, (w * b).sum(axis=-1) / np.where(has_w, sum_w, 1.0), 0.0)
        var_bbar = np.where(has_w, 1.0 / np.where(has_w, sum_w, 1.0), np.inf)
        T2 = bbar ** 2 / var_bbar
        l10_bbar = np.where(
            T2 != 0,
            0.5 * np.log10(var_bbar) - 0.5 * np.log10(var_bbar + oma2)
            + (0.5 * T2 * oma2 / (var_bbar + oma2)) / LN10,
            0.0,
        )

    total = l10_bbar + single.sum(axis=-1)
    return total[..., 0] if scalar_grid else total


def iter_configurations(n_subgroups: int,
                        max_size: Optional[int] = None) -> Iterator[Tuple[str, np.ndarray]]:
    """Yield (label, membership mask) for every proper, non-empty subset

    Subsets come by increasing size, lexicographically within a size. The
    full set is left out ("const" covers it). ``max_size=1`` gives the
    subgroup-specific configurations only.
    """
    last = n_subgroups - 1 if max_size is None else min(max_size, n_subgroups - 1)
    for k in range(1, last + 1):
        for members in combinations(range(n_subgroups), k):
            mask = np.zeros(n_subgroups, dtype=bool)
            mask[list(members)] = True
            yield '-'.join(str(s + 1) for s in members), mask


def _grid_abfs(n, std: StdSumStats, grid: HyperGrid) -> np.ndarray:
    return abf_from_std_sumstats(n, std.bhat, std.sebhat, std.t, grid.phi2, grid.oma2)


def compute_abfs(n, std: StdSumStats, grid: HyperGrid, bfs: str = 'const',
                 const_variants: bool = True
                 ) -> Tuple[Dict[str, np.ndarray], Dict[str, np.ndarray], Dict[str, np.ndarray]]:
    """Bayes factors of every configuration of the ``bfs`` family

    Args:
        n: Sample sizes (..., n_subgroups)
        std: Standardized statistics, same shape as ``n``
        grid: Hyperparameter grid
        bfs: 'const', 'subset' (adds one configuration per subgroup) or
            'all' (adds every proper subset)
        const_variants: Also compute const-fix and const-maxh

    Returns:
        (unweighted, weighted, summary). unweighted maps a label to
        (..., n_grid) log10 ABFs, weighted maps a label to the grid average
        (...). summary maps a family to its test statistic: the const ABF
        for 'const', the log10 average of const and the family's
        configurations for 'subset' and 'all'. Configurations without any
        subgroup of more than one sample are NaN. Summaries skip them and
        average the remaining entries with renormalized equal weights.
    """
    n = np.asarray(n)
    n_subgroups = n.shape[-1]

    unweighted: Dict[str, np.ndarray] = {CONST: _grid_abfs(n, std, grid)}
    if const_variants:
        unweighted[CONST_FIX] = _grid_abfs(n, std, grid.fixed_effect())
        unweighted[CONST_MAXH] = _grid_abfs(n, std, grid.max_heterogeneity())

    if bfs != 'const':
        max_size = 1 if bfs == 'subset' else None
        for label, mask in iter_configurations(n_subgroups, max_size):
            n_config = np.where(mask, n, 0)
            l10_abfs = _grid_abfs(n_config, std, grid)
            testable = np.any(n_config > 1, axis=-1)
            unweighted[label] = np.where(testable[..., np.newaxis], l10_abfs, np.nan)

    weighted = {
        label: log10_weighted_sum(values, grid.weights)
        for label, values in unweighted.items()
    }

    summary = {'const': weighted[CONST]}
    if bfs in ('subset', 'all'):
        singles = [weighted[label] for label, _ in iter_configurations(n_subgroups, 1)]
        summary['subset'] = nan_log10_mean(np.stack([weighted[CONST]] + singles, axis=-1))
    if bfs == 'all':
        configs = [weighted[label] for label, _ in iter_configurations(n_subgroups)]
        summary['all'] = nan_log10_mean(np.stack([weighted[CONST]] + configs, axis=-1))
    return unweighted, weighted, summary


def joint_statistic(n, std: StdSumStats, grid: HyperGrid, family: str) -> np.ndarray:
    """Joint statistic of the ``family`` used to calibrate permutations"""
    _, _, summary = compute_abfs(n, std, grid, bfs=family, const_variants=False)
    return summary[family]
