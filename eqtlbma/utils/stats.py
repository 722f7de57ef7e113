"""
Statistical utilities for eQTL analysis
"""

import numpy as np
from typing import Optional
from scipy import special, stats

def log10_weighted_sum(values: np.ndarray, weights: Optional[np.ndarray] = None,
                       axis: int = -1) -> np.ndarray:
    """Compute log10(sum_i w_i * 10^v_i) without under/overflow

    Args:
        values: log10 values, summed along ``axis``
        weights: Weights broadcastable to ``values`` along ``axis``
            (default: uniform 1/n)
        axis: Axis to reduce

    Returns:
        Reduced array (NaN wherever any value along ``axis`` is NaN)
    """
    values = np.asarray(values, dtype=np.float64)
    n = values.shape[axis]
    if weights is None:
        weights = np.full(n, 1.0 / n)
    weights = np.asarray(weights, dtype=np.float64)
    values = np.moveaxis(values, axis, -1)

    with np.errstate(invalid='ignore'):
        vmax = np.max(values, axis=-1, keepdims=True)
    finite_max = np.where(np.isfinite(vmax), vmax, 0.0)
    with np.errstate(over='ignore', invalid='ignore', divide='ignore'):
        total = np.sum(weights * np.power(10.0, values - finite_max), axis=-1)
        result = finite_max[..., 0] + np.log10(total)
    return result


def nan_log10_mean(values: np.ndarray, axis: int = -1) -> np.ndarray:
    """Equally-weighted log10 average over the finite entries along ``axis``

    NaN entries (untestable configurations) are left out and the weights
    renormalized; the result is NaN only when every entry is NaN.
    """
    values = np.asarray(values, dtype=np.float64)
    values = np.moveaxis(values, axis, -1)
    valid = ~np.isnan(values)
    counts = valid.sum(axis=-1)
    filled = np.where(valid, values, -np.inf)
    with np.errstate(invalid='ignore'):
        vmax = np.max(filled, axis=-1, keepdims=True)
    finite_max = np.where(np.isfinite(vmax), vmax, 0.0)
    with np.errstate(divide='ignore', invalid='ignore', over='ignore'):
        total = np.sum(np.power(10.0, filled - finite_max), axis=-1)
        result = finite_max[..., 0] + np.log10(total) - np.log10(counts)
    return np.where(counts > 0, result, np.nan)


def quantile_normalize(y: np.ndarray) -> np.ndarray:
    """Replace values by standard-normal quantiles of their ranks

    Uses R's ppoints offsets (i - a) / (n + 1 - 2a), a = 3/8 if n <= 10
    else 1/2, with averaged ranks for ties.
    """
    y = np.asarray(y, dtype=np.float64)
    n = y.size
    if n == 0:
        return y.copy()
    a = 3.0 / 8.0 if n <= 10 else 0.5
    ranks = stats.rankdata(y, method='average')
    return special.ndtri((ranks - a) / (n + 1 - 2 * a))


def calculate_maf_from_dosages(dosages: np.ndarray, is_na: Optional[np.ndarray] = None,
                               max_dosage: float = 2.0) -> float:
    """Minor allele frequency of one marker from its allele dosages

    Args:
        dosages: Allele dosages in [0, max_dosage]
        is_na: Missingness flags (same length as dosages)
        max_dosage: Ploidy, 2 for diploids

    Returns:
        MAF in [0, 0.5], NaN if every sample is missing
    """
    dosages = np.asarray(dosages, dtype=np.float64)
    if is_na is None:
        is_na = np.isnan(dosages)
    observed = dosages[~np.asarray(is_na, dtype=bool)]
    if observed.size == 0:
        return float('nan')
    freq = observed.mean() / max_dosage
    return float(min(freq, 1.0 - freq))
