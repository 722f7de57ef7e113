"""
Feature-level association scan over the cis window.

For one feature:
1. find the markers of the catalog inside the cis window (once, frozen);
2. align phenotypes (subgroups x samples) and cis genotypes
   (samples x markers) on the global sample order;
3. regress each subgroup's phenotype on every cis marker;
4. for the joint analysis, standardize the per-subgroup statistics and
   compute the Bayes factors of every configuration.

Steps 3-4 are shared with the permutation engine, which calls them with a
shuffled sample order and a reusable AssociationScratch.
"""

from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from ..utils.data_types import (
    AssociationRecord, Feature, HyperGrid, MarkerCatalog, SampleIndex,
)
from .abf import compute_abfs
from .ols import OLSBatch, ols_batch
from .standardize import StdSumStats, standardize_sumstats


def find_cis_markers(feature: Feature, catalog: MarkerCatalog,
                     anchor: str = 'FSS', cis: int = 100000) -> List[int]:
    """Arena indices of the markers within the cis window of ``feature``

    The window is [start - cis, start + cis] for anchor 'FSS' and
    [start - cis, end + cis] for 'FSS+FES' (1-based, inclusive, clipped at 0).
    """
    first, last = catalog.chrom_slice(feature.chrom)
    if first == last:
        return []
    lower = max(feature.start - cis, 0)
    if anchor == 'FSS+FES':
        upper = feature.end + cis
    elif anchor == 'FSS':
        upper = feature.start + cis
    else:
        raise ValueError(f"Unknown anchor: {anchor}")
    positions = catalog.positions[first:last]
    lo = first + int(np.searchsorted(positions, lower, side='left'))
    hi = first + int(np.searchsorted(positions, upper, side='right'))
    return list(range(lo, hi))


@dataclass
class FeatureData:
    """Aligned inputs of one feature, self-contained for worker processes."""

    name: str
    snps: List[str]
    cis_markers: List[int]
    phenotypes: np.ndarray  # n_subgroups x n_samples
    genotypes: np.ndarray  # n_samples x n_cis_markers
    has_phenotypes: np.ndarray

    @property
    def n_subgroups(self) -> int:
        return self.phenotypes.shape[0]

    @property
    def n_samples(self) -> int:
        return self.phenotypes.shape[1]

    @property
    def n_markers(self) -> int:
        return self.genotypes.shape[1]


def prepare_feature_data(feature: Feature, catalog: MarkerCatalog,
                         sample_index: SampleIndex) -> FeatureData:
    return FeatureData(
        name=feature.name,
        snps=[catalog[idx].name for idx in feature.cis_markers],
        cis_markers=list(feature.cis_markers),
        phenotypes=feature.aligned_phenotypes(sample_index),
        genotypes=catalog.aligned_genotypes(feature.cis_markers, sample_index),
        has_phenotypes=np.array([feature.has_phenotypes(s) for s in range(feature.n_subgroups)]),
    )


class AssociationScratch:
    """Reusable per-subgroup regression buffers for one feature."""

    def __init__(self, n_subgroups: int, n_markers: int):
        self.batches = [OLSBatch(n_markers) for _ in range(n_subgroups)]

    def stacked(self, attr: str) -> np.ndarray:
        """(n_markers x n_subgroups) view of one statistic"""
        return np.column_stack([getattr(batch, attr) for batch in self.batches])

    def std_sumstats(self) -> StdSumStats:
        return standardize_sumstats(
            self.stacked('n'), self.stacked('betahat'),
            self.stacked('sebetahat'), self.stacked('sigmahat'),
        )


def compute_sumstats(data: FeatureData, scratch: AssociationScratch,
                     qnorm: bool = False, perm: Optional[np.ndarray] = None,
                     subgroup: Optional[int] = None) -> AssociationScratch:
    """Regress the (optionally permuted) phenotypes on every cis marker

    ``perm[i]`` is the sample whose phenotype is paired with the genotype of
    sample ``i``. Restrict the work to one subgroup with ``subgroup``.
    """
    subgroups = range(data.n_subgroups) if subgroup is None else [subgroup]
    for s in subgroups:
        batch = scratch.batches[s]
        if not data.has_phenotypes[s]:
            batch.reset()
            continue
        y = data.phenotypes[s] if perm is None else data.phenotypes[s][perm]
        ols_batch(data.genotypes, y, out=batch, qnorm=qnorm)
    return scratch


def infer_associations(data: FeatureData, qnorm: bool = False,
                       grid: Optional[HyperGrid] = None,
                       bfs: Optional[str] = None) -> List[AssociationRecord]:
    """Association records of every cis marker (true sample labels)

    Bayes factors are computed only when ``bfs`` is given (joint analysis).
    """
    scratch = compute_sumstats(data, AssociationScratch(data.n_subgroups, data.n_markers), qnorm)
    n = scratch.stacked('n')
    betahat = scratch.stacked('betahat')
    sebetahat = scratch.stacked('sebetahat')
    sigmahat = scratch.stacked('sigmahat')
    pval = scratch.stacked('pval')
    pve = scratch.stacked('pve')

    std = None
    if bfs is not None:
        if grid is None:
            raise ValueError("The joint analysis needs a grid")
        std = standardize_sumstats(n, betahat, sebetahat, sigmahat)
        unweighted, weighted, summary = compute_abfs(n, std, grid, bfs=bfs)
        std_triples = std.stack()

    records = []
    for j, snp in enumerate(data.snps):
        record = AssociationRecord(
            marker=data.cis_markers[j],
            snp=snp,
            n=n[j].copy(),
            betahat=betahat[j].copy(),
            sebetahat=sebetahat[j].copy(),
            sigmahat=sigmahat[j].copy(),
            pval=pval[j].copy(),
            pve=pve[j].copy(),
        )
        if std is not None:
            record.std_sstats = std_triples[j].copy()
            record.unweighted_abfs = {label: values[j].copy() for label, values in unweighted.items()}
            record.weighted_abfs = {label: float(values[j]) for label, values in weighted.items()}
            record.summary_abfs = {family: float(values[j]) for family, values in summary.items()}
        records.append(record)
    return records
