"""
Core data structures for eqtlbma package
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

ABSENT = -1

ANCHORS = ('FSS', 'FSS+FES')
BF_FAMILIES = ('const', 'subset', 'all')
STEPS = (1, 2, 3, 4, 5)
TRICK_MODES = (0, 1, 2)


class SampleIndex:
    """Alignment of a global sample ordering onto each subgroup

    ``pheno_idx[s, i]`` is the column of global sample ``i`` in the
    phenotype matrix of subgroup ``s`` and ``geno_idx[i]`` its column in the
    shared genotype panel. Absent samples are marked with ``ABSENT``.
    """

    def __init__(self, samples: Sequence[str], pheno_idx: np.ndarray, geno_idx: np.ndarray):
        self.samples = list(samples)
        self.pheno_idx = np.asarray(pheno_idx, dtype=np.int64)
        self.geno_idx = np.asarray(geno_idx, dtype=np.int64)
        if self.pheno_idx.ndim != 2 or self.pheno_idx.shape[1] != len(self.samples):
            raise ValueError("Phenotype index table must be (n_subgroups x n_samples)")
        if self.geno_idx.shape != (len(self.samples),):
            raise ValueError("Genotype index table must have one entry per sample")

    @property
    def n_samples(self) -> int:
        return len(self.samples)

    @property
    def n_subgroups(self) -> int:
        return self.pheno_idx.shape[0]


class HyperGrid:
    """Grid of (phi2, oma2) pairs with their weights

    phi2 is the heterogeneity of the effect between subgroups and oma2 the
    variance of the average effect. Weights default to 1/|grid|.
    """

    def __init__(self, phi2: Sequence[float], oma2: Sequence[float],
                 weights: Optional[Sequence[float]] = None):
        self.phi2 = np.asarray(phi2, dtype=np.float64).ravel()
        self.oma2 = np.asarray(oma2, dtype=np.float64).ravel()
        if self.phi2.shape != self.oma2.shape:
            raise ValueError("phi2 and oma2 must have the same length")
        if weights is None:
            weights = np.full(self.phi2.size, 1.0 / max(self.phi2.size, 1))
        else:
            weights = np.asarray(weights, dtype=np.float64).ravel()
            if weights.shape != self.phi2.shape:
                raise ValueError("Grid weights must have one value per grid point")
            if np.any(weights < 0) or weights.sum() <= 0:
                raise ValueError("Grid weights must be non-negative and not all zero")
            weights = weights / weights.sum()
        self.weights = weights

    @classmethod
    def from_pairs(cls, pairs: Sequence[Tuple[float, float]]) -> "HyperGrid":
        pairs = list(pairs)
        return cls([p[0] for p in pairs], [p[1] for p in pairs])

    def __len__(self) -> int:
        return int(self.phi2.size)

    def fixed_effect(self) -> "HyperGrid":
        """No heterogeneity: phi2=0, oma2=phi2+oma2"""
        return HyperGrid(np.zeros_like(self.phi2), self.phi2 + self.oma2, self.weights)

    def max_heterogeneity(self) -> "HyperGrid":
        """Maximal heterogeneity: phi2=phi2+oma2, oma2=0"""
        return HyperGrid(self.phi2 + self.oma2, np.zeros_like(self.oma2), self.weights)


@dataclass(frozen=True, eq=False)
class Marker:
    """One genetic variant of the shared genotype panel (read-only)."""

    name: str
    chrom: str
    pos: int
    genotypes: np.ndarray
    is_na: np.ndarray
    maf: float


class MarkerCatalog:
    """Arena of markers sorted by (chromosome, position)

    Features refer to markers through ordinal indices into ``markers``;
    each chromosome owns a contiguous slice of the arena.
    """

    def __init__(self, markers: Sequence[Marker]):
        chrom_order: Dict[str, int] = {}
        for marker in markers:
            chrom_order.setdefault(marker.chrom, len(chrom_order))
        self.markers: List[Marker] = sorted(
            markers, key=lambda m: (chrom_order[m.chrom], m.pos)
        )
        self.positions = np.array([m.pos for m in self.markers], dtype=np.int64)
        self._chrom_slices: Dict[str, Tuple[int, int]] = {}
        start = 0
        for idx in range(1, len(self.markers) + 1):
            if idx == len(self.markers) or self.markers[idx].chrom != self.markers[start].chrom:
                self._chrom_slices[self.markers[start].chrom] = (start, idx)
                start = idx
        self._by_name = {m.name: i for i, m in enumerate(self.markers)}

    def __len__(self) -> int:
        return len(self.markers)

    def __getitem__(self, idx: int) -> Marker:
        return self.markers[idx]

    def index_of(self, name: str) -> int:
        return self._by_name[name]

    def chrom_slice(self, chrom: str) -> Tuple[int, int]:
        """Arena bounds of the markers on ``chrom`` (empty if none)"""
        return self._chrom_slices.get(chrom, (0, 0))

    def aligned_genotypes(self, indices: Sequence[int], sample_index: SampleIndex) -> np.ndarray:
        """Genotypes of the given markers in the global sample order.

        Returns:
            float64 array (n_samples x n_markers) with NaN for absent samples
            and missing genotypes.
        """
        geno_idx = sample_index.geno_idx
        present = geno_idx != ABSENT
        out = np.full((sample_index.n_samples, len(indices)), np.nan, dtype=np.float64)
        for col, idx in enumerate(indices):
            marker = self.markers[idx]
            values = marker.genotypes[geno_idx[present]].astype(np.float64)
            values[marker.is_na[geno_idx[present]]] = np.nan
            out[present, col] = values
        return out

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame({
            'SNP': [m.name for m in self.markers],
            'CHROM': [m.chrom for m in self.markers],
            'POS': self.positions,
            'MAF': [m.maf for m in self.markers],
        })


@dataclass
class Feature:
    """Molecular trait with its per-subgroup phenotypes and cis markers."""

    name: str
    n_subgroups: int
    chrom: Optional[str] = None
    start: Optional[int] = None
    end: Optional[int] = None
    phenotypes: List[np.ndarray] = field(default_factory=list)
    is_na: List[np.ndarray] = field(default_factory=list)
    cis_markers: List[int] = field(default_factory=list)
    records: List["AssociationRecord"] = field(default_factory=list)
    sep_perms: Optional[List["PermutationResult"]] = None
    joint_perm: Optional["JointPermutationResult"] = None

    def __post_init__(self):
        if not self.phenotypes:
            self.phenotypes = [np.empty(0, dtype=np.float64) for _ in range(self.n_subgroups)]
            self.is_na = [np.empty(0, dtype=bool) for _ in range(self.n_subgroups)]

    def set_phenotypes(self, s: int, values: np.ndarray, is_na: np.ndarray) -> None:
        values = np.asarray(values, dtype=np.float64)
        is_na = np.asarray(is_na, dtype=bool)
        if values.shape != is_na.shape:
            raise ValueError(f"Phenotypes and missingness of {self.name} differ in length")
        self.phenotypes[s] = values
        self.is_na[s] = is_na

    def has_phenotypes(self, s: int) -> bool:
        return self.phenotypes[s].size > 0

    def aligned_phenotypes(self, sample_index: SampleIndex) -> np.ndarray:
        """Phenotypes in the global sample order, (n_subgroups x n_samples), NaN if missing."""
        out = np.full((self.n_subgroups, sample_index.n_samples), np.nan, dtype=np.float64)
        for s in range(self.n_subgroups):
            if not self.has_phenotypes(s):
                continue
            idx = sample_index.pheno_idx[s]
            present = idx != ABSENT
            values = self.phenotypes[s][idx[present]].copy()
            values[self.is_na[s][idx[present]]] = np.nan
            out[s, present] = values
        return out


@dataclass
class AssociationRecord:
    """Association statistics of one feature-marker pair across subgroups."""

    marker: int
    snp: str
    n: np.ndarray
    betahat: np.ndarray
    sebetahat: np.ndarray
    sigmahat: np.ndarray
    pval: np.ndarray
    pve: np.ndarray
    std_sstats: Optional[np.ndarray] = None
    unweighted_abfs: Dict[str, np.ndarray] = field(default_factory=dict)
    weighted_abfs: Dict[str, float] = field(default_factory=dict)
    summary_abfs: Dict[str, float] = field(default_factory=dict)

    @property
    def n_subgroups_with_data(self) -> int:
        return int(np.count_nonzero(self.n))

    @property
    def n_samples(self) -> int:
        return int(self.n.sum())


@dataclass
class PermutationResult:
    """Feature-level empirical P-value."""

    pvalue: float
    nb_perms: int

    def to_row(self, ftr: str, nb_snps: int) -> Dict[str, Union[str, int, float]]:
        return {'ftr': ftr, 'nbSnps': nb_snps, 'permPval': self.pvalue, 'nbPerms': self.nb_perms}


@dataclass
class JointPermutationResult(PermutationResult):
    """Joint P-value together with the true statistic it was calibrated on."""

    max_l10_true_abf: float = 0.0

    def to_row(self, ftr: str, nb_snps: int) -> Dict[str, Union[str, int, float]]:
        return {
            'ftr': ftr,
            'nbSnps': nb_snps,
            'jointPermPval': self.pvalue,
            'nbPerms': self.nb_perms,
            'maxL10TrueAbf': self.max_l10_true_abf,
        }


@dataclass
class AnalysisConfig:
    """Settings of one eqtlbma run

    step: 1 separate analysis only, 2 with separate permutations, 3 adds the
    joint analysis, 4 with joint permutations, 5 with both permutations.
    """

    step: int = 1
    anchor: str = 'FSS'
    cis: int = 100000
    qnorm: bool = False
    grid: Optional[HyperGrid] = None
    bfs: str = 'const'
    pbf: str = 'const'
    nb_perms: int = 0
    seed: Optional[int] = None
    trick: int = 0
    cpu: int = 1
    verbose: int = 1

    @property
    def joint(self) -> bool:
        return self.step in (3, 4, 5)

    @property
    def perm_sep(self) -> bool:
        return self.step in (2, 5)

    @property
    def perm_joint(self) -> bool:
        return self.step in (4, 5)

    def validate(self) -> "AnalysisConfig":
        if self.step not in STEPS:
            raise ValueError(f"step should be one of {STEPS}, got {self.step}")
        if self.anchor not in ANCHORS:
            raise ValueError(f"anchor should be one of {ANCHORS}, got {self.anchor}")
        if self.cis < 0:
            raise ValueError("cis half-window must be non-negative")
        if self.bfs not in BF_FAMILIES:
            raise ValueError(f"bfs should be one of {BF_FAMILIES}, got {self.bfs}")
        if self.pbf not in BF_FAMILIES:
            raise ValueError(f"pbf should be one of {BF_FAMILIES}, got {self.pbf}")
        if self.trick not in TRICK_MODES:
            raise ValueError(f"trick should be one of {TRICK_MODES}, got {self.trick}")
        if self.joint and (self.grid is None or len(self.grid) == 0):
            raise ValueError(f"step {self.step} requires a non-empty grid")
        if (self.perm_sep or self.perm_joint) and self.nb_perms <= 0:
            raise ValueError(f"step {self.step} requires a positive number of permutations")
        if self.perm_joint:
            if self.bfs == 'const' and self.pbf != 'const':
                raise ValueError("bfs 'const' only allows pbf 'const'")
            if self.bfs == 'subset' and self.pbf == 'all':
                raise ValueError("bfs 'subset' does not allow pbf 'all'")
        if self.cpu < 1:
            raise ValueError("cpu must be at least 1")
        return self
