"""
Permutation-based feature-level P-values.

Both analyses reshuffle which sample's phenotype is paired with which
genotype and recompute a feature-level statistic over all cis markers:
- separate (one subgroup at a time): the smallest OLS P-value, a permuted
  value counts when it is <= the true one;
- joint (all subgroups, one shared shuffle): the largest log10 ABF of the
  chosen family, floored at 0, a permuted value counts when it is >= the
  true one.

The count starts at 1 (the observed data). With trick 1 the loop stops as
soon as it reaches 11; with trick 2 the remaining permutations are only
drawn, not evaluated, so that both random streams advance as with trick 1.
After k evaluated permutations out of N the P-value is count / (N + 1),
or a draw from U(11 / (k + 2), 11 / (k + 1)) when stopped early.

Each feature owns two random streams, derived from the run seed and the
feature name so that results do not depend on feature order or worker
count. The permutation stream is recreated before every loop.
"""

import zlib
from typing import Callable, Optional, Sequence, Tuple

import numpy as np

from ..utils.data_types import (
    AnalysisConfig, AssociationRecord, JointPermutationResult, PermutationResult,
)
from .abf import joint_statistic
from .driver import AssociationScratch, FeatureData, compute_sumstats

TRICK_THRESHOLD = 11

PERM_STREAM = 0
TRICK_STREAM = 1


def feature_seed_sequences(seed: int, name: str) -> Tuple[np.random.SeedSequence, np.random.SeedSequence]:
    """(permutation, trick) seed sequences of one feature"""
    key = zlib.crc32(name.encode('utf-8'))
    return (
        np.random.SeedSequence(seed, spawn_key=(key, PERM_STREAM)),
        np.random.SeedSequence(seed, spawn_key=(key, TRICK_STREAM)),
    )


def run_permutations(statistic: Callable[[np.ndarray], float],
                     is_extreme: Callable[[float], bool],
                     n_samples: int,
                     nb_perms: int,
                     trick: int,
                     rng_perm: np.random.Generator,
                     rng_trick: np.random.Generator) -> PermutationResult:
    """Empirical P-value of a statistic under label permutations

    Args:
        statistic: Maps a permutation of the sample order to the statistic
        is_extreme: Whether a permuted statistic is at least as extreme as
            the observed one
        n_samples: Length of the permutation
        nb_perms: Number of permutations to draw
        trick: 0 (no early stop), 1 (stop), 2 (stop evaluating, keep drawing)
        rng_perm: Stream driving the shuffles
        rng_trick: Stream for the P-value draw after an early stop

    Returns:
        PermutationResult with the P-value and the number of evaluated
        permutations
    """
    perm = np.arange(n_samples)
    count = 1
    nb_evaluated = 0
    shuffle_only = False
    for _ in range(nb_perms):
        # successive shuffles compound, like repeated in-place shuffles
        rng_perm.shuffle(perm)
        if shuffle_only:
            continue
        nb_evaluated += 1
        if is_extreme(statistic(perm)):
            count += 1
        if trick != 0 and count == TRICK_THRESHOLD:
            if trick == 1:
                break
            shuffle_only = True

    if nb_evaluated == nb_perms:
        pvalue = count / (nb_perms + 1)
    else:
        pvalue = rng_trick.uniform(TRICK_THRESHOLD / (nb_evaluated + 2),
                                   TRICK_THRESHOLD / (nb_evaluated + 1))
    return PermutationResult(float(pvalue), nb_evaluated)


def min_true_pvalue(records: Sequence[AssociationRecord], s: int) -> float:
    """Smallest regression P-value of subgroup ``s`` over the cis markers (1 if none)"""
    pvals = [rec.pval[s] for rec in records if rec.n[s] > 1 and not np.isnan(rec.pval[s])]
    return float(min(pvals)) if pvals else 1.0


def max_true_abf(records: Sequence[AssociationRecord], family: str) -> float:
    """Largest summary log10 ABF of ``family`` over the cis markers, floored at 0"""
    values = [rec.summary_abfs[family] for rec in records
              if not np.isnan(rec.summary_abfs.get(family, np.nan))]
    return float(max([0.0] + values))


def permute_separate(data: FeatureData, records: Sequence[AssociationRecord], s: int,
                     config: AnalysisConfig, perm_seq: np.random.SeedSequence,
                     rng_trick: np.random.Generator,
                     scratch: Optional[AssociationScratch] = None) -> PermutationResult:
    """Permutation P-value of the best marker of subgroup ``s``"""
    if not data.has_phenotypes[s]:
        return PermutationResult(float('nan'), 0)
    if scratch is None:
        scratch = AssociationScratch(data.n_subgroups, data.n_markers)
    true_min = min_true_pvalue(records, s)
    batch = scratch.batches[s]

    def statistic(perm: np.ndarray) -> float:
        compute_sumstats(data, scratch, config.qnorm, perm=perm, subgroup=s)
        pvals = batch.pval[batch.n > 1]
        pvals = pvals[~np.isnan(pvals)]
        return float(min(1.0, pvals.min())) if pvals.size else 1.0

    return run_permutations(
        statistic, lambda value: value <= true_min,
        data.n_samples, config.nb_perms, config.trick,
        np.random.default_rng(perm_seq), rng_trick,
    )


def permute_joint(data: FeatureData, records: Sequence[AssociationRecord],
                  config: AnalysisConfig, perm_seq: np.random.SeedSequence,
                  rng_trick: np.random.Generator,
                  scratch: Optional[AssociationScratch] = None) -> JointPermutationResult:
    """Permutation P-value of the best marker under the joint Bayes factor"""
    if scratch is None:
        scratch = AssociationScratch(data.n_subgroups, data.n_markers)
    family = config.pbf
    true_max = max_true_abf(records, family)

    def statistic(perm: np.ndarray) -> float:
        compute_sumstats(data, scratch, config.qnorm, perm=perm)
        values = joint_statistic(scratch.stacked('n'), scratch.std_sumstats(), config.grid, family)
        values = values[~np.isnan(values)]
        return float(max(0.0, values.max())) if values.size else 0.0

    result = run_permutations(
        statistic, lambda value: value >= true_max,
        data.n_samples, config.nb_perms, config.trick,
        np.random.default_rng(perm_seq), rng_trick,
    )
    return JointPermutationResult(result.pvalue, result.nb_perms, max_l10_true_abf=true_max)


def permute_feature(data: FeatureData, records: Sequence[AssociationRecord],
                    config: AnalysisConfig, seed: int):
    """Run the permutation analyses requested by ``config`` for one feature

    Returns:
        (separate results per subgroup or None, joint result or None)
    """
    perm_seq, trick_seq = feature_seed_sequences(seed, data.name)
    rng_trick = np.random.default_rng(trick_seq)
    scratch = AssociationScratch(data.n_subgroups, data.n_markers)

    sep_perms = None
    if config.perm_sep:
        sep_perms = [
            permute_separate(data, records, s, config, perm_seq, rng_trick, scratch)
            for s in range(data.n_subgroups)
        ]
    joint_perm = None
    if config.perm_joint:
        joint_perm = permute_joint(data, records, config, perm_seq, rng_trick, scratch)
    return sep_perms, joint_perm
