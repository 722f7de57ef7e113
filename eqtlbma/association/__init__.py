"""
Association testing and Bayesian meta-analysis across subgroups
"""

from .ols import ols, ols_batch
from .standardize import standardize_sumstats
from .abf import abf_from_std_sumstats, compute_abfs, iter_configurations
from .driver import find_cis_markers, infer_associations
from .permutation import permute_feature, run_permutations

__all__ = [
    'ols', 'ols_batch', 'standardize_sumstats', 'abf_from_std_sumstats',
    'compute_abfs', 'iter_configurations', 'find_cis_markers',
    'infer_associations', 'permute_feature', 'run_permutations',
]
