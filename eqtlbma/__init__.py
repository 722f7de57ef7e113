"""
eqtlbma: eQTL mapping across subgroups with Bayesian model averaging

Tests every feature (e.g. a gene) against the markers of its cis window in
each subgroup (e.g. tissue), combines the subgroups with approximate Bayes
factors over configurations of subgroups with an effect, and calibrates
feature-level significance by permutations.
"""

__version__ = "0.1.0"
__author__ = "eqtlbma Development Team"

from .utils.data_types import AnalysisConfig, HyperGrid
from .pipelines.eqtl import EQTLPipeline

__all__ = [
    'AnalysisConfig',
    'HyperGrid',
    'EQTLPipeline',
]
