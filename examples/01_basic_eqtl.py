#!/usr/bin/env python3
"""
Example 01: Joint eQTL Analysis Across Subgroups

This example runs the separate analysis in each subgroup, the joint
Bayesian analysis, and joint permutations on the best marker of each gene.

Prerequisites:
- list_genos.txt: 'subgroup path' line pointing to one IMPUTE genotype file
- list_phenos.txt: one 'subgroup path' line per phenotype matrix
- genes.bed: gene coordinates
- grid.txt: 'phi2 oma2' lines
"""

from eqtlbma import AnalysisConfig, EQTLPipeline
from eqtlbma.data.loaders import load_grid

def main():
    print("=" * 70)
    print("EXAMPLE 01: Joint eQTL Analysis Across Subgroups")
    print("=" * 70)

    config = AnalysisConfig(
        step=4,                      # separate + joint + joint permutations
        anchor='FSS',                # window centred on the gene start
        cis=100000,                  # +/- 100 kb
        grid=load_grid('grid.txt'),
        bfs='all',                   # every configuration of subgroups
        pbf='all',
        nb_perms=1000,
        trick=1,                     # stop once the exceedance count reaches 11
        seed=1859,
        cpu=4,
    )

    pipeline = EQTLPipeline('example01_results/run', config)
    pipeline.run(
        geno_list='list_genos.txt',
        pheno_list='list_phenos.txt',
        feature_coords='genes.bed',
    )

    print("\nResults saved with prefix example01_results/run")

if __name__ == "__main__":
    main()
