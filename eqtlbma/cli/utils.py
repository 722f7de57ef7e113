import argparse
from typing import List, Optional

from ..data.loaders import load_grid
from ..utils.data_types import ANCHORS, BF_FAMILIES, STEPS, TRICK_MODES, AnalysisConfig


def parse_args(argv: Optional[List[str]] = None):
    """Parse command line arguments for the eQTL pipeline"""
    parser = argparse.ArgumentParser(
        description="Multi-subgroup eQTL analysis with Bayesian meta-analysis and permutations",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    # Required arguments
    parser.add_argument("--geno", "-g", required=True,
                       help="File listing the genotype file ('subgroup path'), a single file shared by all subgroups")
    parser.add_argument("--pheno", "-p", required=True,
                       help="File listing the phenotype files ('subgroup path'), one line per subgroup")
    parser.add_argument("--fcoord", required=True,
                       help="Feature coordinates (BED format)")
    parser.add_argument("--out", "-o", required=True,
                       help="Prefix of the output files, e.g. 'results/run1'")

    # cis window
    parser.add_argument("--anchor", default='FSS', choices=list(ANCHORS),
                       help="Anchor of the cis window: feature start (FSS) or both ends (FSS+FES)")
    parser.add_argument("--cis", type=int, default=100000,
                       help="Half-length of the cis window (bp)")

    # Analysis
    parser.add_argument("--step", type=int, default=1, choices=list(STEPS),
                       help="1: separate analysis, 2: 1 + separate permutations, 3: 1 + joint analysis, "
                            "4: 3 + joint permutations, 5: 3 + both permutations")
    parser.add_argument("--qnorm", action='store_true',
                       help="Quantile-normalize the phenotypes to a standard normal")
    parser.add_argument("--grid", default=None,
                       help="Grid file of 'phi2 oma2 [weight]' lines (steps 3 to 5)")
    parser.add_argument("--bfs", default='const', choices=list(BF_FAMILIES),
                       help="Bayes factors to compute: const, subset (+ one per subgroup) or all configurations")

    # Permutations
    parser.add_argument("--nperm", type=int, default=0,
                       help="Number of permutations (steps 2, 4 and 5)")
    parser.add_argument("--seed", type=int, default=None,
                       help="Seed of the random streams (default: fresh entropy, reported in the log)")
    parser.add_argument("--trick", type=int, default=0, choices=list(TRICK_MODES),
                       help="Early stop of the permutations after 11 hits: 0 never, 1 stop, 2 stop evaluating but keep shuffling")
    parser.add_argument("--pbf", default='const', choices=list(BF_FAMILIES),
                       help="Bayes factor used as joint permutation statistic")

    # Subsets
    parser.add_argument("--ftr", "-f", default=None,
                       help="File with the names of the features to analyse, one per line")
    parser.add_argument("--snp", "-s", default=None,
                       help="File with the names of the markers to analyse, one per line")

    # Runtime
    parser.add_argument("--cpu", type=int, default=1,
                       help="Number of worker processes across features")
    parser.add_argument("--verbose", "-v", type=int, default=1,
                       help="Verbosity level (0: silent, 1: steps, 2: one line per feature)")

    return parser.parse_args(argv)


def config_from_args(args) -> AnalysisConfig:
    """Build and validate the analysis settings from parsed arguments"""
    grid = load_grid(args.grid) if args.grid is not None else None
    config = AnalysisConfig(
        step=args.step,
        anchor=args.anchor,
        cis=args.cis,
        qnorm=args.qnorm,
        grid=grid,
        bfs=args.bfs,
        pbf=args.pbf,
        nb_perms=args.nperm,
        seed=args.seed,
        trick=args.trick,
        cpu=args.cpu,
        verbose=args.verbose,
    )
    return config.validate()
