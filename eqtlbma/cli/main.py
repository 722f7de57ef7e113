"""
Command line entry point of eqtlbma
"""

import sys

from .utils import config_from_args, parse_args
from ..pipelines.eqtl import EQTLPipeline


def main(argv=None):
    args = parse_args(argv)
    try:
        config = config_from_args(args)
    except (ValueError, FileNotFoundError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    pipeline = EQTLPipeline(output_prefix=args.out, config=config)
    pipeline.run(
        geno_list=args.geno,
        pheno_list=args.pheno,
        feature_coords=args.fcoord,
        features_to_keep=args.ftr,
        snps_to_keep=args.snp,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
