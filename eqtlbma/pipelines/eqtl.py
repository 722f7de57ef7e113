"""
eQTL Pipeline Module

This module runs a complete multi-subgroup eQTL analysis: loading the
inputs, reconciling samples, testing every feature against its cis
markers in each subgroup, combining the subgroups with Bayes factors, and
calibrating feature-level significance by permutations.
"""

import time
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import numpy as np
from joblib import Parallel, delayed

from ..association.driver import FeatureData, find_cis_markers, infer_associations, prepare_feature_data
from ..association.permutation import permute_feature
from ..data.loaders import (
    build_sample_index, load_feature_coordinates, load_genotypes, load_input_lists,
    load_name_list, load_phenotypes, read_phenotype_samples,
)
from ..data import writers
from ..utils.data_types import (
    AnalysisConfig, AssociationRecord, Feature, JointPermutationResult, MarkerCatalog,
    PermutationResult, SampleIndex,
)


def _analyze_feature(data: FeatureData, config: AnalysisConfig, seed: int
                     ) -> Tuple[str, List[AssociationRecord],
                                Optional[List[PermutationResult]],
                                Optional[JointPermutationResult]]:
    """Worker function analysing one feature (true data, then permutations)."""
    records = infer_associations(
        data,
        qnorm=config.qnorm,
        grid=config.grid if config.joint else None,
        bfs=config.bfs if config.joint else None,
    )
    sep_perms, joint_perm = None, None
    if config.perm_sep or config.perm_joint:
        sep_perms, joint_perm = permute_feature(data, records, config, seed)
    return data.name, records, sep_perms, joint_perm


class EQTLPipeline:
    """
    Pipeline for joint eQTL analysis across subgroups.

    Typical use:

        >>> config = AnalysisConfig(step=3, grid=HyperGrid([0.01], [0.1]))
        >>> pipeline = EQTLPipeline('out/run1', config)
        >>> pipeline.run('list_genos.txt', 'list_phenos.txt', 'features.bed')

    Results are written as gzip-compressed tables named after the output
    prefix (see ``save_results``).
    """

    def __init__(self, output_prefix: Union[str, Path], config: Optional[AnalysisConfig] = None):
        self.output_prefix = Path(output_prefix)
        self.config = (config or AnalysisConfig()).validate()
        self.seed = self.config.seed if self.config.seed is not None else int(np.random.SeedSequence().entropy % 2**63)

        # Data storage
        self.subgroups: List[str] = []
        self.sample_index: Optional[SampleIndex] = None
        self.catalog: Optional[MarkerCatalog] = None
        self.features: Dict[str, Feature] = {}

    def log(self, message: str, level: int = 1):
        """Print a progress message if verbose enough"""
        if self.config.verbose >= level:
            print(message)

    def log_step(self, step_name: str, start_time: Optional[float] = None):
        """Log a pipeline step with optional timing"""
        if start_time is not None:
            elapsed = time.time() - start_time
            self.log(f"{step_name} completed in {elapsed:.2f} seconds")
        else:
            self.log(f"{step_name}...")

    def load_data(self,
                  geno_list: Union[str, Path],
                  pheno_list: Union[str, Path],
                  feature_coords: Union[str, Path],
                  features_to_keep: Optional[Union[str, Path]] = None,
                  snps_to_keep: Optional[Union[str, Path]] = None):
        """
        Load genotypes, phenotypes and feature coordinates.

        Args:
            geno_list: File listing 'subgroup path' of the genotype file
                (a single file shared by all subgroups)
            pheno_list: File listing 'subgroup path' of each phenotype matrix
            feature_coords: BED file with the feature coordinates
            features_to_keep: Optional file of feature names to analyse
            snps_to_keep: Optional file of marker names to analyse
        """
        step_start = time.time()
        self.log_step("Step 1: Loading and validating input data")

        self.subgroups, pheno_paths, geno_path = load_input_lists(geno_list, pheno_list)
        self.log(f"   Subgroups: {len(self.subgroups)} ({', '.join(self.subgroups)})")

        pheno_samples = [read_phenotype_samples(path) for path in pheno_paths]
        self.catalog, geno_samples = load_genotypes(geno_path, load_name_list(snps_to_keep))
        self.sample_index = build_sample_index(pheno_samples, geno_samples)
        for s, subgroup in enumerate(self.subgroups):
            self.log(f"   s{s + 1} ({subgroup}): {len(pheno_samples[s])} samples")
        self.log(f"   Genotyped samples: {len(geno_samples)}")
        self.log(f"   Total samples: {self.sample_index.n_samples}")
        self.log(f"   Loaded {len(self.catalog)} markers")

        self.features = load_phenotypes(pheno_paths, load_name_list(features_to_keep))
        load_feature_coordinates(feature_coords, self.features)
        self.log(f"   Loaded {len(self.features)} features")

        self.log_step("Data loading", step_start)

    def find_cis_markers(self):
        """Freeze the cis markers of every feature"""
        n_without = 0
        for feature in self.features.values():
            feature.cis_markers = find_cis_markers(feature, self.catalog, self.config.anchor, self.config.cis)
            if not feature.cis_markers:
                n_without += 1
        self.log(f"   Features with cis markers: {len(self.features) - n_without} "
                 f"(anchor={self.config.anchor}, cis={self.config.cis})")
        if n_without:
            self.log(f"   Skipping {n_without} features without any cis marker")

    def run_analysis(self):
        """Test every feature, with permutations when requested."""
        if self.catalog is None:
            raise RuntimeError("Call load_data() before run_analysis()")
        step_start = time.time()
        self.log_step("Step 2: Testing features against their cis markers")
        config = self.config
        if config.joint:
            self.log(f"   Joint analysis: grid of {len(config.grid)} points, bfs={config.bfs}")
        if config.perm_sep or config.perm_joint:
            self.log(f"   Permutations: {config.nb_perms}, trick={config.trick}, seed={self.seed}"
                     + (f", pbf={config.pbf}" if config.perm_joint else ""))

        self.find_cis_markers()
        tested = sorted((f for f in self.features.values() if f.cis_markers), key=lambda f: f.name)
        jobs = (
            delayed(_analyze_feature)(prepare_feature_data(f, self.catalog, self.sample_index), config, self.seed)
            for f in tested
        )
        if config.cpu > 1:
            self.log(f"   Running in parallel on {config.cpu} workers")
            results = Parallel(n_jobs=config.cpu, backend='loky')(jobs)
        else:
            results = [func(*args, **kwargs) for func, args, kwargs in jobs]

        for name, records, sep_perms, joint_perm in results:
            feature = self.features[name]
            feature.records = records
            feature.sep_perms = sep_perms
            feature.joint_perm = joint_perm
            self.log(f"   {name}: {len(records)} cis markers", level=2)

        self.log_step("Association testing", step_start)

    def save_results(self) -> List[Path]:
        """
        Write the result tables of the requested step.

        Always: <prefix>_sumstats_<subgroup>.txt.gz
        Steps 2, 5: <prefix>_permPval_<subgroup>.txt.gz
        Steps 3, 4, 5: <prefix>_abfs_unweighted.txt.gz, <prefix>_abfs_weighted.txt.gz
        Steps 4, 5: <prefix>_jointPermPvals.txt.gz
        """
        step_start = time.time()
        self.log_step("Step 3: Saving results")
        features = list(self.features.values())
        paths = writers.write_sumstats(self.output_prefix, features, self.catalog, self.subgroups)
        if self.config.perm_sep:
            paths += writers.write_separate_permutations(self.output_prefix, features, self.subgroups)
        if self.config.joint:
            paths.append(writers.write_unweighted_abfs(self.output_prefix, features, len(self.config.grid)))
            paths.append(writers.write_weighted_abfs(self.output_prefix, features))
        if self.config.perm_joint:
            paths.append(writers.write_joint_permutations(self.output_prefix, features))
        for path in paths:
            self.log(f"   Saved {path}")
        self.log_step("Saving results", step_start)
        return paths

    def run(self, geno_list, pheno_list, feature_coords,
            features_to_keep=None, snps_to_keep=None) -> List[Path]:
        """Load, analyse and save in one call."""
        start = time.time()
        self.load_data(geno_list, pheno_list, feature_coords, features_to_keep, snps_to_keep)
        self.run_analysis()
        paths = self.save_results()
        self.log_step("eQTL analysis", start)
        return paths
