"""
Writers for the gzip-compressed result tables
"""

from pathlib import Path
from typing import Iterable, List, Sequence, Union

import pandas as pd

from ..utils.data_types import Feature, MarkerCatalog

PathLike = Union[str, Path]

SUMSTATS_COLUMNS = ['ftr', 'snp', 'maf', 'n', 'betahat', 'sebetahat', 'sigmahat', 'betaPval', 'pve']
PERM_COLUMNS = ['ftr', 'nbSnps', 'permPval', 'nbPerms']
JOINT_PERM_COLUMNS = ['ftr', 'nbSnps', 'jointPermPval', 'nbPerms', 'maxL10TrueAbf']


def _write_table(df: pd.DataFrame, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, sep=' ', index=False, compression='gzip', na_rep='nan')
    return path


def _tested(features: Iterable[Feature]) -> List[Feature]:
    """Features with at least one cis marker, by name"""
    return sorted((f for f in features if f.records), key=lambda f: f.name)


def output_path(prefix: PathLike, suffix: str) -> Path:
    prefix = str(prefix)
    return Path(f"{prefix}_{suffix}.txt.gz")


def write_sumstats(prefix: PathLike, features: Iterable[Feature], catalog: MarkerCatalog,
                   subgroups: Sequence[str]) -> List[Path]:
    """One summary-statistics table per subgroup"""
    features = _tested(features)
    paths = []
    for s, subgroup in enumerate(subgroups):
        rows = [
            {
                'ftr': feature.name,
                'snp': rec.snp,
                'maf': catalog[rec.marker].maf,
                'n': int(rec.n[s]),
                'betahat': rec.betahat[s],
                'sebetahat': rec.sebetahat[s],
                'sigmahat': rec.sigmahat[s],
                'betaPval': rec.pval[s],
                'pve': rec.pve[s],
            }
            for feature in features for rec in feature.records
        ]
        df = pd.DataFrame(rows, columns=SUMSTATS_COLUMNS)
        paths.append(_write_table(df, output_path(prefix, f"sumstats_{subgroup}")))
    return paths


def write_separate_permutations(prefix: PathLike, features: Iterable[Feature],
                                subgroups: Sequence[str]) -> List[Path]:
    """One feature-level permutation P-value table per subgroup"""
    features = [f for f in _tested(features) if f.sep_perms is not None]
    paths = []
    for s, subgroup in enumerate(subgroups):
        rows = [f.sep_perms[s].to_row(f.name, len(f.cis_markers)) for f in features]
        df = pd.DataFrame(rows, columns=PERM_COLUMNS)
        paths.append(_write_table(df, output_path(prefix, f"permPval_{subgroup}")))
    return paths


def write_unweighted_abfs(prefix: PathLike, features: Iterable[Feature], n_grid: int) -> Path:
    """Per-grid-point log10 ABFs, one row per (feature, marker, configuration)"""
    grid_columns = [f"ABFgrid{i + 1}" for i in range(n_grid)]
    rows = []
    for feature in _tested(features):
        for rec in feature.records:
            for config, values in rec.unweighted_abfs.items():
                row = {'ftr': feature.name, 'snp': rec.snp, 'config': config}
                row.update(zip(grid_columns, values))
                rows.append(row)
    df = pd.DataFrame(rows, columns=['ftr', 'snp', 'config'] + grid_columns)
    return _write_table(df, output_path(prefix, "abfs_unweighted"))


def write_weighted_abfs(prefix: PathLike, features: Iterable[Feature]) -> Path:
    """Grid-averaged log10 ABFs, one row per (feature, marker)"""
    features = _tested(features)
    configs: List[str] = []
    for feature in features:
        configs = list(feature.records[0].weighted_abfs)
        break
    abf_columns = ['abf.' + config.replace('const-', 'const.') for config in configs]
    rows = []
    for feature in features:
        for rec in feature.records:
            row = {
                'ftr': feature.name,
                'snp': rec.snp,
                'nb.subgroups': rec.n_subgroups_with_data,
                'nb.samples': rec.n_samples,
            }
            row.update(zip(abf_columns, (rec.weighted_abfs[c] for c in configs)))
            rows.append(row)
    df = pd.DataFrame(rows, columns=['ftr', 'snp', 'nb.subgroups', 'nb.samples'] + abf_columns)
    return _write_table(df, output_path(prefix, "abfs_weighted"))


def write_joint_permutations(prefix: PathLike, features: Iterable[Feature]) -> Path:
    """Joint feature-level permutation P-values"""
    rows = [
        f.joint_perm.to_row(f.name, len(f.cis_markers))
        for f in _tested(features) if f.joint_perm is not None
    ]
    df = pd.DataFrame(rows, columns=JOINT_PERM_COLUMNS)
    return _write_table(df, output_path(prefix, "jointPermPvals"))
