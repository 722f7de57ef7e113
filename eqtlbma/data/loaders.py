"""
Data loading utilities for eQTL input files
"""

import warnings
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set, Tuple, Union

import numpy as np
import pandas as pd

from ..utils.data_types import ABSENT, Feature, HyperGrid, Marker, MarkerCatalog, SampleIndex
from ..utils.stats import calculate_maf_from_dosages

PathLike = Union[str, Path]

NA_TOKEN = 'NA'
IMPUTE_INFO_COLUMNS = 5


def _check_file(filepath: PathLike) -> Path:
    filepath = Path(filepath)
    if not filepath.exists():
        raise FileNotFoundError(f"File not found: {filepath}")
    return filepath


def _read_header(filepath: Path) -> List[str]:
    with open(filepath, 'r') as handle:
        header = handle.readline().split()
    if not header:
        raise ValueError(f"File {filepath} has an empty header")
    return header


def _read_table(filepath: Path, **kwargs) -> pd.DataFrame:
    """Whitespace-delimited table without header, empty if the file has no rows"""
    kwargs.setdefault("keep_default_na", False)
    try:
        return pd.read_csv(filepath, sep=r"\s+", header=None, **kwargs)
    except pd.errors.EmptyDataError:
        return pd.DataFrame()


def load_two_column_file(filepath: PathLike) -> Dict[str, str]:
    """Load a 'subgroup<space/tab>path' list, skipping '#' lines

    Returns:
        Ordered mapping subgroup -> path (file order)
    """
    filepath = _check_file(filepath)
    pairs: Dict[str, str] = {}
    with open(filepath, 'r') as handle:
        for line_no, line in enumerate(handle, start=1):
            line = line.strip()
            if not line or line.startswith('#'):
                continue
            tokens = line.split()
            if len(tokens) != 2:
                raise ValueError(
                    f"Line {line_no} of {filepath} should be 'subgroup<space/tab>path'"
                )
            if tokens[0] in pairs:
                raise ValueError(f"Subgroup {tokens[0]} is listed twice in {filepath}")
            pairs[tokens[0]] = tokens[1]
    if not pairs:
        raise ValueError(f"No entry found in {filepath}")
    return pairs


def load_input_lists(geno_list: PathLike, pheno_list: PathLike) -> Tuple[List[str], List[str], str]:
    """Subgroups, their phenotype paths and the shared genotype path

    Only one genotype file is supported, shared by all subgroups.
    """
    pheno_paths = load_two_column_file(pheno_list)
    geno_paths = load_two_column_file(geno_list)
    if len(geno_paths) > 1:
        raise ValueError("Several genotype files are not supported; give a single file for all subgroups")
    subgroups = list(pheno_paths)
    return subgroups, [pheno_paths[s] for s in subgroups], next(iter(geno_paths.values()))


def load_name_list(filepath: Optional[PathLike]) -> Optional[Set[str]]:
    """Names to keep, one per line (first column), or None if no file"""
    if filepath is None:
        return None
    filepath = _check_file(filepath)
    with open(filepath, 'r') as handle:
        names = {line.split()[0] for line in handle if line.strip() and not line.startswith('#')}
    return names


def read_phenotype_samples(filepath: PathLike) -> List[str]:
    """Sample names from a phenotype header (an optional leading 'Id' is dropped)"""
    header = _read_header(_check_file(filepath))
    if header[0] == 'Id':
        header = header[1:]
    return header


def read_genotype_samples(filepath: PathLike) -> List[str]:
    """Sample names from an IMPUTE header ('ind1_a1a1 ind1_a1a2 ind1_a2a2 ...')"""
    filepath = _check_file(filepath)
    header = _read_header(filepath)
    if len(header) < IMPUTE_INFO_COLUMNS or (len(header) - IMPUTE_INFO_COLUMNS) % 3 != 0:
        raise ValueError(f"The header of file {filepath} is badly formatted")
    return [token.split('_a')[0] for token in header[IMPUTE_INFO_COLUMNS::3]]


def build_sample_index(pheno_samples: Sequence[Sequence[str]],
                       geno_samples: Sequence[str]) -> SampleIndex:
    """Reconcile sample names across subgroups and the genotype panel

    The global order lists the phenotype samples subgroup after subgroup,
    then the samples only genotyped.
    """
    samples: List[str] = []
    seen: Set[str] = set()
    for names in list(pheno_samples) + [geno_samples]:
        for name in names:
            if name not in seen:
                seen.add(name)
                samples.append(name)

    pheno_idx = np.full((len(pheno_samples), len(samples)), ABSENT, dtype=np.int64)
    for s, names in enumerate(pheno_samples):
        position = {name: j for j, name in reversed(list(enumerate(names)))}
        for i, name in enumerate(samples):
            pheno_idx[s, i] = position.get(name, ABSENT)

    geno_position = {name: j for j, name in reversed(list(enumerate(geno_samples)))}
    geno_idx = np.array([geno_position.get(name, ABSENT) for name in samples], dtype=np.int64)
    return SampleIndex(samples, pheno_idx, geno_idx)


def load_phenotypes(pheno_paths: Sequence[PathLike],
                    features_to_keep: Optional[Set[str]] = None) -> Dict[str, Feature]:
    """Load one phenotype matrix per subgroup (features x samples, 'NA' missing)

    Returns:
        Mapping feature name -> Feature; a feature absent from a subgroup
        has no phenotypes there.
    """
    n_subgroups = len(pheno_paths)
    features: Dict[str, Feature] = {}
    for s, path in enumerate(pheno_paths):
        path = _check_file(path)
        n_samples = len(read_phenotype_samples(path))
        df = _read_table(path, skiprows=1, dtype=str)
        if df.empty:
            continue
        if df.shape[1] != n_samples + 1:
            raise ValueError(
                f"File {path} has {df.shape[1] - 1} phenotype columns, header lists {n_samples} samples"
            )
        if df.iloc[:, 1:].isna().any().any():
            raise ValueError(f"Some rows of {path} have too few columns")
        names = df.iloc[:, 0].tolist()
        raw = df.iloc[:, 1:]
        is_na = (raw == NA_TOKEN).to_numpy()
        values = raw.mask(raw == NA_TOKEN).apply(pd.to_numeric, errors='raise').to_numpy(dtype=np.float64)
        for row, name in enumerate(names):
            if features_to_keep is not None and name not in features_to_keep:
                continue
            feature = features.get(name)
            if feature is None:
                feature = Feature(name=name, n_subgroups=n_subgroups)
                features[name] = feature
            feature.set_phenotypes(s, values[row], is_na[row])

    if not features:
        raise ValueError("No feature to analyze")
    return features


def load_feature_coordinates(filepath: PathLike, features: Dict[str, Feature]) -> Dict[str, Feature]:
    """Set chrom/start/end of the features from a BED file (start made 1-based)"""
    filepath = _check_file(filepath)
    df = _read_table(filepath, usecols=[0, 1, 2, 3], dtype={0: str, 1: np.int64, 2: np.int64, 3: str})
    if not df.empty:
        for chrom, start, end, name in df.itertuples(index=False, name=None):
            feature = features.get(name)
            if feature is None:
                continue
            feature.chrom = chrom
            feature.start = int(start) + 1
            feature.end = int(end)

    missing = [name for name, feature in features.items() if feature.chrom is None]
    if missing:
        raise ValueError(f"Some features have no coordinate, e.g. {missing[0]}")
    return features


def load_genotypes(filepath: PathLike,
                   snps_to_keep: Optional[Set[str]] = None) -> Tuple[MarkerCatalog, List[str]]:
    """Load an IMPUTE genotype file into a marker catalog

    Each sample has three probability columns (AA, AB, BB); the dosage is
    AB + 2 BB and a sample with all three at zero is missing.

    Returns:
        (catalog sorted by chromosome and position, sample names)
    """
    filepath = _check_file(filepath)
    samples = read_genotype_samples(filepath)
    n_samples = len(samples)
    df = _read_table(filepath, skiprows=1, dtype={0: str, 1: str})
    if df.empty:
        raise ValueError(f"No marker found in {filepath}")
    if df.shape[1] != IMPUTE_INFO_COLUMNS + 3 * n_samples or df.isna().any().any():
        raise ValueError(f"Rows of {filepath} should have {IMPUTE_INFO_COLUMNS + 3 * n_samples} columns")
    if snps_to_keep is not None:
        df = df[df[1].isin(snps_to_keep)]

    probs = df.iloc[:, IMPUTE_INFO_COLUMNS:].to_numpy(dtype=np.float64).reshape(len(df), n_samples, 3)
    dosages = probs[:, :, 1] + 2.0 * probs[:, :, 2]
    is_na = np.all(probs == 0.0, axis=2)

    markers = []
    seen: Set[str] = set()
    n_dups = 0
    for row, (chrom, name, pos) in enumerate(df.iloc[:, :3].itertuples(index=False, name=None)):
        if name in seen:
            n_dups += 1
            continue
        seen.add(name)
        markers.append(Marker(
            name=name,
            chrom=chrom,
            pos=int(pos),
            genotypes=dosages[row],
            is_na=is_na[row],
            maf=calculate_maf_from_dosages(dosages[row], is_na[row]),
        ))
    if n_dups:
        warnings.warn(f"Ignored {n_dups} duplicated markers in {filepath} (first occurrence kept)")
    return MarkerCatalog(markers), samples


def load_grid(filepath: PathLike) -> HyperGrid:
    """Load 'phi2 oma2 [weight]' lines into a HyperGrid"""
    filepath = _check_file(filepath)
    df = _read_table(filepath, dtype=np.float64)
    if df.empty:
        raise ValueError(f"Grid file {filepath} is empty")
    if df.shape[1] not in (2, 3) or df.isna().any().any():
        raise ValueError(f"Format of file {filepath} should be phi2<space/tab>oma2[<space/tab>weight]")
    weights = df[2].to_numpy() if df.shape[1] == 3 else None
    return HyperGrid(df[0].to_numpy(), df[1].to_numpy(), weights)
