import numpy as np
import pandas as pd
import pytest

from eqtlbma.association.driver import infer_associations, prepare_feature_data, find_cis_markers
from eqtlbma.data import writers
from eqtlbma.utils.data_types import (
    Feature, HyperGrid, JointPermutationResult, Marker, MarkerCatalog, PermutationResult, SampleIndex,
)


@pytest.fixture
def analysed(tmp_path):
    rng = np.random.default_rng(2)
    n = 15
    markers = [
        Marker(name=f"rs{p}", chrom="1", pos=p, genotypes=rng.integers(0, 3, n).astype(float),
               is_na=np.zeros(n, dtype=bool), maf=0.2)
        for p in (100, 200)
    ]
    catalog = MarkerCatalog(markers)
    index = SampleIndex([f"i{k}" for k in range(n)], np.vstack([np.arange(n)] * 2), np.arange(n))
    grid = HyperGrid([0.01, 0.1], [0.1, 0.4])

    features = []
    for name, start in (("geneB", 150), ("geneA", 120), ("geneC", 90000)):
        feature = Feature(name=name, n_subgroups=2, chrom="1", start=start, end=start + 10)
        for s in range(2):
            feature.set_phenotypes(s, rng.normal(size=n), np.zeros(n, dtype=bool))
        feature.cis_markers = find_cis_markers(feature, catalog, cis=1000)
        if feature.cis_markers:
            data = prepare_feature_data(feature, catalog, index)
            feature.records = infer_associations(data, grid=grid, bfs='all')
            feature.sep_perms = [PermutationResult(0.5, 10), PermutationResult(0.25, 10)]
            feature.joint_perm = JointPermutationResult(0.1, 10, max_l10_true_abf=1.2)
        features.append(feature)
    return tmp_path / "out" / "run", features, catalog


def test_sumstats_per_subgroup(analysed) -> None:
    prefix, features, catalog = analysed

    paths = writers.write_sumstats(prefix, features, catalog, ["liver", "lung"])

    assert [p.name for p in paths] == ["run_sumstats_liver.txt.gz", "run_sumstats_lung.txt.gz"]
    df = pd.read_csv(paths[1], sep=' ')
    assert list(df.columns) == writers.SUMSTATS_COLUMNS
    # features by name, without cis markers left out
    assert df['ftr'].tolist() == ["geneA", "geneA", "geneB", "geneB"]
    assert df['n'].tolist() == [15] * 4
    assert df['betahat'].iloc[0] == pytest.approx(features[1].records[0].betahat[1])


def test_permutation_tables(analysed) -> None:
    prefix, features, _ = analysed

    sep = writers.write_separate_permutations(prefix, features, ["liver", "lung"])
    joint = writers.write_joint_permutations(prefix, features)

    df = pd.read_csv(sep[1], sep=' ')
    assert list(df.columns) == ['ftr', 'nbSnps', 'permPval', 'nbPerms']
    assert df['permPval'].tolist() == [0.25, 0.25]
    jdf = pd.read_csv(joint, sep=' ')
    assert list(jdf.columns) == ['ftr', 'nbSnps', 'jointPermPval', 'nbPerms', 'maxL10TrueAbf']
    assert jdf['nbSnps'].tolist() == [2, 2]
    assert jdf['maxL10TrueAbf'].tolist() == [1.2, 1.2]


def test_abf_tables(analysed) -> None:
    prefix, features, _ = analysed

    unweighted = pd.read_csv(writers.write_unweighted_abfs(prefix, features, 2), sep=' ')
    weighted = pd.read_csv(writers.write_weighted_abfs(prefix, features), sep=' ')

    assert list(unweighted.columns) == ['ftr', 'snp', 'config', 'ABFgrid1', 'ABFgrid2']
    assert unweighted['config'].tolist()[:5] == ['const', 'const-fix', 'const-maxh', '1', '2']
    assert list(weighted.columns) == [
        'ftr', 'snp', 'nb.subgroups', 'nb.samples',
        'abf.const', 'abf.const.fix', 'abf.const.maxh', 'abf.1', 'abf.2',
    ]
    assert weighted['nb.samples'].tolist() == [30] * 4
    rec = features[1].records[0]
    assert weighted['abf.const'].iloc[0] == pytest.approx(rec.weighted_abfs['const'])
