import numpy as np
import pytest
from scipy import stats

from eqtlbma.association.driver import (
    AssociationScratch, compute_sumstats, find_cis_markers, infer_associations, prepare_feature_data,
)
from eqtlbma.utils.data_types import Feature, HyperGrid, Marker, MarkerCatalog, SampleIndex


def _catalog(positions, chrom="1", n_samples=6, seed=0):
    rng = np.random.default_rng(seed)
    markers = [
        Marker(name=f"snp{p}", chrom=chrom, pos=p,
               genotypes=rng.integers(0, 3, n_samples).astype(float),
               is_na=np.zeros(n_samples, dtype=bool), maf=0.3)
        for p in positions
    ]
    return MarkerCatalog(markers)


def test_cis_window_fss_is_inclusive() -> None:
    catalog = _catalog([100, 899, 900, 1000, 1100, 1101, 1500])
    feature = Feature(name="g", n_subgroups=1, chrom="1", start=1000, end=1400)

    cis = find_cis_markers(feature, catalog, anchor='FSS', cis=100)

    assert [catalog[i].pos for i in cis] == [900, 1000, 1100]


def test_cis_window_fss_fes_extends_to_end() -> None:
    catalog = _catalog([100, 899, 900, 1000, 1100, 1101, 1500, 1501])
    feature = Feature(name="g", n_subgroups=1, chrom="1", start=1000, end=1400)

    cis = find_cis_markers(feature, catalog, anchor='FSS+FES', cis=100)

    assert [catalog[i].pos for i in cis] == [900, 1000, 1100, 1101, 1500]


def test_cis_window_other_chromosome_and_lower_clip() -> None:
    catalog = _catalog([1, 5, 50])
    near_start = Feature(name="g", n_subgroups=1, chrom="1", start=10, end=20)
    elsewhere = Feature(name="h", n_subgroups=1, chrom="2", start=10, end=20)

    assert len(find_cis_markers(near_start, catalog, cis=20)) == 2
    assert find_cis_markers(elsewhere, catalog, cis=20) == []
    with pytest.raises(ValueError):
        find_cis_markers(near_start, catalog, anchor='TSS')


def _feature_with_data(n_samples=12, seed=1):
    rng = np.random.default_rng(seed)
    catalog = _catalog([10, 20, 30], n_samples=n_samples, seed=seed)
    index = SampleIndex([f"s{i}" for i in range(n_samples)],
                        pheno_idx=np.vstack([np.arange(n_samples)] * 2),
                        geno_idx=np.arange(n_samples))
    feature = Feature(name="gene", n_subgroups=2, chrom="1", start=15, end=25)
    for s in range(2):
        y = catalog[0].genotypes * 0.5 + rng.normal(size=n_samples)
        feature.set_phenotypes(s, y, np.zeros(n_samples, dtype=bool))
    feature.cis_markers = find_cis_markers(feature, catalog, cis=100)
    return feature, catalog, index


def test_infer_associations_separate_only() -> None:
    feature, catalog, index = _feature_with_data()
    data = prepare_feature_data(feature, catalog, index)

    records = infer_associations(data)

    assert [r.snp for r in records] == ["snp10", "snp20", "snp30"]
    ref = stats.linregress(catalog[1].genotypes, feature.phenotypes[1])
    assert records[1].betahat[1] == pytest.approx(ref.slope)
    assert records[1].pval[1] == pytest.approx(ref.pvalue)
    assert records[0].std_sstats is None
    assert records[0].weighted_abfs == {}


def test_infer_associations_joint_fills_bayes_factors() -> None:
    feature, catalog, index = _feature_with_data()
    data = prepare_feature_data(feature, catalog, index)
    grid = HyperGrid([0.01, 0.1], [0.1, 0.4])

    records = infer_associations(data, grid=grid, bfs='all')

    rec = records[0]
    assert rec.std_sstats.shape == (2, 3)
    assert list(rec.unweighted_abfs) == ['const', 'const-fix', 'const-maxh', '1', '2']
    assert rec.unweighted_abfs['const'].shape == (2,)
    assert set(rec.summary_abfs) == {'const', 'subset', 'all'}
    assert rec.n_subgroups_with_data == 2
    assert rec.n_samples == 24
    with pytest.raises(ValueError):
        infer_associations(data, bfs='const')


def test_compute_sumstats_permutation_pairs_phenotype_of_sample() -> None:
    feature, catalog, index = _feature_with_data()
    data = prepare_feature_data(feature, catalog, index)
    perm = np.roll(np.arange(data.n_samples), 3)
    scratch = AssociationScratch(data.n_subgroups, data.n_markers)

    compute_sumstats(data, scratch, perm=perm, subgroup=0)

    ref = stats.linregress(data.genotypes[:, 2], data.phenotypes[0][perm])
    assert scratch.batches[0].betahat[2] == pytest.approx(ref.slope)
    # other subgroups are untouched
    assert np.all(scratch.batches[1].n == 0)
