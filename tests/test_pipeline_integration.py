import gzip

import numpy as np
import pandas as pd
import pytest

from eqtlbma.cli.main import main
from eqtlbma.pipelines.eqtl import EQTLPipeline
from eqtlbma.utils.data_types import AnalysisConfig, HyperGrid


def _write_inputs(tmp_path, n_samples=20, seed=0):
    """Two subgroups, three features, markers on two chromosomes."""
    rng = np.random.default_rng(seed)
    samples = [f"ind{i}" for i in range(n_samples)]
    snps = [("chr1", "rs1", 1000), ("chr1", "rs2", 1500), ("chr1", "rs3", 9000), ("chr2", "rs4", 400)]

    dosages = rng.integers(0, 3, size=(len(snps), n_samples))
    header = "chr id pos a1 a2 " + " ".join(f"{s}_a1a1 {s}_a1a2 {s}_a2a2" for s in samples)
    lines = [header]
    for (chrom, name, pos), row in zip(snps, dosages):
        probs = []
        for d in row:
            p = [0, 0, 0]
            p[d] = 1
            probs.extend(p)
        lines.append(f"{chrom} {name} {pos} A G " + " ".join(map(str, probs)))
    (tmp_path / "genos.impute").write_text("\n".join(lines) + "\n")

    subgroups = ["liver", "lung"]
    for k, subgroup in enumerate(subgroups):
        # second subgroup misses the last two samples
        sub_samples = samples if k == 0 else samples[:-2]
        idx = [samples.index(s) for s in sub_samples]
        rows = ["Id " + " ".join(sub_samples)]
        for gene, effect_snp, effect in (("geneA", 0, 3.0), ("geneB", 3, 0.0), ("geneC", 2, 0.0)):
            y = effect * dosages[effect_snp, idx] + rng.normal(size=len(idx))
            values = [f"{v:.6f}" for v in y]
            if gene == "geneB":
                values[0] = "NA"
            rows.append(gene + " " + " ".join(values))
        (tmp_path / f"phenos_{subgroup}.txt").write_text("\n".join(rows) + "\n")

    (tmp_path / "list_genos.txt").write_text(f"all {tmp_path / 'genos.impute'}\n")
    (tmp_path / "list_phenos.txt").write_text(
        "\n".join(f"{s} {tmp_path / f'phenos_{s}.txt'}" for s in subgroups) + "\n"
    )
    # geneC has no marker within 1 kb
    (tmp_path / "features.bed").write_text(
        "chr1\t1099\t1200\tgeneA\nchr2\t499\t600\tgeneB\nchr1\t30000\t31000\tgeneC\n"
    )
    (tmp_path / "grid.txt").write_text("0.01 0.1\n0.1 0.4\n")
    return tmp_path


def _run(tmp_path, prefix, **config_kwargs):
    _write_inputs(tmp_path)
    config = AnalysisConfig(cis=1000, verbose=0, **config_kwargs)
    pipeline = EQTLPipeline(tmp_path / "results" / prefix, config)
    paths = pipeline.run(tmp_path / "list_genos.txt", tmp_path / "list_phenos.txt", tmp_path / "features.bed")
    return pipeline, paths


def test_step1_writes_sumstats_only(tmp_path) -> None:
    pipeline, paths = _run(tmp_path, "s1", step=1)

    assert sorted(p.name for p in paths) == ["s1_sumstats_liver.txt.gz", "s1_sumstats_lung.txt.gz"]
    df = pd.read_csv(paths[0], sep=' ')
    assert df['ftr'].tolist() == ["geneA", "geneA", "geneB"]
    assert df['snp'].tolist() == ["rs1", "rs2", "rs4"]
    lung = pd.read_csv(tmp_path / "results" / "s1_sumstats_lung.txt.gz", sep=' ')
    # geneB has one NA in the lung subgroup, which also misses two samples
    assert lung.loc[lung['ftr'] == 'geneB', 'n'].item() == 17
    assert pipeline.features["geneC"].records == []
    assert pipeline.sample_index.n_samples == 20


def test_step5_full_run(tmp_path) -> None:
    pipeline, paths = _run(
        tmp_path, "s5", step=5, grid=HyperGrid([0.01, 0.1], [0.1, 0.4]),
        bfs='all', pbf='all', nb_perms=20, seed=11, trick=1,
    )

    names = sorted(p.name for p in paths)
    assert names == sorted([
        "s5_sumstats_liver.txt.gz", "s5_sumstats_lung.txt.gz",
        "s5_permPval_liver.txt.gz", "s5_permPval_lung.txt.gz",
        "s5_abfs_unweighted.txt.gz", "s5_abfs_weighted.txt.gz",
        "s5_jointPermPvals.txt.gz",
    ])
    joint = pd.read_csv(tmp_path / "results" / "s5_jointPermPvals.txt.gz", sep=' ')
    assert joint['ftr'].tolist() == ["geneA", "geneB"]
    assert joint['nbSnps'].tolist() == [2, 1]
    assert ((joint['jointPermPval'] > 0) & (joint['jointPermPval'] <= 1)).all()
    assert (joint['nbPerms'] <= 20).all()

    sep = pd.read_csv(tmp_path / "results" / "s5_permPval_liver.txt.gz", sep=' ')
    # strong effect in geneA: no permutation beats it
    assert sep.loc[sep['ftr'] == 'geneA', 'permPval'].item() == pytest.approx(1 / 21)

    with gzip.open(tmp_path / "results" / "s5_abfs_weighted.txt.gz", 'rt') as handle:
        header = handle.readline().split()
    assert header[4:] == ['abf.const', 'abf.const.fix', 'abf.const.maxh', 'abf.1', 'abf.2']


def test_results_do_not_depend_on_worker_count(tmp_path) -> None:
    common = dict(step=4, grid=HyperGrid([0.01], [0.1]), nb_perms=15, seed=5)
    serial, _ = _run(tmp_path, "serial", cpu=1, **common)
    parallel, _ = _run(tmp_path, "parallel", cpu=2, **common)

    for name in ("geneA", "geneB"):
        assert serial.features[name].joint_perm.pvalue == parallel.features[name].joint_perm.pvalue
        np.testing.assert_allclose(
            [r.weighted_abfs['const'] for r in serial.features[name].records],
            [r.weighted_abfs['const'] for r in parallel.features[name].records],
        )


def test_qnorm_run(tmp_path) -> None:
    pipeline, _ = _run(tmp_path, "qn", step=3, grid=HyperGrid([0.01], [0.1]), qnorm=True)

    rec = pipeline.features["geneA"].records[0]
    assert np.all(np.isfinite(rec.betahat))
    assert np.isfinite(rec.weighted_abfs['const'])


def test_main_entry_point(tmp_path, capsys) -> None:
    _write_inputs(tmp_path)
    argv = [
        "-g", str(tmp_path / "list_genos.txt"), "-p", str(tmp_path / "list_phenos.txt"),
        "--fcoord", str(tmp_path / "features.bed"), "-o", str(tmp_path / "cli" / "run"),
        "--cis", "1000", "--step", "3", "--grid", str(tmp_path / "grid.txt"), "--bfs", "subset",
    ]

    assert main(argv) == 0
    assert (tmp_path / "cli" / "run_abfs_weighted.txt.gz").exists()
    assert "Step 1" in capsys.readouterr().out

    assert main(argv[:-4] + ["--step", "2"]) == 1
    assert "ERROR" in capsys.readouterr().err


def test_pipeline_rejects_invalid_config(tmp_path) -> None:
    with pytest.raises(ValueError):
        EQTLPipeline(tmp_path / "x", AnalysisConfig(step=4, grid=HyperGrid([0.01], [0.1])))
