"""
Tests for the command line interface.
"""

import pytest

from gwas_crossref.cli import build_parser, main


@pytest.fixture
def sources(monkeypatch, tmp_path, catalog_path, chromhmm_path, obo_path, sift_path):
    """Point the CLI at the fixture resources through the environment."""
    monkeypatch.setenv("GWASX_CATALOG", str(catalog_path))
    monkeypatch.setenv("GWASX_CHROMHMM", str(chromhmm_path))
    monkeypatch.setenv("GWASX_ONTOLOGY", str(obo_path))
    monkeypatch.setenv("GWASX_SIFT_DB", str(sift_path))
    monkeypatch.setenv("GWASX_CATALOG_BUILD", "GRCh37")
    monkeypatch.setenv("GWASX_OUTPUT_DIR", str(tmp_path / "output"))
    monkeypatch.delenv("GWASX_DBSNP_DB", raising=False)
    return monkeypatch


class TestParser:
    def test_subcommand_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_repeatable_options(self):
        args = build_parser().parse_args(["annotate", "--trait", "A", "--trait", "B", "--chrom", "1"])
        assert args.trait == ["A", "B"]
        assert args.chrom == ["1"]


class TestCommands:
    """Run each subcommand against the fixture resources."""

    def test_builds(self, capsys):
        assert main(["builds", "--build", "hg38"]) == 0
        assert "GRCh38 (hg38)" in capsys.readouterr().out

    def test_build_table(self, capsys):
        assert main(["builds"]) == 0
        out = capsys.readouterr().out
        assert "GRCh37" in out and "GRCh38" in out

    def test_top_traits(self, sources, capsys):
        assert main(["top-traits", "-n", "1"]) == 0
        out = capsys.readouterr().out
        assert "Crohn's disease" in out
        assert "Height" not in out

    def test_trait(self, sources, capsys):
        assert main(["trait", "Ulcerative colitis"]) == 0
        assert "rs3" in capsys.readouterr().out

    def test_catalog_option_overrides_environment(self, sources, catalog_path, capsys):
        sources.setenv("GWASX_CATALOG", "/nonexistent.tsv")
        assert main(["--catalog", str(catalog_path), "trait", "Height"]) == 0
        assert "rs4" in capsys.readouterr().out

    def test_missing_catalog(self, monkeypatch, capsys):
        monkeypatch.delenv("GWASX_CATALOG", raising=False)
        assert main(["top-traits"]) == 1
        assert "GWASX_CATALOG" in capsys.readouterr().err

    def test_annotate(self, sources, tmp_path, capsys):
        assert main(["annotate", "--pattern", "crohn", "--output-dir", str(tmp_path / "runs")]) == 0
        captured = capsys.readouterr()
        assert "Active Promoter" in captured.out
        assert "hits:" in captured.out
        assert "[complete]" in captured.err
        assert list((tmp_path / "runs").glob("run_*/hits.csv"))

    def test_annotate_failure(self, sources, capsys):
        sources.setenv("GWASX_CATALOG_BUILD", "GRCh38")
        assert main(["annotate"]) == 1
        assert "Incompatible genome builds" in capsys.readouterr().err

    def test_sift(self, sources, capsys):
        assert main(["sift", "rs1", "rs42", "--columns", "PREDICTION,SCORE"]) == 0
        out = capsys.readouterr().out
        assert "DAMAGING" in out
        assert "NP_000001" not in out

    def test_ontology(self, sources, capsys):
        assert main(["ontology", "EFO:0000405", "--descendants"]) == 0
        out = capsys.readouterr().out
        assert "digestive system disease" in out
        assert "ulcerative colitis" in out

    def test_ontology_search(self, sources, capsys):
        assert main(["ontology", "height", "--search"]) == 0
        assert "EFO:0004339" in capsys.readouterr().out

    def test_unknown_term(self, sources, capsys):
        assert main(["ontology", "EFO:404"]) == 1
        assert "Unknown ontology term" in capsys.readouterr().err

    def test_build_db(self, tmp_path, capsys):
        source = tmp_path / "snps.tsv"
        source.write_text("rsid\tchrom\tpos\nrs1\t1\t100\n", encoding="utf-8")
        assert main(["build-db", "dbsnp", str(source), str(tmp_path / "db.sqlite"),
                     "--build", "hg19"]) == 0
        assert "Wrote 1 rows" in capsys.readouterr().out

    def test_build_db_requires_build(self, tmp_path):
        assert main(["build-db", "dbsnp", str(tmp_path / "x.tsv"), str(tmp_path / "db.sqlite")]) == 1

    def test_unknown_sift_column(self, sources, capsys):
        assert main(["sift", "rs1", "--columns", "BOGUS"]) == 1
        assert "Unknown SIFT column" in capsys.readouterr().err

    def test_malformed_rsid(self, sources, capsys):
        assert main(["sift", "snp1"]) == 1
        assert "Not an rs identifier" in capsys.readouterr().err

    def test_unknown_build(self, capsys):
        assert main(["builds", "--build", "hg20"]) == 1
        assert "Unknown genome build" in capsys.readouterr().err

    def test_bad_search_pattern(self, sources, capsys):
        assert main(["ontology", "colitis(", "--search"]) == 1
        assert capsys.readouterr().err.startswith("error:")
