"""
End-to-end tests for the cross-referencing pipeline on the fixture resources.
"""

import json

import pandas as pd
import pytest

from gwas_crossref.builds import GenomeBuild
from gwas_crossref.catalog import SNPS, read_catalog
from gwas_crossref.crossref import (
    CrossrefPipeline,
    CrossrefRequest,
    PipelineStage,
    first_rsid,
    run_crossref,
)


def by_snp(hits, column):
    return dict(zip(hits[SNPS], hits[column]))


class TestFirstRsid:
    def test_first_rsid(self):
        assert first_rsid("rs12; rs13") == "rs12"
        assert first_rsid("RS5") == "rs5"
        assert first_rsid("chr1:12345") is None
        assert first_rsid(None) is None


class TestCrossrefPipeline:
    """Test a full run with every stage enabled."""

    def test_full_run(self, config):
        result = CrossrefPipeline(config).run(CrossrefRequest())

        assert result.success, result.errors
        assert result.stages_completed == [
            PipelineStage.LOAD_CATALOG,
            PipelineStage.FILTER_TRAITS,
            PipelineStage.CHROMATIN_STATES,
            PipelineStage.SIFT_SCORES,
            PipelineStage.REPORT,
            PipelineStage.COMPLETE,
        ]
        assert sorted(result.hits[SNPS]) == ["rs1", "rs2", "rs3", "rs8"]

    def test_chromatin_states(self, config):
        hits = CrossrefPipeline(config).run(CrossrefRequest()).hits
        assert by_snp(hits, "state") == {
            "rs1": "Active Promoter",
            "rs2": "Heterochrom/lo",
            "rs3": "Strong Enhancer",
            "rs8": "Heterochrom/lo",
        }

    def test_sift_scores(self, config):
        hits = CrossrefPipeline(config).run(CrossrefRequest()).hits
        assert by_snp(hits, "sift_prediction")["rs1"] == "DAMAGING"
        assert by_snp(hits, "sift_protein")["rs1"] == "NP_000001"
        assert by_snp(hits, "sift_score")["rs3"] == pytest.approx(0.30)
        assert pd.isna(by_snp(hits, "sift_score")["rs2"])
        assert by_snp(hits, "deleterious") == {"rs1": True, "rs2": False, "rs3": False, "rs8": False}

    def test_summary_and_artifacts(self, config):
        result = CrossrefPipeline(config).run(CrossrefRequest())
        summary = result.summary

        assert summary["hits"] == 4
        assert summary["traits"] == 3
        assert summary["studies"] == 2
        assert summary["states"] == {"Heterochrom/lo": 2, "Active Promoter": 1, "Strong Enhancer": 1}
        assert summary["unannotated"] == 0
        assert summary["deleterious"] == 1
        assert summary["with_sift_score"] == 2

        assert set(result.artifacts) == {"hits", "summary", "traits", "states", "sift"}
        for path in result.artifacts.values():
            assert path.exists()
            assert path.parent == result.run_directory
        assert json.loads(result.artifacts["summary"].read_text())["hits"] == 4
        assert result.run_directory.name == f"run_{result.run_id}"

    def test_tables(self, config):
        tables = CrossrefPipeline(config).run(CrossrefRequest()).tables
        assert tables["traits"].loc["Crohn's disease", "hits"] == 2
        assert tables["states"].loc["Heterochrom/lo", "observed"] == 2
        assert set(tables["sift"]["RSID"]) == {"rs1", "rs3"}

    def test_status_callbacks(self, config):
        seen = []
        pipeline = CrossrefPipeline(config)
        pipeline.add_status_callback(lambda status: seen.append(status.stage))
        pipeline.add_status_callback(lambda status: 1 / 0)
        pipeline.run(CrossrefRequest())
        assert seen[0] == PipelineStage.LOAD_CATALOG
        assert seen[-1] == PipelineStage.COMPLETE
        assert PipelineStage.SIFT_SCORES in seen


class TestSelection:
    """Test how requests narrow the catalog."""

    def test_traits(self, config):
        result = CrossrefPipeline(config).run(CrossrefRequest(traits=["Crohn's disease"]))
        assert sorted(result.hits[SNPS]) == ["rs1", "rs2"]

    def test_pattern_and_chromosomes(self, config):
        result = CrossrefPipeline(config).run(CrossrefRequest(pattern="colitis|bowel", chromosomes=["chr2"]))
        assert sorted(result.hits[SNPS]) == ["rs3", "rs8"]

    def test_threshold_override(self, config):
        result = CrossrefPipeline(config).run(CrossrefRequest(threshold=1e-5))
        assert "rs4" in set(result.hits[SNPS])
        assert pd.isna(by_snp(result.hits, "state")["rs4"])
        assert result.summary["unannotated"] == 1

    def test_efo_term_with_descendants(self, config):
        result = CrossrefPipeline(config).run(CrossrefRequest(efo_term="EFO:0003767"))
        assert PipelineStage.ONTOLOGY in result.stages_completed
        assert sorted(result.hits[SNPS]) == ["rs1", "rs2", "rs3", "rs8"]

    def test_efo_term_only(self, config):
        result = CrossrefPipeline(config).run(
            CrossrefRequest(efo_term="EFO:0003767", include_descendants=False)
        )
        assert list(result.hits[SNPS]) == ["rs8"]

    def test_preloaded_catalog(self, config, catalog_path):
        catalog = read_catalog(catalog_path, build="GRCh37").subset_by_traits("Ulcerative colitis")
        config.sources.catalog = None
        result = CrossrefPipeline(config).run(CrossrefRequest(catalog=catalog))
        assert result.success
        assert list(result.hits[SNPS]) == ["rs3"]


class TestStagesAndFailures:
    """Test skipped stages, build relocation and error reporting."""

    def test_skipped_stages(self, config):
        config.sources.sift_db = None
        config.stages.run_chromatin = False
        config.stages.write_report = False
        result = CrossrefPipeline(config).run(CrossrefRequest())
        assert result.success
        assert result.stages_completed == [
            PipelineStage.LOAD_CATALOG, PipelineStage.FILTER_TRAITS, PipelineStage.COMPLETE
        ]
        assert "state" not in result.hits.columns
        assert "deleterious" not in result.summary
        assert result.artifacts == {}

    def test_relocation_through_dbsnp(self, config, dbsnp_path):
        config.analysis.catalog_build = GenomeBuild.GRCH38
        config.sources.dbsnp_db = str(dbsnp_path)
        result = CrossrefPipeline(config).run(CrossrefRequest())

        assert result.success, result.errors
        assert PipelineStage.RELOCATE_SNPS in result.stages_completed
        starts = by_snp(result.hits, "start")
        assert starts["rs1"] == 1500
        assert starts["rs3"] == 450
        assert by_snp(result.hits, "state")["rs8"] == "Heterochrom/lo"

    def test_debug_mode_writes_run_log(self, config):
        config.debug_mode = True
        result = CrossrefPipeline(config).run(CrossrefRequest())
        log_file = result.run_directory / f"crossref_{result.run_id}.log"
        events = [json.loads(line) for line in log_file.read_text().splitlines()]
        assert any(e["event"] == "Completed chromatin annotation" for e in events)
        assert all(e["run_id"] == result.run_id for e in events if e["event"].endswith("annotation"))

    def test_run_log_is_closed_after_debug_run(self, config):
        config.debug_mode = True
        pipeline = CrossrefPipeline(config)
        first = pipeline.run(CrossrefRequest())
        first_log = first.run_directory / f"crossref_{first.run_id}.log"
        size = first_log.stat().st_size
        assert pipeline._run_log_file is None

        config.debug_mode = False
        second = pipeline.run(CrossrefRequest())
        assert second.success
        assert first_log.stat().st_size == size
        assert second.run_id not in first_log.read_text()
        assert not (second.run_directory / f"crossref_{second.run_id}.log").exists()

    def test_build_mismatch_without_dbsnp(self, config):
        config.analysis.catalog_build = GenomeBuild.GRCH38
        result = CrossrefPipeline(config).run(CrossrefRequest())
        assert not result.success
        assert "Incompatible genome builds" in result.errors[0]
        assert result.stages_completed[-1] == PipelineStage.FILTER_TRAITS

    def test_missing_catalog(self, config):
        config.sources.catalog = None
        result = CrossrefPipeline(config).run(CrossrefRequest())
        assert not result.success
        assert result.stages_completed == []
        assert "GWASX_CATALOG" in result.errors[0]

    def test_unknown_efo_term(self, config):
        result = CrossrefPipeline(config).run(CrossrefRequest(efo_term="EFO:0000001"))
        assert not result.success
        assert "EFO:0000001" in result.errors[0]

    def test_run_crossref(self, config, tmp_path):
        result = run_crossref(pattern="Crohn", config=config, output_dir=tmp_path / "elsewhere")
        assert result.success
        assert result.run_directory.parent == tmp_path / "elsewhere"
        assert len(result.hits) == 2
