"""
Tests for configuration defaults and environment overrides.
"""

import pytest
from pydantic import ValidationError

from gwas_crossref.builds import GenomeBuild
from gwas_crossref.config import AnalysisConfig, Config


@pytest.fixture
def clean_env(monkeypatch):
    for name in ["GWASX_CATALOG", "GWASX_DBSNP_DB", "GWASX_SIFT_DB", "GWASX_CHROMHMM",
                 "GWASX_ONTOLOGY", "GWASX_PVALUE_THRESHOLD", "GWASX_CATALOG_BUILD",
                 "GWASX_CHROMATIN_BUILD", "GWASX_CACHE_DIR", "GWASX_OUTPUT_DIR"]:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestConfig:
    """Test configuration loading."""

    def test_defaults(self, clean_env):
        config = Config()
        assert config.analysis.pvalue_threshold == 5e-8
        assert config.analysis.catalog_build == GenomeBuild.GRCH38
        assert config.analysis.chromatin_build == GenomeBuild.GRCH37
        assert config.analysis.sift_threshold == 0.05
        assert config.sources.catalog is None
        assert config.configured_sources() == []
        assert config.stages.run_chromatin

    def test_environment_overrides(self, clean_env, tmp_path):
        catalog = tmp_path / "catalog.tsv"
        catalog.write_text("x\n")
        clean_env.setenv("GWASX_CATALOG", str(catalog))
        clean_env.setenv("GWASX_PVALUE_THRESHOLD", "1e-6")
        clean_env.setenv("GWASX_CATALOG_BUILD", "hg19")

        config = Config.from_env()

        assert config.sources.catalog == str(catalog)
        assert config.analysis.pvalue_threshold == 1e-6
        assert config.analysis.catalog_build == GenomeBuild.GRCH37
        assert config.configured_sources() == ["catalog"]

    def test_missing_source_is_only_a_warning(self, clean_env, tmp_path):
        clean_env.setenv("GWASX_SIFT_DB", str(tmp_path / "absent.sqlite"))
        config = Config()
        assert config.sources.sift_db.endswith("absent.sqlite")

    @pytest.mark.parametrize("threshold", [0, -1e-8, 1.5])
    def test_invalid_pvalue_threshold(self, threshold):
        with pytest.raises(ValidationError):
            AnalysisConfig(pvalue_threshold=threshold)

    def test_build_aliases_accepted(self):
        assert AnalysisConfig(chromatin_build="GRCh38").chromatin_build == GenomeBuild.GRCH38

    def test_directories_are_created(self, tmp_path):
        config = Config(output_dir=str(tmp_path / "out"))
        config.cache.cache_dir = str(tmp_path / "cache")
        assert config.get_output_dir().is_dir()
        assert config.get_cache_dir() == tmp_path / "cache"
        assert config.get_cache_dir().is_dir()
