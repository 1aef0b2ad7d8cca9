"""
Configuration management using Pydantic models with environment overrides.
"""

import os
from pathlib import Path
from typing import List, Optional

import structlog
from pydantic import BaseModel, Field, field_validator

from .builds import GenomeBuild

logger = structlog.get_logger(__name__)


class SourcePaths(BaseModel):
    """Local copies of the annotation resources."""
    catalog: Optional[str] = Field(
        default_factory=lambda: os.getenv("GWASX_CATALOG"),
        description="GWAS catalog associations TSV"
    )
    dbsnp_db: Optional[str] = Field(
        default_factory=lambda: os.getenv("GWASX_DBSNP_DB"),
        description="SQLite database of dbSNP locations"
    )
    sift_db: Optional[str] = Field(
        default_factory=lambda: os.getenv("GWASX_SIFT_DB"),
        description="SQLite database of SIFT scores"
    )
    chromhmm: Optional[str] = Field(
        default_factory=lambda: os.getenv("GWASX_CHROMHMM"),
        description="ChromHMM segmentation BED file"
    )
    ontology: Optional[str] = Field(
        default_factory=lambda: os.getenv("GWASX_ONTOLOGY"),
        description="EFO ontology in OBO format"
    )


class SourceUrls(BaseModel):
    """Download locations for public resources."""
    catalog: str = Field(
        default_factory=lambda: os.getenv(
            "GWASX_CATALOG_URL",
            "https://www.ebi.ac.uk/gwas/api/search/downloads/alternative"
        )
    )
    ontology: str = Field(
        default_factory=lambda: os.getenv(
            "GWASX_ONTOLOGY_URL",
            "https://www.ebi.ac.uk/efo/efo.obo"
        )
    )
    chromhmm: str = Field(
        default_factory=lambda: os.getenv(
            "GWASX_CHROMHMM_URL",
            "https://hgdownload.soe.ucsc.edu/goldenPath/hg19/encodeDCC/"
            "wgEncodeBroadHmm/wgEncodeBroadHmmGm12878HMM.bed.gz"
        )
    )


class CacheConfig(BaseModel):
    """Download cache and network behaviour."""
    cache_dir: Optional[str] = Field(
        default_factory=lambda: os.getenv("GWASX_CACHE_DIR"),
        description="Directory holding downloaded resources"
    )
    timeout_seconds: int = Field(
        default_factory=lambda: int(os.getenv("GWASX_TIMEOUT_SECONDS", "120")),
        ge=5, description="Timeout for individual HTTP requests"
    )
    retry_attempts: int = Field(
        default_factory=lambda: int(os.getenv("GWASX_RETRY_ATTEMPTS", "3")),
        ge=1, description="Number of attempts for failed downloads"
    )
    chunk_size: int = Field(1 << 16, ge=1024, description="Streaming chunk size in bytes")


class AnalysisConfig(BaseModel):
    """Thresholds and genome builds used by the analyses."""
    pvalue_threshold: float = Field(
        default_factory=lambda: float(os.getenv("GWASX_PVALUE_THRESHOLD", "5e-8")),
        description="Genome-wide significance threshold"
    )
    catalog_build: GenomeBuild = Field(
        default_factory=lambda: GenomeBuild.resolve(os.getenv("GWASX_CATALOG_BUILD", "GRCh38")),
        description="Genome build of the GWAS catalog coordinates"
    )
    chromatin_build: GenomeBuild = Field(
        default_factory=lambda: GenomeBuild.resolve(os.getenv("GWASX_CHROMATIN_BUILD", "GRCh37")),
        description="Genome build of the ChromHMM segmentation"
    )
    top_n: int = Field(10, ge=1, description="Number of traits in top-trait tables")
    sift_threshold: float = Field(0.05, ge=0.0, le=1.0, description="SIFT deleterious cutoff")

    @field_validator("pvalue_threshold")
    @classmethod
    def validate_pvalue(cls, v):
        if not 0 < v <= 1:
            raise ValueError(f"p-value threshold must be in (0, 1], got {v}")
        return v


class PipelineStages(BaseModel):
    """Toggle pipeline stages on/off."""
    run_relocation: bool = Field(True, description="Relocate SNPs through dbSNP when builds differ")
    run_chromatin: bool = Field(True, description="Annotate hits with chromatin states")
    run_sift: bool = Field(True, description="Attach SIFT scores")
    write_report: bool = Field(True, description="Write hits table and summary")


class Config(BaseModel):
    """Main configuration class for the cross-referencing toolkit."""

    sources: SourcePaths = Field(default_factory=SourcePaths)
    urls: SourceUrls = Field(default_factory=SourceUrls)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    stages: PipelineStages = Field(default_factory=PipelineStages)

    output_dir: Optional[str] = Field(
        default_factory=lambda: os.getenv("GWASX_OUTPUT_DIR", "output"),
        description="Output directory for results"
    )
    debug_mode: bool = Field(False, description="Enable debug logging")

    @field_validator("sources")
    @classmethod
    def validate_sources(cls, v):
        """Warn about configured sources that are not on disk."""
        for name in ("catalog", "dbsnp_db", "sift_db", "chromhmm", "ontology"):
            path_value = getattr(v, name)
            if path_value and not Path(path_value).exists():
                logger.warning("Configured source does not exist", source=name, path=path_value)
        return v

    @classmethod
    def from_env(cls) -> "Config":
        """Create configuration with environment variable overrides."""
        return cls()

    def configured_sources(self) -> List[str]:
        """Names of the local sources that are set."""
        return [name for name, value in self.sources.model_dump().items() if value]

    def get_cache_dir(self) -> Path:
        """Get cache directory path, creating if necessary."""
        if self.cache.cache_dir:
            cache_path = Path(self.cache.cache_dir)
        else:
            cache_path = Path.home() / ".cache" / "gwas_crossref"

        cache_path.mkdir(parents=True, exist_ok=True)
        return cache_path

    def get_output_dir(self) -> Path:
        """Get output directory path, creating if necessary."""
        if self.output_dir:
            output_path = Path(self.output_dir)
        else:
            output_path = Path.cwd() / "output"

        output_path.mkdir(parents=True, exist_ok=True)
        return output_path


# Default configuration instance
default_config = Config()
