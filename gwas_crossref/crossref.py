"""
Pipeline that cross-references GWAS catalog hits with chromatin states and SIFT scores.
"""

import re
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pandas as pd
import structlog

from .catalog import SNPS, TRAIT, GwasCatalog, read_catalog
from .chromatin import ChromatinStates, read_chromhmm
from .config import Config
from .dbsnp import SnpLocationDB
from .errors import IncompatibleGenomeError, SourceNotFoundError
from .logging_setup import LogCapture, get_run_logger
from .ontology import load_ontology
from .report import summarize_hits, write_report
from .sift import SiftDB, deleterious
from .utils import create_run_directory, generate_run_id

logger = structlog.get_logger(__name__)

_FIRST_RSID = re.compile(r"rs\d+", re.IGNORECASE)


class PipelineStage(Enum):
    """Pipeline processing stages."""
    LOAD_CATALOG = "load_catalog"
    ONTOLOGY = "ontology"
    FILTER_TRAITS = "filter_traits"
    RELOCATE_SNPS = "relocate_snps"
    CHROMATIN_STATES = "chromatin_states"
    SIFT_SCORES = "sift_scores"
    REPORT = "report"
    COMPLETE = "complete"


@dataclass
class PipelineStatus:
    """Status update from pipeline processing."""
    stage: PipelineStage
    progress: float  # 0.0 to 1.0
    message: str
    details: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


@dataclass
class CrossrefRequest:
    """Which associations to select and where to write results."""
    traits: Optional[List[str]] = None
    pattern: Optional[str] = None
    efo_term: Optional[str] = None
    include_descendants: bool = True
    threshold: Optional[float] = None
    chromosomes: Optional[List[str]] = None
    output_dir: Optional[Path] = None
    catalog: Optional[GwasCatalog] = None


@dataclass
class CrossrefResult:
    """Complete result from a pipeline run."""
    success: bool
    run_id: str
    run_directory: Path
    execution_time: float
    stages_completed: List[PipelineStage]
    hits: Optional[pd.DataFrame] = None
    tables: Dict[str, pd.DataFrame] = field(default_factory=dict)
    artifacts: Dict[str, Path] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    summary: Optional[Dict[str, Any]] = None


def first_rsid(value) -> Optional[str]:
    if not isinstance(value, str):
        return None
    match = _FIRST_RSID.search(value)
    return match.group(0).lower() if match else None


class CrossrefPipeline:
    """Orchestrates catalog selection and annotation."""

    def __init__(self, config: Config):
        self.config = config
        self.current_run_id = None
        self.current_run_dir = None
        self.status_callbacks: List[Callable[[PipelineStatus], None]] = []
        self.log = logger
        self._run_log_file = None

    def add_status_callback(self, callback) -> None:
        """Add a callback function for status updates."""
        self.status_callbacks.append(callback)

    def _emit_status(
        self,
        stage: PipelineStage,
        progress: float,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None
    ) -> None:
        status = PipelineStatus(stage=stage, progress=progress, message=message,
                                details=details, error=error)
        for callback in self.status_callbacks:
            try:
                callback(status)
            except Exception as e:
                self.log.warning("Status callback failed", error=str(e))

    def _prepare_run_environment(self, output_dir: Optional[Path] = None) -> Path:
        self.current_run_id = generate_run_id()
        base_dir = Path(output_dir) if output_dir else self.config.get_output_dir()
        self.current_run_dir = create_run_directory(base_dir, self.current_run_id)
        if self.config.debug_mode:
            self.log, self._run_log_file = get_run_logger(self.current_run_dir, self.current_run_id)
        else:
            self.log = logger.bind(run_id=self.current_run_id)
        return self.current_run_dir

    def _close_run_log(self) -> None:
        if self._run_log_file is not None:
            self._run_log_file.close()
            self._run_log_file = None
        self.log = logger

    def _load_catalog(self, request: CrossrefRequest) -> GwasCatalog:
        if request.catalog is not None:
            return request.catalog
        if not self.config.sources.catalog:
            raise SourceNotFoundError("No GWAS catalog configured (set GWASX_CATALOG)")
        with LogCapture(self.log, "load catalog", path=self.config.sources.catalog):
            return read_catalog(self.config.sources.catalog, build=self.config.analysis.catalog_build)

    def _select_by_term(self, catalog: GwasCatalog, request: CrossrefRequest) -> GwasCatalog:
        if not self.config.sources.ontology:
            raise SourceNotFoundError("An ontology term was requested but no ontology is configured")
        ontology = load_ontology(self.config.sources.ontology)
        selected = ontology.subset_catalog(catalog, request.efo_term,
                                           include_descendants=request.include_descendants)
        self._emit_status(
            PipelineStage.ONTOLOGY, 1.0,
            f"{len(selected)} associations mapped to {request.efo_term} ({ontology.name(request.efo_term)})"
        )
        return selected

    def _filter(self, catalog: GwasCatalog, request: CrossrefRequest) -> GwasCatalog:
        if request.traits:
            catalog = catalog.subset_by_traits(request.traits)
        if request.pattern:
            catalog = catalog.search_traits(request.pattern)
        if request.chromosomes:
            catalog = catalog.subset_by_chromosome(request.chromosomes)

        threshold = request.threshold if request.threshold is not None else self.config.analysis.pvalue_threshold
        catalog = catalog.significant(threshold)

        self._emit_status(
            PipelineStage.FILTER_TRAITS, 1.0,
            f"{len(catalog)} associations selected at p <= {threshold:g}",
            details={"threshold": threshold, "traits": int(catalog.frame[TRAIT].nunique())}
        )
        return catalog

    def _align_builds(self, catalog: GwasCatalog, states: ChromatinStates) -> GwasCatalog:
        """Move the catalog onto the segmentation's build through dbSNP if they differ."""
        if catalog.build is None or states.build is None or catalog.build == states.build:
            return catalog

        db_path = self.config.sources.dbsnp_db
        if not (self.config.stages.run_relocation and db_path):
            raise IncompatibleGenomeError(catalog.build, states.build,
                                          "chromatin annotation (configure a dbSNP database to relocate)")

        with SnpLocationDB(db_path) as db:
            if db.build != states.build:
                raise IncompatibleGenomeError(db.build, states.build, "dbSNP relocation")
            rsids = catalog.primary_rsids().dropna().astype(int).unique()
            locations = db.lookup_rsids(rsids)

        relocated = catalog.relocate(locations, states.build)
        self._emit_status(
            PipelineStage.RELOCATE_SNPS, 1.0,
            f"Relocated {len(relocated)} of {len(catalog)} associations to {states.build}",
            details={"dropped": len(catalog) - len(relocated)}
        )
        return relocated

    def _annotate_states(self, catalog: GwasCatalog):
        with LogCapture(self.log, "chromatin annotation", path=self.config.sources.chromhmm):
            states = read_chromhmm(self.config.sources.chromhmm, build=self.config.analysis.chromatin_build)
            catalog = self._align_builds(catalog, states)
            annotated = states.annotate(catalog.ranges)
            enrichment = states.enrichment(catalog.ranges)

        self._emit_status(
            PipelineStage.CHROMATIN_STATES, 1.0,
            f"Annotated {int(annotated['state'].notna().sum())} of {len(annotated)} hits with chromatin states"
        )
        return catalog, annotated, enrichment

    def _attach_sift(self, hits: pd.DataFrame):
        rsids = hits[SNPS].map(first_rsid)
        with SiftDB(self.config.sources.sift_db) as db:
            scores = db.select(rsids.dropna().unique(),
                               columns=["RSID", "PROTEIN_ID", "RESIDUE_REF", "RESIDUE_ALT",
                                        "PREDICTION", "SCORE"])

        # keep the most damaging substitution per SNP
        best = scores.dropna(subset=["SCORE"]).sort_values(["RSID", "SCORE"]).drop_duplicates("RSID")
        best = best.rename(columns={
            "PROTEIN_ID": "sift_protein", "PREDICTION": "sift_prediction", "SCORE": "sift_score",
            "RESIDUE_REF": "sift_ref", "RESIDUE_ALT": "sift_alt",
        })

        annotated = hits.copy()
        annotated["_rsid"] = rsids.to_numpy()
        annotated = annotated.merge(best, left_on="_rsid", right_on="RSID", how="left")
        annotated = annotated.drop(columns=["_rsid", "RSID"])
        annotated["deleterious"] = deleterious(
            annotated.rename(columns={"sift_score": "SCORE"}), self.config.analysis.sift_threshold
        ).to_numpy()

        self._emit_status(
            PipelineStage.SIFT_SCORES, 1.0,
            f"SIFT scores found for {int(annotated['sift_score'].notna().sum())} hits",
        )
        return annotated, scores

    def run(self, request: CrossrefRequest) -> CrossrefResult:
        """
        Execute the selection and every configured annotation stage.

        Stages whose source is not configured are skipped. Any exception stops
        the run and is reported in the result rather than raised.
        """
        start_time = time.time()
        stages_completed: List[PipelineStage] = []
        artifacts: Dict[str, Path] = {}
        tables: Dict[str, pd.DataFrame] = {}
        errors: List[str] = []
        hits = None

        try:
            run_dir = self._prepare_run_environment(request.output_dir)

            self._emit_status(PipelineStage.LOAD_CATALOG, 0.1, "Loading GWAS catalog")
            catalog = self._load_catalog(request)
            stages_completed.append(PipelineStage.LOAD_CATALOG)
            self._emit_status(PipelineStage.LOAD_CATALOG, 1.0,
                              f"Catalog loaded: {len(catalog)} associations")

            if request.efo_term:
                catalog = self._select_by_term(catalog, request)
                stages_completed.append(PipelineStage.ONTOLOGY)

            catalog = self._filter(catalog, request)
            stages_completed.append(PipelineStage.FILTER_TRAITS)
            tables["traits"] = catalog.trait_table()
            hits = catalog.frame.copy()

            if self.config.stages.run_chromatin and self.config.sources.chromhmm:
                relocated, hits, enrichment = self._annotate_states(catalog)
                if relocated is not catalog:
                    stages_completed.append(PipelineStage.RELOCATE_SNPS)
                stages_completed.append(PipelineStage.CHROMATIN_STATES)
                tables["states"] = enrichment
            else:
                self.log.info("Skipping chromatin annotation")

            if self.config.stages.run_sift and self.config.sources.sift_db:
                hits, tables["sift"] = self._attach_sift(hits)
                stages_completed.append(PipelineStage.SIFT_SCORES)
            else:
                self.log.info("Skipping SIFT annotation")

            summary = summarize_hits(hits)
            if self.config.stages.write_report:
                files = write_report(hits, summary, run_dir, tables=tables)
                artifacts["hits"] = files.hits
                artifacts["summary"] = files.summary
                artifacts.update(files.tables)
                stages_completed.append(PipelineStage.REPORT)

            stages_completed.append(PipelineStage.COMPLETE)
            execution_time = time.time() - start_time
            self._emit_status(PipelineStage.COMPLETE, 1.0,
                              f"Cross-referencing completed in {execution_time:.2f} seconds",
                              details=summary)

            return CrossrefResult(
                success=True,
                run_id=self.current_run_id,
                run_directory=run_dir,
                execution_time=execution_time,
                stages_completed=stages_completed,
                hits=hits,
                tables=tables,
                artifacts=artifacts,
                errors=errors,
                summary=summary,
            )

        except Exception as e:
            execution_time = time.time() - start_time
            error_msg = str(e)
            errors.append(error_msg)
            self.log.error("Cross-referencing failed", error=error_msg,
                           error_type=type(e).__name__)

            self._emit_status(
                stages_completed[-1] if stages_completed else PipelineStage.LOAD_CATALOG,
                0.0,
                f"Pipeline failed: {error_msg}",
                error=error_msg
            )

            return CrossrefResult(
                success=False,
                run_id=self.current_run_id or "unknown",
                run_directory=self.current_run_dir or Path(),
                execution_time=execution_time,
                stages_completed=stages_completed,
                hits=hits,
                tables=tables,
                artifacts=artifacts,
                errors=errors,
            )
        finally:
            self._close_run_log()


def run_crossref(
    traits: Optional[List[str]] = None,
    pattern: Optional[str] = None,
    efo_term: Optional[str] = None,
    config: Optional[Config] = None,
    output_dir: Optional[Path] = None,
    **kwargs
) -> CrossrefResult:
    """
    Convenience function to run the pipeline.

    Args:
        traits: Exact DISEASE/TRAIT values to keep
        pattern: Regular expression matched against DISEASE/TRAIT
        efo_term: EFO term (CURIE or URI) whose associations to keep
        config: Optional configuration (uses default if not provided)
        output_dir: Optional output directory
        **kwargs: Other CrossrefRequest fields

    Returns:
        Pipeline result
    """
    if config is None:
        from .config import default_config
        config = default_config

    request = CrossrefRequest(traits=traits, pattern=pattern, efo_term=efo_term,
                              output_dir=output_dir, **kwargs)
    return CrossrefPipeline(config).run(request)
