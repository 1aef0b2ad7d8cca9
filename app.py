"""
Streamlit UI for GWAS catalog cross-referencing

Browse the catalog, pick traits or an EFO term, and annotate the selected
associations with chromatin states and SIFT scores.
"""

import math
import time
import zipfile
from pathlib import Path
from typing import Optional

import streamlit as st

from gwas_crossref.builds import GenomeBuild, build_table
from gwas_crossref.catalog import TRAIT, GwasCatalog, read_catalog
from gwas_crossref.config import Config
from gwas_crossref.crossref import CrossrefPipeline, CrossrefRequest, PipelineStage
from gwas_crossref.errors import CrossrefError
from gwas_crossref.ontology import load_ontology


st.set_page_config(
    page_title="GWAS Cross-Reference",
    page_icon="🧬",
    layout="wide",
    initial_sidebar_state="expanded"
)

st.markdown("""
<style>
.main-header {
    padding: 1rem 0;
    border-bottom: 2px solid #f0f2f6;
    margin-bottom: 1rem;
}
.status-box {
    padding: 1rem;
    border-radius: 0.5rem;
    margin: 0.5rem 0;
}
.error-box {
    background-color: #f8d7da;
    border: 1px solid #f5c6cb;
    color: #721c24;
}
.info-box {
    background-color: #d1ecf1;
    border: 1px solid #bee5eb;
    color: #0c5460;
}
</style>
""", unsafe_allow_html=True)

BUILD_OPTIONS = [GenomeBuild.GRCH37.value, GenomeBuild.GRCH38.value]
MAX_EXPONENT = 30.0


def threshold_exponent(pvalue: float) -> float:
    """Slider position (-log10 p) for a p-value threshold, kept within the slider range."""
    return min(MAX_EXPONENT, max(0.0, -math.log10(pvalue)))


@st.cache_data(show_spinner="Reading GWAS catalog...")
def _cached_catalog(path: str, build: str) -> GwasCatalog:
    return read_catalog(path, build=build)


class StreamlitCrossrefUI:
    """Main UI class for the Streamlit application."""

    def __init__(self):
        self.config = self._load_config()

        if 'pipeline_running' not in st.session_state:
            st.session_state.pipeline_running = False
        if 'current_results' not in st.session_state:
            st.session_state.current_results = None
        if 'progress_messages' not in st.session_state:
            st.session_state.progress_messages = []

    def _load_config(self) -> Config:
        if 'user_config' in st.session_state:
            return st.session_state.user_config
        return Config()

    def _save_config(self) -> None:
        st.session_state.user_config = self.config

    def render_sidebar(self) -> None:
        """Render the configuration sidebar."""
        st.sidebar.title("⚙️ Configuration")

        st.sidebar.subheader("Sources")
        sources = self.config.sources
        sources.catalog = st.sidebar.text_input(
            "GWAS catalog TSV", value=sources.catalog or "",
            help="EBI associations download (GWASX_CATALOG)"
        ) or None
        sources.chromhmm = st.sidebar.text_input(
            "ChromHMM segmentation", value=sources.chromhmm or "",
            help="BED file of chromatin states (GWASX_CHROMHMM)"
        ) or None
        sources.sift_db = st.sidebar.text_input(
            "SIFT database", value=sources.sift_db or "",
            help="SQLite file built with `gwas-crossref build-db sift`"
        ) or None
        sources.dbsnp_db = st.sidebar.text_input(
            "dbSNP location database", value=sources.dbsnp_db or "",
            help="Used to move catalog SNPs onto the segmentation's build"
        ) or None
        sources.ontology = st.sidebar.text_input(
            "EFO ontology (OBO)", value=sources.ontology or ""
        ) or None

        for name in ("catalog", "chromhmm", "sift_db", "dbsnp_db", "ontology"):
            value = getattr(sources, name)
            if value and not Path(value).exists():
                st.sidebar.error(f"❌ {name}: {value} not found")

        st.sidebar.subheader("Genome Builds")
        analysis = self.config.analysis
        analysis.catalog_build = GenomeBuild.resolve(st.sidebar.selectbox(
            "Catalog build", options=BUILD_OPTIONS,
            index=BUILD_OPTIONS.index(analysis.catalog_build.value)
        ))
        analysis.chromatin_build = GenomeBuild.resolve(st.sidebar.selectbox(
            "Segmentation build", options=BUILD_OPTIONS,
            index=BUILD_OPTIONS.index(analysis.chromatin_build.value)
        ))
        if analysis.catalog_build != analysis.chromatin_build and not sources.dbsnp_db:
            st.sidebar.warning("Builds differ: configure a dbSNP database to relocate SNPs")

        st.sidebar.subheader("Thresholds")
        exponent = st.sidebar.slider(
            "-log10 p-value threshold", min_value=0.0, max_value=MAX_EXPONENT,
            value=threshold_exponent(analysis.pvalue_threshold),
            step=0.5,
        )
        analysis.pvalue_threshold = 10 ** -exponent
        analysis.sift_threshold = st.sidebar.slider(
            "SIFT deleterious cutoff", min_value=0.0, max_value=1.0,
            value=analysis.sift_threshold, step=0.01
        )
        analysis.top_n = st.sidebar.slider("Traits in overview", 5, 50, analysis.top_n)

        st.sidebar.subheader("Pipeline Stages")
        stages = self.config.stages
        stages.run_chromatin = st.sidebar.checkbox("Chromatin states", value=stages.run_chromatin)
        stages.run_sift = st.sidebar.checkbox("SIFT scores", value=stages.run_sift)
        stages.run_relocation = st.sidebar.checkbox("Relocate through dbSNP", value=stages.run_relocation)

        self.config.debug_mode = st.sidebar.checkbox(
            "Debug Mode", value=self.config.debug_mode,
            help="Show configuration and log files with the results"
        )

        self._save_config()

    def render_header(self) -> None:
        st.markdown('<div class="main-header">', unsafe_allow_html=True)
        st.title("🧬 GWAS Cross-Reference")
        st.markdown("""
        **Query the GWAS catalog and annotate its hits**: Catalog → Trait/EFO selection →
        Chromatin states → SIFT scores → Report.
        """)
        st.markdown('</div>', unsafe_allow_html=True)

    def _catalog(self) -> Optional[GwasCatalog]:
        if not self.config.sources.catalog:
            st.info("Set the GWAS catalog path in the sidebar to begin.")
            return None
        try:
            return _cached_catalog(self.config.sources.catalog, self.config.analysis.catalog_build.value)
        except (CrossrefError, ValueError) as e:
            st.error(f"Error reading GWAS catalog: {e}")
            return None

    def render_catalog_overview(self, catalog: GwasCatalog) -> None:
        """Catalog counts and the most reported traits."""
        st.header("📚 Catalog Overview")

        col1, col2, col3 = st.columns(3)
        col1.metric("Associations", f"{len(catalog):,}")
        col2.metric("Traits", f"{catalog.frame[TRAIT].nunique():,}")
        col3.metric("Dropped (no single position)", f"{catalog.dropped:,}")

        top = catalog.top_traits(self.config.analysis.top_n).rename("associations")
        st.bar_chart(top)

        with st.expander("Genome builds"):
            st.dataframe(build_table())

    def render_selection(self, catalog: GwasCatalog) -> Optional[CrossrefRequest]:
        """Build a request from trait, pattern or EFO term input."""
        st.header("🔎 Select Associations")

        mode = st.radio("Select by:", options=["Traits", "Pattern", "EFO term"], horizontal=True)
        request = CrossrefRequest()

        if mode == "Traits":
            options = catalog.top_traits(200).index.tolist()
            request.traits = st.multiselect("Traits", options=options) or None
            if not request.traits:
                return None
        elif mode == "Pattern":
            request.pattern = st.text_input("Regular expression", placeholder="crohn|colitis") or None
            if not request.pattern:
                return None
        else:
            if not self.config.sources.ontology:
                st.warning("Configure an EFO ontology file in the sidebar to select by term.")
                return None
            query = st.text_input("Search EFO term names", placeholder="bowel")
            if query:
                terms = load_ontology(self.config.sources.ontology).find_terms(query)
                st.dataframe(terms.head(50))
            request.efo_term = st.text_input("EFO term", placeholder="EFO:0003767") or None
            request.include_descendants = st.checkbox("Include more specific terms", value=True)
            if not request.efo_term:
                return None

        chromosomes = st.multiselect("Restrict to chromosomes", options=catalog.ranges.chromosomes())
        request.chromosomes = chromosomes or None
        request.catalog = catalog

        preview = catalog
        if request.traits:
            preview = preview.subset_by_traits(request.traits)
        elif request.pattern:
            preview = preview.search_traits(request.pattern)
        if request.pattern or request.traits:
            frame = preview.significant(self.config.analysis.pvalue_threshold).manhattan_frame()
            if not frame.empty:
                st.scatter_chart(frame, x="cumulative_position", y="neg_log10_p", color="chrom")

        return request

    def render_pipeline_control(self, request: CrossrefRequest) -> None:
        st.header("🚀 Annotate")

        col1, col2 = st.columns([2, 1])
        with col1:
            if st.button("▶️ Run Cross-Reference", disabled=st.session_state.pipeline_running,
                         type="primary"):
                self._run_pipeline(request)
        with col2:
            if st.button("🔄 Reset", disabled=st.session_state.pipeline_running):
                self._reset_pipeline()

    def _run_pipeline(self, request: CrossrefRequest) -> None:
        st.session_state.pipeline_running = True
        st.session_state.progress_messages = []

        progress_bar = st.progress(0)
        status_container = st.container()
        stages = list(PipelineStage)

        def status_callback(status):
            st.session_state.progress_messages.append({
                'stage': status.stage.value,
                'message': status.message,
                'error': status.error,
                'timestamp': time.time()
            })
            progress_bar.progress((stages.index(status.stage) + 1) / len(stages))
            with status_container:
                self._render_progress_status()

        pipeline = CrossrefPipeline(self.config)
        pipeline.add_status_callback(status_callback)

        try:
            result = pipeline.run(request)
            st.session_state.current_results = result
            if result.success:
                st.success("🎉 Cross-referencing completed")
            else:
                st.error("❌ Cross-referencing failed")
                for error in result.errors:
                    st.error(error)
        finally:
            st.session_state.pipeline_running = False
            progress_bar.progress(1.0)

    def _render_progress_status(self) -> None:
        if not st.session_state.progress_messages:
            return

        latest = st.session_state.progress_messages[-1]
        box = "error-box" if latest['error'] else "info-box"
        st.markdown(f'<div class="status-box {box}">{latest["message"]}</div>', unsafe_allow_html=True)

        with st.expander("View Progress Details"):
            for msg in reversed(st.session_state.progress_messages[-10:]):
                timestamp = time.strftime('%H:%M:%S', time.localtime(msg['timestamp']))
                stage = msg['stage'].replace('_', ' ').title()
                st.text(f"[{timestamp}] {stage}: {msg['message']}")

    def _render_results(self, result) -> None:
        st.header("📊 Results")

        summary = result.summary or {}
        col1, col2, col3, col4 = st.columns(4)
        col1.metric("Hits", summary.get("hits", 0))
        col2.metric("Traits", summary.get("traits", 0))
        col3.metric("Deleterious (SIFT)", summary.get("deleterious", "-"))
        col4.metric("Execution Time", f"{result.execution_time:.2f}s")

        tab1, tab2, tab3, tab4 = st.tabs(["📋 Hits", "🧱 Chromatin", "🧪 SIFT", "📁 Downloads"])

        with tab1:
            if result.hits is not None:
                st.dataframe(result.hits)
            if "traits" in result.tables:
                st.dataframe(result.tables["traits"])

        with tab2:
            if "states" in result.tables:
                table = result.tables["states"]
                st.bar_chart(table[["observed", "expected"]])
                st.dataframe(table)
            else:
                st.info("Chromatin annotation was not run")

        with tab3:
            if "sift" in result.tables:
                st.dataframe(result.tables["sift"])
            else:
                st.info("SIFT annotation was not run")

        with tab4:
            self._render_downloads(result)

        if self.config.debug_mode:
            self._render_debug_info(result)

    def _render_downloads(self, result) -> None:
        for name, path in result.artifacts.items():
            if Path(path).exists():
                with open(path, 'rb') as f:
                    st.download_button(
                        label=f"📥 Download {name.replace('_', ' ').title()}",
                        data=f.read(),
                        file_name=Path(path).name,
                        mime='text/csv' if Path(path).suffix == ".csv" else 'application/json',
                        key=f"download_{result.run_id}_{name}"
                    )

        if result.artifacts and st.button("📦 Download All Results (ZIP)", key=f"zip_button_{result.run_id}"):
            zip_path = self._create_results_zip(result)
            with open(zip_path, 'rb') as f:
                st.download_button(
                    label="📥 Download Results ZIP",
                    data=f.read(),
                    file_name=f"gwas_crossref_{result.run_id}.zip",
                    mime='application/zip',
                    key=f"download_zip_{result.run_id}"
                )

    def _create_results_zip(self, result) -> Path:
        zip_path = result.run_directory / f"results_{result.run_id}.zip"
        with zipfile.ZipFile(zip_path, 'w', zipfile.ZIP_DEFLATED) as zipf:
            for path in result.artifacts.values():
                if Path(path).exists():
                    zipf.write(path, Path(path).name)
        return zip_path

    def _render_debug_info(self, result) -> None:
        st.subheader("Debug Information")
        st.json(self.config.model_dump(mode="json"))

        for error in result.errors:
            st.error(error)

        for log_file in Path(result.run_directory).glob("*.log"):
            with st.expander(f"View {log_file.name}"):
                st.text(log_file.read_text())

    def _reset_pipeline(self) -> None:
        st.session_state.pipeline_running = False
        st.session_state.current_results = None
        st.session_state.progress_messages = []
        st.success("State reset")

    def render_help_section(self) -> None:
        with st.expander("📚 Help & Documentation"):
            st.markdown("""
            ## Quick Start Guide

            1. **Fetch resources**: `gwas-crossref fetch catalog`, `fetch chromhmm`, `fetch ontology`
            2. **Build databases**: `gwas-crossref build-db sift scores.tsv sift.sqlite`
            3. **Configure sources** in the sidebar or with `GWASX_*` environment variables
            4. **Select associations** by trait, pattern or EFO term and run the cross-reference

            ## Genome Builds

            The catalog download is on GRCh38 while the ENCODE segmentations are on GRCh37.
            Configure a dbSNP location database on the segmentation's build so SNPs can be
            moved by rs identifier; otherwise the run stops with a build mismatch error.
            """)

    def run(self) -> None:
        """Main application entry point."""
        self.render_sidebar()
        self.render_header()

        catalog = self._catalog()
        if catalog is not None:
            self.render_catalog_overview(catalog)
            request = self.render_selection(catalog)
            if request:
                self.render_pipeline_control(request)

        if st.session_state.current_results:
            self._render_results(st.session_state.current_results)

        self.render_help_section()


def main():
    app = StreamlitCrossrefUI()
    app.run()


if __name__ == "__main__":
    main()
