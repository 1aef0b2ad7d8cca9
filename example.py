#!/usr/bin/env python3
"""
Example script walking through the GWAS cross-referencing toolkit.

Shows how to use the library programmatically without the Streamlit UI.
Point the GWASX_* environment variables at local copies of the resources
(or fetch them with ``gwas-crossref fetch``) before running it.
"""

import sys
from pathlib import Path

from gwas_crossref.builds import GenomeBuild, build_summary
from gwas_crossref.catalog import read_catalog
from gwas_crossref.chromatin import read_chromhmm
from gwas_crossref.config import Config
from gwas_crossref.crossref import run_crossref
from gwas_crossref.errors import CrossrefError
from gwas_crossref.ontology import load_ontology
from gwas_crossref.sift import SiftDB


def example_builds():
    """Example: the two supported reference builds."""
    print("=" * 60)
    print("Genome builds")
    print("=" * 60)
    for build in GenomeBuild:
        summary = build_summary(build)
        print(f"  {summary['ncbi_name']} ({summary['ucsc_name']}): "
              f"{summary['genome_length']:,} bp, chr1 = {summary['lengths']['1']:,} bp")


def example_catalog(config: Config):
    """Example: query the catalog by trait."""
    print("\n" + "=" * 60)
    print("GWAS catalog")
    print("=" * 60)

    catalog = read_catalog(config.sources.catalog, build=config.analysis.catalog_build)
    print(f"Loaded {len(catalog):,} associations ({catalog.dropped:,} without a single position)")

    print("\nMost studied traits:")
    print(catalog.top_traits(5).to_string())

    trait = catalog.top_traits(1).index[0]
    hits = catalog.subset_by_traits(trait).significant(config.analysis.pvalue_threshold)
    print(f"\n{len(hits)} genome-wide significant hits for {trait}")
    print(hits.frame[["chrom", "start", "SNPS", "P-VALUE"]].head(10).to_string(index=False))
    return catalog


def example_ontology(config: Config, catalog):
    """Example: expand an EFO term to its more specific terms."""
    if not config.sources.ontology:
        print("\nSet GWASX_ONTOLOGY to run the ontology example")
        return

    efo = load_ontology(config.sources.ontology)
    term = "EFO:0003767"
    print(f"\n{term} ({efo.name(term)}) has {len(efo.descendants(term))} more specific terms")
    subset = efo.subset_catalog(catalog, term)
    print(f"{len(subset)} associations are mapped to it or below it")


def example_chromatin(config: Config, catalog):
    """Example: chromatin states of a trait's hits."""
    if not config.sources.chromhmm:
        print("\nSet GWASX_CHROMHMM to run the chromatin example")
        return

    states = read_chromhmm(config.sources.chromhmm, build=config.analysis.chromatin_build)
    if states.build != catalog.build:
        print(f"\nSegmentation is on {states.build}, catalog on {catalog.build}: "
              "see example_pipeline for relocation through dbSNP")
        return
    print("\nState enrichment of all catalog SNPs:")
    print(states.enrichment(catalog.ranges).round(2).to_string())


def example_sift(config: Config):
    """Example: SIFT scores for a few well-known coding SNPs."""
    if not config.sources.sift_db:
        print("\nSet GWASX_SIFT_DB to run the SIFT example")
        return

    with SiftDB(config.sources.sift_db) as db:
        print("\nSIFT scores:")
        print(db.select(["rs6025", "rs1799963", "rs7329174"]).to_string(index=False))


def example_pipeline(config: Config):
    """Example: the full cross-reference for inflammatory bowel disease."""
    print("\n" + "=" * 60)
    print("Cross-reference pipeline")
    print("=" * 60)

    result = run_crossref(pattern="crohn|colitis|bowel", config=config,
                          output_dir=Path("./example_output"))

    print(f"  Success: {result.success}")
    print(f"  Run ID: {result.run_id}")
    print(f"  Execution Time: {result.execution_time:.2f} seconds")
    print(f"  Stages Completed: {', '.join(s.value for s in result.stages_completed)}")

    if result.summary:
        print(f"  Hits: {result.summary['hits']}, traits: {result.summary['traits']}")
        for state, count in result.summary.get("states", {}).items():
            print(f"    {state}: {count}")

    for name, path in result.artifacts.items():
        print(f"  - {name}: {path}")

    for error in result.errors:
        print(f"  error: {error}")


def main():
    print("GWAS cross-referencing examples")
    print("For the interactive version, run: streamlit run app.py\n")

    config = Config.from_env()
    example_builds()

    if not config.sources.catalog:
        print("\nSet GWASX_CATALOG (or run `gwas-crossref fetch catalog`) to continue")
        return

    try:
        catalog = example_catalog(config)
        example_ontology(config, catalog)
        example_chromatin(config, catalog)
        example_sift(config)
        example_pipeline(config)
    except CrossrefError as e:
        print(f"\nExample failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
