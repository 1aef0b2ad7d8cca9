"""
Command line interface.

Examples:
    gwas-crossref fetch catalog
    gwas-crossref top-traits -n 20
    gwas-crossref annotate --pattern "crohn" --threshold 1e-10
    gwas-crossref sift rs6025 rs1799963
"""

import argparse
import re
import sys
from pathlib import Path
from typing import List, Optional

import pandas as pd

from .builds import build_summary, build_table
from .catalog import read_catalog
from .config import Config
from .crossref import CrossrefPipeline, CrossrefRequest
from .dbsnp import build_snp_db
from .errors import CrossrefError
from .logging_setup import setup_logging
from .ontology import load_ontology
from .sift import SiftDB, build_sift_db
from .sources import AnnotationCache


def _require(value: Optional[str], what: str, env: str) -> str:
    if not value:
        raise CrossrefError(f"No {what} configured; pass --{what.replace(' ', '-')} or set {env}")
    return value


def _print_frame(frame: pd.DataFrame) -> None:
    with pd.option_context("display.max_rows", 200, "display.width", 160):
        print(frame.to_string())


def cmd_fetch(args, config: Config) -> int:
    cache = AnnotationCache.from_config(config)
    path = cache.fetch(args.name, url=args.url, refresh=args.refresh)
    print(path)
    return 0


def cmd_builds(args, config: Config) -> int:
    if args.build:
        summary = build_summary(args.build)
        print(f"{summary['ncbi_name']} ({summary['ucsc_name']}): "
              f"{summary['chromosomes']} sequences, {summary['genome_length']:,} bp nuclear genome")
    else:
        _print_frame(build_table())
    return 0


def cmd_top_traits(args, config: Config) -> int:
    catalog = read_catalog(_require(config.sources.catalog, "catalog", "GWASX_CATALOG"),
                           build=config.analysis.catalog_build)
    _print_frame(catalog.top_traits(args.n).to_frame("associations"))
    return 0


def cmd_trait(args, config: Config) -> int:
    catalog = read_catalog(_require(config.sources.catalog, "catalog", "GWASX_CATALOG"),
                           build=config.analysis.catalog_build)
    locations = catalog.locations_for_trait(args.trait)
    columns = [c for c in ["chrom", "start", "SNPS", "P-VALUE", "MAPPED_GENE"] if c in locations.frame]
    _print_frame(locations.sort().frame[columns])
    return 0


def cmd_annotate(args, config: Config) -> int:
    pipeline = CrossrefPipeline(config)
    pipeline.add_status_callback(lambda status: print(f"[{status.stage.value}] {status.message}",
                                                      file=sys.stderr))
    result = pipeline.run(CrossrefRequest(
        traits=args.trait,
        pattern=args.pattern,
        efo_term=args.efo_term,
        include_descendants=not args.exact_term,
        threshold=args.threshold,
        chromosomes=args.chrom,
        output_dir=Path(args.output_dir) if args.output_dir else None,
    ))
    if not result.success:
        for error in result.errors:
            print(f"error: {error}", file=sys.stderr)
        return 1

    if "states" in result.tables:
        _print_frame(result.tables["states"])
    for name, path in result.artifacts.items():
        print(f"{name}: {path}")
    return 0


def cmd_sift(args, config: Config) -> int:
    with SiftDB(_require(config.sources.sift_db, "sift db", "GWASX_SIFT_DB")) as db:
        columns = args.columns.split(",") if args.columns else None
        _print_frame(db.select(args.rsids, columns=columns))
    return 0


def cmd_ontology(args, config: Config) -> int:
    ontology = load_ontology(_require(config.sources.ontology, "ontology", "GWASX_ONTOLOGY"))
    if args.search:
        _print_frame(ontology.find_terms(args.term))
        return 0
    print(f"{args.term}: {ontology.name(args.term)}")
    terms = ontology.descendants(args.term) if args.descendants else ontology.children(args.term)
    _print_frame(ontology.term_table(terms))
    return 0


def cmd_build_db(args, config: Config) -> int:
    if args.kind == "dbsnp":
        if not args.build:
            raise CrossrefError("--build is required for a dbSNP location database")
        count = build_snp_db(args.source, args.db, build=args.build)
    else:
        count = build_sift_db(args.source, args.db)
    print(f"Wrote {count} rows to {args.db}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gwas-crossref",
        description="Query and cross-reference the GWAS catalog, dbSNP, chromatin states and SIFT scores",
    )
    parser.add_argument("--log-level", default="WARNING", help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument("--catalog", help="GWAS catalog associations TSV")
    parser.add_argument("--dbsnp-db", help="dbSNP location SQLite database")
    parser.add_argument("--sift-db", help="SIFT score SQLite database")
    parser.add_argument("--chromhmm", help="ChromHMM segmentation BED")
    parser.add_argument("--ontology", help="EFO ontology OBO file")

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("fetch", help="Download a public resource into the cache")
    p.add_argument("name", help="catalog, ontology or chromhmm")
    p.add_argument("--url", help="Override the download URL")
    p.add_argument("--refresh", action="store_true", help="Download even if cached")
    p.set_defaults(func=cmd_fetch)

    p = sub.add_parser("builds", help="Describe the supported genome builds")
    p.add_argument("--build", help="Only describe this build (GRCh37, hg38, ...)")
    p.set_defaults(func=cmd_builds)

    p = sub.add_parser("top-traits", help="Most frequently reported traits")
    p.add_argument("-n", type=int, default=10)
    p.set_defaults(func=cmd_top_traits)

    p = sub.add_parser("trait", help="Locations of the associations for one trait")
    p.add_argument("trait")
    p.set_defaults(func=cmd_trait)

    p = sub.add_parser("annotate", help="Select associations and annotate them")
    p.add_argument("--trait", action="append", help="Exact trait (repeatable)")
    p.add_argument("--pattern", help="Regular expression on trait names")
    p.add_argument("--efo-term", help="EFO term, e.g. EFO:0000270")
    p.add_argument("--exact-term", action="store_true", help="Do not include more specific terms")
    p.add_argument("--threshold", type=float, help="p-value threshold")
    p.add_argument("--chrom", action="append", help="Chromosome (repeatable)")
    p.add_argument("--output-dir", help="Directory for run output")
    p.set_defaults(func=cmd_annotate)

    p = sub.add_parser("sift", help="SIFT scores for rs identifiers")
    p.add_argument("rsids", nargs="+")
    p.add_argument("--columns", help="Comma-separated SIFT columns")
    p.set_defaults(func=cmd_sift)

    p = sub.add_parser("ontology", help="Browse the trait ontology")
    p.add_argument("term", help="Term identifier, or a name pattern with --search")
    p.add_argument("--descendants", action="store_true", help="List all more specific terms")
    p.add_argument("--search", action="store_true", help="Search term names")
    p.set_defaults(func=cmd_ontology)

    p = sub.add_parser("build-db", help="Build a SQLite annotation database")
    p.add_argument("kind", choices=["dbsnp", "sift"])
    p.add_argument("source", help="Input TSV")
    p.add_argument("db", help="SQLite file to write")
    p.add_argument("--build", help="Genome build of dbSNP positions")
    p.set_defaults(func=cmd_build_db)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(level=args.log_level)

    config = Config.from_env()
    for name in ("catalog", "dbsnp_db", "sift_db", "chromhmm", "ontology"):
        value = getattr(args, name)
        if value:
            setattr(config.sources, name, value)

    try:
        return args.func(args, config)
    except (CrossrefError, ValueError, re.error) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
