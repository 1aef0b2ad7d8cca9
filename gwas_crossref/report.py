"""
Summaries and output files for cross-referenced GWAS hits.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import pandas as pd

from .catalog import PUBMEDID, SNPS, STUDY_ACCESSION, TRAIT
from .utils import ensure_directory, write_json


@dataclass
class ReportFiles:
    """Paths written by write_report."""
    hits: Path
    summary: Path
    tables: Dict[str, Path] = field(default_factory=dict)


def _count_unique(frame: pd.DataFrame, column: str) -> int:
    return int(frame[column].nunique()) if column in frame.columns else 0


def summarize_hits(hits: pd.DataFrame) -> Dict[str, Any]:
    """
    Headline numbers for a table of annotated associations.

    Counts that depend on optional annotation columns (``state``,
    ``deleterious``) are only present when the column is.
    """
    summary: Dict[str, Any] = {
        "hits": int(len(hits)),
        "snps": _count_unique(hits, SNPS),
        "traits": _count_unique(hits, TRAIT),
        "studies": _count_unique(hits, STUDY_ACCESSION) or _count_unique(hits, PUBMEDID),
        "chromosomes": _count_unique(hits, "chrom"),
    }

    if "state" in hits.columns:
        states = hits["state"].value_counts()
        summary["states"] = {str(k): int(v) for k, v in states.items()}
        summary["unannotated"] = int(hits["state"].isna().sum())

    if "deleterious" in hits.columns:
        summary["deleterious"] = int(hits["deleterious"].fillna(False).astype(bool).sum())
        summary["with_sift_score"] = int(hits["sift_score"].notna().sum()) if "sift_score" in hits else 0

    return summary


def write_report(
    hits: pd.DataFrame,
    summary: Dict[str, Any],
    output_dir: Path,
    tables: Optional[Dict[str, pd.DataFrame]] = None
) -> ReportFiles:
    """
    Write ``hits.csv``, ``summary.json`` and one CSV per extra table.

    Returns:
        ReportFiles with the written paths
    """
    output_dir = ensure_directory(Path(output_dir))

    hits_path = output_dir / "hits.csv"
    hits.to_csv(hits_path, index=False)

    written = {}
    for name, table in (tables or {}).items():
        path = output_dir / f"{name}.csv"
        table.to_csv(path, index=table.index.name is not None)
        written[name] = path

    summary_path = write_json(summary, output_dir / "summary.json")
    return ReportFiles(hits=hits_path, summary=summary_path, tables=written)
