"""
NHGRI-EBI GWAS catalog loading and querying.

The catalog is read from the "associations" TSV download into a RangeSet
of single-base ranges, one row per reported association. Rows whose SNP
cannot be placed at a single position (missing coordinates, haplotypes and
SNP x SNP interactions) are dropped at load time.
"""

import re
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

import numpy as np
import pandas as pd
import structlog

from .builds import (
    GenomeBuild,
    SeqnameStyle,
    STANDARD_CHROMOSOMES,
    chromosome_lengths,
    chromosome_order,
)
from .errors import SourceNotFoundError
from .ranges import RangeSet
from .utils import read_table_with_encoding_detection

logger = structlog.get_logger(__name__)

# Column names of the EBI associations download
DATE_ADDED = "DATE ADDED TO CATALOG"
PUBMEDID = "PUBMEDID"
FIRST_AUTHOR = "FIRST AUTHOR"
DATE = "DATE"
JOURNAL = "JOURNAL"
LINK = "LINK"
STUDY = "STUDY"
TRAIT = "DISEASE/TRAIT"
INITIAL_SAMPLE = "INITIAL SAMPLE SIZE"
REPLICATION_SAMPLE = "REPLICATION SAMPLE SIZE"
REGION = "REGION"
CHR_ID = "CHR_ID"
CHR_POS = "CHR_POS"
REPORTED_GENES = "REPORTED GENE(S)"
MAPPED_GENE = "MAPPED_GENE"
STRONGEST_ALLELE = "STRONGEST SNP-RISK ALLELE"
SNPS = "SNPS"
MERGED = "MERGED"
SNP_ID_CURRENT = "SNP_ID_CURRENT"
CONTEXT = "CONTEXT"
INTERGENIC = "INTERGENIC"
RISK_ALLELE_FREQUENCY = "RISK ALLELE FREQUENCY"
PVALUE = "P-VALUE"
PVALUE_MLOG = "PVALUE_MLOG"
PVALUE_TEXT = "P-VALUE (TEXT)"
OR_BETA = "OR or BETA"
CI_TEXT = "95% CI (TEXT)"
PLATFORM = "PLATFORM [SNPS PASSING QC]"
CNV = "CNV"
MAPPED_TRAIT = "MAPPED_TRAIT"
MAPPED_TRAIT_URI = "MAPPED_TRAIT_URI"
STUDY_ACCESSION = "STUDY ACCESSION"
GENOTYPING_TECHNOLOGY = "GENOTYPING TECHNOLOGY"

REQUIRED_COLUMNS = [TRAIT, CHR_ID, CHR_POS, SNPS, PVALUE]

_RSID = re.compile(r"rs\d+", re.IGNORECASE)
_MULTI_LOCUS = re.compile(r"[;x,]")


def _rsid_to_int(value) -> Optional[int]:
    if value is None or (isinstance(value, float) and np.isnan(value)):
        return None
    match = re.search(r"\d+", str(value))
    return int(match.group(0)) if match else None


class GwasCatalog:
    """A filtered view of the GWAS catalog, backed by a RangeSet."""

    def __init__(self, ranges: RangeSet, dropped: int = 0):
        self.ranges = ranges
        self.dropped = dropped

    @property
    def frame(self) -> pd.DataFrame:
        return self.ranges.frame

    @property
    def build(self) -> Optional[GenomeBuild]:
        return self.ranges.build

    def __len__(self) -> int:
        return len(self.ranges)

    def __repr__(self) -> str:
        return f"GwasCatalog({len(self)} associations, build={self.build})"

    def _derive(self, mask) -> "GwasCatalog":
        return GwasCatalog(self.ranges.subset(mask), dropped=self.dropped)

    def top_traits(self, n: int = 10, column: str = TRAIT) -> pd.Series:
        """Most frequently reported traits, with their association counts."""
        counts = self.frame[column].dropna().value_counts()
        return counts.head(n)

    def subset_by_traits(self, traits: Union[str, Iterable[str]], column: str = TRAIT) -> "GwasCatalog":
        if isinstance(traits, str):
            traits = [traits]
        return self._derive(self.frame[column].isin(list(traits)).to_numpy())

    def search_traits(self, pattern: str, column: str = TRAIT) -> "GwasCatalog":
        """Associations whose trait matches a case-insensitive regular expression."""
        mask = self.frame[column].fillna("").str.contains(pattern, case=False, regex=True)
        return self._derive(mask.to_numpy())

    def subset_by_chromosome(self, chroms: Union[str, Iterable[str]]) -> "GwasCatalog":
        if isinstance(chroms, str):
            chroms = [chroms]
        return GwasCatalog(self.ranges.on_chromosomes(chroms), dropped=self.dropped)

    def locations_for_trait(self, trait: str, column: str = TRAIT) -> RangeSet:
        return self.subset_by_traits([trait], column=column).ranges

    def significant(self, threshold: float = 5e-8) -> "GwasCatalog":
        return self._derive((self.frame[PVALUE] <= threshold).to_numpy())

    def snp_ids(self) -> List[str]:
        """Unique rs identifiers mentioned in the SNPS column, in catalog order."""
        seen = []
        found = set()
        for value in self.frame[SNPS].dropna().astype(str):
            for rsid in _RSID.findall(value):
                rsid = rsid.lower()
                if rsid not in found:
                    found.add(rsid)
                    seen.append(rsid)
        return seen

    def risk_alleles(self) -> pd.DataFrame:
        """
        Split "STRONGEST SNP-RISK ALLELE" into rsid and allele.

        Entries such as ``rs7329174-G`` yield ``("rs7329174", "G")``; an
        unknown allele (``?``) becomes missing.
        """
        parts = self.frame[STRONGEST_ALLELE].fillna("").astype(str).str.extract(
            r"(?i)^\s*(?P<rsid>rs\d+)\s*-\s*(?P<risk_allele>[ACGT]+|\?)\s*$"
        )
        parts["rsid"] = parts["rsid"].str.lower()
        parts["risk_allele"] = parts["risk_allele"].replace("?", np.nan).str.upper()
        parts[TRAIT] = self.frame[TRAIT].to_numpy()
        return parts.dropna(subset=["rsid"]).reset_index(drop=True)

    def trait_table(self) -> pd.DataFrame:
        """Per-trait hit, SNP and study counts and the smallest p-value."""
        study_column = STUDY_ACCESSION if STUDY_ACCESSION in self.frame else PUBMEDID
        grouped = self.frame.groupby(TRAIT, dropna=True)
        table = pd.DataFrame({
            "hits": grouped.size(),
            "snps": grouped[SNPS].nunique(),
            "studies": grouped[study_column].nunique() if study_column in self.frame else 0,
            "best_pvalue": grouped[PVALUE].min(),
        })
        return table.sort_values(["hits", "best_pvalue"], ascending=[False, True])

    def manhattan_frame(self, trait: Optional[str] = None) -> pd.DataFrame:
        """
        Coordinates for a Manhattan plot.

        Positions are laid end to end in chromosome order; chromosome lengths
        come from the build when it is known, otherwise from the largest
        observed position.
        """
        frame = self.frame if trait is None else self.frame[self.frame[TRAIT] == trait]
        frame = frame[frame[PVALUE] > 0]

        observed = frame.groupby("chrom")["start"].max().to_dict()
        lengths: Dict[str, int] = {}
        if self.build is not None:
            lengths = chromosome_lengths(self.build, self.ranges.style)
        chroms = sorted(observed, key=lambda c: (chromosome_order(c), str(c)))

        offsets = {}
        running = 0
        for chrom in chroms:
            offsets[chrom] = running
            running += max(lengths.get(chrom, 0), int(observed[chrom]))

        out = pd.DataFrame({
            "chrom": frame["chrom"].to_numpy(),
            "position": frame["start"].to_numpy(),
            "cumulative_position": frame["start"].to_numpy() + frame["chrom"].map(offsets).to_numpy(),
            "neg_log10_p": -np.log10(frame[PVALUE].to_numpy(dtype=float)),
            "trait": frame[TRAIT].to_numpy(),
            "snp": frame[SNPS].to_numpy(),
        })
        return out.sort_values("cumulative_position").reset_index(drop=True)

    def primary_rsids(self) -> pd.Series:
        """Numeric rs identifier per row (SNP_ID_CURRENT when present, else SNPS)."""
        if SNP_ID_CURRENT in self.frame:
            current = self.frame[SNP_ID_CURRENT].map(_rsid_to_int)
        else:
            current = pd.Series([None] * len(self.frame), index=self.frame.index)
        fallback = self.frame[SNPS].map(_rsid_to_int)
        return current.where(current.notna(), fallback)

    def relocate(self, locations: pd.DataFrame, build: Union[str, GenomeBuild]) -> "GwasCatalog":
        """
        Move associations to another build using dbSNP locations.

        Args:
            locations: Table with integer ``rsid``, ``chrom`` and ``pos`` columns
            build: Build the locations refer to

        Returns:
            A catalog on ``build``; SNPs without a location are dropped
        """
        frame = self.frame.drop(columns=["chrom", "start", "end"]).copy()
        frame["_rsid"] = pd.to_numeric(self.primary_rsids(), errors="coerce").to_numpy()
        frame = frame.dropna(subset=["_rsid"])
        frame["_rsid"] = frame["_rsid"].astype(np.int64)
        located = locations[["rsid", "chrom", "pos"]].drop_duplicates("rsid").copy()
        located["rsid"] = located["rsid"].astype(np.int64)
        merged = frame.merge(located, left_on="_rsid", right_on="rsid", how="inner")
        merged = merged.drop(columns=["_rsid", "rsid"])

        lost = len(self.frame) - len(merged)
        if lost:
            logger.info("Associations without a location in target build", dropped=lost,
                        build=str(build))

        ranges = RangeSet.from_points(merged, chrom="chrom", pos="pos", build=build,
                                      style=self.ranges.style, source=self.ranges.source)
        return GwasCatalog(ranges, dropped=self.dropped + lost)


def _single_locus_mask(frame: pd.DataFrame) -> pd.Series:
    chr_id = frame[CHR_ID].astype("string").str.strip()
    chr_pos = frame[CHR_POS].astype("string").str.strip()
    has_value = chr_id.notna() & chr_pos.notna() & (chr_id != "") & (chr_pos != "")
    single = ~chr_id.fillna("").str.contains(_MULTI_LOCUS) & ~chr_pos.fillna("").str.contains(_MULTI_LOCUS)
    numeric = pd.to_numeric(chr_pos, errors="coerce").notna()
    return (has_value & single & numeric).fillna(False).astype(bool)


def catalog_from_frame(
    frame: pd.DataFrame,
    build: Union[str, GenomeBuild] = GenomeBuild.GRCH38,
    source: str = ""
) -> GwasCatalog:
    """Turn a raw associations table into a GwasCatalog."""
    missing = [c for c in REQUIRED_COLUMNS if c not in frame.columns]
    if missing:
        raise ValueError(f"GWAS catalog table is missing columns: {missing}")

    mask = _single_locus_mask(frame)
    kept = frame.loc[mask].copy()
    dropped = int((~mask).sum())

    kept[CHR_ID] = kept[CHR_ID].astype(str).str.strip()
    kept[CHR_POS] = pd.to_numeric(kept[CHR_POS].astype(str).str.strip())
    kept[PVALUE] = pd.to_numeric(kept[PVALUE], errors="coerce")

    ranges = RangeSet.from_points(kept, chrom=CHR_ID, pos=CHR_POS, build=build,
                                  style=SeqnameStyle.NCBI, source=source)
    if dropped:
        logger.info("Dropped associations without a single position", dropped=dropped,
                    kept=len(ranges))
    return GwasCatalog(ranges, dropped=dropped)


def read_catalog(
    path: Union[str, Path],
    build: Union[str, GenomeBuild] = GenomeBuild.GRCH38
) -> GwasCatalog:
    """
    Read the GWAS catalog associations TSV.

    Args:
        path: Path to the (optionally gzipped) associations file
        build: Genome build of CHR_ID/CHR_POS (the EBI download is GRCh38)

    Returns:
        GwasCatalog with one row per placeable association
    """
    path = Path(path)
    if not path.exists():
        raise SourceNotFoundError(f"GWAS catalog not found at {path}")

    frame = read_table_with_encoding_detection(
        path,
        dtype={CHR_ID: str, CHR_POS: str, SNPS: str},
        low_memory=False,
    )
    logger.debug("Read GWAS catalog", path=str(path), rows=len(frame))
    return catalog_from_frame(frame, build=build, source=path.name)


def risky_allele_count(genotypes: pd.DataFrame, catalog: GwasCatalog) -> pd.DataFrame:
    """
    Count copies of each catalog risk allele carried by each sample.

    Args:
        genotypes: Rows are samples, columns are rs identifiers, values are
            genotype calls such as ``"A/G"``, ``"A|G"`` or ``"AG"``
        catalog: Catalog providing the risk alleles

    Returns:
        DataFrame of counts (0, 1 or 2) for the rsids present in both inputs;
        missing calls stay missing
    """
    alleles = catalog.risk_alleles().dropna(subset=["risk_allele"])
    alleles = alleles.drop_duplicates("rsid").set_index("rsid")["risk_allele"]

    columns = [c for c in genotypes.columns if str(c).lower() in alleles.index]
    counts = {}
    for column in columns:
        risk = alleles[str(column).lower()]
        calls = genotypes[column].astype("string").str.upper().str.replace(r"[/|\s]", "", regex=True)

        if len(risk) == 1:
            counts[column] = calls.str.count(risk).astype("Float64")
        else:
            # multi-base alleles: the call is written as two alleles joined by a separator
            split = genotypes[column].astype("string").str.upper().str.split(r"[/|]")
            counts[column] = split.map(
                lambda pair: np.nan if not isinstance(pair, list) else float(sum(a == risk for a in pair))
            ).astype("Float64")

    result = pd.DataFrame(counts, index=genotypes.index)
    return result
