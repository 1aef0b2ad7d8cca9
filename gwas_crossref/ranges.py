"""
Genomic ranges on top of pandas.

A RangeSet is a DataFrame with ``chrom``, ``start`` and ``end`` columns in
1-based closed coordinates, tagged with the genome build and seqname style
it was read in. Overlap queries are answered with sorted starts and
``numpy.searchsorted``; nothing here is more than a join helper.
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from .builds import (
    GenomeBuild,
    SeqnameStyle,
    check_compatible,
    chromosome_order,
    detect_style,
    to_style,
)
from .errors import InvalidRangeError

RANGE_COLUMNS = ["chrom", "start", "end"]


@dataclass
class RangeSet:
    """A table of genomic ranges with build and naming metadata."""
    frame: pd.DataFrame
    build: Optional[GenomeBuild] = None
    style: SeqnameStyle = SeqnameStyle.NCBI
    source: str = field(default="", compare=False)

    @classmethod
    def from_frame(
        cls,
        df: pd.DataFrame,
        chrom: str = "chrom",
        start: str = "start",
        end: str = "end",
        build: Optional[Union[str, GenomeBuild]] = None,
        style: Optional[Union[str, SeqnameStyle]] = None,
        source: str = ""
    ) -> "RangeSet":
        """
        Build a RangeSet from any DataFrame holding chromosome/start/end columns.

        Args:
            df: Input table
            chrom, start, end: Names of the coordinate columns in ``df``
            build: Genome build of the coordinates
            style: Seqname style to convert to (detected when omitted)
            source: Free-text provenance, e.g. a file name

        Raises:
            InvalidRangeError: On missing, non-integer, non-positive or inverted coordinates
        """
        for column in (chrom, start, end):
            if column not in df.columns:
                raise InvalidRangeError(f"Missing coordinate column: {column}")

        frame = df.copy()
        frame = frame.rename(columns={chrom: "chrom", start: "start", end: "end"})

        starts = pd.to_numeric(frame["start"], errors="coerce")
        ends = pd.to_numeric(frame["end"], errors="coerce")
        if starts.isna().any() or ends.isna().any() or frame["chrom"].isna().any():
            bad = int(starts.isna().sum() + ends.isna().sum() + frame["chrom"].isna().sum())
            raise InvalidRangeError(f"{bad} missing or non-numeric coordinate value(s)")
        if ((starts % 1) != 0).any() or ((ends % 1) != 0).any():
            raise InvalidRangeError("Coordinates must be integers")
        if (starts < 1).any():
            raise InvalidRangeError("Start coordinates must be >= 1")
        if (ends < starts).any():
            raise InvalidRangeError(f"{int((ends < starts).sum())} range(s) end before they start")

        frame["start"] = starts.astype(np.int64)
        frame["end"] = ends.astype(np.int64)

        if style is None:
            style = detect_style(frame["chrom"].astype(str).unique())
        style = SeqnameStyle(style)
        frame["chrom"] = to_style(frame["chrom"], style)

        other = [c for c in frame.columns if c not in RANGE_COLUMNS]
        frame = frame[RANGE_COLUMNS + other].reset_index(drop=True)

        return cls(
            frame=frame,
            build=GenomeBuild.resolve(build) if build is not None else None,
            style=style,
            source=source,
        )

    @classmethod
    def from_points(
        cls,
        df: pd.DataFrame,
        chrom: str = "chrom",
        pos: str = "pos",
        build: Optional[Union[str, GenomeBuild]] = None,
        style: Optional[Union[str, SeqnameStyle]] = None,
        source: str = ""
    ) -> "RangeSet":
        """Build a RangeSet of single-base ranges (SNP positions)."""
        frame = df.copy()
        frame["_end"] = frame[pos]
        return cls.from_frame(frame, chrom=chrom, start=pos, end="_end",
                              build=build, style=style, source=source)

    @classmethod
    def empty(cls, build=None, style=SeqnameStyle.NCBI) -> "RangeSet":
        frame = pd.DataFrame({"chrom": pd.Series(dtype=str),
                              "start": pd.Series(dtype=np.int64),
                              "end": pd.Series(dtype=np.int64)})
        return cls(frame=frame, build=build, style=style)

    def __len__(self) -> int:
        return len(self.frame)

    @property
    def metadata_columns(self) -> List[str]:
        return [c for c in self.frame.columns if c not in RANGE_COLUMNS]

    def _derive(self, frame: pd.DataFrame) -> "RangeSet":
        return RangeSet(frame=frame.reset_index(drop=True), build=self.build,
                        style=self.style, source=self.source)

    def subset(self, mask) -> "RangeSet":
        """Rows selected by a boolean mask or positional index array."""
        mask = np.asarray(mask)
        if mask.dtype == bool:
            return self._derive(self.frame.loc[mask])
        return self._derive(self.frame.iloc[mask.astype(np.int64)])

    def sort(self) -> "RangeSet":
        key = self.frame["chrom"].map(chromosome_order)
        order = np.lexsort((self.frame["end"].to_numpy(),
                            self.frame["start"].to_numpy(),
                            self.frame["chrom"].astype(str).to_numpy(),
                            key.to_numpy()))
        return self._derive(self.frame.iloc[order])

    def chromosomes(self) -> List[str]:
        names = self.frame["chrom"].unique()
        return sorted(names, key=lambda n: (chromosome_order(n), str(n)))

    def width(self) -> pd.Series:
        return self.frame["end"] - self.frame["start"] + 1

    def with_style(self, style: Union[str, SeqnameStyle]) -> "RangeSet":
        style = SeqnameStyle(style)
        if style == self.style:
            return self
        frame = self.frame.copy()
        frame["chrom"] = to_style(frame["chrom"], style)
        return RangeSet(frame=frame, build=self.build, style=style, source=self.source)

    def on_chromosomes(self, chroms: Iterable[str]) -> "RangeSet":
        wanted = set(to_style(list(chroms), self.style))
        return self.subset(self.frame["chrom"].isin(wanted).to_numpy())


def _prepare(query: RangeSet, subject: RangeSet, context: str) -> RangeSet:
    check_compatible(query.build, subject.build, context)
    return subject.with_style(query.style)


def find_overlaps(query: RangeSet, subject: RangeSet) -> pd.DataFrame:
    """
    Find all pairs of overlapping ranges.

    Returns:
        DataFrame with positional ``query_index`` and ``subject_index`` columns,
        sorted by query then subject.

    Raises:
        IncompatibleGenomeError: When the two sets are on different builds
    """
    subject = _prepare(query, subject, "find_overlaps")
    pieces_q = []
    pieces_s = []

    q_frame = query.frame
    s_frame = subject.frame
    shared = set(q_frame["chrom"].unique()) & set(s_frame["chrom"].unique())

    for chrom in shared:
        q_pos = np.flatnonzero((q_frame["chrom"] == chrom).to_numpy())
        s_pos = np.flatnonzero((s_frame["chrom"] == chrom).to_numpy())

        s_starts = s_frame["start"].to_numpy()[s_pos]
        order = np.argsort(s_starts, kind="stable")
        s_pos = s_pos[order]
        s_starts = s_starts[order]
        s_ends = s_frame["end"].to_numpy()[s_pos]
        max_span = int((s_ends - s_starts).max())

        q_starts = q_frame["start"].to_numpy()[q_pos]
        q_ends = q_frame["end"].to_numpy()[q_pos]

        hi = np.searchsorted(s_starts, q_ends, side="right")
        lo = np.searchsorted(s_starts, q_starts - max_span, side="left")
        counts = np.maximum(hi - lo, 0)
        total = int(counts.sum())
        if total == 0:
            continue

        offsets = np.arange(total) - np.repeat(np.cumsum(counts) - counts, counts)
        cand = np.repeat(lo, counts) + offsets
        q_rep = np.repeat(np.arange(len(q_pos)), counts)
        keep = s_ends[cand] >= q_starts[q_rep]

        pieces_q.append(q_pos[q_rep[keep]])
        pieces_s.append(s_pos[cand[keep]])

    if not pieces_q:
        return pd.DataFrame({"query_index": pd.Series(dtype=np.int64),
                             "subject_index": pd.Series(dtype=np.int64)})

    hits = pd.DataFrame({
        "query_index": np.concatenate(pieces_q).astype(np.int64),
        "subject_index": np.concatenate(pieces_s).astype(np.int64),
    })
    return hits.sort_values(["query_index", "subject_index"]).reset_index(drop=True)


def count_overlaps(query: RangeSet, subject: RangeSet) -> np.ndarray:
    hits = find_overlaps(query, subject)
    return np.bincount(hits["query_index"].to_numpy(), minlength=len(query))


def overlaps_any(query: RangeSet, subject: RangeSet) -> np.ndarray:
    return count_overlaps(query, subject) > 0


def subset_by_overlaps(query: RangeSet, subject: RangeSet, invert: bool = False) -> RangeSet:
    mask = overlaps_any(query, subject)
    return query.subset(~mask if invert else mask)


def join_overlaps(
    query: RangeSet,
    subject: RangeSet,
    columns: Optional[Sequence[str]] = None,
    how: str = "left",
    suffix: str = "_subject"
) -> pd.DataFrame:
    """
    Join subject metadata onto the query ranges they overlap.

    One output row is produced per overlapping pair. With ``how="left"`` query
    rows without a hit are kept once with missing subject columns; with
    ``how="inner"`` they are dropped. Output follows query order.
    """
    if how not in ("left", "inner"):
        raise ValueError(f"how must be 'left' or 'inner', got {how!r}")

    hits = find_overlaps(query, subject)
    columns = list(columns) if columns is not None else subject.metadata_columns
    missing = [c for c in columns if c not in subject.frame.columns]
    if missing:
        raise KeyError(f"Subject has no column(s): {missing}")

    rename = {c: f"{c}{suffix}" for c in columns if c in query.frame.columns}

    left = query.frame.iloc[hits["query_index"].to_numpy()].reset_index(drop=True)
    right = subject.frame.iloc[hits["subject_index"].to_numpy()][columns].reset_index(drop=True)
    right = right.rename(columns=rename)
    joined = pd.concat([left, right], axis=1)
    joined["_query_index"] = hits["query_index"].to_numpy()

    if how == "left":
        unmatched = np.setdiff1d(np.arange(len(query)), hits["query_index"].to_numpy())
        if len(unmatched):
            rest = query.frame.iloc[unmatched].reset_index(drop=True)
            rest["_query_index"] = unmatched
            joined = pd.concat([joined, rest], ignore_index=True, sort=False)

    joined = joined.sort_values("_query_index", kind="stable")
    return joined.drop(columns="_query_index").reset_index(drop=True)
