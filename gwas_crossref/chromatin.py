"""
ChromHMM chromatin-state segmentations.

Segmentations come as BED9 files (e.g. the ENCODE Broad HMM tracks for
GM12878) whose name column encodes the state as ``<number>_<Label>``.
"""

import gzip
import re
from pathlib import Path
from typing import Optional, Union

import numpy as np
import pandas as pd
import structlog

from .builds import GenomeBuild, SeqnameStyle
from .errors import SourceNotFoundError
from .ranges import RangeSet, find_overlaps

logger = structlog.get_logger(__name__)

BED_COLUMNS = ["chrom", "start0", "end", "name", "score", "strand",
               "thick_start", "thick_end", "item_rgb"]

_STATE_NAME = re.compile(r"^(?P<number>\d+)_(?P<label>.+)$")


def parse_state_name(name: str):
    """Split "4_Strong_Enhancer" into (4, "Strong Enhancer")."""
    match = _STATE_NAME.match(str(name))
    if not match:
        return None, str(name).replace("_", " ")
    return int(match.group("number")), match.group("label").replace("_", " ")


def _count_header_lines(path: Path) -> int:
    opener = gzip.open if path.suffix == ".gz" else open
    count = 0
    with opener(path, "rt") as handle:
        for line in handle:
            if not line.startswith(("track", "browser")):
                break
            count += 1
    return count


def read_chromhmm(
    path: Union[str, Path],
    build: Union[str, GenomeBuild] = GenomeBuild.GRCH37,
    style: Optional[Union[str, SeqnameStyle]] = None
) -> "ChromatinStates":
    """
    Read a ChromHMM segmentation BED file (plain or gzipped).

    BED starts are 0-based; they are shifted to 1-based closed coordinates.
    ``track`` and ``browser`` header lines are skipped.
    """
    path = Path(path)
    if not path.exists():
        raise SourceNotFoundError(f"ChromHMM segmentation not found at {path}")

    raw = pd.read_csv(path, sep="\t", header=None, comment="#", dtype=str,
                      skiprows=_count_header_lines(path))
    if raw.shape[1] < 4:
        raise ValueError(f"{path} does not look like a BED file with state names")

    raw = raw.iloc[:, :len(BED_COLUMNS)]
    raw.columns = BED_COLUMNS[:raw.shape[1]]

    parsed = raw["name"].map(parse_state_name)
    frame = pd.DataFrame({
        "chrom": raw["chrom"].to_numpy(),
        "start": pd.to_numeric(raw["start0"]).to_numpy() + 1,
        "end": pd.to_numeric(raw["end"]).to_numpy(),
        "state_number": pd.array([p[0] for p in parsed], dtype="Int64"),
        "state": [p[1] for p in parsed],
        "name": raw["name"].to_numpy(),
    })
    if "item_rgb" in raw:
        frame["item_rgb"] = raw["item_rgb"].to_numpy()

    ranges = RangeSet.from_frame(frame, build=build, style=style, source=path.name)
    logger.debug("Read chromatin segmentation", path=str(path), segments=len(ranges))
    return ChromatinStates(ranges)


class ChromatinStates:
    """A genome segmentation into chromatin states."""

    def __init__(self, ranges: RangeSet):
        self.ranges = ranges

    @property
    def build(self) -> Optional[GenomeBuild]:
        return self.ranges.build

    def __len__(self) -> int:
        return len(self.ranges)

    def states(self) -> pd.DataFrame:
        """Distinct states ordered by state number."""
        columns = [c for c in ("state_number", "state", "item_rgb") if c in self.ranges.frame]
        table = self.ranges.frame[columns].drop_duplicates("state")
        return table.sort_values(["state_number", "state"], na_position="last").reset_index(drop=True)

    def state_order(self):
        return list(self.states()["state"])

    def coverage(self) -> pd.Series:
        """Base pairs covered by each state."""
        widths = self.ranges.width()
        covered = widths.groupby(self.ranges.frame["state"]).sum()
        return covered.reindex(self.state_order()).fillna(0).astype(np.int64)

    def annotate(self, query: RangeSet) -> pd.DataFrame:
        """
        Add the chromatin state of each query range.

        A range spanning several segments takes the first (leftmost) one;
        ranges outside the segmentation get a missing state.
        """
        hits = find_overlaps(query, self.ranges).drop_duplicates("query_index", keep="first")
        frame = query.frame.copy()

        states = pd.Series(np.nan, index=range(len(query)), dtype=object)
        numbers = pd.Series(np.nan, index=range(len(query)), dtype=float)
        segment = self.ranges.frame.iloc[hits["subject_index"].to_numpy()]
        states.iloc[hits["query_index"].to_numpy()] = segment["state"].to_numpy()
        numbers.iloc[hits["query_index"].to_numpy()] = segment["state_number"].astype(
            "Float64").to_numpy(dtype=float, na_value=np.nan)

        frame["state"] = states.to_numpy()
        frame["state_number"] = numbers.to_numpy()
        return frame

    def tabulate(self, query: RangeSet) -> pd.Series:
        """Number of query ranges falling in each state, zeros included."""
        annotated = self.annotate(query)
        counts = annotated["state"].value_counts()
        return counts.reindex(self.state_order()).fillna(0).astype(np.int64)

    def enrichment(self, query: RangeSet) -> pd.DataFrame:
        """
        Observed versus expected hits per state.

        The expectation spreads the annotated hits over states in proportion
        to the base pairs each state covers.
        """
        observed = self.tabulate(query)
        coverage = self.coverage()
        share = coverage / coverage.sum() if coverage.sum() else coverage.astype(float)
        expected = share * observed.sum()

        table = pd.DataFrame({
            "observed": observed,
            "expected": expected,
            "coverage_bp": coverage,
        })
        table["fold"] = np.where(table["expected"] > 0,
                                 table["observed"] / table["expected"].where(table["expected"] > 0, 1),
                                 np.nan)
        table.index.name = "state"
        return table
