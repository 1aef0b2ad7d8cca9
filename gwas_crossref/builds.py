"""
Genome build documentation and sequence-name styles.

The GWAS catalog is distributed on GRCh38 with NCBI-style chromosome names
("1", "X", "MT") while most ENCODE/Roadmap chromatin segmentations are on
hg19 with UCSC-style names ("chr1", "chrX", "chrM"). Everything that combines
two sources goes through the helpers here so builds are never mixed silently.
"""

from enum import Enum
from typing import Dict, Iterable, List, Optional, Union

import pandas as pd

from .errors import IncompatibleGenomeError


STANDARD_CHROMOSOMES = [str(i) for i in range(1, 23)] + ["X", "Y", "MT"]


class GenomeBuild(str, Enum):
    GRCH37 = "GRCh37"
    GRCH38 = "GRCh38"
    GRCh37 = "GRCh37"
    GRCh38 = "GRCh38"

    @property
    def ucsc_name(self) -> str:
        return {"GRCh37": "hg19", "GRCh38": "hg38"}[self.value]

    @classmethod
    def resolve(cls, name: Union[str, "GenomeBuild"]) -> "GenomeBuild":
        """Resolve a build from any of its common spellings (GRCh38, hg38, 38)."""
        if isinstance(name, cls):
            return name
        key = str(name).strip().lower()
        aliases = {
            "grch37": cls.GRCH37, "hg19": cls.GRCH37, "37": cls.GRCH37, "b37": cls.GRCH37,
            "grch38": cls.GRCH38, "hg38": cls.GRCH38, "38": cls.GRCH38, "b38": cls.GRCH38,
        }
        if key not in aliases:
            raise ValueError(f"Unknown genome build: {name!r}")
        return aliases[key]

    def __str__(self) -> str:
        return self.value


resolve_build = GenomeBuild.resolve


class SeqnameStyle(str, Enum):
    UCSC = "UCSC"
    NCBI = "NCBI"


# Primary assembly chromosome lengths, NCBI names.
CHROMOSOME_LENGTHS: Dict[GenomeBuild, Dict[str, int]] = {
    GenomeBuild.GRCH37: {
        "1": 249250621, "2": 243199373, "3": 198022430, "4": 191154276,
        "5": 180915260, "6": 171115067, "7": 159138663, "8": 146364022,
        "9": 141213431, "10": 135534747, "11": 135006516, "12": 133851895,
        "13": 115169878, "14": 107349540, "15": 102531392, "16": 90354753,
        "17": 81195210, "18": 78077248, "19": 59128983, "20": 63025520,
        "21": 48129895, "22": 51304566, "X": 155270560, "Y": 59373566,
        "MT": 16571,
    },
    GenomeBuild.GRCH38: {
        "1": 248956422, "2": 242193529, "3": 198295559, "4": 190214555,
        "5": 181538259, "6": 170805979, "7": 159345973, "8": 145138636,
        "9": 138394717, "10": 133797422, "11": 135086622, "12": 133275309,
        "13": 114364328, "14": 107043718, "15": 101991189, "16": 90338345,
        "17": 83257441, "18": 80373285, "19": 58617616, "20": 64444167,
        "21": 46709983, "22": 50818468, "X": 156040895, "Y": 57227415,
        "MT": 16569,
    },
}


def _to_ncbi(name: str) -> str:
    name = str(name)
    if name.lower().startswith("chr"):
        name = name[3:]
    if name in ("M", "m"):
        return "MT"
    return name


def _to_ucsc(name: str) -> str:
    name = _to_ncbi(name)
    if name == "MT":
        return "chrM"
    return f"chr{name}"


def detect_style(names: Iterable[str]) -> SeqnameStyle:
    """
    Guess the naming style of a collection of sequence names.

    The majority wins; an empty collection is reported as NCBI.
    """
    names = [str(n) for n in names]
    if not names:
        return SeqnameStyle.NCBI
    prefixed = sum(1 for n in names if n.lower().startswith("chr"))
    return SeqnameStyle.UCSC if prefixed * 2 > len(names) else SeqnameStyle.NCBI


def to_style(names, style: Union[str, SeqnameStyle]):
    """Convert sequence names to the given style, keeping the input container type."""
    style = SeqnameStyle(style)
    convert = _to_ucsc if style == SeqnameStyle.UCSC else _to_ncbi
    if isinstance(names, pd.Series):
        return names.astype(str).map(convert)
    if isinstance(names, str):
        return convert(names)
    return [convert(n) for n in names]


def chromosome_order(name: str) -> int:
    """Sort key putting 1..22, X, Y, MT first and anything else after."""
    ncbi = _to_ncbi(name)
    if ncbi in STANDARD_CHROMOSOMES:
        return STANDARD_CHROMOSOMES.index(ncbi)
    return len(STANDARD_CHROMOSOMES)


def check_compatible(
    left: Optional[GenomeBuild],
    right: Optional[GenomeBuild],
    context: str = ""
) -> None:
    """Raise IncompatibleGenomeError unless both builds are the same."""
    if left is None or right is None:
        return
    if GenomeBuild.resolve(left) != GenomeBuild.resolve(right):
        raise IncompatibleGenomeError(left, right, context)


def chromosome_lengths(
    build: Union[str, GenomeBuild],
    style: Union[str, SeqnameStyle] = SeqnameStyle.NCBI
) -> Dict[str, int]:
    build = GenomeBuild.resolve(build)
    return {to_style(k, style): v for k, v in CHROMOSOME_LENGTHS[build].items()}


def genome_length(build: Union[str, GenomeBuild], include_mito: bool = False) -> int:
    lengths = CHROMOSOME_LENGTHS[GenomeBuild.resolve(build)]
    return sum(v for k, v in lengths.items() if include_mito or k != "MT")


def build_summary(build: Union[str, GenomeBuild]) -> Dict[str, object]:
    """
    Describe a genome build.

    Returns:
        Dictionary with the NCBI and UCSC names, per-chromosome lengths and
        the total length of the nuclear genome.
    """
    build = GenomeBuild.resolve(build)
    return {
        "ncbi_name": build.value,
        "ucsc_name": build.ucsc_name,
        "chromosomes": len(CHROMOSOME_LENGTHS[build]),
        "lengths": dict(CHROMOSOME_LENGTHS[build]),
        "genome_length": genome_length(build),
    }


def build_table() -> pd.DataFrame:
    """Side-by-side chromosome lengths for every known build."""
    frame = pd.DataFrame({b.value: CHROMOSOME_LENGTHS[b] for b in GenomeBuild})
    frame.index.name = "chrom"
    return frame.loc[STANDARD_CHROMOSOMES]


def sort_chromosomes(names: Iterable[str]) -> List[str]:
    return sorted(set(names), key=lambda n: (chromosome_order(n), str(n)))
