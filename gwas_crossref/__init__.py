"""
GWAS Cross-Referencing Toolkit

Query the NHGRI-EBI GWAS catalog and cross-reference its associations with
dbSNP locations, chromatin-state segmentations, SIFT scores and the EFO
trait ontology.
"""

__version__ = "0.3.0"
__author__ = "Genomics Automation Team"

from .builds import GenomeBuild, SeqnameStyle
from .catalog import GwasCatalog, read_catalog
from .config import Config
from .crossref import CrossrefPipeline, CrossrefRequest, run_crossref
from .ranges import RangeSet, find_overlaps

__all__ = [
    "Config",
    "GenomeBuild",
    "SeqnameStyle",
    "GwasCatalog",
    "read_catalog",
    "RangeSet",
    "find_overlaps",
    "CrossrefPipeline",
    "CrossrefRequest",
    "run_crossref",
]
