"""
Shared fixtures: tiny versions of every annotation resource.
"""

import pytest
import structlog

from gwas_crossref.builds import GenomeBuild
from gwas_crossref.catalog import read_catalog
from gwas_crossref.config import Config
from gwas_crossref.dbsnp import build_snp_db
from gwas_crossref.sift import build_sift_db

CATALOG_HEADER = [
    "DATE ADDED TO CATALOG", "PUBMEDID", "FIRST AUTHOR", "DISEASE/TRAIT", "CHR_ID", "CHR_POS",
    "MAPPED_GENE", "STRONGEST SNP-RISK ALLELE", "SNPS", "SNP_ID_CURRENT", "P-VALUE",
    "MAPPED_TRAIT", "MAPPED_TRAIT_URI", "STUDY ACCESSION",
]

CATALOG_ROWS = [
    ["2010-01-01", "100", "Smith J", "Crohn's disease", "1", "1000", "GENE1", "rs1-A", "rs1", "1",
     "1E-10", "Crohn's disease", "http://www.ebi.ac.uk/efo/EFO_0000384", "GCST1"],
    ["2010-01-01", "100", "Smith J", "Crohn's disease", "1", "5000", "GENE2", "rs2-G", "rs2", "2",
     "2E-9", "Crohn's disease", "http://www.ebi.ac.uk/efo/EFO_0000384", "GCST1"],
    ["2011-05-01", "200", "Jones K", "Ulcerative colitis", "2", "300", "GENE3", "rs3-?", "rs3", "3",
     "3E-12", "ulcerative colitis", "http://www.ebi.ac.uk/efo/EFO_0000729", "GCST2"],
    ["2012-03-01", "300", "Lee M", "Height", "X", "700", "GENE4", "rs4-T", "rs4", "4",
     "1E-6", "body height", "http://www.ebi.ac.uk/efo/EFO_0004339", "GCST3"],
    ["2012-03-01", "300", "Lee M", "Height", "1;2", "100;200", "GENE5", "rs5-A", "rs5; rs6", "",
     "1E-20", "body height", "http://www.ebi.ac.uk/efo/EFO_0004339", "GCST3"],
    ["2012-03-01", "300", "Lee M", "Height", "", "", "", "rs7-C", "rs7", "7",
     "1E-9", "body height", "http://www.ebi.ac.uk/efo/EFO_0004339", "GCST3"],
    ["2011-05-01", "200", "Jones K", "Inflammatory bowel disease", "2", "800", "GENE8", "rs8-C", "rs8", "8",
     "4E-8", "inflammatory bowel disease",
     "http://www.ebi.ac.uk/efo/EFO_0003767, http://www.ebi.ac.uk/efo/EFO_0000405", "GCST2"],
]

CHROMHMM_BED = """track name="wgEncodeBroadHmmGm12878HMM" description="test" itemRgb="On"
chr1\t0\t2000\t1_Active_Promoter\t0\t.\t0\t2000\t255,0,0
chr1\t2000\t10000\t13_Heterochrom/lo\t0\t.\t2000\t10000\t245,245,245
chr2\t0\t500\t4_Strong_Enhancer\t0\t.\t0\t500\t250,202,0
chr2\t500\t1000\t13_Heterochrom/lo\t0\t.\t500\t1000\t245,245,245
"""

EFO_OBO = """format-version: 1.2
ontology: efo

[Term]
id: EFO:0000405
name: digestive system disease

[Term]
id: EFO:0003767
name: inflammatory bowel disease
is_a: EFO:0000405 ! digestive system disease

[Term]
id: EFO:0000384
name: Crohn's disease
is_a: EFO:0003767 ! inflammatory bowel disease

[Term]
id: EFO:0000729
name: ulcerative colitis
is_a: EFO:0003767 ! inflammatory bowel disease

[Term]
id: EFO:0004339
name: body height
"""

# GRCh37 positions used to relocate the GRCh38 test catalog
DBSNP_TSV = """rsid\tchrom\tpos
rs1\t1\t1500
rs2\tchr1\t9000
rs3\t2\t450
rs8\t2\t900
rs99\t5\t12345
"""

SIFT_TSV = """RSID\tPROTEIN_ID\tAA_POS\tRESIDUE_REF\tRESIDUE_ALT\tMETHOD\tPREDICTION\tSCORE\tMEDIAN\tPOSITION_SEQS\tTOTAL_SEQS
rs1\tNP_000001\t10\tA\tV\tComplete\tDAMAGING\t0.01\t3.0\t50\t60
rs1\tNP_000002\t12\tA\tT\tComplete\tTOLERATED\t0.40\t3.0\t50\t60
rs3\tNP_000003\t99\tR\tH\tComplete\tTOLERATED\t0.30\t2.9\t40\t45
rs42\tNP_000042\t5\tG\tD\tComplete\tDAMAGING\t0.00\t3.1\t20\t22
"""


@pytest.fixture(autouse=True)
def reset_structlog():
    """Undo any logging configuration a test installs."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def catalog_path(tmp_path):
    path = tmp_path / "gwas_catalog.tsv"
    lines = ["\t".join(CATALOG_HEADER)] + ["\t".join(row) for row in CATALOG_ROWS]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def catalog(catalog_path):
    return read_catalog(catalog_path, build=GenomeBuild.GRCH38)


@pytest.fixture
def chromhmm_path(tmp_path):
    path = tmp_path / "gm12878.bed"
    path.write_text(CHROMHMM_BED, encoding="utf-8")
    return path


@pytest.fixture
def obo_path(tmp_path):
    path = tmp_path / "efo.obo"
    path.write_text(EFO_OBO, encoding="utf-8")
    return path


@pytest.fixture
def dbsnp_path(tmp_path):
    source = tmp_path / "snps.tsv"
    source.write_text(DBSNP_TSV, encoding="utf-8")
    db_path = tmp_path / "dbsnp.sqlite"
    build_snp_db(source, db_path, build="hg19", chunksize=2)
    return db_path


@pytest.fixture
def sift_path(tmp_path):
    source = tmp_path / "sift.tsv"
    source.write_text(SIFT_TSV, encoding="utf-8")
    db_path = tmp_path / "sift.sqlite"
    build_sift_db(source, db_path)
    return db_path


@pytest.fixture
def config(tmp_path, catalog_path, chromhmm_path, obo_path, sift_path):
    cfg = Config()
    cfg.sources.catalog = str(catalog_path)
    cfg.sources.chromhmm = str(chromhmm_path)
    cfg.sources.ontology = str(obo_path)
    cfg.sources.sift_db = str(sift_path)
    cfg.sources.dbsnp_db = None
    cfg.analysis.catalog_build = GenomeBuild.GRCH37
    cfg.analysis.chromatin_build = GenomeBuild.GRCH37
    cfg.cache.cache_dir = str(tmp_path / "cache")
    cfg.output_dir = str(tmp_path / "output")
    return cfg
