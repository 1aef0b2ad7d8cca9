"""
SQLAlchemy interface to a SQLite copy of dbSNP SNP locations.

Examples
--------
Build the database once from a ``rsid chrom pos`` table

>>> build_snp_db("snp151_common.tsv", "dbsnp_hg19.sqlite", build="hg19")

Lookup rsIDs

>>> db = SnpLocationDB("dbsnp_hg19.sqlite")
>>> db.lookup_rsids(["rs7329174", "rs6983267"])
        rsid chrom        pos
0    6983267     8  128413305
1    7329174    13   41558110

Lookup locations

>>> db.lookup_locations({"8": [128413305]})
"""

import re
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

import pandas as pd
import structlog
from sqlalchemy import Column, Index, Integer, String, Table, select
from sqlalchemy.orm import Session, declarative_base

from .builds import GenomeBuild, SeqnameStyle, to_style
from .db import chunked, metadata_columns, read_metadata, sqlite_engine, write_metadata
from .ranges import RangeSet

logger = structlog.get_logger(__name__)

Base = declarative_base()


class SnpLocation(Base):
    """One dbSNP rs identifier and its position (NCBI chromosome names)."""
    __tablename__ = "snp_locations"

    rsid = Column(Integer, primary_key=True, autoincrement=False)
    chrom = Column(String, nullable=False)
    pos = Column(Integer, nullable=False)

    __table_args__ = (Index("ix_snp_locations_chrom_pos", "chrom", "pos"),)

    def __repr__(self):
        return f"rs{self.rsid}<{self.chrom}:{self.pos}>"


snp_metadata = Table("metadata", Base.metadata, *metadata_columns())

_RSID = re.compile(r"^\s*(?:rs)?(\d+)\s*$", re.IGNORECASE)


def normalize_rsid(rsid: Union[str, int]) -> int:
    """Return the numeric part of an rs identifier ("rs123" -> 123)."""
    if isinstance(rsid, int):
        return rsid
    match = _RSID.match(str(rsid))
    if not match:
        raise ValueError(f"Not an rs identifier: {rsid!r}")
    return int(match.group(1))


def build_snp_db(
    source: Union[str, Path],
    db_path: Union[str, Path],
    build: Union[str, GenomeBuild],
    chunksize: int = 100_000,
    sep: str = "\t"
) -> int:
    """
    Load a ``rsid chrom pos`` table into a SQLite database.

    Args:
        source: Delimited file with a header containing rsid, chrom and pos
        db_path: SQLite file to create (replaced if present)
        build: Genome build of the positions
        chunksize: Rows inserted per transaction
        sep: Field delimiter of ``source``

    Only the first position of an rs identifier mapped to several loci is
    kept. If loading fails, no database file is left behind.

    Returns:
        Number of SNPs written
    """
    build = GenomeBuild.resolve(build)
    db_path = Path(db_path)
    if db_path.exists():
        db_path.unlink()

    engine = sqlite_engine(db_path, create=True)
    read = 0
    try:
        Base.metadata.create_all(engine)
        insert = SnpLocation.__table__.insert().prefix_with("OR IGNORE")
        reader = pd.read_csv(source, sep=sep, chunksize=chunksize,
                             dtype={"rsid": str, "chrom": str})
        for chunk in reader:
            chunk = chunk[["rsid", "chrom", "pos"]].dropna()
            records = [
                {"rsid": normalize_rsid(r), "chrom": to_style(c, SeqnameStyle.NCBI), "pos": int(p)}
                for r, c, p in zip(chunk["rsid"], chunk["chrom"], chunk["pos"])
            ]
            if records:
                with engine.begin() as conn:
                    conn.execute(insert, records)
            read += len(records)
            logger.debug("Loaded SNP chunk", rows=len(records), total=read)

        with Session(engine) as session:
            total = session.query(SnpLocation).count()
        if read > total:
            logger.warning("Dropped repeated rs identifiers", duplicates=read - total)

        write_metadata(engine, snp_metadata, {"build": build.value, "snps": total,
                                              "source": Path(source).name})
    except BaseException:
        engine.dispose()
        db_path.unlink(missing_ok=True)
        raise
    finally:
        engine.dispose()

    logger.info("Built dbSNP location database", path=str(db_path), snps=total, build=build.value)
    return total


class SnpLocationDB:
    """Read-only access to a dbSNP location database."""

    COLUMNS = ["rsid", "chrom", "pos"]

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)
        self.engine = sqlite_engine(self.db_path)
        self.metadata = read_metadata(self.engine, snp_metadata)

    @property
    def build(self) -> Optional[GenomeBuild]:
        value = self.metadata.get("build")
        return GenomeBuild.resolve(value) if value else None

    def close(self) -> None:
        self.engine.dispose()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _frame(self, rows) -> pd.DataFrame:
        frame = pd.DataFrame([(r.rsid, r.chrom, r.pos) for r in rows], columns=self.COLUMNS)
        return frame.sort_values("rsid").reset_index(drop=True)

    def count(self) -> int:
        with Session(self.engine) as session:
            return session.query(SnpLocation).count()

    def lookup_rsids(self, rsids: Iterable[Union[str, int]]) -> pd.DataFrame:
        """
        Positions for a collection of rs identifiers.

        Unknown identifiers are silently absent from the result.
        """
        ids = sorted({normalize_rsid(r) for r in rsids})
        rows = []
        with Session(self.engine) as session:
            for batch in chunked(ids):
                rows.extend(session.scalars(select(SnpLocation).where(SnpLocation.rsid.in_(batch))))
        return self._frame(rows)

    def lookup_locations(self, locations: Dict[str, Iterable[int]]) -> pd.DataFrame:
        """SNPs at exact positions, given as ``{chrom: [pos, ...]}``."""
        rows = []
        with Session(self.engine) as session:
            for chrom, positions in locations.items():
                chrom = to_style(chrom, SeqnameStyle.NCBI)
                for batch in chunked(sorted({int(p) for p in positions})):
                    stmt = select(SnpLocation).where(
                        SnpLocation.chrom == chrom, SnpLocation.pos.in_(batch)
                    )
                    rows.extend(session.scalars(stmt))
        return self._frame(rows)

    def snps_in_region(self, chrom: str, start: int, end: int) -> pd.DataFrame:
        """SNPs with start <= pos <= end on a chromosome."""
        chrom = to_style(chrom, SeqnameStyle.NCBI)
        stmt = select(SnpLocation).where(
            SnpLocation.chrom == chrom,
            SnpLocation.pos >= int(start),
            SnpLocation.pos <= int(end),
        )
        with Session(self.engine) as session:
            rows = list(session.scalars(stmt))
        return self._frame(rows)

    def to_rangeset(self, frame: pd.DataFrame, style: Union[str, SeqnameStyle] = SeqnameStyle.NCBI) -> RangeSet:
        located = frame.copy()
        located["snp"] = "rs" + located["rsid"].astype(str)
        return RangeSet.from_points(located, chrom="chrom", pos="pos", build=self.build,
                                    style=style, source=self.db_path.name)

    def locate(self, rsids: Iterable[Union[str, int]], style=SeqnameStyle.NCBI) -> RangeSet:
        """Look up rs identifiers and return their positions as a RangeSet."""
        return self.to_rangeset(self.lookup_rsids(rsids), style=style)
