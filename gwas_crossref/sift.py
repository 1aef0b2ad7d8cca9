"""
SIFT deleteriousness scores keyed by dbSNP rs identifier.

The table layout follows the SIFT.Hsapiens.dbSNP annotation packages:
one row per (rsid, protein, substitution) with the SIFT prediction, score
and alignment depth.
"""

from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

import pandas as pd
import structlog
from sqlalchemy import Column, Float, Integer, String, Table, select
from sqlalchemy.orm import Session, declarative_base

from .db import chunked, metadata_columns, read_metadata, sqlite_engine, write_metadata
from .dbsnp import normalize_rsid

logger = structlog.get_logger(__name__)

Base = declarative_base()

SIFT_COLUMNS = [
    "RSID", "PROTEIN_ID", "AA_POS", "RESIDUE_REF", "RESIDUE_ALT",
    "METHOD", "PREDICTION", "SCORE", "MEDIAN", "POSITION_SEQS", "TOTAL_SEQS",
]

DEFAULT_COLUMNS = ["RSID", "PROTEIN_ID", "AA_POS", "RESIDUE_REF", "RESIDUE_ALT",
                   "PREDICTION", "SCORE"]


class SiftScore(Base):
    __tablename__ = "sift_scores"

    id = Column(Integer, primary_key=True)
    RSID = Column(Integer, nullable=False, index=True)
    PROTEIN_ID = Column(String)
    AA_POS = Column(Integer)
    RESIDUE_REF = Column(String)
    RESIDUE_ALT = Column(String)
    METHOD = Column(String)
    PREDICTION = Column(String)
    SCORE = Column(Float)
    MEDIAN = Column(Float)
    POSITION_SEQS = Column(Integer)
    TOTAL_SEQS = Column(Integer)


sift_metadata = Table("metadata", Base.metadata, *metadata_columns())


def _clean(value):
    return None if pd.isna(value) else value


def build_sift_db(
    source: Union[str, Path],
    db_path: Union[str, Path],
    chunksize: int = 50_000,
    sep: str = "\t"
) -> int:
    """
    Load a SIFT score table into a SQLite database.

    ``source`` must have a header with the SIFT column names; RSID may be
    written with or without the ``rs`` prefix. Missing optional columns are
    stored as NULL.

    Returns:
        Number of score rows written
    """
    db_path = Path(db_path)
    if db_path.exists():
        db_path.unlink()

    engine = sqlite_engine(db_path, create=True)
    total = 0
    try:
        Base.metadata.create_all(engine)
        for chunk in pd.read_csv(source, sep=sep, chunksize=chunksize, dtype={"RSID": str}):
            chunk.columns = [c.upper() for c in chunk.columns]
            if "RSID" not in chunk.columns:
                raise ValueError("SIFT table has no RSID column")
            for column in SIFT_COLUMNS:
                if column not in chunk.columns:
                    chunk[column] = None
            chunk["RSID"] = chunk["RSID"].map(normalize_rsid)
            rows = chunk[SIFT_COLUMNS].drop_duplicates()
            if len(rows) < len(chunk):
                logger.debug("Dropped repeated SIFT rows", duplicates=len(chunk) - len(rows))

            records = [
                {column: _clean(value) for column, value in row.items()}
                for row in rows.to_dict(orient="records")
            ]
            if records:
                with engine.begin() as conn:
                    conn.execute(SiftScore.__table__.insert(), records)
            total += len(records)

        write_metadata(engine, sift_metadata, {"rows": total, "source": Path(source).name})
    except BaseException:
        engine.dispose()
        db_path.unlink(missing_ok=True)
        raise
    finally:
        engine.dispose()

    logger.info("Built SIFT database", path=str(db_path), rows=total)
    return total


class SiftDB:
    """Select-style access to a SIFT score database."""

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)
        self.engine = sqlite_engine(self.db_path)
        self.metadata = read_metadata(self.engine, sift_metadata)

    def close(self) -> None:
        self.engine.dispose()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @staticmethod
    def columns() -> List[str]:
        return list(SIFT_COLUMNS)

    @staticmethod
    def keytypes() -> List[str]:
        return ["RSID"]

    def keys(self) -> List[str]:
        with Session(self.engine) as session:
            ids = session.scalars(select(SiftScore.RSID).distinct().order_by(SiftScore.RSID)).all()
        return [f"rs{i}" for i in ids]

    def select(
        self,
        keys: Iterable[Union[str, int]],
        columns: Optional[Sequence[str]] = None
    ) -> pd.DataFrame:
        """
        Scores for the given rs identifiers.

        Args:
            keys: rs identifiers ("rs123" or 123)
            columns: Columns to return; RSID is always included

        Returns:
            DataFrame sorted by RSID with RSID written as ``rs<number>``;
            identifiers without scores are absent

        Raises:
            ValueError: For unknown column names
        """
        columns = list(columns) if columns is not None else list(DEFAULT_COLUMNS)
        unknown = [c for c in columns if c not in SIFT_COLUMNS]
        if unknown:
            raise ValueError(f"Unknown SIFT column(s): {unknown}; valid columns are {SIFT_COLUMNS}")
        if "RSID" not in columns:
            columns = ["RSID"] + columns

        ids = sorted({normalize_rsid(k) for k in keys})
        attributes = [getattr(SiftScore, c) for c in columns]
        rows = []
        with Session(self.engine) as session:
            for batch in chunked(ids):
                stmt = select(*attributes).where(SiftScore.RSID.in_(batch)).order_by(SiftScore.id)
                rows.extend(session.execute(stmt).all())

        frame = pd.DataFrame([tuple(r) for r in rows], columns=columns)
        frame = frame.sort_values("RSID", kind="stable").reset_index(drop=True)
        frame["RSID"] = "rs" + frame["RSID"].astype(str)
        return frame


def deleterious(frame: pd.DataFrame, threshold: float = 0.05) -> pd.Series:
    """
    Boolean flag per row: SIFT score at or below ``threshold``.

    Rows without a score are not flagged.
    """
    if "SCORE" not in frame.columns:
        raise KeyError("SIFT frame has no SCORE column")
    scores = pd.to_numeric(frame["SCORE"], errors="coerce")
    return (scores <= threshold).fillna(False)
