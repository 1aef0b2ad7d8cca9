"""
Shared SQLAlchemy helpers for the SQLite annotation databases.
"""

from pathlib import Path
from typing import Iterable, Iterator, List, TypeVar, Union

from sqlalchemy import Column, String, create_engine, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from .errors import SourceNotFoundError

T = TypeVar("T")

# SQLite caps the number of bound parameters per statement
MAX_VARIABLES = 900


def sqlite_engine(db_path: Union[str, Path], create: bool = False) -> Engine:
    """
    Open an engine on a SQLite file.

    Raises:
        SourceNotFoundError: If ``create`` is false and the file is missing
    """
    db_path = Path(db_path)
    if not create and not db_path.exists():
        raise SourceNotFoundError(f"Database not found at {db_path}")
    if create:
        db_path.parent.mkdir(parents=True, exist_ok=True)
    return create_engine(f"sqlite:///{db_path}", future=True)


def chunked(items: Iterable[T], size: int = MAX_VARIABLES) -> Iterator[List[T]]:
    batch: List[T] = []
    for item in items:
        batch.append(item)
        if len(batch) >= size:
            yield batch
            batch = []
    if batch:
        yield batch


def metadata_columns():
    """Columns of the key/value table every annotation database carries."""
    return (
        Column("key", String, primary_key=True),
        Column("value", String, nullable=False),
    )


def read_metadata(engine: Engine, table) -> dict:
    with Session(engine) as session:
        rows = session.execute(select(table.c.key, table.c.value)).all()
    return {key: value for key, value in rows}


def write_metadata(engine: Engine, table, values: dict) -> None:
    with engine.begin() as conn:
        conn.execute(table.delete())
        conn.execute(table.insert(), [{"key": k, "value": str(v)} for k, v in values.items()])
