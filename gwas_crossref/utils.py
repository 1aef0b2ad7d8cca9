"""
Utility functions for file I/O, run directories, checksums, and retry logic.
"""

import hashlib
import json
import time
from datetime import datetime
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Sequence, TypeVar

import pandas as pd
import structlog

T = TypeVar('T')

logger = structlog.get_logger(__name__)


def generate_run_id() -> str:
    """Generate a unique run identifier."""
    return datetime.now().strftime("%Y%m%d_%H%M%S_%f")[:-3]


def create_run_directory(base_dir: Path, run_id: str) -> Path:
    """
    Create a dated run directory.

    Args:
        base_dir: Base directory for runs
        run_id: Unique run identifier

    Returns:
        Path to created run directory
    """
    run_dir = Path(base_dir) / f"run_{run_id}"
    run_dir.mkdir(parents=True, exist_ok=True)
    return run_dir


def calculate_file_checksum(file_path: Path, algorithm: str = "md5") -> str:
    """
    Calculate checksum for a file.

    Args:
        file_path: Path to file
        algorithm: Hash algorithm (md5, sha1, sha256)

    Returns:
        Hexadecimal hash string
    """
    hash_obj = hashlib.new(algorithm)

    with open(file_path, 'rb') as f:
        for chunk in iter(lambda: f.read(1 << 16), b""):
            hash_obj.update(chunk)

    return hash_obj.hexdigest()


def ensure_directory(path: Path) -> Path:
    """Ensure directory exists, creating if necessary."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def retry_on_failure(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    exceptions: tuple = (Exception,)
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator for retrying function calls on failure.

    Args:
        max_attempts: Maximum number of retry attempts
        delay: Initial delay between retries (seconds)
        backoff: Multiplier for delay on each retry
        exceptions: Tuple of exceptions to catch and retry on

    Returns:
        Decorated function
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            last_exception = None
            current_delay = delay

            for attempt in range(max_attempts):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    last_exception = e
                    if attempt < max_attempts - 1:
                        logger.warning(
                            "Attempt failed, retrying",
                            function=func.__name__,
                            attempt=attempt + 1,
                            error=str(e),
                            delay_seconds=current_delay
                        )
                        time.sleep(current_delay)
                        current_delay *= backoff
                    else:
                        logger.error("All attempts failed", function=func.__name__,
                                     attempts=max_attempts)

            raise last_exception

        return wrapper
    return decorator


def read_table_with_encoding_detection(
    file_path: Path,
    sep: str = "\t",
    encodings: Sequence[str] = ('utf-8', 'utf-8-sig', 'latin1'),
    **kwargs
) -> pd.DataFrame:
    """
    Read a delimited file with automatic encoding detection.

    The GWAS catalog occasionally ships non-UTF-8 author names, so each
    encoding is tried in turn.

    Args:
        file_path: Path to the table (gzip is detected from the suffix)
        sep: Field delimiter
        encodings: Encodings to try, in order
        **kwargs: Passed through to ``pandas.read_csv``

    Returns:
        DataFrame with the file contents
    """
    for encoding in encodings:
        try:
            return pd.read_csv(file_path, sep=sep, encoding=encoding, **kwargs)
        except UnicodeDecodeError:
            continue

    raise ValueError(f"Could not decode {file_path} with any of the attempted encodings: {list(encodings)}")


def write_json(data: Dict[str, Any], file_path: Path) -> Path:
    """Write a dictionary as indented JSON, converting paths and numpy scalars."""
    def default(value):
        if isinstance(value, Path):
            return str(value)
        if hasattr(value, "item"):
            return value.item()
        if hasattr(value, "isoformat"):
            return value.isoformat()
        raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")

    file_path = Path(file_path)
    with open(file_path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2, default=default)
    return file_path


def read_json(file_path: Path, default: Optional[Any] = None) -> Any:
    file_path = Path(file_path)
    if not file_path.exists():
        return default
    with open(file_path, 'r', encoding='utf-8') as f:
        return json.load(f)
