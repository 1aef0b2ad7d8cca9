"""
Structured logging configuration built on structlog.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, TextIO, Tuple

import structlog


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    run_id: Optional[str] = None
):
    """
    Configure structured logging for the toolkit.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional file path for JSON logging
        run_id: Optional run identifier bound to every event

    Returns:
        Configured logger
    """
    numeric_level = getattr(logging, level.upper())

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=numeric_level,
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="ISO"),
    ]

    if run_id:
        processors.append(
            structlog.processors.CallsiteParameterAdder(
                parameters=[structlog.processors.CallsiteParameter.FUNC_NAME]
            )
        )

    if log_file:
        # JSON lines in the run log
        processors.extend([
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer()
        ])
        logger_factory = structlog.WriteLoggerFactory(
            file=Path(log_file).open("a", encoding="utf-8")
        )
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
        logger_factory = structlog.WriteLoggerFactory(file=sys.stderr)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=logger_factory,
        cache_logger_on_first_use=False,
    )

    logger = structlog.get_logger()

    if run_id:
        logger = logger.bind(run_id=run_id)

    return logger


def get_run_logger(run_dir: Path, run_id: str) -> Tuple[Any, TextIO]:
    """
    Get a run-scoped logger that writes JSON lines to a specific run directory.

    The global structlog configuration is left untouched, so only events
    sent through the returned logger reach the run log.

    Args:
        run_dir: Directory for the current run
        run_id: Unique identifier for the run

    Returns:
        The bound logger and its open log file; close the file when the run ends
    """
    log_file = Path(run_dir) / f"crossref_{run_id}.log"
    handle = log_file.open("a", encoding="utf-8")
    run_logger = structlog.wrap_logger(
        structlog.WriteLogger(handle),
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG),
        context_class=dict,
    )
    return run_logger.bind(run_id=run_id), handle


class LogCapture:
    """Context manager that logs start, completion and failure of an operation."""

    def __init__(self, logger, operation: str, **context):
        self.logger = logger
        self.operation = operation
        self.context = context
        self.start_time = None

    def __enter__(self):
        self.start_time = datetime.now()
        self.logger.info(f"Starting {self.operation}", **self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = datetime.now() - self.start_time

        if exc_type is None:
            self.logger.info(
                f"Completed {self.operation}",
                duration_seconds=duration.total_seconds(),
                **self.context
            )
        else:
            self.logger.error(
                f"Failed {self.operation}",
                duration_seconds=duration.total_seconds(),
                error=str(exc_val),
                **self.context
            )
        return False

    def note(self, message: str, **fields):
        """Log an intermediate result of the operation."""
        self.logger.debug(f"{self.operation}: {message}", **fields)
