"""
Structured JSON logging with dataset correlation.

Provides logging for staging runs with:
- JSON format for log aggregation
- Dataset correlation IDs carried through a context variable
- Structured metadata on every record
- Timing of inference, table creation and insertion phases
"""

import logging
import json
import time
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Optional
from datetime import datetime, timezone

# Context variable for the dataset being staged or queried (thread-safe)
dataset_id_ctx: ContextVar[Optional[str]] = ContextVar(
    "dataset_id", default=None)


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs in JSON format with standardized fields.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        dataset_id = get_dataset_id()
        if dataset_id:
            log_data["dataset_id"] = dataset_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Extra fields passed as extra={"extra_fields": {...}}
        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


class DatasetLogger:
    """
    Logger that stamps every message with the current dataset id.
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def _log(self, level: int, msg: str, **kwargs):
        if not self.logger.isEnabledFor(level):
            return
        extra_fields = kwargs.copy()
        dataset_id = get_dataset_id()
        if dataset_id:
            extra_fields["dataset_id"] = dataset_id
        self.logger.log(level, msg, extra={"extra_fields": extra_fields})

    def debug(self, msg: str, **kwargs):
        self._log(logging.DEBUG, msg, **kwargs)

    def info(self, msg: str, **kwargs):
        self._log(logging.INFO, msg, **kwargs)

    def warning(self, msg: str, **kwargs):
        self._log(logging.WARNING, msg, **kwargs)

    def error(self, msg: str, **kwargs):
        self._log(logging.ERROR, msg, **kwargs)


class PerformanceTracker:
    """
    Context manager for tracking operation performance.

    Usage:
        with PerformanceTracker("schema_inference", logger, tables=3):
            # ... perform operation
            pass
    """

    def __init__(
        self,
        operation: str,
        logger: logging.Logger,
        log_level: int = logging.INFO,
        **extra_fields,
    ):
        """
        Initialize performance tracker.

        Args:
            operation: Operation name
            logger: Logger instance
            log_level: Log level for completion message
            **extra_fields: Additional structured fields
        """
        self.operation = operation
        self.logger = logger
        self.log_level = log_level
        self.extra_fields = extra_fields
        self.start_time: Optional[float] = None
        self.duration_ms: Optional[float] = None

    def _fields(self) -> dict:
        extra = {"operation": self.operation, **self.extra_fields}
        dataset_id = get_dataset_id()
        if dataset_id:
            extra["dataset_id"] = dataset_id
        return extra

    def __enter__(self):
        """Start timing."""
        self.start_time = time.perf_counter()
        self.logger.debug(
            f"Starting operation: {self.operation}",
            extra={"extra_fields": self._fields()},
        )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Log completion with duration."""
        self.duration_ms = (time.perf_counter() - self.start_time) * 1000
        extra = self._fields()
        extra["duration_ms"] = round(self.duration_ms, 2)

        if exc_type:
            extra["error"] = str(exc_val)
            extra["error_type"] = exc_type.__name__
            self.logger.error(
                f"Operation failed: {self.operation}",
                extra={"extra_fields": extra},
            )
        else:
            self.logger.log(
                self.log_level,
                f"Operation completed: {self.operation}",
                extra={"extra_fields": extra},
            )


def setup_logging(log_level: str = "INFO", json_format: bool = True):
    """
    Configure application logging.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting if True, standard format if False
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(getattr(logging, log_level.upper()))

    if json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # SQLAlchemy engine logging is controlled by the sql_echo setting
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_dataset_id() -> Optional[str]:
    """Get current dataset ID from context."""
    return dataset_id_ctx.get()


@contextmanager
def dataset_context(dataset_id: Optional[str]):
    """
    Bind a dataset ID to the context for the duration of a block.

    Usage:
        with dataset_context(access_id):
            logger.info("staging")  # record carries dataset_id
    """
    token = dataset_id_ctx.set(dataset_id)
    try:
        yield dataset_id
    finally:
        dataset_id_ctx.reset(token)


def get_structured_logger(name: str) -> DatasetLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name

    Returns:
        DatasetLogger instance
    """
    return DatasetLogger(logging.getLogger(name))
