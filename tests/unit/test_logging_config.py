"""
Unit tests for structured logging.
"""

import json
import logging

import pytest

from jsonstage.common.logging_config import (
    DatasetLogger,
    PerformanceTracker,
    StructuredFormatter,
    dataset_context,
    get_dataset_id,
    get_structured_logger,
    setup_logging,
)


def make_record(message="hello", **extra):
    record = logging.LogRecord(
        name="jsonstage.test", level=logging.INFO, pathname=__file__,
        lineno=1, msg=message, args=(), exc_info=None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:
    """Tests for StructuredFormatter."""

    def test_json_output(self):
        """Records are rendered as one JSON object."""
        data = json.loads(StructuredFormatter().format(make_record()))

        assert data["message"] == "hello"
        assert data["level"] == "INFO"
        assert data["logger"] == "jsonstage.test"
        assert data["timestamp"].endswith("Z")
        assert "dataset_id" not in data

    def test_extra_fields_merged(self):
        record = make_record(extra_fields={"tables": ["entry"], "duration_ms": 1.5})
        data = json.loads(StructuredFormatter().format(record))

        assert data["tables"] == ["entry"]
        assert data["duration_ms"] == 1.5

    def test_dataset_id_from_context(self):
        """The bound dataset id is stamped on every record."""
        with dataset_context("abc123"):
            data = json.loads(StructuredFormatter().format(make_record()))
        assert data["dataset_id"] == "abc123"


class TestDatasetContext:
    """Tests for dataset id context helpers."""

    def test_context_restores_previous_value(self):
        with dataset_context("outer"):
            with dataset_context("inner") as bound:
                assert bound == "inner"
                assert get_dataset_id() == "inner"
            assert get_dataset_id() == "outer"
        assert get_dataset_id() is None

    def test_context_restored_on_error(self):
        with pytest.raises(ValueError):
            with dataset_context("failing"):
                raise ValueError("boom")
        assert get_dataset_id() is None


class TestDatasetLogger:
    """Tests for DatasetLogger."""

    def test_fields_and_dataset_id(self, caplog):
        logger = DatasetLogger(logging.getLogger("jsonstage.test.dataset"))

        with caplog.at_level(logging.INFO, logger="jsonstage.test.dataset"):
            with dataset_context("ds1"):
                logger.info("staged", tables=2)

        record = caplog.records[-1]
        assert record.getMessage() == "staged"
        assert record.extra_fields == {"tables": 2, "dataset_id": "ds1"}

    def test_disabled_level_is_skipped(self, caplog):
        logger = DatasetLogger(logging.getLogger("jsonstage.test.quiet"))

        with caplog.at_level(logging.WARNING, logger="jsonstage.test.quiet"):
            logger.debug("hidden")
        assert not caplog.records


class TestPerformanceTracker:
    """Tests for PerformanceTracker."""

    def test_logs_completion(self, caplog):
        logger = logging.getLogger("jsonstage.test.perf")

        with caplog.at_level(logging.INFO, logger="jsonstage.test.perf"):
            with PerformanceTracker("schema_inference", logger, tables=3) as tracker:
                pass

        assert tracker.duration_ms is not None
        record = caplog.records[-1]
        assert record.getMessage() == "Operation completed: schema_inference"
        assert record.extra_fields["operation"] == "schema_inference"
        assert record.extra_fields["tables"] == 3

    def test_logs_failure(self, caplog):
        """Exceptions are logged and propagated."""
        logger = logging.getLogger("jsonstage.test.perf")

        with caplog.at_level(logging.INFO, logger="jsonstage.test.perf"):
            with pytest.raises(RuntimeError):
                with PerformanceTracker("data_insertion", logger):
                    raise RuntimeError("disk full")

        record = caplog.records[-1]
        assert record.levelno == logging.ERROR
        assert record.extra_fields["error"] == "disk full"
        assert record.extra_fields["error_type"] == "RuntimeError"


class TestSetupLogging:
    """Tests for setup_logging."""

    @pytest.fixture
    def restore_root(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield root
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_json_handler(self, restore_root):
        setup_logging("DEBUG", json_format=True)

        assert restore_root.level == logging.DEBUG
        assert len(restore_root.handlers) == 1
        assert isinstance(restore_root.handlers[0].formatter, StructuredFormatter)

    def test_plain_handler(self, restore_root):
        setup_logging("warning", json_format=False)

        assert restore_root.level == logging.WARNING
        assert not isinstance(restore_root.handlers[0].formatter, StructuredFormatter)


def test_structured_logger_wraps_named_logger():
    logger = get_structured_logger("jsonstage.ingest")

    assert isinstance(logger, DatasetLogger)
    assert logger.logger.name == "jsonstage.ingest"
