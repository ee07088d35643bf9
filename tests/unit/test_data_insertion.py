"""
Unit tests for data insertion.
"""

import math

import pytest

from jsonstage.ingest.data_insertion import (
    CoercionError,
    DataInsertionEngine,
    coerce_value,
)
from jsonstage.ingest.schema_inference import SchemaInferenceEngine
from jsonstage.ingest.type_classifier import SqlType


class RecordingExecutor:
    """Executor that records statements instead of running them."""

    def __init__(self, fail_on=None):
        self.statements = []
        self.fail_on = fail_on

    def exec(self, sql, *bindings):
        if self.fail_on and self.fail_on in sql:
            raise RuntimeError("simulated failure")
        self.statements.append((sql, bindings))

    def matching(self, prefix):
        return [s for s in self.statements if s[0].startswith(prefix)]


class TestCoerceValue:
    """Tests for coerce_value."""

    @pytest.mark.parametrize("value,sql_type,expected", [
        (None, SqlType.INTEGER, None),
        (True, SqlType.INTEGER, 1),
        (False, SqlType.INTEGER, 0),
        (3.9, SqlType.INTEGER, 3),
        (-3.9, SqlType.INTEGER, -3),
        ("42", SqlType.INTEGER, 42),
        ("7.8", SqlType.INTEGER, 7),
        ("1.5", SqlType.REAL, 1.5),
        (2, SqlType.REAL, 2.0),
        (15, SqlType.TEXT, "15"),
        ("2024-01-02", SqlType.DATE, "2024-01-02"),
        ({"a": 1}, SqlType.JSON, '{"a": 1}'),
        ("abc", SqlType.BLOB, b"abc"),
    ])
    def test_coercion(self, value, sql_type, expected):
        assert coerce_value(value, sql_type) == expected

    @pytest.mark.parametrize("value,sql_type", [
        ("abc", SqlType.INTEGER),
        (math.inf, SqlType.INTEGER),
        ("nan-ish", SqlType.REAL),
        ([1, 2], SqlType.REAL),
        ({"a": 1}, SqlType.INTEGER),
    ])
    def test_coercion_failures(self, value, sql_type):
        with pytest.raises(CoercionError):
            coerce_value(value, sql_type)


class TestDataInsertionEngine:
    """Tests for DataInsertionEngine against a recording executor."""

    @pytest.fixture
    def inference(self):
        return SchemaInferenceEngine(sample_rows=3, max_simple_fields=10, max_nested_array=5)

    @pytest.fixture
    def inserter(self):
        return DataInsertionEngine(max_simple_fields=10, max_nested_array=5)

    def test_entity_rows(self, inference, inserter, entries_document):
        schemas = inference.infer(entries_document)
        executor = RecordingExecutor()

        stats = inserter.insert(entries_document, schemas, executor)

        inserts = executor.matching("INSERT OR REPLACE")
        assert len(inserts) == 3
        assert inserts[0][1] == ("4HHB", "HEMOGLOBIN")
        assert stats.rows_inserted == {"entry": 3}
        assert stats.failed_statements == 0

    def test_junction_rows(self, inference, inserter, entry_with_entities_document):
        schemas = inference.infer(entry_with_entities_document)
        executor = RecordingExecutor()

        stats = inserter.insert(entry_with_entities_document, schemas, executor)

        links = executor.matching('INSERT OR IGNORE INTO "entry_polymer_entity"')
        assert [bindings for _, bindings in links] == [("4HHB", "4HHB_1"), ("4HHB", "4HHB_2")]
        assert stats.junction_rows == 2

    def test_foreign_key_update(self, inference, inserter):
        document = {"entry": {"id": "1", "title": "T", "citation": {"id": "c1", "title": "Paper"}}}
        schemas = inference.infer(document)
        executor = RecordingExecutor()

        stats = inserter.insert(document, schemas, executor)

        updates = executor.matching("UPDATE")
        assert updates == [('UPDATE "entry" SET "citation_id" = ? WHERE "id" = ?', ("c1", "1"))]
        assert stats.foreign_keys_set == 1

    def test_surrogate_ids_count_per_table(self, inference, inserter):
        document = {
            "measurements": [{"name": "a", "value": 1}, {"name": "b", "value": 2}],
            "samples": [{"name": "s", "value": 3}],
        }
        schemas = inference.infer(document)
        executor = RecordingExecutor()

        inserter.insert(document, schemas, executor)

        ids = [bindings[0] for _, bindings in executor.matching("INSERT OR REPLACE")]
        assert ids == [1, 2, 1]

    def test_missing_natural_id_uses_counter(self, inference, inserter):
        document = {"entries": [{"id": "4HHB", "title": "A"}, {"title": "B", "note": "x"}]}
        schemas = inference.infer(document)
        executor = RecordingExecutor()

        inserter.insert(document, schemas, executor)

        ids = [bindings[0] for _, bindings in executor.matching("INSERT OR REPLACE")]
        assert ids == ["4HHB", "1"]

    @pytest.mark.parametrize("entries,expected", [
        ([{"id": "1", "name": "a", "x": 1}, {"name": "b", "x": 2, "y": 3}], ["1", "2"]),
        ([{"name": "b", "x": 2, "y": 3}, {"id": "1", "name": "a", "x": 1}], ["2", "1"]),
    ])
    def test_counter_skips_ids_taken_by_natural_keys(
        self, inference, inserter, entries, expected
    ):
        document = {"entries": entries}
        schemas = inference.infer(document)
        executor = RecordingExecutor()

        inserter.insert(document, schemas, executor)

        ids = [bindings[0] for _, bindings in executor.matching("INSERT OR REPLACE")]
        assert ids == expected

    def test_failed_statement_is_skipped(self, inference, inserter, entries_document):
        schemas = inference.infer(entries_document)
        executor = RecordingExecutor(fail_on="INSERT OR REPLACE")

        stats = inserter.insert(entries_document, schemas, executor)

        assert stats.failed_statements == 3
        assert stats.rows_inserted == {}

    def test_coercion_failure_becomes_null(self, inference, inserter):
        document = {"entries": [{"id": "e1", "polymer_count": 2}]}
        schemas = inference.infer(document)
        executor = RecordingExecutor()

        incoming = {"entries": [{"id": "e1", "polymer_count": "many"}]}
        stats = inserter.insert(incoming, schemas, executor)

        assert stats.coercion_failures == 1
        assert executor.matching("INSERT OR REPLACE")[0][1] == ("e1", None)

    def test_data_rows_skip_empty(self, inference, inserter):
        document = [{"a": 1}, {"a": None}, 5]
        schemas = inference.infer(document)
        executor = RecordingExecutor()

        stats = inserter.insert(document, schemas, executor)

        assert stats.rows_inserted == {"data": 2}
