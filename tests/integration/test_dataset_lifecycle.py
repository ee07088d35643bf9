"""
Integration tests for dataset management and inspection.
"""

import logging
import os

import pytest

from jsonstage.config.settings import Settings
from jsonstage.storage.manager import (
    DatasetManager,
    DatasetNotFoundError,
    get_dataset_manager,
    reset_dataset_manager,
)


class TestDatasetManager:
    """Tests for DatasetManager on the in-memory backend."""

    def test_stage_returns_access_id(self, manager, entry_document):
        response = manager.stage(entry_document)

        assert response["success"] is True
        assert response["table_count"] == 1
        dataset = manager.get(response["data_access_id"])
        assert dataset.query("SELECT id FROM entry")["results"] == [{"id": "4HHB"}]

    def test_datasets_are_isolated(self, manager, entry_document, entries_document):
        first = manager.stage(entry_document)["data_access_id"]
        second = manager.stage(entries_document)["data_access_id"]

        assert first != second
        assert manager.get(first).query("SELECT COUNT(*) AS n FROM entry")["results"] == [{"n": 1}]
        assert manager.get(second).query("SELECT COUNT(*) AS n FROM entry")["results"] == [{"n": 3}]
        assert set(manager.list_ids()) == {first, second}

    def test_staging_error_response(self, manager):
        response = manager.stage({})

        assert response["success"] is False
        assert response["error_type"] == "validation_error"
        assert "data_access_id" in response

    def test_lifecycle_records_carry_dataset_id(self, manager, caplog):
        with caplog.at_level(logging.INFO, logger="jsonstage.storage.manager"):
            dataset = manager.create_dataset()
            manager.delete(dataset.access_id)

        fields = {
            r.getMessage(): r.extra_fields
            for r in caplog.records if r.name == "jsonstage.storage.manager"
        }
        assert fields["Created dataset"] == {
            "dataset_id": dataset.access_id, "backend": "memory"}
        assert fields["Deleted dataset"] == {"dataset_id": dataset.access_id}

    def test_unknown_dataset(self, manager):
        with pytest.raises(DatasetNotFoundError):
            manager.get("missing")
        with pytest.raises(DatasetNotFoundError):
            manager.delete("missing")

    def test_delete(self, manager, entry_document):
        access_id = manager.stage(entry_document)["data_access_id"]
        dataset = manager.get(access_id)

        manager.delete(access_id)

        assert access_id not in manager.list_ids()
        with pytest.raises(DatasetNotFoundError):
            manager.get(access_id)
        assert dataset.store.table_names() == []

    def test_health(self, manager):
        assert manager.create_dataset().is_healthy()

    def test_unsupported_backend(self, tmp_path):
        with pytest.raises(ValueError, match="Unsupported dataset backend"):
            DatasetManager(Settings(dataset_backend="postgres", storage_path=str(tmp_path)))


class TestFileBackend:
    """Tests for the one-file-per-dataset backend."""

    @pytest.fixture
    def file_manager(self, tmp_path):
        manager = DatasetManager(Settings(
            dataset_backend="sqlite", storage_path=str(tmp_path / "datasets")))
        yield manager
        manager.close()

    def test_dataset_file_created_and_removed(self, file_manager, entries_document):
        access_id = file_manager.stage(entries_document)["data_access_id"]
        path = file_manager.get(access_id).path

        assert os.path.exists(path)
        assert path.endswith(f"{access_id}.sqlite3")

        file_manager.delete(access_id)
        assert not os.path.exists(path)

    def test_temp_tables_survive_between_queries(self, file_manager, entries_document):
        dataset = file_manager.get(file_manager.stage(entries_document)["data_access_id"])

        dataset.query("CREATE TEMP TABLE t AS SELECT id FROM entry")
        assert dataset.query("SELECT COUNT(*) AS n FROM t")["results"] == [{"n": 3}]


class TestInspection:
    """Tests for dataset and table descriptions."""

    @pytest.fixture
    def dataset(self, manager, entry_with_entities_document):
        return manager.get(manager.stage(entry_with_entities_document)["data_access_id"])

    def test_describe(self, dataset):
        description = dataset.describe()
        tables = description["tables"]

        assert description["success"] is True
        assert set(tables) == {"entry", "polymer_entity", "entry_polymer_entity"}
        assert tables["entry_polymer_entity"]["row_count"] == 2
        assert {fk["references_table"] for fk in tables["entry_polymer_entity"]["foreign_keys"]} == {
            "entry", "polymer_entity"}
        entry_columns = {c["name"]: c for c in tables["entry"]["columns"]}
        assert entry_columns["id"]["primary_key"] is True
        assert len(tables["polymer_entity"]["sample_data"]) == 2

    def test_describe_table(self, dataset):
        description = dataset.describe_table("entry_polymer_entity")
        columns = {c["name"]: c for c in description["columns"]}

        assert description["success"] is True
        assert columns["entry_id"]["is_foreign_key"] is True
        assert columns["entry_id"]["references"] == "entry.id"
        assert columns["id"]["is_foreign_key"] is False

    def test_describe_unknown_table(self, dataset):
        description = dataset.describe_table("missing")

        assert description["success"] is False
        assert description["error"] == "Table 'missing' not found"
        assert "entry" in description["available_tables"]

    def test_temporary_tables_listed(self, dataset):
        dataset.query("CREATE TEMP TABLE scratch AS SELECT 1 AS x")
        assert "scratch" in dataset.describe()["temporary_tables"]


class TestSharedManager:
    """Tests for the process-wide manager."""

    def test_cached_and_reset(self):
        first = get_dataset_manager()
        assert get_dataset_manager() is first

        reset_dataset_manager()
        second = get_dataset_manager()
        assert second is not first
        reset_dataset_manager()
