"""
Dataset manager for creating and addressing staged datasets.

Each processed document gets its own isolated SQLite database, reachable
through an opaque access id. The backend (in-memory or one file per
dataset) is selected by configuration.
"""

import os
import threading
import uuid
from functools import lru_cache
from typing import Any, Dict, List, Optional

from jsonstage.catalog.database import MEMORY_URL, DatasetStore, check_store_connection
from jsonstage.catalog.inspector import describe_dataset, describe_table
from jsonstage.catalog.queries import SqlGateway
from jsonstage.common.logging_config import dataset_context, get_structured_logger
from jsonstage.common.metrics import active_datasets, metrics_enabled
from jsonstage.config.settings import Settings, get_settings
from jsonstage.ingest.json_processor import JsonProcessor, ProcessingResult, StagingError

logger = get_structured_logger(__name__)


class DatasetNotFoundError(KeyError):
    """No dataset is registered under the given access id."""
    pass


class Dataset:
    """
    One staged dataset: a store plus the staging and query entry points.

    Calls on one dataset are serialized; distinct datasets share nothing
    mutable.
    """

    def __init__(self, access_id: str, store: DatasetStore, path: Optional[str] = None):
        self.access_id = access_id
        self.store = store
        self.path = path
        self.processor = JsonProcessor(store)
        self.gateway = SqlGateway(store)
        self._lock = threading.RLock()

    def stage(self, document: Any) -> ProcessingResult:
        """
        Stage a parsed JSON document into this dataset.

        Raises:
            StagingError: The document could not be staged
        """
        with self._lock, dataset_context(self.access_id):
            return self.processor.process(document)

    def stage_response(self, document: Any) -> Dict[str, Any]:
        """Stage a document and return a response dictionary (errors included)."""
        try:
            result = self.stage(document)
        except StagingError as e:
            logger.warning(f"Staging failed: {e}", dataset_id=self.access_id)
            return {**e.to_dict(), "data_access_id": self.access_id}
        return {**result.to_dict(), "data_access_id": self.access_id}

    def query(self, sql: str) -> Dict[str, Any]:
        """Run one statement through the SQL gateway."""
        with self._lock, dataset_context(self.access_id):
            return self.gateway.run(sql)

    def describe(self) -> Dict[str, Any]:
        with self._lock, dataset_context(self.access_id):
            return describe_dataset(self.store)

    def describe_table(self, table_name: str) -> Dict[str, Any]:
        with self._lock, dataset_context(self.access_id):
            return describe_table(self.store, table_name)

    def is_healthy(self) -> bool:
        return check_store_connection(self.store)

    def delete_all(self) -> None:
        """Drop every table, view and index staged in this dataset."""
        with self._lock, dataset_context(self.access_id):
            self.store.delete_all()

    def close(self) -> None:
        with self._lock:
            self.store.dispose()


class DatasetManager:
    """
    Registry of live datasets keyed by access id.
    """

    def __init__(self, settings: Optional[Settings] = None):
        """
        Initialize manager.

        Args:
            settings: Configuration (defaults to the cached settings)

        Raises:
            ValueError: If the dataset backend is not supported
        """
        self.settings = settings or get_settings()
        if self.settings.dataset_backend not in ("memory", "sqlite"):
            raise ValueError(
                f"Unsupported dataset backend: {self.settings.dataset_backend}. "
                "Supported backends: 'memory', 'sqlite'"
            )
        self._datasets: Dict[str, Dataset] = {}
        self._lock = threading.Lock()

    def _dataset_path(self, access_id: str) -> str:
        return os.path.join(self.settings.storage_path, f"{access_id}.sqlite3")

    def create_dataset(self) -> Dataset:
        """
        Create an empty dataset with a fresh access id.

        Returns:
            The new Dataset
        """
        access_id = uuid.uuid4().hex
        path = None
        if self.settings.dataset_backend == "sqlite":
            os.makedirs(self.settings.storage_path, exist_ok=True)
            path = self._dataset_path(access_id)
            store = DatasetStore(f"sqlite+pysqlite:///{path}")
        else:
            store = DatasetStore(MEMORY_URL)

        dataset = Dataset(access_id, store, path)
        with self._lock:
            self._datasets[access_id] = dataset
            if metrics_enabled():
                active_datasets.set(len(self._datasets))

        logger.info(
            "Created dataset",
            dataset_id=access_id,
            backend=self.settings.dataset_backend,
        )
        return dataset

    def stage(self, document: Any) -> Dict[str, Any]:
        """Create a dataset, stage a document into it and return the response."""
        return self.create_dataset().stage_response(document)

    def get(self, access_id: str) -> Dataset:
        """
        Look up a dataset.

        Raises:
            DatasetNotFoundError: If the id is unknown
        """
        with self._lock:
            dataset = self._datasets.get(access_id)
        if dataset is None:
            raise DatasetNotFoundError(access_id)
        return dataset

    def list_ids(self) -> List[str]:
        with self._lock:
            return list(self._datasets)

    def delete(self, access_id: str) -> None:
        """
        Drop a dataset's objects, close it and forget it.

        Raises:
            DatasetNotFoundError: If the id is unknown
        """
        with self._lock:
            dataset = self._datasets.pop(access_id, None)
            if metrics_enabled():
                active_datasets.set(len(self._datasets))
        if dataset is None:
            raise DatasetNotFoundError(access_id)

        dataset.delete_all()
        dataset.close()
        if dataset.path and os.path.exists(dataset.path):
            os.remove(dataset.path)
        logger.info("Deleted dataset", dataset_id=access_id)

    def close(self) -> None:
        """Close every dataset (files of the sqlite backend are kept)."""
        with self._lock:
            datasets = list(self._datasets.values())
            self._datasets.clear()
            if metrics_enabled():
                active_datasets.set(0)
        for dataset in datasets:
            dataset.close()


@lru_cache()
def get_dataset_manager() -> DatasetManager:
    """
    Get the shared dataset manager instance.

    Returns:
        DatasetManager configured from settings
    """
    return DatasetManager()


def reset_dataset_manager() -> None:
    """Close and forget the shared manager (useful for testing)."""
    if get_dataset_manager.cache_info().currsize:
        get_dataset_manager().close()
    get_dataset_manager.cache_clear()
