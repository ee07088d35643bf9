"""
jsonstage: stage nested JSON documents as relational SQLite datasets.

A document is analysed for entities and relationships, turned into a set
of tables (entity tables, foreign keys and junction tables), loaded in
three passes and exposed through a read-mostly SQL gateway.
"""

from jsonstage.storage.manager import Dataset, DatasetManager, DatasetNotFoundError
from jsonstage.ingest.json_processor import (
    JsonProcessor,
    ProcessingResult,
    StagingError,
    DocumentValidationError,
    SchemaInferenceError,
    TableCreationError,
)
from jsonstage.catalog.queries import (
    SqlGateway,
    QueryResult,
    QueryError,
    QueryValidationError,
    SqlExecutionError,
)

__version__ = "0.1.0"

__all__ = [
    "Dataset",
    "DatasetManager",
    "DatasetNotFoundError",
    "JsonProcessor",
    "ProcessingResult",
    "StagingError",
    "DocumentValidationError",
    "SchemaInferenceError",
    "TableCreationError",
    "SqlGateway",
    "QueryResult",
    "QueryError",
    "QueryValidationError",
    "SqlExecutionError",
]
