"""
Ingest module for JSON staging.

Provides entity discovery, schema inference, DDL generation and the
three-phase data insertion used to stage nested JSON documents.
"""

from jsonstage.ingest.type_classifier import (
    SqlType,
    classify,
    classify_by_name,
    resolve_column_type,
)
from jsonstage.ingest.entities import is_entity, infer_entity_type, walk_entities
from jsonstage.ingest.schema_inference import (
    SchemaInferenceEngine,
    TableSchema,
    Relationship,
    RelationshipKind,
    TableKind,
)
from jsonstage.ingest.ddl_generator import DDLGenerator
from jsonstage.ingest.data_insertion import DataInsertionEngine, InsertionStats
from jsonstage.ingest.pagination import PaginationInfo
from jsonstage.ingest.json_processor import (
    JsonProcessor,
    ProcessingResult,
    StagingError,
    DocumentValidationError,
    SchemaInferenceError,
    TableCreationError,
)

__all__ = [  # ruff: noqa: RUF022
    # Classification
    "SqlType",
    "classify",
    "classify_by_name",
    "resolve_column_type",
    "is_entity",
    "infer_entity_type",
    "walk_entities",
    # Schema Inference
    "SchemaInferenceEngine",
    "TableSchema",
    "Relationship",
    "RelationshipKind",
    "TableKind",
    # DDL Generation
    "DDLGenerator",
    # Insertion
    "DataInsertionEngine",
    "InsertionStats",
    "PaginationInfo",
    # Processing
    "JsonProcessor",
    "ProcessingResult",
    "StagingError",
    "DocumentValidationError",
    "SchemaInferenceError",
    "TableCreationError",
]
