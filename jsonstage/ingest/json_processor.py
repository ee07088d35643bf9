"""
JSON Processor Service.

Main orchestrator for staging: validates a document, infers its schema,
creates the tables, inserts the data and summarizes what was staged.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from jsonstage.catalog.database import DatasetStore
from jsonstage.common.logging_config import PerformanceTracker
from jsonstage.common.metrics import record_staged, track_staging_time
from jsonstage.config.settings import get_settings
from jsonstage.ingest.data_insertion import DataInsertionEngine, InsertionStats
from jsonstage.ingest.ddl_generator import DDLGenerator, quote_identifier
from jsonstage.ingest.pagination import PaginationInfo
from jsonstage.ingest.schema_inference import SchemaInferenceEngine, TableSchema
from jsonstage.ingest.validator import DocumentValidator

logger = logging.getLogger(__name__)


class StagingError(Exception):
    """Exception raised when a document cannot be staged."""
    error_type = "staging_error"

    def __init__(self, message: str, suggestions: Optional[List[str]] = None):
        super().__init__(message)
        self.suggestions = suggestions or []

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error": str(self),
            "error_type": self.error_type,
            "suggestions": list(self.suggestions),
        }


class DocumentValidationError(StagingError):
    """The document is missing or empty."""
    error_type = "validation_error"


class SchemaInferenceError(StagingError):
    """No table schema could be inferred from the document."""
    error_type = "schema_inference_error"


class TableCreationError(StagingError):
    """Every inferred table failed to be created."""
    error_type = "table_creation_error"


@dataclass
class TableSummary:
    """What ended up in one staged table."""
    name: str
    columns: Dict[str, str]
    row_count: int = 0
    sample_data: List[Dict[str, Any]] = field(default_factory=list)
    relationships: Dict[str, Any] = field(default_factory=dict)
    kind: str = "entity"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "columns": dict(self.columns),
            "row_count": self.row_count,
            "sample_data": list(self.sample_data),
            "relationships": dict(self.relationships),
            "kind": self.kind,
        }


@dataclass
class ProcessingResult:
    """Outcome of staging one document."""
    tables: Dict[str, TableSummary] = field(default_factory=dict)
    total_rows: int = 0
    pagination: Optional[PaginationInfo] = None
    creation_errors: Dict[str, str] = field(default_factory=dict)
    insertion: Optional[InsertionStats] = None
    success: bool = True

    @property
    def table_count(self) -> int:
        return len(self.tables)

    @property
    def message(self) -> str:
        return f"Staged {self.table_count} tables with {self.total_rows} rows"

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "success": self.success,
            "message": self.message,
            "table_count": self.table_count,
            "total_rows": self.total_rows,
            "schemas": {name: t.to_dict() for name, t in self.tables.items()},
        }
        if self.pagination is not None and self.pagination.has_next_page:
            data["pagination"] = self.pagination.to_dict()
        if self.creation_errors:
            data["creation_errors"] = dict(self.creation_errors)
        if self.insertion is not None:
            data["insertion"] = self.insertion.to_dict()
        return data


class JsonProcessor:
    """
    Stages JSON documents into one dataset store.

    Coordinates validation, schema inference, table creation and the
    three-phase insertion. Terminal failures raise StagingError
    subclasses; row and table level failures are contained and logged.
    """

    def __init__(self, store: DatasetStore):
        """
        Initialize JSON processor.

        Args:
            store: Dataset store the tables are created in
        """
        self.store = store
        self.settings = get_settings()
        self.validator = DocumentValidator(
            unwrap_data_envelope=self.settings.unwrap_data_envelope)
        self.inference = SchemaInferenceEngine()
        self.ddl_generator = DDLGenerator()
        self.inserter = DataInsertionEngine()

    @track_staging_time
    def process(self, document: Any) -> ProcessingResult:
        """
        Stage one parsed JSON document.

        Args:
            document: Parsed JSON value (a GraphQL {"data": ...} envelope is
                removed first)

        Returns:
            ProcessingResult summarizing the staged tables

        Raises:
            DocumentValidationError: Nothing to stage
            SchemaInferenceError: No schema could be inferred
            TableCreationError: Every table failed to be created
        """
        validation = self.validator.validate_document(document)
        if not validation.valid:
            raise DocumentValidationError(
                validation.error,
                suggestions=[
                    "Check that the upstream query returned data",
                    "Submit a non-empty JSON object or array",
                ],
            )
        data = validation.document

        pagination = PaginationInfo.extract(data)
        if pagination.has_next_page:
            logger.info(pagination.suggestion)

        schemas = self.inference.infer(data)
        if not schemas:
            raise SchemaInferenceError(
                "Could not infer any table schema from the document",
                suggestions=["Check the document structure"],
            )

        with self.store.batch():
            creation_errors = self._create_tables(schemas)
            with PerformanceTracker("data_insertion", logger, tables=len(schemas)):
                stats = self.inserter.insert(data, schemas, self.store)

        result = self._summarize(schemas)
        result.pagination = pagination
        result.creation_errors = creation_errors
        result.insertion = stats

        record_staged(result.table_count, result.total_rows)
        logger.info(
            result.message,
            extra={"extra_fields": {"tables": list(result.tables)}},
        )
        return result

    def _create_tables(self, schemas: Dict[str, TableSchema]) -> Dict[str, str]:
        """
        Create every table, falling back to a generic JSON table on failure.

        Schemas of tables that fell back are replaced in place.

        Returns:
            Mapping of table name to the error of its original DDL
        """
        errors: Dict[str, str] = {}
        table_count = len(schemas)

        with PerformanceTracker("table_creation", logger, tables=table_count):
            for name, schema in list(schemas.items()):
                ddl = self.ddl_generator.generate_table_ddl(name, schema)
                try:
                    self.store.execute_ddl(ddl)
                except SQLAlchemyError as e:
                    errors[name] = str(e)
                    logger.warning(
                        f"Failed to create table {name}, using fallback: {e}",
                        extra={"extra_fields": {"ddl": ddl}},
                    )
                    try:
                        self.store.execute_ddl(self.ddl_generator.generate_fallback_ddl(name))
                        schemas[name] = TableSchema.fallback(name)
                    except SQLAlchemyError as fallback_error:
                        logger.error(f"Fallback table {name} failed: {fallback_error}")
                        del schemas[name]
                    continue

                if self.settings.create_indexes:
                    for index_ddl in self.ddl_generator.generate_index_ddl(name, schema):
                        try:
                            self.store.execute_ddl(index_ddl)
                        except SQLAlchemyError as e:
                            logger.warning(f"Failed to create index on {name}: {e}")

        if errors and len(errors) == table_count:
            raise TableCreationError(
                f"All {table_count} tables failed to be created",
                suggestions=[f"{name}: {error}" for name, error in errors.items()],
            )
        return errors

    def _summarize(self, schemas: Dict[str, TableSchema]) -> ProcessingResult:
        result = ProcessingResult()
        sample_size = self.settings.summary_sample_rows

        for name, schema in schemas.items():
            table = quote_identifier(name)
            summary = TableSummary(
                name=name,
                columns=dict(schema.columns),
                relationships={k: r.to_dict() for k, r in schema.relationships.items()},
                kind=schema.kind.value,
            )
            try:
                count = self.store.one(f"SELECT COUNT(*) AS row_count FROM {table}")
                summary.row_count = count["row_count"] if count else 0
                summary.sample_data = self.store.exec(
                    f"SELECT * FROM {table} LIMIT ?", sample_size).rows
            except SQLAlchemyError as e:
                logger.warning(f"Could not summarize table {name}: {e}")

            result.tables[name] = summary
            result.total_rows += summary.row_count
        return result
