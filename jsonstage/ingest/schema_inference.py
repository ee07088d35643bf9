"""
Schema inference for nested JSON documents.

Discovers entities, groups them into tables by inferred type, derives
column types from the flattened objects and synthesizes foreign keys and
junction tables from the relationships observed between entities.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple

from jsonstage.common.logging_config import PerformanceTracker
from jsonstage.config.settings import get_settings
from jsonstage.ingest.entities import (
    FlatField,
    RecordFlattener,
    is_scalar,
    to_json_text,
    walk_entities,
)
from jsonstage.ingest.naming import foreign_key_column, junction_table_name
from jsonstage.ingest.type_classifier import (
    SqlType,
    classify_column,
    resolve_column_type,
)

logger = logging.getLogger(__name__)

SURROGATE_KEY = "INTEGER PRIMARY KEY AUTOINCREMENT"
NATURAL_KEY = "TEXT PRIMARY KEY"
DATA_TABLE = "data"

# Columns worth an index beyond keys
_SEARCH_COLUMNS = frozenset({"name", "title", "type", "resolution"})


class TableKind(str, Enum):
    """How a table was derived."""
    ENTITY = "entity"
    JUNCTION = "junction"
    DATA = "data"
    FALLBACK = "fallback"


class RelationshipKind(str, Enum):
    """How two tables are linked."""
    FOREIGN_KEY = "foreign_key"
    JUNCTION_TABLE = "junction_table"
    REFERENCE = "reference"


@dataclass
class Relationship:
    """A link from one table to another."""
    kind: RelationshipKind
    target_table: str
    column: Optional[str] = None
    junction_table: Optional[str] = None
    # JSON keys under which the related entities were found
    source_keys: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": self.kind.value,
            "target_table": self.target_table,
        }
        if self.column:
            data["column"] = self.column
        if self.junction_table:
            data["junction_table"] = self.junction_table
        return data


@dataclass
class TableSchema:
    """Inferred definition of one table."""
    name: str
    columns: Dict[str, str] = field(default_factory=dict)
    column_types: Dict[str, SqlType] = field(default_factory=dict)
    relationships: Dict[str, Relationship] = field(default_factory=dict)
    sample_rows: List[Dict[str, Any]] = field(default_factory=list)
    kind: TableKind = TableKind.ENTITY
    natural_key: bool = False
    suggested_indexes: List[str] = field(default_factory=list)

    @classmethod
    def fallback(cls, name: str) -> "TableSchema":
        """Schema of the generic table used when a table's own DDL fails."""
        return cls(
            name=name,
            columns={"id": SURROGATE_KEY, "data_json": SqlType.TEXT.value},
            column_types={"data_json": SqlType.TEXT},
            kind=TableKind.FALLBACK,
        )

    @property
    def foreign_keys(self) -> List[Relationship]:
        return [
            rel for rel in self.relationships.values()
            if rel.kind == RelationshipKind.FOREIGN_KEY
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "columns": dict(self.columns),
            "relationships": {
                name: rel.to_dict() for name, rel in self.relationships.items()
            },
            "sample_rows": list(self.sample_rows),
            "kind": self.kind.value,
            "suggested_indexes": list(self.suggested_indexes),
        }


@dataclass
class _Edge:
    parent: str
    child: str
    vias: Set[str] = field(default_factory=set)
    keys: List[str] = field(default_factory=list)


def document_rows(document: Any, flattener: RecordFlattener) -> List[Dict[str, FlatField]]:
    """
    Rows of the single ``data`` table used for documents without entities.

    Objects are flattened; scalars (and stray lists) become a ``value``
    column.
    """
    items = document if isinstance(document, list) else [document]
    rows = []
    for item in items:
        if isinstance(item, dict):
            row = flattener.flatten(item)
            # The data table owns "id"; a source id is kept alongside it
            if "id" in row:
                source = row.pop("id")
                row["source_id"] = FlatField("source_id", source.value, SqlType.TEXT)
            rows.append(row)
        elif is_scalar(item):
            rows.append({"value": FlatField("value", item, classify_column("value", item))})
        else:
            rows.append({"value": FlatField("value", to_json_text(item), SqlType.JSON)})
    return rows


class SchemaInferenceEngine:
    """
    Infers a relational schema from one JSON document.

    Each call is independent: the discovery index and relationship edges
    are rebuilt per document.
    """

    def __init__(
        self,
        sample_rows: Optional[int] = None,
        max_simple_fields: Optional[int] = None,
        max_nested_array: Optional[int] = None,
    ):
        """
        Initialize inference engine.

        Args:
            sample_rows: Rows kept per table as samples
            max_simple_fields: Largest nested object hoisted into columns
            max_nested_array: Longest scalar list inside a hoisted object
        """
        settings = get_settings()
        self.sample_rows = sample_rows or settings.schema_sample_rows
        self.flattener = RecordFlattener(
            max_simple_fields=max_simple_fields or settings.max_simple_object_fields,
            max_nested_array=max_nested_array or settings.max_nested_scalar_array,
        )

    def infer(self, document: Any) -> Dict[str, TableSchema]:
        """
        Infer table schemas for a document.

        Never raises: a failure while building entity tables degrades to
        the single ``data`` table, and a failure there yields no schemas.

        Args:
            document: Parsed JSON document

        Returns:
            Mapping of table name to TableSchema, in discovery order
        """
        try:
            with PerformanceTracker("schema_inference", logger):
                index, edges = self._discover(document)
                if not index:
                    logger.info("No entities discovered, using single data table")
                    return self._data_schema(document)
                schemas = self._entity_schemas(index)
                self._add_foreign_keys(schemas, edges)
                self._add_junction_tables(schemas, edges)
                self._add_references(schemas)
                for schema in schemas.values():
                    schema.suggested_indexes = self._suggest_indexes(schema)
        except Exception as e:
            logger.warning(f"Entity schema inference failed, using data table: {e}")
            try:
                return self._data_schema(document)
            except Exception as fallback_error:
                logger.error(f"Fallback schema inference failed: {fallback_error}")
                return {}

        logger.info(
            f"Inferred {len(schemas)} tables",
            extra={"extra_fields": {"tables": list(schemas)}},
        )
        return schemas

    def _discover(
        self, document: Any
    ) -> Tuple[Dict[str, List[Dict[str, Any]]], Dict[Tuple[str, str], _Edge]]:
        index: Dict[str, List[Dict[str, Any]]] = {}
        edges: Dict[Tuple[str, str], _Edge] = {}

        for visit in walk_entities(document):
            index.setdefault(visit.type_name, []).append(visit.obj)

            if visit.parent is None or visit.parent.type_name == visit.type_name:
                continue
            pair = (visit.parent.type_name, visit.type_name)
            if pair[::-1] in edges:
                # A->B already recorded, B->A is the same relationship
                continue
            edge = edges.setdefault(pair, _Edge(*pair))
            edge.vias.add(visit.via)
            if visit.parent_key not in edge.keys:
                edge.keys.append(visit.parent_key)

        logger.debug(
            f"Discovered {sum(len(v) for v in index.values())} entities "
            f"of {len(index)} types and {len(edges)} relationships"
        )
        return index, edges

    def _build_table(
        self,
        name: str,
        rows: List[Dict[str, FlatField]],
        kind: TableKind,
        allow_natural_key: bool,
    ) -> TableSchema:
        observed: Dict[str, List[SqlType]] = {}
        for row in rows:
            for column, flat in row.items():
                types = observed.setdefault(column, [])
                # Nulls only count for columns that never hold a value
                if flat.value is not None:
                    types.append(flat.sql_type)

        natural_key = allow_natural_key and any(
            "id" in row and row["id"].value is not None for row in rows
        )
        schema = TableSchema(name=name, kind=kind, natural_key=natural_key)
        schema.columns["id"] = NATURAL_KEY if natural_key else SURROGATE_KEY

        for column, types in observed.items():
            if column == "id":
                continue
            sql_type = resolve_column_type(types)
            schema.columns[column] = sql_type.value
            schema.column_types[column] = sql_type

        schema.sample_rows = [
            {column: flat.value for column, flat in row.items()}
            for row in rows[: self.sample_rows]
        ]
        return schema

    def _entity_schemas(
        self, index: Dict[str, List[Dict[str, Any]]]
    ) -> Dict[str, TableSchema]:
        schemas = {}
        for type_name, objects in index.items():
            rows = [self.flattener.flatten(obj) for obj in objects]
            schemas[type_name] = self._build_table(
                type_name, rows, TableKind.ENTITY, allow_natural_key=True)
        return schemas

    def _data_schema(self, document: Any) -> Dict[str, TableSchema]:
        rows = document_rows(document, self.flattener)
        schema = self._build_table(
            DATA_TABLE, rows, TableKind.DATA, allow_natural_key=False)
        return {DATA_TABLE: schema}

    def _add_foreign_keys(
        self, schemas: Dict[str, TableSchema], edges: Dict[Tuple[str, str], _Edge]
    ) -> None:
        for edge in edges.values():
            if "object" not in edge.vias:
                continue
            parent = schemas[edge.parent]
            column = foreign_key_column(edge.child)
            if column in parent.columns:
                logger.debug(
                    f"Skipping foreign key {edge.parent}.{column}: column exists")
                continue
            parent.columns[column] = f"INTEGER REFERENCES {edge.child}(id)"
            parent.relationships[column] = Relationship(
                kind=RelationshipKind.FOREIGN_KEY,
                target_table=edge.child,
                column=column,
                source_keys=list(edge.keys),
            )

    def _add_junction_tables(
        self, schemas: Dict[str, TableSchema], edges: Dict[Tuple[str, str], _Edge]
    ) -> None:
        for edge in list(edges.values()):
            if "array" not in edge.vias:
                continue
            name = junction_table_name(edge.parent, edge.child)
            if name in schemas:
                if schemas[name].kind != TableKind.JUNCTION:
                    logger.warning(
                        f"Junction table {name} collides with an entity table, skipped")
                continue

            first, second = sorted((edge.parent, edge.child))
            schemas[name] = TableSchema(
                name=name,
                columns={
                    "id": SURROGATE_KEY,
                    foreign_key_column(first): f"INTEGER REFERENCES {first}(id)",
                    foreign_key_column(second): f"INTEGER REFERENCES {second}(id)",
                },
                kind=TableKind.JUNCTION,
            )
            schemas[edge.parent].relationships[name] = Relationship(
                kind=RelationshipKind.JUNCTION_TABLE,
                target_table=edge.child,
                junction_table=name,
                source_keys=list(edge.keys),
            )
            schemas[edge.child].relationships[name] = Relationship(
                kind=RelationshipKind.JUNCTION_TABLE,
                target_table=edge.parent,
                junction_table=name,
            )

    def _add_references(self, schemas: Dict[str, TableSchema]) -> None:
        """Declare REFERENCES on scalar <table>_id columns naming a staged table."""
        for schema in schemas.values():
            if schema.kind != TableKind.ENTITY:
                continue
            for column, sql_type in list(schema.column_types.items()):
                if not column.endswith("_id") or column in schema.relationships:
                    continue
                target = column[: -len("_id")]
                target_schema = schemas.get(target)
                if (
                    target == schema.name
                    or target_schema is None
                    or target_schema.kind != TableKind.ENTITY
                ):
                    continue
                schema.columns[column] = f"{sql_type.value} REFERENCES {target}(id)"
                schema.relationships[column] = Relationship(
                    kind=RelationshipKind.REFERENCE,
                    target_table=target,
                    column=column,
                )

    def _suggest_indexes(self, schema: TableSchema) -> List[str]:
        suggested = []
        for column in schema.columns:
            if column == "id":
                continue
            sql_type = schema.column_types.get(column)
            if (
                column in schema.relationships
                or schema.kind == TableKind.JUNCTION
                or column in _SEARCH_COLUMNS
                or sql_type in (SqlType.DATE, SqlType.DATETIME)
            ):
                suggested.append(column)
        return suggested
