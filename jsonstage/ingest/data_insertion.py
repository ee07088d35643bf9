"""
Data insertion for staged schemas.

Loads a document into tables created from its inferred schemas in three
passes over the same entity walk:

1. insert one row per entity object and remember which row it became
2. fill foreign key columns from nested entity objects
3. link entities found in lists through junction tables

Objects are identified by identity, never by content: two equal nested
objects are two rows unless they carry the same natural id.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Set, Tuple

from jsonstage.common.logging_config import PerformanceTracker
from jsonstage.config.settings import get_settings
from jsonstage.ingest.ddl_generator import quote_identifier
from jsonstage.ingest.entities import (
    EntityVisit,
    RecordFlattener,
    entity_items,
    relationship_kind,
    to_json_text,
    walk_entities,
)
from jsonstage.ingest.naming import (
    column_name,
    junction_table_name,
    singularize,
    table_name,
)
from jsonstage.ingest.schema_inference import (
    Relationship,
    TableKind,
    TableSchema,
    document_rows,
)
from jsonstage.ingest.type_classifier import SqlType

logger = logging.getLogger(__name__)


class StatementExecutor(Protocol):
    """Anything that can run a parameterized statement."""

    def exec(self, sql: str, *bindings: Any) -> Any:
        ...


class CoercionError(ValueError):
    """A value could not be converted to its column type."""
    pass


def coerce_value(value: Any, sql_type: SqlType) -> Any:
    """
    Convert a JSON value to the Python value bound for a column.

    Args:
        value: Flattened JSON value
        sql_type: Declared logical type of the column

    Returns:
        Value suitable for binding (None stays None)

    Raises:
        CoercionError: If the value cannot be represented in the type
    """
    if value is None:
        return None
    if isinstance(value, bool):
        value = int(value)

    try:
        if sql_type == SqlType.INTEGER:
            if isinstance(value, int):
                return value
            if isinstance(value, float):
                if not math.isfinite(value):
                    raise CoercionError(f"non-finite number {value!r}")
                return math.trunc(value)
            if isinstance(value, str):
                text_value = value.strip()
                try:
                    return int(text_value)
                except ValueError:
                    number = float(text_value)
                    if not math.isfinite(number):
                        raise CoercionError(f"non-finite number {value!r}")
                    return math.trunc(number)
            raise CoercionError(f"cannot store {type(value).__name__} as INTEGER")

        if sql_type == SqlType.REAL:
            if isinstance(value, (dict, list)):
                raise CoercionError(f"cannot store {type(value).__name__} as REAL")
            return float(value)

        if sql_type == SqlType.BLOB:
            if isinstance(value, (bytes, bytearray)):
                return bytes(value)
            return str(value).encode("utf-8")

        # TEXT, DATE, DATETIME, JSON
        if isinstance(value, (dict, list)):
            return to_json_text(value)
        if isinstance(value, (bytes, bytearray)):
            return bytes(value).decode("utf-8", errors="replace")
        return str(value)
    except (TypeError, ValueError) as e:
        if isinstance(e, CoercionError):
            raise
        raise CoercionError(str(e)) from e


@dataclass
class InsertionStats:
    """Counts of statements issued by one insertion run."""
    rows_inserted: Dict[str, int] = field(default_factory=dict)
    foreign_keys_set: int = 0
    junction_rows: int = 0
    failed_statements: int = 0
    coercion_failures: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rows_inserted": dict(self.rows_inserted),
            "foreign_keys_set": self.foreign_keys_set,
            "junction_rows": self.junction_rows,
            "failed_statements": self.failed_statements,
            "coercion_failures": self.coercion_failures,
        }


class _Run:
    """State of one insertion call: identity map, counters, stats."""

    def __init__(self, executor: StatementExecutor):
        self.executor = executor
        # id(obj) -> (table, row id)
        self.identity: Dict[int, Tuple[str, Any]] = {}
        self.counters: Dict[str, int] = {}
        # table -> text ids already taken by natural keys
        self.reserved_ids: Dict[str, Set[str]] = {}
        self.stats = InsertionStats()

    def next_id(self, table: str) -> int:
        self.counters[table] = self.counters.get(table, 0) + 1
        return self.counters[table]

    def next_natural_id(self, table: str) -> str:
        """Counter id for a natural-key table, skipping ids already in use."""
        reserved = self.reserved_ids.setdefault(table, set())
        row_id = str(self.next_id(table))
        while row_id in reserved:
            row_id = str(self.next_id(table))
        reserved.add(row_id)
        return row_id

    def execute(self, sql: str, bindings: List[Any], context: str) -> bool:
        try:
            self.executor.exec(sql, *bindings)
            return True
        except Exception as e:
            self.stats.failed_statements += 1
            logger.warning(
                f"Statement failed during {context}: {e}",
                extra={"extra_fields": {"sql": sql}},
            )
            return False


class DataInsertionEngine:
    """
    Inserts a document into the tables of its inferred schemas.

    Every failing statement is logged and skipped; the run continues with
    the next row. Identity map and id counters are scoped to one call.
    """

    def __init__(
        self,
        max_simple_fields: Optional[int] = None,
        max_nested_array: Optional[int] = None,
    ):
        settings = get_settings()
        # Must match the flattener used for inference
        self.flattener = RecordFlattener(
            max_simple_fields=max_simple_fields or settings.max_simple_object_fields,
            max_nested_array=max_nested_array or settings.max_nested_scalar_array,
        )

    def insert(
        self,
        document: Any,
        schemas: Dict[str, TableSchema],
        executor: StatementExecutor,
    ) -> InsertionStats:
        """
        Insert a document.

        Args:
            document: The same parsed document the schemas were inferred from
            schemas: Tables that exist in the store
            executor: Statement executor (e.g. DatasetStore)

        Returns:
            InsertionStats for the run
        """
        run = _Run(executor)

        data_schemas = [s for s in schemas.values() if s.kind == TableKind.DATA]
        for schema in data_schemas:
            with PerformanceTracker("insert_data_rows", logger, table=schema.name):
                self._insert_data_rows(run, document, schema)

        if len(data_schemas) != len(schemas):
            with PerformanceTracker("insert_entities", logger):
                self._insert_entities(run, document, schemas)
            with PerformanceTracker("link_foreign_keys", logger):
                self._link_foreign_keys(run, document, schemas)
            with PerformanceTracker("link_junction_tables", logger):
                self._link_junctions(run, document, schemas)

        logger.info(
            "Inserted document",
            extra={"extra_fields": run.stats.to_dict()},
        )
        return run.stats

    # ---- row building ----

    def _coerced_row(
        self, run: _Run, schema: TableSchema, values: Dict[str, Any]
    ) -> Dict[str, Any]:
        row = {}
        for column, value in values.items():
            sql_type = schema.column_types.get(column)
            if sql_type is None:
                continue
            try:
                row[column] = coerce_value(value, sql_type)
            except CoercionError as e:
                run.stats.coercion_failures += 1
                logger.warning(
                    f"Could not coerce {schema.name}.{column} to {sql_type.value}: {e}")
                row[column] = None
        return row

    def _insert_row(
        self, run: _Run, schema: TableSchema, row: Dict[str, Any], verb: str
    ) -> bool:
        columns = list(row)
        sql = "{verb} INTO {table} ({columns}) VALUES ({placeholders})".format(
            verb=verb,
            table=quote_identifier(schema.name),
            columns=", ".join(quote_identifier(c) for c in columns),
            placeholders=", ".join("?" for _ in columns),
        )
        ok = run.execute(sql, [row[c] for c in columns], f"insert into {schema.name}")
        if ok:
            run.stats.rows_inserted[schema.name] = (
                run.stats.rows_inserted.get(schema.name, 0) + 1)
        return ok

    def _insert_data_rows(self, run: _Run, document: Any, schema: TableSchema) -> None:
        for flat_row in document_rows(document, self.flattener):
            values = {column: flat.value for column, flat in flat_row.items()}
            row = self._coerced_row(run, schema, values)
            if all(value is None for value in row.values()):
                continue
            self._insert_row(run, schema, row, "INSERT OR IGNORE")

    # ---- phase 1 ----

    def _reserve_natural_ids(
        self, run: _Run, visits: List[EntityVisit], schemas: Dict[str, TableSchema]
    ) -> None:
        """Record every natural id up front so generated ids never reuse one."""
        for visit in visits:
            schema = schemas.get(visit.type_name)
            if schema is None or schema.kind != TableKind.ENTITY or not schema.natural_key:
                continue
            natural_id = self.flattener.flatten(visit.obj).get("id")
            if natural_id is not None and natural_id.value is not None:
                run.reserved_ids.setdefault(schema.name, set()).add(
                    coerce_value(natural_id.value, SqlType.TEXT))

    def _insert_entities(
        self, run: _Run, document: Any, schemas: Dict[str, TableSchema]
    ) -> None:
        visits = list(walk_entities(document))
        self._reserve_natural_ids(run, visits, schemas)

        for visit in visits:
            schema = schemas.get(visit.type_name)
            if schema is None or id(visit.obj) in run.identity:
                continue

            if schema.kind == TableKind.FALLBACK:
                row_id = run.next_id(schema.name)
                row = {"id": row_id, "data_json": to_json_text(visit.obj)}
            elif schema.kind == TableKind.ENTITY:
                flat = self.flattener.flatten(visit.obj)
                natural_id = flat.get("id")
                row = self._coerced_row(
                    run, schema, {c: f.value for c, f in flat.items()})
                if schema.natural_key:
                    if natural_id is not None and natural_id.value is not None:
                        row_id = coerce_value(natural_id.value, SqlType.TEXT)
                    else:
                        row_id = run.next_natural_id(schema.name)
                else:
                    row_id = run.next_id(schema.name)
                row = {"id": row_id, **row}
            else:
                continue

            if self._insert_row(run, schema, row, "INSERT OR REPLACE"):
                run.identity[id(visit.obj)] = (schema.name, row_id)

    # ---- phase 2 ----

    def _find_related(
        self, run: _Run, visit: EntityVisit, relationship: Relationship
    ) -> Optional[Any]:
        """Row id of the nested entity a foreign key column should point at."""
        obj = visit.obj
        target = relationship.target_table

        def resolve(value: Any) -> Optional[Any]:
            if relationship_kind(value) != "object":
                return None
            entry = run.identity.get(id(value))
            if entry is not None and entry[0] == target:
                return entry[1]
            return None

        # Direct key match
        for key in relationship.source_keys:
            if key in obj:
                found = resolve(obj[key])
                if found is not None:
                    return found

        # Aliased / snake-case key match, then singular table name match
        for key, value in obj.items():
            aliased = column_name(str(key))
            if target in (aliased, singularize(aliased), table_name(str(key))):
                found = resolve(value)
                if found is not None:
                    return found

        # Any nested entity recorded in the target table
        for value in obj.values():
            found = resolve(value)
            if found is not None:
                return found
        return None

    def _link_foreign_keys(
        self, run: _Run, document: Any, schemas: Dict[str, TableSchema]
    ) -> None:
        for visit in walk_entities(document):
            entry = run.identity.get(id(visit.obj))
            if entry is None:
                continue
            table, row_id = entry
            schema = schemas[table]
            if schema.kind != TableKind.ENTITY:
                continue

            for relationship in schema.foreign_keys:
                related_id = self._find_related(run, visit, relationship)
                if related_id is None:
                    continue
                sql = "UPDATE {table} SET {column} = ? WHERE {id} = ?".format(
                    table=quote_identifier(table),
                    column=quote_identifier(relationship.column),
                    id=quote_identifier("id"),
                )
                if run.execute(sql, [related_id, row_id], f"foreign key {table}.{relationship.column}"):
                    run.stats.foreign_keys_set += 1

    # ---- phase 3 ----

    def _link_junctions(
        self, run: _Run, document: Any, schemas: Dict[str, TableSchema]
    ) -> None:
        for visit in walk_entities(document):
            entry = run.identity.get(id(visit.obj))
            if entry is None:
                continue
            table, row_id = entry

            for value in visit.obj.values():
                items = entity_items(value)
                if items is None:
                    if relationship_kind(value) != "object":
                        continue
                    items = [value]

                for item in items:
                    related = run.identity.get(id(item))
                    if related is None or related[0] == table:
                        continue
                    related_table, related_id = related
                    junction = schemas.get(junction_table_name(table, related_table))
                    if junction is None or junction.kind != TableKind.JUNCTION:
                        continue
                    sql = "INSERT OR IGNORE INTO {junction} ({a}, {b}) VALUES (?, ?)".format(
                        junction=quote_identifier(junction.name),
                        a=quote_identifier(f"{table}_id"),
                        b=quote_identifier(f"{related_table}_id"),
                    )
                    if run.execute(sql, [row_id, related_id], f"junction {junction.name}"):
                        run.stats.junction_rows += 1
