"""
DDL Generator for staged SQLite tables.

Generates CREATE TABLE and CREATE INDEX statements from inferred table
schemas, normalizing identifiers and column types to what SQLite accepts.
"""

import re
from typing import List

from jsonstage.ingest.naming import sanitize_identifier
from jsonstage.ingest.schema_inference import TableKind, TableSchema


# Storage classes accepted as declared
SQLITE_TYPES = ("INTEGER", "REAL", "TEXT", "BLOB", "NUMERIC")

# Other type names mapped onto a storage class
TYPE_ALIASES = {
    "INT": "INTEGER",
    "BIGINT": "INTEGER",
    "SMALLINT": "INTEGER",
    "TINYINT": "INTEGER",
    "BOOLEAN": "INTEGER",
    "BOOL": "INTEGER",
    "FLOAT": "REAL",
    "DOUBLE": "REAL",
    "DECIMAL": "NUMERIC",
    "DATE": "TEXT",
    "DATETIME": "TEXT",
    "TIMESTAMP": "TEXT",
    "JSON": "TEXT",
    "STRING": "TEXT",
    "VARCHAR": "TEXT",
    "CHAR": "TEXT",
    "CLOB": "TEXT",
}

_REFERENCES = re.compile(r"\bREFERENCES\s+(\w+)\s*\((\w+)\)", re.IGNORECASE)


def quote_identifier(name: str) -> str:
    """Double-quote an identifier for SQLite."""
    return '"' + name.replace('"', '""') + '"'


def normalize_sql_type(declaration: str) -> str:
    """
    Normalize a column declaration to SQLite's type vocabulary.

    Declarations that already name a storage class (including constraint
    suffixes such as ``PRIMARY KEY`` or ``REFERENCES t(id)``) pass through.

    Args:
        declaration: Inferred column declaration

    Returns:
        Declaration SQLite will store with the intended affinity
    """
    stripped = declaration.strip()
    if not stripped:
        return "TEXT"

    base, _, rest = stripped.partition(" ")
    base = base.upper()
    if base in SQLITE_TYPES:
        return stripped

    mapped = TYPE_ALIASES.get(base.split("(")[0], "TEXT")
    return f"{mapped} {rest}".strip()


class DDLGenerator:
    """
    Generates SQL DDL (Data Definition Language) statements.

    Identifiers are sanitized and double-quoted; types are normalized.
    Junction tables get a uniqueness constraint over their two key columns
    so re-linking the same pair is ignored.
    """

    def _column_definition(self, name: str, declaration: str) -> str:
        column = quote_identifier(sanitize_identifier(name, "column"))
        sql_type = normalize_sql_type(declaration)
        sql_type = _REFERENCES.sub(
            lambda m: "REFERENCES {}({})".format(
                quote_identifier(sanitize_identifier(m.group(1), "table")),
                quote_identifier(sanitize_identifier(m.group(2), "column")),
            ),
            sql_type,
        )
        return f"{column} {sql_type}"

    def generate_table_ddl(self, table_name: str, schema: TableSchema) -> str:
        """
        Generate CREATE TABLE DDL statement.

        Args:
            table_name: Name of the table to create
            schema: Inferred table schema

        Returns:
            CREATE TABLE IF NOT EXISTS statement
        """
        table = quote_identifier(sanitize_identifier(table_name, "table"))
        definitions = [
            self._column_definition(name, declaration)
            for name, declaration in schema.columns.items()
        ]

        if schema.kind == TableKind.JUNCTION:
            key_columns = [
                quote_identifier(sanitize_identifier(name, "column"))
                for name in schema.columns if name != "id"
            ]
            definitions.append(f"UNIQUE ({', '.join(key_columns)})")

        body = ",\n    ".join(definitions)
        return f"CREATE TABLE IF NOT EXISTS {table} (\n    {body}\n)"

    def generate_fallback_ddl(self, table_name: str) -> str:
        """
        Generate DDL for the generic fallback table.

        Used when a table's own DDL is rejected: every object of the table is
        stored whole as JSON text.
        """
        table = quote_identifier(sanitize_identifier(table_name, "table"))
        return (
            f"CREATE TABLE IF NOT EXISTS {table} (\n"
            f"    \"id\" INTEGER PRIMARY KEY AUTOINCREMENT,\n"
            f"    \"data_json\" TEXT\n"
            f")"
        )

    def generate_index_ddl(self, table_name: str, schema: TableSchema) -> List[str]:
        """
        Generate CREATE INDEX statements for the suggested index columns.

        Args:
            table_name: Name of the table
            schema: Inferred table schema

        Returns:
            List of CREATE INDEX IF NOT EXISTS statements
        """
        table = sanitize_identifier(table_name, "table")
        statements = []
        for column in schema.suggested_indexes:
            if column not in schema.columns:
                continue
            column = sanitize_identifier(column, "column")
            index_name = quote_identifier(f"idx_{table}_{column}")
            statements.append(
                f"CREATE INDEX IF NOT EXISTS {index_name} "
                f"ON {quote_identifier(table)} ({quote_identifier(column)})"
            )
        return statements
