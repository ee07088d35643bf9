"""
Embedded SQLite store for one staged dataset.

Provides the engine, statement execution and transaction helpers used by
staging and by the SQL gateway. Each dataset owns one engine bound to a
single static connection, so temporary tables and views created through
the gateway stay visible to later statements of the same dataset.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Generator, List, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.pool import StaticPool

from jsonstage.config.settings import get_settings

logger = logging.getLogger(__name__)

MEMORY_URL = "sqlite+pysqlite:///:memory:"


@dataclass
class StatementResult:
    """Rows and metadata returned by one statement."""
    rows: List[Dict[str, Any]] = field(default_factory=list)
    column_names: List[str] = field(default_factory=list)
    rowcount: int = -1

    def one(self) -> Optional[Dict[str, Any]]:
        """First row, or None when the statement returned nothing."""
        return self.rows[0] if self.rows else None


def create_sqlite_engine(url: str = MEMORY_URL, echo: Optional[bool] = None) -> Engine:
    """
    Create an engine for a dataset database.

    StaticPool keeps exactly one DBAPI connection for the lifetime of the
    engine; an in-memory database lives as long as that connection.

    Args:
        url: SQLAlchemy SQLite URL
        echo: Log emitted SQL (defaults to the sql_echo setting)

    Returns:
        SQLAlchemy engine
    """
    if echo is None:
        echo = get_settings().sql_echo
    return create_engine(
        url,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=echo,
        future=True,
    )


class DatasetStore:
    """
    Statement executor over one dataset database.

    Statements run in their own transaction unless issued inside
    :meth:`batch`, where they share one transaction that commits on exit.
    A failing statement inside a batch only affects itself.
    """

    def __init__(self, url: str = MEMORY_URL, engine: Optional[Engine] = None):
        """
        Initialize store.

        Args:
            url: SQLAlchemy SQLite URL (ignored when engine is given)
            engine: Pre-built engine
        """
        self.url = url
        self.engine = engine or create_sqlite_engine(url)
        self._active: Optional[Connection] = None

    def _run(self, conn: Connection, sql: str, bindings: tuple) -> StatementResult:
        if bindings:
            result = conn.exec_driver_sql(sql, bindings)
        else:
            result = conn.exec_driver_sql(sql)

        if result.returns_rows:
            column_names = list(result.keys())
            rows = [dict(row) for row in result.mappings().all()]
            return StatementResult(rows, column_names, len(rows))
        return StatementResult(rowcount=result.rowcount)

    def exec(self, sql: str, *bindings: Any) -> StatementResult:
        """
        Execute one statement with positional (qmark) bindings.

        Args:
            sql: SQL statement using ? placeholders
            *bindings: Values bound to the placeholders

        Returns:
            StatementResult with rows (as dicts) and column names

        Raises:
            sqlalchemy.exc.SQLAlchemyError: The statement failed
        """
        if self._active is not None:
            return self._run(self._active, sql, bindings)
        with self.engine.begin() as conn:
            return self._run(conn, sql, bindings)

    def one(self, sql: str, *bindings: Any) -> Optional[Dict[str, Any]]:
        """Execute a statement and return its first row (or None)."""
        return self.exec(sql, *bindings).one()

    def execute_ddl(self, ddl: str) -> None:
        """Execute a DDL statement."""
        self.exec(ddl)

    @contextmanager
    def batch(self) -> Generator["DatasetStore", None, None]:
        """
        Context manager sharing one transaction across statements.

        Usage:
            with store.batch():
                store.exec("INSERT ...")
        """
        if self._active is not None:
            yield self
            return
        with self.engine.begin() as conn:
            self._active = conn
            try:
                yield self
            finally:
                self._active = None

    def table_names(self, include_views: bool = False) -> List[str]:
        """Names of user tables (and optionally views), in creation order."""
        kinds = ("table", "view") if include_views else ("table",)
        placeholders = ", ".join("?" for _ in kinds)
        result = self.exec(
            f"SELECT name FROM sqlite_master WHERE type IN ({placeholders}) "
            f"AND name NOT LIKE 'sqlite_%' ORDER BY rowid",
            *kinds,
        )
        return [row["name"] for row in result.rows]

    def delete_all(self) -> None:
        """Drop every user view, table and index of the dataset."""
        with self.batch():
            for row in self.exec(
                "SELECT type, name FROM sqlite_master "
                "WHERE type IN ('view', 'table') AND name NOT LIKE 'sqlite_%' "
                "ORDER BY CASE type WHEN 'view' THEN 0 ELSE 1 END"
            ).rows:
                kind = "VIEW" if row["type"] == "view" else "TABLE"
                name = row["name"].replace('"', '""')
                self.exec(f'DROP {kind} IF EXISTS "{name}"')
        logger.info("Dropped all dataset objects", extra={"extra_fields": {"url": self.url}})

    def dispose(self) -> None:
        """Close the underlying connection."""
        self.engine.dispose()


def check_store_connection(store: DatasetStore) -> bool:
    """
    Check if a dataset store is usable.

    Returns:
        True if a trivial query succeeds, False otherwise
    """
    try:
        with store.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
