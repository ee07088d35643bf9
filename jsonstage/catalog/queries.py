"""
SQL gateway for staged datasets.

This module handles:
- Allow-listing of analytical statements (SELECT, CTEs, PRAGMA, EXPLAIN,
  temporary tables and views)
- Blocking statements that modify staged tables
- Execution against the dataset store with timing and metrics
- Classification of execution errors with remediation hints
"""

import logging
import re
import time
from dataclasses import dataclass, field
from functools import wraps
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from jsonstage.catalog.database import DatasetStore
from jsonstage.common.metrics import track_query_time
from jsonstage.config.settings import get_settings

logger = logging.getLogger(__name__)

ALLOWED_PREFIXES: Tuple[str, ...] = (
    "select",
    "with",
    "pragma",
    "explain",
    "create temporary table",
    "create temp table",
    "create view",
    "create temporary view",
    "create temp view",
    "drop view",
    "drop temporary table",
    "drop temp table",
)

# Statements that would modify permanent (staged) data
BLOCKED_PATTERNS: Tuple[Tuple[str, "re.Pattern[str]"], ...] = (
    ("DROP TABLE", re.compile(r"\bdrop\s+table\s+(?!(?:temp|temporary)\b)", re.IGNORECASE)),
    ("DELETE FROM", re.compile(r"\bdelete\s+from\b", re.IGNORECASE)),
    ("UPDATE ... SET", re.compile(
        r"\bupdate\s+(?:or\s+\w+\s+)?\S+\s+set\b", re.IGNORECASE)),
    # Covers INSERT OR <conflict> INTO and REPLACE INTO
    ("INSERT INTO", re.compile(
        r"\b(?:insert(?:\s+or\s+\w+)?|replace)\s+into\s+(?!(?:temp|temporary)\b)",
        re.IGNORECASE)),
    ("ALTER TABLE", re.compile(r"\balter\s+table\b", re.IGNORECASE)),
    ("CREATE TABLE", re.compile(r"\bcreate\s+table\s+(?!(?:temp|temporary)\b)", re.IGNORECASE)),
    ("ATTACH DATABASE", re.compile(r"\battach\s+database\b", re.IGNORECASE)),
    ("DETACH DATABASE", re.compile(r"\bdetach\s+database\b", re.IGNORECASE)),
)

_WHITESPACE = re.compile(r"\s+")
_SELECT_STAR = re.compile(r"^select\s+\*", re.IGNORECASE)

ERROR_HINTS: Dict[str, List[str]] = {
    "no_such_table": [
        "Check available tables with: PRAGMA table_list",
        "Verify table names match exactly",
    ],
    "no_such_column": [
        "Use PRAGMA table_info(table_name) to see all columns",
        "Check for typos in column names",
    ],
    "syntax_error": [
        "Verify SQL syntax, try a simpler query first",
        "Check for unbalanced quotes or parentheses",
    ],
    "other": [
        "Run PRAGMA table_list to review the staged tables",
    ],
}


def log_query_time(func: Callable) -> Callable:
    """
    Decorator to log query execution time and warn on slow queries.

    Args:
        func: Function to decorate

    Returns:
        Decorated function with timing instrumentation
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        start = time.perf_counter()
        result = func(*args, **kwargs)
        duration_ms = (time.perf_counter() - start) * 1000
        threshold = get_settings().slow_query_threshold_ms

        logger.debug(f"Query {func.__name__} took {duration_ms:.2f}ms")

        if duration_ms > threshold:
            logger.warning(
                f"SLOW QUERY: {func.__name__} exceeded {threshold}ms "
                f"(took {duration_ms:.2f}ms)"
            )
        if hasattr(result, "execution_time_ms"):
            result.execution_time_ms = round(duration_ms, 2)
        return result
    return wrapper


class QueryError(Exception):
    """Exception raised during query processing."""
    error_type = "query_error"
    rejected = False

    def __init__(
        self,
        message: str,
        sql: str = "",
        suggestions: Optional[List[str]] = None,
        query_type: Optional[str] = None,
    ):
        super().__init__(message)
        self.sql = sql
        self.suggestions = suggestions or []
        self.query_type = query_type

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error": str(self),
            "error_type": self.error_type,
            "query": self.sql,
            "suggestions": list(self.suggestions),
        }


class QueryValidationError(QueryError):
    """The statement is not allowed through the gateway."""
    error_type = "validation_error"
    rejected = True


class SqlExecutionError(QueryError):
    """The statement passed validation but SQLite rejected it."""
    error_type = "sql_execution_error"

    def __init__(self, message: str, kind: str = "other", **kwargs):
        super().__init__(message, **kwargs)
        self.kind = kind

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["error_kind"] = self.kind
        return data


@dataclass
class QueryResult:
    """Result of a gateway statement."""
    sql: str
    query_type: str
    rows: List[Dict[str, Any]] = field(default_factory=list)
    column_names: List[str] = field(default_factory=list)
    row_count: int = 0
    execution_time_ms: float = 0.0
    execution_hints: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "query": self.sql,
            "query_type": self.query_type,
            "results": list(self.rows),
            "row_count": self.row_count,
            "column_names": list(self.column_names),
            "execution_time_ms": self.execution_time_ms,
            "execution_hints": list(self.execution_hints),
        }


def normalize_sql(sql: str) -> str:
    """Trim, collapse whitespace and lower-case a statement."""
    return _WHITESPACE.sub(" ", sql.strip()).lower()


def suggest_allowed_operation(normalized: str) -> str:
    """Point a rejected statement at the allowed alternative."""
    if "insert" in normalized:
        return "Try CREATE TEMPORARY TABLE instead of INSERT"
    if "update" in normalized:
        return "Use SELECT with calculated columns instead of UPDATE"
    if "delete" in normalized:
        return "Use WHERE clauses in SELECT instead of DELETE"
    return "Start with SELECT, PRAGMA, or WITH statements"


def classify_query_type(normalized: str) -> str:
    """
    Classify an allowed statement.

    Returns:
        One of cte, pragma, explain, create_temp, select
    """
    if normalized.startswith("with"):
        return "cte"
    if normalized.startswith("pragma"):
        return "pragma"
    if normalized.startswith("explain"):
        return "explain"
    if normalized.startswith(("create", "drop")):
        return "create_temp"
    return "select"


def validate_sql(sql: str) -> str:
    """
    Check a statement against the allow-list and the deny patterns.

    Args:
        sql: Statement as submitted

    Returns:
        The statement's query type

    Raises:
        QueryValidationError: If the statement is empty or not allowed
    """
    normalized = normalize_sql(sql or "")
    if not normalized:
        raise QueryValidationError(
            "Empty SQL statement", sql=sql or "",
            suggestions=["Start with SELECT, PRAGMA, or WITH statements"])

    if not normalized.startswith(ALLOWED_PREFIXES):
        suggestion = suggest_allowed_operation(normalized)
        raise QueryValidationError(
            f"Query type not allowed. {suggestion}. "
            f"Permitted operations: {', '.join(ALLOWED_PREFIXES)}",
            sql=sql,
            suggestions=[suggestion],
        )

    for label, pattern in BLOCKED_PATTERNS:
        if pattern.search(normalized):
            raise QueryValidationError(
                f"Operation blocked: {label} would modify staged data. "
                f"Use temporary tables for data modifications.",
                sql=sql,
                suggestions=["Use CREATE TEMPORARY TABLE ... AS SELECT for derived data"],
                query_type=classify_query_type(normalized),
            )

    return classify_query_type(normalized)


def classify_execution_error(message: str) -> str:
    """Map a SQLite error message to an error kind."""
    lowered = message.lower()
    if "no such table" in lowered:
        return "no_such_table"
    if "no such column" in lowered:
        return "no_such_column"
    if "syntax error" in lowered:
        return "syntax_error"
    return "other"


class SqlGateway:
    """
    Restricted SQL access to one dataset.

    Only analytical statements and temporary objects are allowed; staged
    tables are never modified through the gateway.
    """

    def __init__(self, store: DatasetStore):
        """
        Initialize gateway.

        Args:
            store: Dataset store to execute against
        """
        self.store = store
        self.settings = get_settings()

    @track_query_time
    @log_query_time
    def execute(self, sql: str) -> QueryResult:
        """
        Validate and execute one statement.

        Args:
            sql: SQL statement

        Returns:
            QueryResult with rows as dicts

        Raises:
            QueryValidationError: The statement is not allowed
            SqlExecutionError: SQLite failed to execute it
        """
        query_type = validate_sql(sql)

        try:
            result = self.store.exec(sql.strip())
        except SQLAlchemyError as e:
            message = str(getattr(e, "orig", None) or e)
            kind = classify_execution_error(message)
            logger.info(f"Gateway statement failed ({kind}): {message}")
            raise SqlExecutionError(
                message,
                kind=kind,
                sql=sql,
                suggestions=ERROR_HINTS[kind],
                query_type=query_type,
            ) from e

        query_result = QueryResult(
            sql=sql,
            query_type=query_type,
            rows=result.rows,
            column_names=result.column_names,
            row_count=len(result.rows),
        )
        query_result.execution_hints = self._execution_hints(query_result)
        return query_result

    def run(self, sql: str) -> Dict[str, Any]:
        """
        Execute a statement and return a response dictionary.

        Errors are returned as ``{"success": False, ...}`` instead of raised.
        """
        try:
            return self.execute(sql).to_dict()
        except QueryError as e:
            return e.to_dict()

    def _execution_hints(self, result: QueryResult) -> List[str]:
        hints = []
        if (
            result.row_count > self.settings.large_result_hint_rows
            and _SELECT_STAR.match(result.sql.strip())
        ):
            hints.append(
                f"Query returned {result.row_count} rows, consider adding LIMIT")
        if result.row_count == 0 and result.query_type in ("select", "cte"):
            hints.append("No rows returned, check filters or run PRAGMA table_list")
        return hints
