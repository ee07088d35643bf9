"""
SQL type classification for JSON values and column names.

Column types come from two sources: the column name (``deposit_date``,
``molecular_weight``, ``is_obsolete``) and the observed values. Observed
types for one column are merged with a fixed priority so the result is
independent of row order.
"""

import math
import re
from enum import Enum
from typing import Any, Iterable, Optional, Tuple


class SqlType(str, Enum):
    """Logical column types produced by inference."""
    INTEGER = "INTEGER"
    REAL = "REAL"
    TEXT = "TEXT"
    DATE = "DATE"
    DATETIME = "DATETIME"
    BLOB = "BLOB"
    JSON = "JSON"


# Merge order, most general first
TYPE_PRIORITY: Tuple[SqlType, ...] = (
    SqlType.DATE,
    SqlType.DATETIME,
    SqlType.TEXT,
    SqlType.JSON,
    SqlType.BLOB,
    SqlType.REAL,
    SqlType.INTEGER,
)

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_ISO_DATETIME = re.compile(r"^\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2}")

_REAL_HINTS = frozenset(
    {"weight", "resolution", "temperature", "ph", "length", "score", "percentage"}
)
_INTEGER_HINTS = frozenset({"count", "number", "index", "rank"})
_BOOLEAN_PREFIXES = ("is_", "has_", "can_")
_TEXT_HINTS = frozenset({
    "name", "title", "description", "sequence", "formula", "smiles",
    "inchi", "url", "email", "phone",
})


def classify_by_name(name: str) -> Optional[SqlType]:
    """
    Infer a column type from its name alone.

    Hints match anywhere in the name, so ``totalcount`` and ``country``
    both hit ``count``. :func:`classify_column` keeps a non-numeric
    string value from being forced into a numeric hint.

    Args:
        name: Sanitized column name

    Returns:
        SqlType, or None when the name carries no hint
    """
    lowered = name.lower()

    if lowered.endswith("_id"):
        return SqlType.INTEGER
    if lowered.endswith("_date"):
        return SqlType.DATE
    if lowered.endswith("_time") or lowered.endswith("_at"):
        return SqlType.DATETIME
    if any(hint in lowered for hint in _REAL_HINTS):
        return SqlType.REAL
    if any(hint in lowered for hint in _INTEGER_HINTS):
        return SqlType.INTEGER
    if lowered.startswith(_BOOLEAN_PREFIXES):
        return SqlType.INTEGER
    if any(hint in lowered for hint in _TEXT_HINTS):
        return SqlType.TEXT
    return None


def is_date_string(value: str) -> bool:
    """Whether a string looks like an ISO date or datetime."""
    return bool(_ISO_DATE.match(value) or _ISO_DATETIME.match(value))


def classify(value: Any) -> SqlType:
    """
    Infer a column type from a single JSON value.

    Args:
        value: Any parsed JSON value

    Returns:
        SqlType for the value
    """
    # bool is a subclass of int, check it first
    if isinstance(value, bool):
        return SqlType.INTEGER
    if isinstance(value, int):
        return SqlType.INTEGER
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return SqlType.INTEGER
        return SqlType.REAL
    if isinstance(value, str):
        return SqlType.DATE if is_date_string(value) else SqlType.TEXT
    if isinstance(value, (bytes, bytearray)):
        return SqlType.BLOB
    return SqlType.TEXT


def _is_numeric_string(value: str) -> bool:
    try:
        float(value)
    except ValueError:
        return False
    return True


def classify_column(name: str, value: Any) -> SqlType:
    """
    Infer the type of one observed column value.

    The name hint wins, except that a numeric hint does not override a
    string value that is not a number (``comp_id = "HEM"`` stays TEXT).
    """
    hinted = classify_by_name(name)
    if hinted is None or value is None:
        return hinted or classify(value)

    if hinted in (SqlType.INTEGER, SqlType.REAL):
        if isinstance(value, str) and not _is_numeric_string(value):
            return classify(value)
    return hinted


def resolve_column_type(types: Iterable[SqlType]) -> SqlType:
    """
    Merge the types observed for one column.

    Args:
        types: Observed types (any order, duplicates allowed)

    Returns:
        The highest-priority type present, TEXT when nothing was observed
    """
    observed = set(types)
    for candidate in TYPE_PRIORITY:
        if candidate in observed:
            return candidate
    return SqlType.TEXT
