"""
Schema inspection for staged datasets.

Describes what was staged: tables and views, their columns, keys,
indexes, row counts and a few sample rows. Uses the SQLAlchemy inspector
over the dataset's engine.
"""

import logging
from typing import Any, Dict, List

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError

from jsonstage.catalog.database import DatasetStore
from jsonstage.config.settings import get_settings
from jsonstage.ingest.ddl_generator import quote_identifier

logger = logging.getLogger(__name__)


def _column_info(column: Dict[str, Any], primary_key: List[str]) -> Dict[str, Any]:
    return {
        "name": column["name"],
        "type": str(column["type"]),
        "not_null": not column.get("nullable", True),
        "default": column.get("default"),
        "primary_key": column["name"] in primary_key,
    }


def describe_dataset(store: DatasetStore) -> Dict[str, Any]:
    """
    Describe every table and view of a dataset.

    Args:
        store: Dataset store

    Returns:
        Dictionary with a "tables" mapping and a "views" list
    """
    inspector = inspect(store.engine)
    sample_size = get_settings().summary_sample_rows
    tables: Dict[str, Any] = {}

    for name in store.table_names():
        primary_key = inspector.get_pk_constraint(name).get("constrained_columns") or []
        table = quote_identifier(name)
        count = store.one(f"SELECT COUNT(*) AS row_count FROM {table}")
        tables[name] = {
            "columns": [
                _column_info(column, primary_key)
                for column in inspector.get_columns(name)
            ],
            "foreign_keys": [
                {
                    "columns": fk["constrained_columns"],
                    "references_table": fk["referred_table"],
                    "references_columns": fk["referred_columns"],
                }
                for fk in inspector.get_foreign_keys(name)
            ],
            "indexes": [
                {"name": index["name"], "columns": index["column_names"]}
                for index in inspector.get_indexes(name)
            ],
            "row_count": count["row_count"] if count else 0,
            "sample_data": store.exec(
                f"SELECT * FROM {table} LIMIT ?", sample_size).rows,
        }

    return {
        "success": True,
        "tables": tables,
        "views": inspector.get_view_names(),
        "temporary_tables": inspector.get_temp_table_names(),
    }


def describe_table(store: DatasetStore, table_name: str) -> Dict[str, Any]:
    """
    Describe the columns of one table.

    Args:
        store: Dataset store
        table_name: Table to describe

    Returns:
        Column list with foreign key targets, or an error dictionary when
        the table does not exist
    """
    if table_name not in store.table_names(include_views=True):
        return {
            "success": False,
            "error": f"Table '{table_name}' not found",
            "available_tables": store.table_names(include_views=True),
        }

    inspector = inspect(store.engine)
    try:
        primary_key = inspector.get_pk_constraint(table_name).get("constrained_columns") or []
        references = {}
        for fk in inspector.get_foreign_keys(table_name):
            for local, remote in zip(fk["constrained_columns"], fk["referred_columns"]):
                references[local] = f"{fk['referred_table']}.{remote}"
        columns = inspector.get_columns(table_name)
    except SQLAlchemyError as e:
        logger.warning(f"Could not inspect table {table_name}: {e}")
        return {"success": False, "error": str(e)}

    described = []
    for column in columns:
        info = _column_info(column, primary_key)
        info["is_foreign_key"] = column["name"] in references
        if column["name"] in references:
            info["references"] = references[column["name"]]
        described.append(info)

    return {"success": True, "table": table_name, "columns": described}
