"""
Dataset lifecycle: one isolated SQLite database per staged document.
"""

from jsonstage.storage.manager import (
    Dataset,
    DatasetManager,
    DatasetNotFoundError,
    get_dataset_manager,
    reset_dataset_manager,
)

__all__ = [
    "Dataset",
    "DatasetManager",
    "DatasetNotFoundError",
    "get_dataset_manager",
    "reset_dataset_manager",
]
