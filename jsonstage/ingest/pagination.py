"""
Pagination analysis for GraphQL responses.

A staged document is often a single page of a larger connection. This
reports what the response says about further pages so callers know the
staged tables are partial.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional


@dataclass
class PaginationInfo:
    """Pagination state of one GraphQL response."""
    has_next_page: bool = False
    has_previous_page: bool = False
    current_count: int = 0
    total_count: Optional[int] = None
    end_cursor: Optional[str] = None
    start_cursor: Optional[str] = None
    suggestion: Optional[str] = None

    @classmethod
    def extract(cls, data: Any) -> "PaginationInfo":
        """
        Analyse a response document.

        Args:
            data: Parsed JSON response (``data`` envelope already removed)

        Returns:
            PaginationInfo; all defaults when the document is not paginated
        """
        info = cls()

        page_info = _find_page_info(data)
        if page_info is not None:
            info.has_next_page = bool(page_info.get("hasNextPage"))
            info.has_previous_page = bool(page_info.get("hasPreviousPage"))
            info.end_cursor = page_info.get("endCursor")
            info.start_cursor = page_info.get("startCursor")

        info.total_count = _find_total_count(data)

        edges: List[list] = []
        _collect_edges(data, edges)
        if edges:
            info.current_count = sum(len(e) for e in edges)
        elif isinstance(data, list):
            info.current_count = len(data)
        else:
            info.current_count = _count_list_items(data)

        if info.has_next_page:
            info.suggestion = (
                f"Only {info.current_count} records were staged. Request "
                f"'pageInfo {{ hasNextPage endCursor }}' and pass "
                f"after: \"{info.end_cursor}\" to fetch the next page."
            )
        return info

    @property
    def is_paginated(self) -> bool:
        return self.has_next_page or self.has_previous_page or self.total_count is not None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "has_next_page": self.has_next_page,
            "has_previous_page": self.has_previous_page,
            "current_count": self.current_count,
            "total_count": self.total_count,
            "end_cursor": self.end_cursor,
            "start_cursor": self.start_cursor,
        }
        if self.suggestion:
            data["suggestion"] = self.suggestion
        return data


def _children(value: Any) -> List[Any]:
    if isinstance(value, dict):
        return list(value.values())
    if isinstance(value, list):
        return value
    return []


def _find_page_info(value: Any) -> Optional[Dict[str, Any]]:
    if isinstance(value, dict) and isinstance(value.get("pageInfo"), dict):
        return value["pageInfo"]
    for child in _children(value):
        found = _find_page_info(child)
        if found is not None:
            return found
    return None


def _find_total_count(value: Any) -> Optional[int]:
    if isinstance(value, dict):
        total = value.get("totalCount")
        if isinstance(total, (int, float)) and not isinstance(total, bool):
            return int(total)
    for child in _children(value):
        found = _find_total_count(child)
        if found is not None:
            return found
    return None


def _collect_edges(value: Any, found: List[list]) -> None:
    if isinstance(value, dict) and isinstance(value.get("edges"), list):
        found.append(value["edges"])
    for child in _children(value):
        _collect_edges(child, found)


def _count_list_items(value: Any) -> int:
    """Total length of every list held directly by an object."""
    count = 0
    for child in _children(value):
        if isinstance(child, list) and isinstance(value, dict):
            count += len(child)
        elif isinstance(child, (dict, list)):
            count += _count_list_items(child)
    return count
