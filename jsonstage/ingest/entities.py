"""
Entity discovery shared by schema inference and data insertion.

Both passes walk the same document with the same rules, so an object that
inference assigned to table ``polymer_entity`` is inserted into
``polymer_entity`` and its flattened fields land in the same columns.

Classification rules, in order:
    1. an object with an ``id``, ``_id`` or ``rcsb_id`` key is an entity
    2. an object with 3+ keys, one of them descriptive (name, title, ...)
    3. an object with 2+ keys holding at least one scalar or null
    4. anything else is flattened into its parent
"""

import hashlib
import json
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Set

from jsonstage.ingest.naming import (
    DESCRIPTIVE_KEYS,
    ID_KEYS,
    WRAPPER_SEGMENTS,
    column_name,
    sanitize_identifier,
    semantic_name,
    table_name,
    to_snake_case,
)
from jsonstage.ingest.type_classifier import SqlType, classify_column

# Keys that may sit next to "nodes" in a GraphQL connection object
CONNECTION_KEYS = frozenset({"nodes", "pageInfo", "totalCount", "__typename"})


def is_scalar(value: Any) -> bool:
    """Whether a JSON value is a scalar (null included)."""
    return not isinstance(value, (dict, list))


def is_entity(value: Any) -> bool:
    """
    Decide whether a JSON value is an entity (gets its own table).

    Args:
        value: Any parsed JSON value

    Returns:
        True for objects matching one of the entity rules
    """
    if not isinstance(value, dict):
        return False
    keys = value.keys()
    if any(key in ID_KEYS for key in keys):
        return True
    if len(value) >= 3 and any(str(key).lower() in DESCRIPTIVE_KEYS for key in keys):
        return True
    if len(value) >= 2 and any(is_scalar(v) for v in value.values()):
        return True
    return False


def connection_nodes(value: Any) -> Optional[List[Any]]:
    """
    Unwrap a GraphQL connection object to its node list.

    ``{"edges": [{"node": {...}}, ...]}`` yields the nodes,
    ``{"nodes": [...], "totalCount": n}`` yields the list itself.
    Anything else returns None.
    """
    if not isinstance(value, dict):
        return None
    edges = value.get("edges")
    if isinstance(edges, list):
        return [
            edge["node"] for edge in edges
            if isinstance(edge, dict) and "node" in edge
        ]
    nodes = value.get("nodes")
    if isinstance(nodes, list) and set(value) <= CONNECTION_KEYS:
        return nodes
    return None


def entity_items(value: Any) -> Optional[List[Dict[str, Any]]]:
    """
    Entities held by a field, if the field is a list or connection of them.

    The list qualifies when its first element is an entity; non-entity
    elements after it are ignored.
    """
    nodes = connection_nodes(value)
    items = nodes if nodes is not None else value
    if isinstance(items, list) and items and is_entity(items[0]):
        return [item for item in items if is_entity(item)]
    return None


def relationship_kind(value: Any) -> Optional[str]:
    """Classify an entity field value as an "object" or "array" relationship."""
    if entity_items(value) is not None:
        return "array"
    if connection_nodes(value) is None and is_entity(value):
        return "object"
    return None


def _structural_type_name(obj: Dict[str, Any]) -> str:
    """Name an entity found with no usable path from its shape."""
    if any(key in ID_KEYS for key in obj):
        if "chem_comp" in obj or "formula" in obj:
            return "chemical_compound"
        if "struct" in obj or "title" in obj:
            return "entry"
        if "sequence" in obj:
            return "polymer_entity"
        if "name" in obj:
            return "entity"
    # Stable for a given key set so repeated walks agree
    digest = hashlib.sha256(
        json.dumps(sorted(str(key) for key in obj)).encode("utf-8")
    ).hexdigest()[:9]
    return f"entity_{digest}"


def infer_entity_type(obj: Dict[str, Any], path: List[str]) -> str:
    """
    Infer the table name for an entity.

    Priority: ``__typename``, a non-wrapper ``type`` value, the nearest
    non-wrapper path segment, then the object's shape.

    Args:
        obj: Entity object
        path: JSON keys leading to the object (or its list)

    Returns:
        Sanitized, singular table name
    """
    typename = obj.get("__typename")
    if isinstance(typename, str) and typename.strip():
        return table_name(typename)

    type_value = obj.get("type")
    if (
        isinstance(type_value, str)
        and type_value.strip()
        and type_value.lower() not in WRAPPER_SEGMENTS
    ):
        return table_name(type_value)

    for segment in reversed(path):
        if str(segment).lower() not in WRAPPER_SEGMENTS:
            return table_name(segment)

    return _structural_type_name(obj)


@dataclass
class EntityVisit:
    """One entity occurrence found while walking a document."""
    obj: Dict[str, Any]
    type_name: str
    parent: Optional["EntityVisit"] = None
    parent_key: Optional[str] = None
    via: Optional[str] = None  # "object" or "array" when parent is set


class EntityWalker:
    """
    Depth-first walk yielding every entity of a document exactly once.

    Top-level containers are searched recursively. Below an entity only
    its entity-valued fields are followed; everything else belongs to the
    entity's own row.
    """

    def __init__(self):
        self._seen: Set[int] = set()

    def walk(self, document: Any) -> Iterator[EntityVisit]:
        self._seen = set()
        yield from self._walk_node(document, [])

    def _walk_node(self, node: Any, path: List[str]) -> Iterator[EntityVisit]:
        nodes = connection_nodes(node)
        if nodes is not None:
            node = nodes

        if isinstance(node, list):
            items = entity_items(node)
            if items is not None:
                type_name = infer_entity_type(items[0], path)
                for item in items:
                    yield from self._visit(item, type_name, None, None, None)
            else:
                for item in node:
                    if isinstance(item, (dict, list)):
                        yield from self._walk_node(item, path)
        elif isinstance(node, dict):
            if id(node) in self._seen:
                return
            if is_entity(node):
                yield from self._visit(
                    node, infer_entity_type(node, path), None, None, None)
                return
            self._seen.add(id(node))
            for key, value in node.items():
                if isinstance(value, (dict, list)):
                    yield from self._walk_node(value, path + [str(key)])

    def _visit(
        self,
        obj: Dict[str, Any],
        type_name: str,
        parent: Optional[EntityVisit],
        parent_key: Optional[str],
        via: Optional[str],
    ) -> Iterator[EntityVisit]:
        if id(obj) in self._seen:
            return
        self._seen.add(id(obj))

        visit = EntityVisit(obj, type_name, parent, parent_key, via)
        yield visit

        for key, value in obj.items():
            items = entity_items(value)
            if items is not None:
                child_type = infer_entity_type(items[0], [str(key)])
                for item in items:
                    yield from self._visit(item, child_type, visit, key, "array")
            elif relationship_kind(value) == "object":
                child_type = infer_entity_type(value, [str(key)])
                yield from self._visit(value, child_type, visit, key, "object")


def walk_entities(document: Any) -> Iterator[EntityVisit]:
    """Convenience wrapper around :class:`EntityWalker`."""
    return EntityWalker().walk(document)


def to_json_text(value: Any) -> str:
    """Serialize a nested value for a JSON text column."""
    return json.dumps(value, default=str, ensure_ascii=False)


@dataclass
class FlatField:
    """A single column value extracted from an object."""
    column: str
    value: Any
    sql_type: SqlType


class RecordFlattener:
    """
    Turns one object into a flat row.

    Scalars keep their (aliased, sanitized) key. Non-entity nested objects
    are hoisted as ``outer_inner`` columns when simple, otherwise stored
    whole as ``outer_json``. Lists that are not lists of entities are
    stored as ``key_json``. Entity-valued fields are skipped; they become
    relationships.
    """
    def __init__(self, max_simple_fields: int = 10, max_nested_array: int = 5):
        """
        Args:
            max_simple_fields: Largest nested object still hoisted column by column
            max_nested_array: Longest scalar list allowed inside a hoisted object
        """
        self.max_simple_fields = max_simple_fields
        self.max_nested_array = max_nested_array
        self._fields: Dict[str, FlatField] = {}

    def flatten(self, obj: Dict[str, Any]) -> Dict[str, FlatField]:
        """
        Flatten one object.

        Args:
            obj: Entity or plain object

        Returns:
            Ordered mapping of column name to FlatField
        """
        self._fields = {}
        for key, value in obj.items():
            if relationship_kind(value) is not None:
                continue
            name = column_name(str(key))

            nodes = connection_nodes(value)
            if nodes is not None:
                value = nodes

            if isinstance(value, list):
                self._add(f"{name}_json", to_json_text(value), SqlType.JSON)
            elif isinstance(value, dict):
                self._flatten_nested(name, value)
            else:
                self._add(name, value, classify_column(name, value))
        return self._fields

    def _flatten_nested(self, prefix: str, value: Dict[str, Any]) -> None:
        json_column = sanitize_identifier(f"{prefix}_json")
        if self._has_complex_structure(value):
            self._add(json_column, to_json_text(value), SqlType.JSON)
            return

        before = len(self._fields)
        self._hoist_scalars(prefix, value)
        if len(self._fields) == before:
            self._add(json_column, to_json_text(value), SqlType.JSON)

    def _hoist_scalars(self, prefix: str, value: Dict[str, Any]) -> None:
        for key, nested in value.items():
            name = sanitize_identifier(
                f"{prefix}_{to_snake_case(semantic_name(str(key)))}")
            if isinstance(nested, dict):
                self._hoist_scalars(name, nested)
            elif isinstance(nested, list):
                self._add(name, to_json_text(nested), SqlType.JSON)
            else:
                self._add(name, nested, classify_column(name, nested))

    def _is_simple(self, value: Dict[str, Any]) -> bool:
        if len(value) > self.max_simple_fields:
            return False
        for nested in value.values():
            if isinstance(nested, dict):
                return False
            if isinstance(nested, list) and (
                len(nested) > self.max_nested_array
                or not all(is_scalar(item) for item in nested)
            ):
                return False
        return True

    def _has_complex_structure(self, value: Dict[str, Any]) -> bool:
        for nested in value.values():
            if isinstance(nested, list) and any(isinstance(i, dict) for i in nested):
                return True
            if isinstance(nested, dict) and not self._is_simple(nested):
                return True
        return False

    def _add(self, column: str, value: Any, sql_type: SqlType) -> None:
        existing = self._fields.get(column)
        # First non-null value wins when two keys alias to one column
        if existing is None or (existing.value is None and value is not None):
            self._fields[column] = FlatField(column, value, sql_type)
