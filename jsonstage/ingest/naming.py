"""
Naming rules shared by schema inference, DDL generation and insertion.

Every table and column name that reaches SQLite is produced here, so the
inference pass and the insertion pass always agree on the identifiers
they use for the same JSON key.
"""

import re
from types import MappingProxyType
from typing import Mapping


# Source keys that carry domain meaning under an opaque name
SEMANTIC_ALIASES: Mapping[str, str] = MappingProxyType({
    # RCSB PDB
    "pdbx_seq_one_letter_code_can": "amino_acid_sequence",
    "pdbx_seq_one_letter_code": "sequence",
    "ncbi_scientific_name": "organism_name",
    "ncbi_taxonomy_id": "taxonomy_id",
    "rcsb_id": "id",
    "rcsb_entity_id": "entity_id",
    "rcsb_entry_info": "entry_info",
    "rcsb_polymer_entity": "polymer_entity",
    "rcsb_chem_comp_synonyms": "chemical_synonyms",
    "rcsb_chem_comp_descriptor": "chemical_descriptor",
    "formula_weight": "molecular_weight",
    "exptl_method": "experimental_method",
    "resolution_combined": "resolution",
    "deposit_date": "deposition_date",
    "revision_date": "last_modified_date",
    "struct_title": "title",
    "struct_keywords": "keywords",
    "entity_src_gen": "source_organism",
    "entity_src_nat": "natural_source",
    # GraphQL and common API conventions
    "__typename": "type",
    "displayname": "display_name",
    "createdat": "created_at",
    "updatedat": "updated_at",
    "startdate": "start_date",
    "enddate": "end_date",
    "firstname": "first_name",
    "lastname": "last_name",
    "phonenumber": "phone_number",
    "emailaddress": "email",
    "streetaddress": "street_address",
    "postalcode": "postal_code",
    "countrycode": "country_code",
})

# Keys whose presence alone makes an object an entity
ID_KEYS = frozenset({"id", "_id", "rcsb_id"})

# Keys that signal a descriptive record
DESCRIPTIVE_KEYS = frozenset(
    {"name", "title", "description", "type", "formula", "sequence", "value"}
)

# GraphQL connection / envelope segments that never name an entity
WRAPPER_SEGMENTS = frozenset({"nodes", "edges", "node", "data", "items", "results"})

# Words that end in "s" without being plural
SINGULAR_EXCEPTIONS = frozenset(
    {"series", "species", "genus", "analysis", "basis", "axis", "status", "news"}
)

SQL_RESERVED_WORDS = frozenset({
    "select", "from", "where", "insert", "update", "delete", "create", "drop",
    "alter", "table", "index", "view", "column", "primary", "key", "foreign",
    "constraint", "references", "order", "group", "by", "having", "limit",
    "offset", "join", "inner", "outer", "left", "right", "union", "all",
    "distinct", "as", "on", "and", "or", "not", "null", "default", "values",
    "into", "set", "case", "when", "then", "else", "end", "unique", "check",
    "transaction", "commit", "rollback", "pragma", "replace", "trigger",
})

_INVALID_CHARS = re.compile(r"[^A-Za-z0-9_]")
_REPEATED_UNDERSCORES = re.compile(r"_+")
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")

_KIND_AFFIXES = {
    "table": ("table_", "_tbl"),
    "column": ("col_", "_col"),
}


def sanitize_identifier(name: str, kind: str = "column") -> str:
    """
    Make a name safe to use unquoted as a SQLite identifier.

    Args:
        name: Raw name
        kind: "table" or "column", selecting the prefix/suffix used for
            digit-leading, empty and reserved names

    Returns:
        Lower-case identifier matching [a-z0-9_]+
    """
    prefix, suffix = _KIND_AFFIXES[kind]

    cleaned = _INVALID_CHARS.sub("_", str(name))
    cleaned = _REPEATED_UNDERSCORES.sub("_", cleaned).strip("_").lower()

    if not cleaned:
        return f"{prefix}unnamed"
    if cleaned[0].isdigit():
        cleaned = f"{prefix}{cleaned}"
    if kind == "table" and cleaned.startswith("sqlite_"):
        cleaned = f"{prefix}{cleaned}"
    if cleaned in SQL_RESERVED_WORDS:
        cleaned = f"{cleaned}{suffix}"
    return cleaned


def to_snake_case(name: str) -> str:
    """Split camelCase / PascalCase boundaries with underscores."""
    return _CAMEL_BOUNDARY.sub("_", name)


def semantic_name(key: str) -> str:
    """Map a source key to its semantic alias, or return it unchanged."""
    return SEMANTIC_ALIASES.get(key.lower(), key)


def column_name(key: str) -> str:
    """Column name for a JSON key: semantic alias, snake case, sanitized."""
    return sanitize_identifier(to_snake_case(semantic_name(key)), "column")


def singularize(word: str) -> str:
    """
    Reduce a plural English word to its singular form.

    Examples:
        entries -> entry, citations -> citation, series -> series
    """
    if word in SINGULAR_EXCEPTIONS or word.endswith("ss"):
        return word
    # Only the last underscore-delimited word is inflected
    if word.rpartition("_")[2] in SINGULAR_EXCEPTIONS:
        return word
    if word.endswith("ies") and len(word) > 4:
        return word[:-3] + "y"
    if word.endswith("ves") and len(word) > 4:
        return word[:-3] + "f"
    if word.endswith("ses") and len(word) > 4:
        return word[:-2]
    if word.endswith("s") and len(word) > 2:
        return word[:-1]
    return word


def table_name(raw: str) -> str:
    """Table name for an entity type label: snake case, singular, sanitized."""
    snake = sanitize_identifier(to_snake_case(str(raw)), "table")
    return sanitize_identifier(singularize(snake), "table")


def junction_table_name(table_a: str, table_b: str) -> str:
    """Name of the junction table joining two entity tables (order-free)."""
    first, second = sorted((table_a, table_b))
    return f"{first}_{second}"


def foreign_key_column(table: str) -> str:
    """Column on a parent table referencing a row of ``table``."""
    return f"{table}_id"
