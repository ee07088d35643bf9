"""
Unit tests for identifier naming rules.
"""

import pytest

from jsonstage.ingest.naming import (
    column_name,
    junction_table_name,
    sanitize_identifier,
    semantic_name,
    singularize,
    table_name,
    to_snake_case,
)


class TestSanitizeIdentifier:
    """Tests for sanitize_identifier."""

    def test_replaces_invalid_characters(self):
        assert sanitize_identifier("user-name.first") == "user_name_first"

    def test_collapses_and_trims_underscores(self):
        assert sanitize_identifier("__a___b__") == "a_b"

    def test_lowercases(self):
        assert sanitize_identifier("ResolutionCombined") == "resolutioncombined"

    def test_digit_leading_column_gets_prefix(self):
        assert sanitize_identifier("3d_model") == "col_3d_model"

    def test_digit_leading_table_gets_prefix(self):
        assert sanitize_identifier("2024_results", "table") == "table_2024_results"

    def test_empty_name(self):
        assert sanitize_identifier("", "table") == "table_unnamed"
        assert sanitize_identifier("!!!") == "col_unnamed"

    def test_reserved_word_suffix(self):
        assert sanitize_identifier("order") == "order_col"
        assert sanitize_identifier("group", "table") == "group_tbl"

    def test_sqlite_internal_prefix(self):
        assert sanitize_identifier("sqlite_master", "table") == "table_sqlite_master"

    @pytest.mark.parametrize("name", ["entry", "polymer_entity", "order_col", "col_3d"])
    def test_idempotent(self, name):
        assert sanitize_identifier(sanitize_identifier(name)) == sanitize_identifier(name)


class TestSingularize:
    """Tests for singularize."""

    @pytest.mark.parametrize("plural,singular", [
        ("entries", "entry"),
        ("citations", "citation"),
        ("polymer_entities", "polymer_entity"),
        ("assemblies", "assembly"),
        ("leaves", "leaf"),
        ("classes", "class"),
    ])
    def test_plural_forms(self, plural, singular):
        assert singularize(plural) == singular

    @pytest.mark.parametrize("word", ["series", "species", "analysis", "status", "class", "entry"])
    def test_words_left_unchanged(self, word):
        assert singularize(word) == word

    def test_compound_word_with_exception(self):
        assert singularize("time_series") == "time_series"

    def test_short_words_not_stripped(self):
        assert singularize("is") == "is"


class TestNames:
    """Tests for table, column and junction names."""

    def test_table_name_from_path_segment(self):
        assert table_name("entries") == "entry"

    def test_table_name_from_typename(self):
        assert table_name("CoreEntry") == "core_entry"
        assert table_name("PolymerEntities") == "polymer_entity"

    def test_snake_case(self):
        assert to_snake_case("displayName") == "display_Name"
        assert to_snake_case("PDBEntry") == "PDB_Entry"

    def test_semantic_aliases(self):
        assert semantic_name("rcsb_id") == "id"
        assert semantic_name("__typename") == "type"
        assert semantic_name("formula_weight") == "molecular_weight"
        assert semantic_name("unmapped") == "unmapped"

    def test_column_name(self):
        assert column_name("rcsb_id") == "id"
        assert column_name("_id") == "id"
        assert column_name("createdAt") == "created_at"
        assert column_name("ncbi_scientific_name") == "organism_name"
        assert column_name("releaseYear") == "release_year"

    def test_junction_name_is_symmetric(self):
        assert junction_table_name("entry", "citation") == "citation_entry"
        assert junction_table_name("citation", "entry") == "citation_entry"
