# Test configuration

import pytest
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))


@pytest.fixture
def test_settings(tmp_path):
    """Override settings for testing"""
    from jsonstage.config.settings import Settings
    return Settings(
        dataset_backend="memory",
        storage_path=str(tmp_path / "datasets"),
        metrics_enabled=True,
    )


@pytest.fixture
def store():
    """Fresh in-memory dataset store."""
    from jsonstage.catalog.database import DatasetStore
    store = DatasetStore()
    yield store
    store.dispose()


@pytest.fixture
def manager(test_settings):
    """Dataset manager on the in-memory backend."""
    from jsonstage.storage.manager import DatasetManager
    manager = DatasetManager(test_settings)
    yield manager
    manager.close()


@pytest.fixture
def entry_document():
    """Single PDB entry with a flattened nested object."""
    return {"entry": {"rcsb_id": "4HHB", "struct": {"title": "HEMOGLOBIN"}}}


@pytest.fixture
def entries_document():
    """List of three PDB entries."""
    return {
        "entries": [
            {"rcsb_id": "4HHB", "struct": {"title": "HEMOGLOBIN"}},
            {"rcsb_id": "1TUP", "struct": {"title": "TUMOR SUPPRESSOR P53"}},
            {"rcsb_id": "2LYZ", "struct": {"title": "LYSOZYME"}},
        ]
    }


@pytest.fixture
def entry_with_entities_document():
    """Entry holding an array of polymer entities."""
    return {
        "entry": {
            "rcsb_id": "4HHB",
            "struct": {"title": "HEMOGLOBIN"},
            "polymer_entities": [
                {
                    "rcsb_id": "4HHB_1",
                    "entity_poly": {"pdbx_seq_one_letter_code_can": "VLSPADKTNV"},
                    "rcsb_polymer_entity": {"formula_weight": 15.13},
                },
                {
                    "rcsb_id": "4HHB_2",
                    "entity_poly": {"pdbx_seq_one_letter_code_can": "VHLTPEEKSA"},
                    "rcsb_polymer_entity": {"formula_weight": 15.87},
                },
            ],
        }
    }


@pytest.fixture
def graphql_connection_document():
    """GraphQL connection response with pagination metadata."""
    return {
        "data": {
            "projects": {
                "totalCount": 5,
                "pageInfo": {"hasNextPage": True, "endCursor": "Y3Vyc29yOjI="},
                "edges": [
                    {"node": {"id": "p1", "name": "Alpha", "createdAt": "2024-01-02T10:00:00Z"}},
                    {"node": {"id": "p2", "name": "Beta", "createdAt": "2024-02-03T11:30:00Z"}},
                ],
            }
        }
    }
