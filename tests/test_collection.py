# tests/test_collection.py
"""
Tests for collection name handling.
"""

import pytest

from ragcore.collection import (
    CollectionIDs,
    extract_from_graph_name,
    extract_from_store_name,
    extract_from_vector_name,
    gen_doc_id,
    get_collection_ids,
    validate_name,
)
from ragcore.exceptions import InvalidNameError


def test_collection_ids():
    """Names are lowercased and suffixed per partition."""
    assert get_collection_ids("My_Docs") == CollectionIDs(
        vector="my_docs_vector", graph="my_docs_graph", store="my_docs_store"
    )
    assert extract_from_vector_name("my_docs_vector") == "my_docs"


def test_extract_round_trip():
    """Every partition name leads back to the collection."""
    ids = get_collection_ids("Reports2024")
    assert extract_from_vector_name(ids.vector) == "reports2024"
    assert extract_from_graph_name(ids.graph) == "reports2024"
    assert extract_from_store_name(ids.store) == "reports2024"


def test_extract_without_suffix():
    """A name without the expected suffix yields an empty string."""
    assert extract_from_graph_name("my_docs_vector") == ""
    assert extract_from_store_name("") == ""


@pytest.mark.parametrize("name", ["", "   ", "my-docs", "docs.v2", "naïve", "a b"])
def test_invalid_names(name):
    """Only letters, digits and underscores are allowed."""
    with pytest.raises(InvalidNameError):
        validate_name(name)
    with pytest.raises(InvalidNameError):
        get_collection_ids(name)


def test_surrounding_whitespace_is_ignored():
    """Leading and trailing spaces are trimmed before validation."""
    assert get_collection_ids("  docs ").store == "docs_store"


def test_doc_ids():
    """Document ids are unique 32-character hex strings."""
    first, second = gen_doc_id(), gen_doc_id()
    assert first != second
    assert len(first) == 32 and "-" not in first
