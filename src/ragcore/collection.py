# src/ragcore/collection.py
"""
Collection naming.

A user-facing collection name maps to three partition names used by the
downstream databases: ``<name>_vector``, ``<name>_graph`` and ``<name>_store``.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass

from .exceptions import InvalidNameError

_VALID_NAME = re.compile(r"^[a-zA-Z0-9_]+$")

VECTOR_SUFFIX = "_vector"
GRAPH_SUFFIX = "_graph"
STORE_SUFFIX = "_store"


@dataclass(frozen=True)
class CollectionIDs:
    """The derived partition names of one collection."""

    vector: str
    graph: str
    store: str


def validate_name(name: str) -> None:
    """Raise InvalidNameError unless ``name`` is non-empty and only uses [A-Za-z0-9_]."""
    name = (name or "").strip()
    if not name:
        raise InvalidNameError(name, "Collection name cannot be empty.")
    if not _VALID_NAME.match(name):
        raise InvalidNameError(name)


def get_collection_ids(name: str) -> CollectionIDs:
    """Derive the lowercased vector, graph and store names for a collection."""
    validate_name(name)
    clean_name = name.strip().lower()
    return CollectionIDs(
        vector=f"{clean_name}{VECTOR_SUFFIX}",
        graph=f"{clean_name}{GRAPH_SUFFIX}",
        store=f"{clean_name}{STORE_SUFFIX}",
    )


def _strip_suffix(value: str, suffix: str) -> str:
    value = (value or "").strip()
    if not value.endswith(suffix):
        return ""
    return value[: -len(suffix)]


def extract_from_vector_name(vector_name: str) -> str:
    """Return the collection name behind ``<name>_vector``, or "" without the suffix."""
    return _strip_suffix(vector_name, VECTOR_SUFFIX)


def extract_from_graph_name(graph_name: str) -> str:
    """Return the collection name behind ``<name>_graph``, or "" without the suffix."""
    return _strip_suffix(graph_name, GRAPH_SUFFIX)


def extract_from_store_name(store_name: str) -> str:
    """Return the collection name behind ``<name>_store``, or "" without the suffix."""
    return _strip_suffix(store_name, STORE_SUFFIX)


def gen_doc_id() -> str:
    """Generate a dash-free document id."""
    return uuid.uuid4().hex
