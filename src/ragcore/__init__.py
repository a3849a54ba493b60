# src/ragcore/__init__.py
"""
RagCore - ingestion and storage primitives for retrieval-augmented generation.

Splits documents into hierarchical chunks (fixed windows or LLM-driven
semantic segmentation), parses streamed LLM output, and persists state in
key-value-plus-list stores (in-memory, embedded disk, Redis, MongoDB).
"""

from importlib.metadata import PackageNotFoundError, version

from .collection import CollectionIDs, get_collection_ids, validate_name
from .config import RagCoreConfig, get_config, load_config, set_config
from .exceptions import (
    CallbackAbortError,
    ChunkingError,
    ConfigError,
    DirectoryLockError,
    InvalidNameError,
    ParseError,
    ProviderError,
    RagCoreError,
    StorageError,
    StoreKeyError,
    StoreNotLoadedError,
    StoreOperationError,
    StoreTypeError,
    TransportError,
)
from .ingestion import (
    Chunk,
    ChunkingOptions,
    ChunkingStatus,
    ChunkingType,
    SemanticChunker,
    SemanticOptions,
    StructuredChunker,
)
from .storage import BaseStore, StoreOptions, StoreRegistry

try:
    __version__ = version("ragcore")
except PackageNotFoundError:
    __version__ = "0.0.0"


__all__ = [
    # Collections and config
    "CollectionIDs",
    "RagCoreConfig",
    "get_collection_ids",
    "get_config",
    "load_config",
    "set_config",
    "validate_name",
    # Ingestion
    "Chunk",
    "ChunkingOptions",
    "ChunkingStatus",
    "ChunkingType",
    "SemanticChunker",
    "SemanticOptions",
    "StructuredChunker",
    # Storage
    "BaseStore",
    "StoreOptions",
    "StoreRegistry",
    # Exceptions
    "CallbackAbortError",
    "ChunkingError",
    "ConfigError",
    "DirectoryLockError",
    "InvalidNameError",
    "ParseError",
    "ProviderError",
    "RagCoreError",
    "StorageError",
    "StoreKeyError",
    "StoreNotLoadedError",
    "StoreOperationError",
    "StoreTypeError",
    "TransportError",
    "__version__",
]
