# src/ragcore/storage/__init__.py
"""
Key-value-plus-list stores: in-memory ARC, embedded disk, Redis and MongoDB
backends behind one contract, and the registry that loads them from a DSL.
"""

from .base import BaseStore, StoreOptions
from .disk import DiskPool, DiskStore, get_pool, resolve_path
from .lru import ARCCache, LRUStore
from .mongo_store import MongoStore
from .redis_store import RedisStore
from .registry import (
    STORE_TYPE_ALIASES,
    StoreDSL,
    StoreRegistry,
    get_registry,
    load,
    load_source,
    register,
    remove,
    select,
)

__all__ = [
    "ARCCache",
    "BaseStore",
    "DiskPool",
    "DiskStore",
    "LRUStore",
    "MongoStore",
    "RedisStore",
    "STORE_TYPE_ALIASES",
    "StoreDSL",
    "StoreOptions",
    "StoreRegistry",
    "get_pool",
    "get_registry",
    "load",
    "load_source",
    "register",
    "remove",
    "resolve_path",
    "select",
]
