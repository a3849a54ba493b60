# src/ragcore/storage/registry.py
"""
Store registry.

Stores are declared with a JSON DSL::

    {"type": "lru", "option": {"size": 1024}}
    {"type": "badger", "option": {"path": "data/kv"}}
    {"type": "remote-kv", "connector": "redis.default"}
    {"type": "mongo", "connector": "mongo.default", "option": {"prefix": "docs:"}}

Remote types need a connector loaded in the connector registry.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Set, Union

from pydantic import AliasChoices, BaseModel, Field, ValidationError

from ..connectors.base import ConnectorType
from ..connectors import registry as connector_registry
from ..connectors.registry import ConnectorRegistry
from ..exceptions import ConfigError, StoreNotLoadedError
from .base import BaseStore, StoreOptions
from .disk import DiskPool, DiskStore
from .lru import LRUStore
from .mongo_store import MongoStore
from .redis_store import RedisStore

logger = logging.getLogger(__name__)

LRU = "lru"
DISK = "disk"
REDIS = "redis"
MONGO = "mongo"

STORE_TYPE_ALIASES: Dict[str, str] = {
    "lru": LRU,
    "badger": DISK,
    "disk": DISK,
    "remote-kv": REDIS,
    "redis": REDIS,
    "mongo": MONGO,
    "mongodb": MONGO,
}

_REQUIRED_CONNECTOR: Dict[str, ConnectorType] = {
    REDIS: ConnectorType.REDIS,
    MONGO: ConnectorType.MONGO,
}


class StoreDSL(BaseModel):
    """Declaration of one store."""

    type: str = Field(description="lru, badger, remote-kv or mongo (or an alias)")
    connector: str = Field(default="", description="Connector id for remote types")
    option: Dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("option", "options"),
        description="StoreOptions fields",
    )

    def kind(self) -> str:
        kind = STORE_TYPE_ALIASES.get(self.type.strip().lower())
        if kind is None:
            raise ConfigError(f"Store type {self.type} does not support")
        return kind


class StoreRegistry:
    """
    Thread-safe map from store id to store.

    Args:
        connectors: Registry used to resolve connectors of remote stores.
        pool: Disk pool for embedded stores; defaults to the global pool.
    """

    def __init__(self, connectors: Optional[ConnectorRegistry] = None, pool: Optional[DiskPool] = None) -> None:
        self.connectors = connectors or connector_registry.get_registry()
        self.pool = pool
        self._stores: Dict[str, BaseStore] = {}
        self._lock = threading.RLock()
        self._closing: Set[asyncio.Task] = set()
        self._builders: Dict[str, Callable[[StoreDSL, StoreOptions, str], BaseStore]] = {
            LRU: self._lru,
            DISK: self._disk,
            REDIS: self._redis,
            MONGO: self._mongo,
        }

    # -- Builders -------------------------------------------------------------

    def _lru(self, dsl: StoreDSL, options: StoreOptions, store_id: str) -> BaseStore:
        return LRUStore(options)

    def _disk(self, dsl: StoreDSL, options: StoreOptions, store_id: str) -> BaseStore:
        if not options.path:
            raise ConfigError(f"Store {store_id}: option.path is required")
        return DiskStore(options, pool=self.pool)

    def _connector(self, dsl: StoreDSL, store_id: str, kind: str) -> Any:
        if not dsl.connector:
            raise ConfigError(f"Store {store_id}: a connector is required for type {dsl.type}")
        if not self.connectors.exists(dsl.connector):
            raise ConfigError(f"Store {store_id} Connector:{dsl.connector} was not loaded")
        connector = self.connectors.select(dsl.connector)
        if not connector.is_type(_REQUIRED_CONNECTOR[kind]):
            raise ConfigError(
                f"Store {store_id}: connector {dsl.connector} is not a {_REQUIRED_CONNECTOR[kind].value} connector"
            )
        return connector

    def _redis(self, dsl: StoreDSL, options: StoreOptions, store_id: str) -> BaseStore:
        return RedisStore(self._connector(dsl, store_id, REDIS), options)

    def _mongo(self, dsl: StoreDSL, options: StoreOptions, store_id: str) -> BaseStore:
        return MongoStore(self._connector(dsl, store_id, MONGO), options)

    def make(self, dsl: StoreDSL, store_id: str) -> BaseStore:
        """Instantiate the store a DSL declares, without registering it."""
        kind = dsl.kind()
        try:
            options = StoreOptions.model_validate(dsl.option)
        except ValidationError as e:
            raise ConfigError(f"Invalid options for store {store_id}: {e}") from e
        return self._builders[kind](dsl, options, store_id)

    # -- Registry -------------------------------------------------------------

    def register(self, store_id: str, store: BaseStore) -> BaseStore:
        with self._lock:
            previous = self._stores.get(store_id)
            self._stores[store_id] = store
        if previous is not None and previous is not store:
            self._close_replaced(store_id, previous)
        logger.debug(f"Store {store_id} registered ({type(store).__name__})")
        return store

    def load_source(self, source: Union[str, bytes, Dict[str, Any]], store_id: str) -> BaseStore:
        """
        Build and register a store from DSL source.

        Raises:
            ConfigError: Malformed DSL, unknown type, or missing connector.
        """
        try:
            data = source if isinstance(source, dict) else json.loads(source)
            dsl = StoreDSL.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as e:
            raise ConfigError(f"Invalid store DSL for {store_id}: {e}") from e

        store = self.register(store_id, self.make(dsl, store_id))
        logger.info(f"Store {store_id} loaded (type={dsl.type})")
        return store

    def _close_replaced(self, store_id: str, store: BaseStore) -> None:
        """
        Close a store that a new declaration replaced.

        Inside a running loop the close is scheduled as a task; without one
        it runs to completion before returning.
        """
        logger.info(f"Store {store_id} replaced, closing the previous {type(store).__name__}")
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(store.close())
            return
        task = loop.create_task(store.close())
        self._closing.add(task)
        task.add_done_callback(lambda t: self._closed(store_id, t))

    def _closed(self, store_id: str, task: asyncio.Task) -> None:
        self._closing.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Closing replaced store {store_id} failed: {task.exception()}")

    async def wait_closed(self) -> None:
        """Wait for replaced stores that are still closing."""
        if self._closing:
            await asyncio.gather(*list(self._closing), return_exceptions=True)

    def load(self, file: Union[str, Path], store_id: str) -> BaseStore:
        """Read a DSL file and load it."""
        try:
            source = Path(file).read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Cannot read store file {file}: {e}") from e
        return self.load_source(source, store_id)

    def select(self, store_id: str) -> BaseStore:
        """
        Raises:
            StoreNotLoadedError: If ``store_id`` was never loaded.
        """
        with self._lock:
            store = self._stores.get(store_id)
        if store is None:
            raise StoreNotLoadedError(store_id)
        return store

    def exists(self, store_id: str) -> bool:
        with self._lock:
            return store_id in self._stores

    async def remove(self, store_id: str) -> None:
        """Close and unregister a store."""
        with self._lock:
            store = self._stores.pop(store_id, None)
        if store is None:
            raise StoreNotLoadedError(store_id)
        await store.close()
        logger.info(f"Store {store_id} removed")


_default_registry = StoreRegistry()


def get_registry() -> StoreRegistry:
    return _default_registry


def load_source(source: Union[str, bytes, Dict[str, Any]], store_id: str) -> BaseStore:
    return _default_registry.load_source(source, store_id)


def load(file: Union[str, Path], store_id: str) -> BaseStore:
    return _default_registry.load(file, store_id)


def register(store_id: str, store: BaseStore) -> BaseStore:
    return _default_registry.register(store_id, store)


def select(store_id: str) -> BaseStore:
    return _default_registry.select(store_id)


async def remove(store_id: str) -> None:
    await _default_registry.remove(store_id)
