# src/ragcore/storage/mongo_store.py
"""
Document store on MongoDB.

Each store uses one collection named after its connector id. Every key is
a document ``{key, kind, value, expired_at}``; lists are arrays manipulated
with the array update operators. A TTL index removes expired documents in
the background and every read also filters them out, since the TTL
monitor only runs periodically.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, OperationFailure, PyMongoError

from ..connectors.mongo import MongoConnector
from ..exceptions import StoreKeyError, StoreOperationError, StoreTypeError
from .base import BaseStore, StoreOptions, compile_pattern, expires_at

logger = logging.getLogger(__name__)

SCALAR = "scalar"
LIST = "list"

# TypeMismatch
_TYPE_MISMATCH_CODES = {14}

# Array length computed by the server; 0 for scalars so the kind check still applies.
_SIZE: Dict[str, Any] = {"$cond": [{"$isArray": "$value"}, {"$size": "$value"}, 0]}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _expiry(ttl: float) -> Optional[datetime]:
    ts = expires_at(ttl)
    return datetime.fromtimestamp(ts, tz=timezone.utc) if ts is not None else None


class MongoStore(BaseStore):
    """
    Store backed by a Mongo connector.

    Args:
        connector: Connector owning the client; it is not closed by the store.
        options: ``prefix`` namespaces keys inside the collection.
        collection: Pre-built collection (tests pass a mock).
    """

    def __init__(
        self,
        connector: MongoConnector,
        options: Optional[StoreOptions] = None,
        collection: Optional[Any] = None,
    ) -> None:
        self.connector = connector
        self.options = options or StoreOptions()
        self.prefix = self.options.prefix
        self._collection = collection
        self._indexed = False

    @property
    def collection(self) -> Any:
        if self._collection is None:
            self._collection = self.connector.database()[self.connector.id]
        return self._collection

    async def _coll(self) -> Any:
        coll = self.collection
        if not self._indexed:
            try:
                await coll.create_index("key", unique=True)
                await coll.create_index("expired_at", expireAfterSeconds=0)
            except PyMongoError as e:
                logger.error(f"Failed to create indexes on {self.connector.id}: {e}")
                raise StoreOperationError("create_index", "", e) from e
            self._indexed = True
        return coll

    # -- Filters --------------------------------------------------------------

    def _live(self, key: str, **extra: Any) -> Dict[str, Any]:
        return {
            "key": self._key(key),
            "$or": [{"expired_at": None}, {"expired_at": {"$gt": _now()}}],
            **extra,
        }

    def _key_regex(self, pattern: str) -> Dict[str, str]:
        regex = compile_pattern(pattern)
        body = regex.pattern[1:-1] if regex is not None else ".*"
        return {"$regex": f"^{re.escape(self.prefix)}{body}$"}

    def _pattern_filter(self, pattern: str) -> Dict[str, Any]:
        return {
            "key": self._key_regex(pattern),
            "$or": [{"expired_at": None}, {"expired_at": {"$gt": _now()}}],
        }

    async def _purge_expired(self, coll: Any, key: str) -> None:
        """Drop an expired document so an upsert can recreate the key."""
        await coll.delete_one({"key": self._key(key), "expired_at": {"$lte": _now()}})

    def _wrap(self, operation: str, key: str, error: PyMongoError) -> Exception:
        if isinstance(error, DuplicateKeyError):
            return StoreTypeError(key, "Operation against a key holding the wrong kind of value.")
        if isinstance(error, OperationFailure) and error.code in _TYPE_MISMATCH_CODES:
            return StoreTypeError(key, f"Wrong value type: {error}")
        logger.error(f"Mongo {operation} '{key}' failed: {error}")
        return StoreOperationError(operation, key, error)

    # -- Scalar ---------------------------------------------------------------

    async def get(self, key: str) -> Tuple[Any, bool]:
        coll = await self._coll()
        try:
            doc = await coll.find_one(self._live(key))
        except PyMongoError as e:
            raise self._wrap("get", key, e) from e
        if doc is None:
            return None, False
        return doc.get("value"), True

    async def set(self, key: str, value: Any, ttl: float = 0) -> None:
        coll = await self._coll()
        full_key = self._key(key)
        try:
            await coll.replace_one(
                {"key": full_key},
                {"key": full_key, "kind": SCALAR, "value": value, "expired_at": _expiry(ttl)},
                upsert=True,
            )
        except PyMongoError as e:
            raise self._wrap("set", key, e) from e

    async def delete(self, key: str) -> None:
        coll = await self._coll()
        try:
            if "*" in key:
                await coll.delete_many({"key": self._key_regex(key)})
                return
            await coll.delete_one({"key": self._key(key)})
        except PyMongoError as e:
            raise self._wrap("delete", key, e) from e

    async def has(self, key: str) -> bool:
        coll = await self._coll()
        try:
            return await coll.count_documents(self._live(key), limit=1) > 0
        except PyMongoError as e:
            raise self._wrap("has", key, e) from e

    async def len(self, pattern: str = "") -> int:
        coll = await self._coll()
        try:
            return await coll.count_documents(self._pattern_filter(pattern))
        except PyMongoError as e:
            raise self._wrap("len", pattern, e) from e

    async def keys(self, pattern: str = "") -> List[str]:
        coll = await self._coll()
        try:
            cursor = coll.find(self._pattern_filter(pattern), {"key": 1, "_id": 0}).sort("key", 1)
            docs = await cursor.to_list(None)
        except PyMongoError as e:
            raise self._wrap("keys", pattern, e) from e
        return [self._strip(doc["key"]) for doc in docs]

    async def clear(self) -> None:
        coll = await self._coll()
        query = {"key": {"$regex": f"^{re.escape(self.prefix)}"}} if self.prefix else {}
        try:
            result = await coll.delete_many(query)
        except PyMongoError as e:
            raise self._wrap("clear", "", e) from e
        logger.debug(f"Cleared {result.deleted_count} documents from {self.connector.id}")

    async def get_del(self, key: str) -> Tuple[Any, bool]:
        coll = await self._coll()
        try:
            doc = await coll.find_one_and_delete(self._live(key))
        except PyMongoError as e:
            raise self._wrap("get_del", key, e) from e
        if doc is None:
            return None, False
        return doc.get("value"), True

    async def incr(self, key: str, delta: int = 1) -> int:
        coll = await self._coll()
        try:
            await self._purge_expired(coll, key)
            doc = await coll.find_one_and_update(
                {"key": self._key(key), "kind": SCALAR},
                {"$inc": {"value": delta}, "$setOnInsert": {"expired_at": None}},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            raise self._wrap("incr", key, e) from e
        return int(doc["value"])

    # -- Lists ----------------------------------------------------------------

    async def _list_doc(self, coll: Any, key: str, must_exist: bool, projection: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        try:
            doc = await coll.find_one(self._live(key), projection)
        except PyMongoError as e:
            raise self._wrap("array", key, e) from e
        if doc is None:
            if must_exist:
                raise StoreKeyError(key, "List not found.")
            return None
        if doc.get("kind") != LIST:
            raise StoreTypeError(key, "Value is not a list.")
        return doc

    async def _upsert_list(self, operation: str, key: str, update: Dict[str, Any]) -> None:
        coll = await self._coll()
        update = {**update, "$setOnInsert": {"expired_at": None}}
        try:
            await self._purge_expired(coll, key)
            await coll.update_one({"key": self._key(key), "kind": LIST}, update, upsert=True)
        except PyMongoError as e:
            raise self._wrap(operation, key, e) from e

    async def _drop_if_empty(self, coll: Any, key: str) -> None:
        await coll.delete_one({"key": self._key(key), "kind": LIST, "value": {"$size": 0}})

    async def push(self, key: str, *values: Any) -> None:
        if values:
            await self._upsert_list("push", key, {"$push": {"value": {"$each": list(values)}}})

    async def add_to_set(self, key: str, *values: Any) -> None:
        if values:
            await self._upsert_list("add_to_set", key, {"$addToSet": {"value": {"$each": list(values)}}})

    async def pop(self, key: str, position: int = 1) -> Any:
        coll = await self._coll()
        direction = 1 if position == 1 else -1
        try:
            doc = await coll.find_one_and_update(
                self._live(key, kind=LIST, **{"value.0": {"$exists": True}}),
                {"$pop": {"value": direction}},
                return_document=ReturnDocument.BEFORE,
            )
            if doc is not None:
                await self._drop_if_empty(coll, key)
        except PyMongoError as e:
            raise self._wrap("pop", key, e) from e
        if doc is None:
            await self._list_doc(coll, key, must_exist=True)
            raise StoreKeyError(key, "List is empty.")
        items = doc["value"]
        return items[-1] if direction == 1 else items[0]

    async def _pull(self, operation: str, key: str, update: Dict[str, Any]) -> None:
        coll = await self._coll()
        if await self._list_doc(coll, key, must_exist=False, projection={"kind": 1}) is None:
            return
        try:
            await coll.update_one(self._live(key, kind=LIST), update)
            await self._drop_if_empty(coll, key)
        except PyMongoError as e:
            raise self._wrap(operation, key, e) from e

    async def pull(self, key: str, value: Any) -> None:
        await self._pull("pull", key, {"$pull": {"value": value}})

    async def pull_all(self, key: str, values: List[Any]) -> None:
        if values:
            await self._pull("pull_all", key, {"$pullAll": {"value": list(values)}})

    async def array_len(self, key: str) -> int:
        doc = await self._list_doc(await self._coll(), key, must_exist=False, projection={"kind": 1, "size": _SIZE})
        return int(doc["size"]) if doc else 0

    async def array_get(self, key: str, index: int) -> Any:
        projection: Dict[str, Any] = {"kind": 1, "size": _SIZE}
        if index >= 0:
            projection["item"] = {"$cond": [{"$isArray": "$value"}, {"$arrayElemAt": ["$value", index]}, None]}
        doc = await self._list_doc(await self._coll(), key, must_exist=True, projection=projection)
        if index < 0 or index >= doc["size"]:
            raise StoreKeyError(key, f"Index {index} out of range.")
        return doc.get("item")

    async def array_set(self, key: str, index: int, value: Any) -> None:
        coll = await self._coll()
        doc = await self._list_doc(coll, key, must_exist=True, projection={"kind": 1, "size": _SIZE})
        if index < 0 or index >= doc["size"]:
            raise StoreKeyError(key, f"Index {index} out of range.")
        try:
            await coll.update_one({"key": self._key(key), "kind": LIST}, {"$set": {f"value.{index}": value}})
        except PyMongoError as e:
            raise self._wrap("array_set", key, e) from e

    async def array_slice(self, key: str, skip: int, limit: int) -> List[Any]:
        coll = await self._coll()
        if limit <= 0:
            await self._list_doc(coll, key, must_exist=False, projection={"kind": 1})
            return []
        projection = {"kind": 1, "value": {"$slice": [max(skip, 0), limit]}}
        doc = await self._list_doc(coll, key, must_exist=False, projection=projection)
        return list(doc["value"]) if doc else []

    async def array_all(self, key: str) -> List[Any]:
        doc = await self._list_doc(await self._coll(), key, must_exist=False, projection={"kind": 1, "value": 1})
        return list(doc["value"]) if doc else []
