# src/ragcore/storage/redis_store.py
"""
Remote store on Redis.

Keys are prefixed with the connector name (``"<name>:"``). Every value and
list element is stored as canonical JSON, so ``LREM`` finds equal values
by string comparison. Lists map onto Redis lists, which Redis deletes
when they become empty.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Awaitable, Dict, List, Optional, Tuple

from redis.exceptions import RedisError, ResponseError

from ..connectors.redis import RedisConnector
from ..exceptions import StoreKeyError, StoreOperationError, StoreTypeError
from .base import BaseStore, StoreOptions, canonical

logger = logging.getLogger(__name__)

_ADD_TO_SET_SCRIPT = """
local items = redis.call('LRANGE', KEYS[1], 0, -1)
local seen = {}
for _, v in ipairs(items) do seen[v] = true end
local added = 0
for _, v in ipairs(ARGV) do
    if not seen[v] then
        redis.call('RPUSH', KEYS[1], v)
        seen[v] = true
        added = added + 1
    end
end
return added
"""

_GLOB_SPECIAL = re.compile(r"([?\[\]\\])")


def glob_pattern(prefix: str, pattern: str) -> str:
    """Redis ``MATCH`` pattern where only ``*`` is a wildcard."""
    if not pattern:
        pattern = "*"
    escaped = "*".join(_GLOB_SPECIAL.sub(r"\\\1", part) for part in pattern.split("*"))
    return _GLOB_SPECIAL.sub(r"\\\1", prefix) + escaped


def _decode(raw: Optional[str]) -> Any:
    return None if raw is None else json.loads(raw)


class RedisStore(BaseStore):
    """
    Store backed by a Redis connector.

    Args:
        connector: Connector owning the client; it is not closed by the store.
        options: Only ``prefix`` is read, and only when the connector has no name.
    """

    def __init__(self, connector: RedisConnector, options: Optional[StoreOptions] = None) -> None:
        self.connector = connector
        self.options = options or StoreOptions()
        self.prefix = connector.prefix if connector.name else self.options.prefix
        self._add_to_set = None

    @property
    def client(self) -> Any:
        return self.connector.client

    async def _run(self, operation: str, key: str, awaitable: Awaitable[Any]) -> Any:
        try:
            return await awaitable
        except ResponseError as e:
            message = str(e)
            if "WRONGTYPE" in message:
                raise StoreTypeError(key, "Operation against a key holding the wrong kind of value.") from e
            if "not an integer" in message:
                raise StoreTypeError(key, "Value is not an integer.") from e
            if "no such key" in message:
                raise StoreKeyError(key, "List not found.") from e
            if "index out of range" in message:
                raise StoreKeyError(key, "Index out of range.") from e
            raise StoreOperationError(operation, key, e) from e
        except RedisError as e:
            raise StoreOperationError(operation, key, e) from e

    async def _scan(self, pattern: str) -> List[str]:
        match = glob_pattern(self.prefix, pattern)

        async def collect() -> List[str]:
            return [k async for k in self.client.scan_iter(match=match, count=500)]

        return await self._run("scan", pattern, collect())

    # -- Scalar ---------------------------------------------------------------

    async def get(self, key: str) -> Tuple[Any, bool]:
        try:
            raw = await self._run("get", key, self.client.get(self._key(key)))
        except StoreTypeError:
            return await self.array_all(key), True
        if raw is None:
            return None, False
        return _decode(raw), True

    async def set(self, key: str, value: Any, ttl: float = 0) -> None:
        px = int(ttl * 1000) if ttl and ttl > 0 else None
        await self._run("set", key, self.client.set(self._key(key), canonical(value), px=px))

    async def set_multi(self, values: Dict[str, Any], ttl: float = 0) -> None:
        if not values:
            return
        px = int(ttl * 1000) if ttl and ttl > 0 else None
        pipe = self.client.pipeline(transaction=False)
        for key, value in values.items():
            pipe.set(self._key(key), canonical(value), px=px)
        await self._run("set_multi", ",".join(values), pipe.execute())

    async def delete(self, key: str) -> None:
        if "*" in key:
            full_keys = await self._scan(key)
            if full_keys:
                await self._run("delete", key, self.client.delete(*full_keys))
            return
        await self._run("delete", key, self.client.delete(self._key(key)))

    async def del_multi(self, keys: List[str]) -> None:
        if keys:
            await self._run("del_multi", ",".join(keys), self.client.delete(*[self._key(k) for k in keys]))

    async def has(self, key: str) -> bool:
        return bool(await self._run("has", key, self.client.exists(self._key(key))))

    async def len(self, pattern: str = "") -> int:
        return len(await self._scan(pattern))

    async def keys(self, pattern: str = "") -> List[str]:
        return sorted(self._strip(k) for k in await self._scan(pattern))

    async def clear(self) -> None:
        full_keys = await self._scan("")
        if full_keys:
            await self._run("clear", "", self.client.delete(*full_keys))
        logger.debug(f"Cleared {len(full_keys)} keys under {self.prefix!r}")

    async def get_del(self, key: str) -> Tuple[Any, bool]:
        try:
            raw = await self._run("get_del", key, self.client.getdel(self._key(key)))
        except StoreTypeError:
            items = await self.array_all(key)
            await self.delete(key)
            return items, True
        if raw is None:
            return None, False
        return _decode(raw), True

    async def incr(self, key: str, delta: int = 1) -> int:
        return int(await self._run("incr", key, self.client.incrby(self._key(key), delta)))

    # -- Lists ----------------------------------------------------------------

    async def push(self, key: str, *values: Any) -> None:
        if values:
            await self._run("push", key, self.client.rpush(self._key(key), *[canonical(v) for v in values]))

    async def pop(self, key: str, position: int = 1) -> Any:
        full_key = self._key(key)
        command = self.client.rpop(full_key) if position == 1 else self.client.lpop(full_key)
        raw = await self._run("pop", key, command)
        if raw is None:
            raise StoreKeyError(key, "List is empty.")
        return _decode(raw)

    async def pull(self, key: str, value: Any) -> None:
        await self._run("pull", key, self.client.lrem(self._key(key), 0, canonical(value)))

    async def add_to_set(self, key: str, *values: Any) -> None:
        if not values:
            return
        if self._add_to_set is None:
            self._add_to_set = self.client.register_script(_ADD_TO_SET_SCRIPT)
        args = [canonical(v) for v in values]
        await self._run("add_to_set", key, self._add_to_set(keys=[self._key(key)], args=args))

    async def array_len(self, key: str) -> int:
        return int(await self._run("array_len", key, self.client.llen(self._key(key))))

    async def array_get(self, key: str, index: int) -> Any:
        if index < 0:
            raise StoreKeyError(key, f"Index {index} out of range.")
        raw = await self._run("array_get", key, self.client.lindex(self._key(key), index))
        if raw is None:
            raise StoreKeyError(key, f"Index {index} out of range.")
        return _decode(raw)

    async def array_set(self, key: str, index: int, value: Any) -> None:
        if index < 0:
            raise StoreKeyError(key, f"Index {index} out of range.")
        await self._run("array_set", key, self.client.lset(self._key(key), index, canonical(value)))

    async def array_slice(self, key: str, skip: int, limit: int) -> List[Any]:
        if limit <= 0:
            return []
        start = max(skip, 0)
        raws = await self._run("array_slice", key, self.client.lrange(self._key(key), start, start + limit - 1))
        return [_decode(r) for r in raws]

    async def array_all(self, key: str) -> List[Any]:
        raws = await self._run("array_all", key, self.client.lrange(self._key(key), 0, -1))
        return [_decode(r) for r in raws]
