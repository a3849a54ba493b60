# src/ragcore/storage/disk.py
"""
Embedded persistent store on SQLite (via aiosqlite).

One database file lives in each store directory. Connections are shared
through a ``DiskPool`` keyed by absolute directory, so several stores
opened on the same path use one connection; the connection is closed when
the last store releases it.

Values are JSON text. A ``kind`` column tells scalars from lists, so a
list stored with ``set`` stays a scalar. Read-modify-write operations
(list mutations and ``incr``) hold a per-directory lock.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sqlite3
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import aiosqlite

from ..config import get_config
from ..exceptions import DirectoryLockError, StoreKeyError, StoreOperationError, StoreTypeError
from .base import (
    BaseStore,
    StoreOptions,
    canonical,
    compile_pattern,
    expires_at,
    is_expired,
    slice_bounds,
)

logger = logging.getLogger(__name__)

DB_FILENAME = "store.db"
SCALAR = "scalar"
LIST = "list"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS kv (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    kind TEXT NOT NULL DEFAULT 'scalar',
    expired_at REAL
)
"""


def resolve_path(path: str, app_root: Optional[str] = None) -> Path:
    """
    Absolute store directory.

    Paths starting with ``./`` or ``../`` are taken from the working
    directory; other relative paths from the app root.
    """
    if not path:
        raise DirectoryLockError(path, "Disk store path is empty.")
    candidate = Path(os.path.expanduser(path))
    if not candidate.is_absolute() and not path.startswith(("./", "../")):
        candidate = Path(app_root or get_config().app_root) / candidate
    return candidate.resolve()


# =============================================================================
# POOL
# =============================================================================


@dataclass
class _PoolEntry:
    conn: aiosqlite.Connection
    refs: int = 1
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class DiskPool:
    """Reference-counted connections keyed by absolute store directory."""

    def __init__(self) -> None:
        self._entries: Dict[str, _PoolEntry] = {}
        self._lock = threading.Lock()

    def refs(self, path: Path | str) -> int:
        with self._lock:
            entry = self._entries.get(str(path))
            return entry.refs if entry else 0

    async def acquire(self, path: Path) -> _PoolEntry:
        """
        Return the shared entry for ``path``, opening the database once.

        Raises:
            DirectoryLockError: If the directory or database cannot be opened.
        """
        key = str(path)
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                entry.refs += 1
                return entry

        conn = await self._open(path)

        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = _PoolEntry(conn)
                self._entries[key] = entry
                logger.info(f"Disk store opened at {path}")
                return entry
            entry.refs += 1
        # Lost the race; another caller opened it first.
        await conn.close()
        return entry

    async def release(self, path: Path) -> None:
        key = str(path)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return
            entry.refs -= 1
            if entry.refs > 0:
                return
            del self._entries[key]
        await entry.conn.close()
        logger.info(f"Disk store closed at {path}")

    @staticmethod
    async def _open(path: Path) -> aiosqlite.Connection:
        try:
            path.mkdir(mode=0o755, parents=True, exist_ok=True)
        except OSError as e:
            raise DirectoryLockError(str(path), f"Cannot create the store directory ({e}).") from e
        conn: Optional[aiosqlite.Connection] = None
        try:
            conn = await aiosqlite.connect(path / DB_FILENAME, isolation_level=None)
            await conn.execute("PRAGMA journal_mode=WAL")
            await conn.execute(_SCHEMA)
            await conn.execute("CREATE INDEX IF NOT EXISTS idx_kv_expired_at ON kv (expired_at)")
            return conn
        except (sqlite3.Error, OSError) as e:
            if conn is not None:
                await conn.close()
            raise DirectoryLockError(str(path), f"Cannot open the store database ({e}).") from e


_default_pool = DiskPool()


def get_pool() -> DiskPool:
    return _default_pool


# =============================================================================
# STORE
# =============================================================================


class DiskStore(BaseStore):
    """
    Persistent store in a directory.

    The database is opened on first use (or explicitly with ``open``) and
    released with ``close``.

    Args:
        options: ``path`` is the store directory, relative to the app root
            unless absolute; ``prefix`` namespaces the keys.
        pool: Connection pool; defaults to the process-wide pool.
    """

    def __init__(self, options: StoreOptions, pool: Optional[DiskPool] = None) -> None:
        self.options = options
        self.prefix = options.prefix
        self.path = resolve_path(options.path)
        self.pool = pool or get_pool()
        self._entry: Optional[_PoolEntry] = None
        self._open_lock = asyncio.Lock()

    async def open(self) -> None:
        await self._conn()

    async def _conn(self) -> aiosqlite.Connection:
        if self._entry is None:
            async with self._open_lock:
                if self._entry is None:
                    self._entry = await self.pool.acquire(self.path)
        return self._entry.conn

    async def _rmw_lock(self) -> asyncio.Lock:
        await self._conn()
        return self._entry.lock  # type: ignore[union-attr]

    async def close(self) -> None:
        if self._entry is None:
            return
        self._entry = None
        await self.pool.release(self.path)

    # -- Row access -----------------------------------------------------------

    async def _row(self, key: str) -> Optional[Tuple[Any, str, Optional[float]]]:
        """``(value, kind, expired_at)`` of a live key, deleting it if expired."""
        full_key = self._key(key)
        conn = await self._conn()
        try:
            async with conn.execute("SELECT value, kind, expired_at FROM kv WHERE key = ?", (full_key,)) as cursor:
                row = await cursor.fetchone()
            if row is None:
                return None
            if is_expired(row[2]):
                await conn.execute("DELETE FROM kv WHERE key = ?", (full_key,))
                return None
        except sqlite3.Error as e:
            raise StoreOperationError("get", key, e) from e
        return json.loads(row[0]), row[1], row[2]

    async def _write(self, key: str, value: Any, kind: str, expired_at: Optional[float]) -> None:
        conn = await self._conn()
        try:
            await conn.execute(
                "INSERT OR REPLACE INTO kv (key, value, kind, expired_at) VALUES (?, ?, ?, ?)",
                (self._key(key), json.dumps(value, ensure_ascii=False), kind, expired_at),
            )
        except sqlite3.Error as e:
            raise StoreOperationError("set", key, e) from e
        except (TypeError, ValueError) as e:
            raise StoreOperationError("set", key, f"value is not JSON-serializable: {e}") from e

    async def _remove(self, full_keys: List[str]) -> None:
        if not full_keys:
            return
        conn = await self._conn()
        try:
            await conn.executemany("DELETE FROM kv WHERE key = ?", [(k,) for k in full_keys])
        except sqlite3.Error as e:
            raise StoreOperationError("delete", self._strip(full_keys[0]), e) from e

    async def _matching(self, pattern: str) -> List[str]:
        """Live full keys under the prefix matching ``pattern``."""
        regex = compile_pattern(pattern)
        conn = await self._conn()
        now = time.time()
        try:
            async with conn.execute(
                "SELECT key FROM kv WHERE substr(key, 1, ?) = ? AND (expired_at IS NULL OR expired_at > ?) ORDER BY key",
                (len(self.prefix), self.prefix, now),
            ) as cursor:
                rows = await cursor.fetchall()
        except sqlite3.Error as e:
            raise StoreOperationError("keys", pattern, e) from e
        return [row[0] for row in rows if regex is None or regex.match(self._strip(row[0]))]

    # -- Scalar ---------------------------------------------------------------

    async def get(self, key: str) -> Tuple[Any, bool]:
        row = await self._row(key)
        if row is None:
            return None, False
        return row[0], True

    async def set(self, key: str, value: Any, ttl: float = 0) -> None:
        await self._write(key, value, SCALAR, expires_at(ttl))

    async def delete(self, key: str) -> None:
        if "*" in key:
            await self._remove(await self._matching(key))
            return
        await self._remove([self._key(key)])

    async def has(self, key: str) -> bool:
        return await self._row(key) is not None

    async def len(self, pattern: str = "") -> int:
        return len(await self._matching(pattern))

    async def keys(self, pattern: str = "") -> List[str]:
        return [self._strip(k) for k in await self._matching(pattern)]

    async def clear(self) -> None:
        conn = await self._conn()
        try:
            await conn.execute("DELETE FROM kv WHERE substr(key, 1, ?) = ?", (len(self.prefix), self.prefix))
        except sqlite3.Error as e:
            raise StoreOperationError("clear", "", e) from e

    async def get_del(self, key: str) -> Tuple[Any, bool]:
        async with await self._rmw_lock():
            row = await self._row(key)
            if row is None:
                return None, False
            await self._remove([self._key(key)])
            return row[0], True

    async def incr(self, key: str, delta: int = 1) -> int:
        async with await self._rmw_lock():
            row = await self._row(key)
            current, expired_at = 0, None
            if row is not None:
                if row[1] == LIST:
                    raise StoreTypeError(key, "Cannot increment a list.")
                current, expired_at = row[0], row[2]
                if isinstance(current, bool) or not isinstance(current, int):
                    raise StoreTypeError(key, "Value is not an integer.")
            value = current + delta
            await self._write(key, value, SCALAR, expired_at)
            return value

    # -- Lists ----------------------------------------------------------------

    async def _list(self, key: str, must_exist: bool = False) -> Tuple[List[Any], Optional[float], bool]:
        """``(items, expired_at, exists)`` of the list at ``key``."""
        row = await self._row(key)
        if row is None:
            if must_exist:
                raise StoreKeyError(key, "List not found.")
            return [], None, False
        if row[1] != LIST:
            raise StoreTypeError(key, "Value is not a list.")
        return row[0], row[2], True

    async def _save_list(self, key: str, items: List[Any], expired_at: Optional[float]) -> None:
        if items:
            await self._write(key, items, LIST, expired_at)
        else:
            await self._remove([self._key(key)])

    async def push(self, key: str, *values: Any) -> None:
        if not values:
            return
        async with await self._rmw_lock():
            items, expired_at, _ = await self._list(key)
            await self._save_list(key, [*items, *values], expired_at)

    async def pop(self, key: str, position: int = 1) -> Any:
        async with await self._rmw_lock():
            items, expired_at, _ = await self._list(key, must_exist=True)
            if not items:
                raise StoreKeyError(key, "List is empty.")
            value = items.pop() if position == 1 else items.pop(0)
            await self._save_list(key, items, expired_at)
            return value

    async def pull(self, key: str, value: Any) -> None:
        await self.pull_all(key, [value])

    async def pull_all(self, key: str, values: List[Any]) -> None:
        async with await self._rmw_lock():
            items, expired_at, exists = await self._list(key)
            if not exists:
                return
            targets = {canonical(v) for v in values}
            kept = [item for item in items if canonical(item) not in targets]
            if len(kept) != len(items):
                await self._save_list(key, kept, expired_at)

    async def add_to_set(self, key: str, *values: Any) -> None:
        async with await self._rmw_lock():
            items, expired_at, _ = await self._list(key)
            seen = {canonical(item) for item in items}
            for value in values:
                form = canonical(value)
                if form not in seen:
                    seen.add(form)
                    items.append(value)
            await self._save_list(key, items, expired_at)

    async def array_len(self, key: str) -> int:
        items, _, _ = await self._list(key)
        return len(items)

    async def array_get(self, key: str, index: int) -> Any:
        items, _, _ = await self._list(key, must_exist=True)
        if index < 0 or index >= len(items):
            raise StoreKeyError(key, f"Index {index} out of range.")
        return items[index]

    async def array_set(self, key: str, index: int, value: Any) -> None:
        async with await self._rmw_lock():
            items, expired_at, _ = await self._list(key, must_exist=True)
            if index < 0 or index >= len(items):
                raise StoreKeyError(key, f"Index {index} out of range.")
            items[index] = value
            await self._save_list(key, items, expired_at)

    async def array_slice(self, key: str, skip: int, limit: int) -> List[Any]:
        items, _, _ = await self._list(key)
        start, end = slice_bounds(len(items), skip, limit)
        return items[start:end]

    async def array_all(self, key: str) -> List[Any]:
        items, _, _ = await self._list(key)
        return items
