# src/ragcore/storage/lru.py
"""
In-memory store backed by an adaptive replacement cache (ARC).

ARC keeps two LRU lists of live entries, ``t1`` (seen once recently) and
``t2`` (seen at least twice), plus two ghost lists ``b1``/``b2`` of keys
recently evicted from them. Hits in the ghost lists move the target size
``p`` of ``t1``, so the cache adapts between recency- and frequency-heavy
workloads.

Entries carry an optional absolute expiration; expired entries are evicted
lazily when read or scanned. Lists are stored as one value and replaced
with a fresh list on every mutation. Values are deep-copied on the way in
and on the way out, so callers never share objects with the cache.

Usage:
    store = LRUStore(StoreOptions(size=1024, prefix="docs:"))
    await store.set("a", 1)
    await store.push("queue", "x", "y")
"""

from __future__ import annotations

import copy
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

from ..exceptions import StoreKeyError, StoreTypeError
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


# =============================================================================
# ARC
# =============================================================================


class ARCCache:
    """
    Fixed-capacity adaptive replacement cache.

    Not thread-safe; ``LRUStore`` serializes access.
    """

    def __init__(self, size: int) -> None:
        if size < 1:
            raise ValueError("ARC size must be at least 1")
        self.size = size
        self.p = 0
        self.t1: "OrderedDict[str, Any]" = OrderedDict()
        self.t2: "OrderedDict[str, Any]" = OrderedDict()
        self.b1: "OrderedDict[str, None]" = OrderedDict()
        self.b2: "OrderedDict[str, None]" = OrderedDict()

    def get(self, key: str) -> Tuple[Any, bool]:
        """Look up a key, promoting it to the frequent list."""
        if key in self.t1:
            value = self.t1.pop(key)
            self.t2[key] = value
            return value, True
        if key in self.t2:
            self.t2.move_to_end(key)
            return self.t2[key], True
        return None, False

    def peek(self, key: str) -> Tuple[Any, bool]:
        """Look up a key without updating recency."""
        if key in self.t1:
            return self.t1[key], True
        if key in self.t2:
            return self.t2[key], True
        return None, False

    def add(self, key: str, value: Any) -> None:
        if key in self.t1:
            del self.t1[key]
            self.t2[key] = value
            return
        if key in self.t2:
            self.t2[key] = value
            self.t2.move_to_end(key)
            return

        if key in self.b1:
            delta = 1
            if len(self.b2) > len(self.b1):
                delta = len(self.b2) // len(self.b1)
            self.p = min(self.p + delta, self.size)
            if len(self.t1) + len(self.t2) >= self.size:
                self._replace(False)
            del self.b1[key]
            self.t2[key] = value
            return

        if key in self.b2:
            delta = 1
            if len(self.b1) > len(self.b2):
                delta = len(self.b1) // len(self.b2)
            self.p = max(self.p - delta, 0)
            if len(self.t1) + len(self.t2) >= self.size:
                self._replace(True)
            del self.b2[key]
            self.t2[key] = value
            return

        if len(self.t1) + len(self.t2) >= self.size:
            self._replace(False)
        if len(self.b1) > self.size - self.p:
            self.b1.popitem(last=False)
        if len(self.b2) > self.p:
            self.b2.popitem(last=False)
        self.t1[key] = value

    def _replace(self, b2_contains_key: bool) -> None:
        t1_len = len(self.t1)
        if t1_len > 0 and (t1_len > self.p or (t1_len == self.p and b2_contains_key) or not self.t2):
            key, _ = self.t1.popitem(last=False)
            self.b1[key] = None
        elif self.t2:
            key, _ = self.t2.popitem(last=False)
            self.b2[key] = None

    def remove(self, key: str) -> bool:
        removed = False
        for live in (self.t1, self.t2):
            if key in live:
                del live[key]
                removed = True
        self.b1.pop(key, None)
        self.b2.pop(key, None)
        return removed

    def keys(self) -> List[str]:
        return [*self.t1.keys(), *self.t2.keys()]

    def purge(self) -> None:
        self.t1.clear()
        self.t2.clear()
        self.b1.clear()
        self.b2.clear()
        self.p = 0

    def __contains__(self, key: str) -> bool:
        return key in self.t1 or key in self.t2

    def __len__(self) -> int:
        return len(self.t1) + len(self.t2)

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())


# =============================================================================
# STORE
# =============================================================================


@dataclass
class _Entry:
    value: Any
    expired_at: Optional[float] = None
    is_list: bool = False


class LRUStore(BaseStore):
    """
    In-memory store with TTL and key prefixing.

    Args:
        options: ``size`` bounds the number of live entries; ``prefix``
            namespaces the keys.
    """

    def __init__(self, options: Optional[StoreOptions] = None) -> None:
        self.options = options or StoreOptions()
        self.prefix = self.options.prefix
        self._cache = ARCCache(self.options.size)
        self._lock = threading.RLock()
        logger.debug(f"LRUStore created (size={self.options.size}, prefix={self.prefix!r})")

    # -- Internal helpers -----------------------------------------------------

    def _live(self, full_key: str, touch: bool = True) -> Optional[_Entry]:
        entry, ok = self._cache.get(full_key) if touch else self._cache.peek(full_key)
        if not ok:
            return None
        if is_expired(entry.expired_at):
            self._cache.remove(full_key)
            return None
        return entry

    def _list(self, key: str, must_exist: bool = False) -> Optional[_Entry]:
        entry = self._live(self._key(key))
        if entry is None:
            if must_exist:
                raise StoreKeyError(key, "List not found.")
            return None
        if not entry.is_list:
            raise StoreTypeError(key, "Value is not a list.")
        return entry

    def _matching(self, pattern: str) -> List[str]:
        """Live full keys under the prefix matching ``pattern``."""
        regex = compile_pattern(pattern)
        now = time.time()
        matched = []
        for full_key in self._cache.keys():
            if not full_key.startswith(self.prefix):
                continue
            entry, _ = self._cache.peek(full_key)
            if is_expired(entry.expired_at, now):
                self._cache.remove(full_key)
                continue
            if regex is None or regex.match(self._strip(full_key)):
                matched.append(full_key)
        return matched

    # -- Scalar ---------------------------------------------------------------

    async def get(self, key: str) -> Tuple[Any, bool]:
        with self._lock:
            entry = self._live(self._key(key))
            if entry is None:
                return None, False
            return copy.deepcopy(entry.value), True

    async def set(self, key: str, value: Any, ttl: float = 0) -> None:
        with self._lock:
            self._cache.add(self._key(key), _Entry(copy.deepcopy(value), expires_at(ttl)))

    async def delete(self, key: str) -> None:
        with self._lock:
            if "*" in key:
                for full_key in self._matching(key):
                    self._cache.remove(full_key)
                return
            self._cache.remove(self._key(key))

    async def has(self, key: str) -> bool:
        with self._lock:
            return self._live(self._key(key), touch=False) is not None

    async def len(self, pattern: str = "") -> int:
        with self._lock:
            return len(self._matching(pattern))

    async def keys(self, pattern: str = "") -> List[str]:
        with self._lock:
            return [self._strip(k) for k in self._matching(pattern)]

    async def clear(self) -> None:
        with self._lock:
            if not self.prefix:
                self._cache.purge()
                return
            for full_key in [k for k in self._cache.keys() if k.startswith(self.prefix)]:
                self._cache.remove(full_key)

    async def get_del(self, key: str) -> Tuple[Any, bool]:
        with self._lock:
            full_key = self._key(key)
            entry = self._live(full_key, touch=False)
            if entry is None:
                return None, False
            self._cache.remove(full_key)
            return entry.value, True

    async def get_multi(self, keys: List[str]) -> Dict[str, Any]:
        with self._lock:
            result: Dict[str, Any] = {}
            for key in keys:
                entry = self._live(self._key(key))
                if entry is not None:
                    result[key] = copy.deepcopy(entry.value)
            return result

    async def incr(self, key: str, delta: int = 1) -> int:
        with self._lock:
            full_key = self._key(key)
            entry = self._live(full_key)
            if entry is None:
                entry = _Entry(0)
            if entry.is_list:
                raise StoreTypeError(key, "Cannot increment a list.")
            if isinstance(entry.value, bool) or not isinstance(entry.value, int):
                raise StoreTypeError(key, "Value is not an integer.")
            value = entry.value + delta
            self._cache.add(full_key, _Entry(value, entry.expired_at))
            return value

    # -- Lists ----------------------------------------------------------------

    def _replace_list(self, key: str, items: List[Any], expired_at: Optional[float]) -> None:
        full_key = self._key(key)
        if items:
            self._cache.add(full_key, _Entry(items, expired_at, is_list=True))
        else:
            self._cache.remove(full_key)

    async def push(self, key: str, *values: Any) -> None:
        with self._lock:
            entry = self._list(key)
            current = entry.value if entry else []
            if not values and entry is None:
                return
            self._replace_list(key, [*current, *copy.deepcopy(values)], entry.expired_at if entry else None)

    async def pop(self, key: str, position: int = 1) -> Any:
        with self._lock:
            entry = self._list(key, must_exist=True)
            items = list(entry.value)
            if not items:
                raise StoreKeyError(key, "List is empty.")
            value = items.pop() if position == 1 else items.pop(0)
            self._replace_list(key, items, entry.expired_at)
            return value

    async def pull(self, key: str, value: Any) -> None:
        with self._lock:
            entry = self._list(key)
            if entry is None:
                return
            target = canonical(value)
            kept = [item for item in entry.value if canonical(item) != target]
            if len(kept) != len(entry.value):
                self._replace_list(key, kept, entry.expired_at)

    async def pull_all(self, key: str, values: List[Any]) -> None:
        with self._lock:
            entry = self._list(key)
            if entry is None:
                return
            targets = {canonical(v) for v in values}
            kept = [item for item in entry.value if canonical(item) not in targets]
            if len(kept) != len(entry.value):
                self._replace_list(key, kept, entry.expired_at)

    async def add_to_set(self, key: str, *values: Any) -> None:
        with self._lock:
            entry = self._list(key)
            items = list(entry.value) if entry else []
            seen = {canonical(item) for item in items}
            for value in values:
                form = canonical(value)
                if form not in seen:
                    seen.add(form)
                    items.append(copy.deepcopy(value))
            self._replace_list(key, items, entry.expired_at if entry else None)

    async def array_len(self, key: str) -> int:
        with self._lock:
            entry = self._list(key)
            return len(entry.value) if entry else 0

    async def array_get(self, key: str, index: int) -> Any:
        with self._lock:
            entry = self._list(key, must_exist=True)
            if index < 0 or index >= len(entry.value):
                raise StoreKeyError(key, f"Index {index} out of range.")
            return copy.deepcopy(entry.value[index])

    async def array_set(self, key: str, index: int, value: Any) -> None:
        with self._lock:
            entry = self._list(key, must_exist=True)
            if index < 0 or index >= len(entry.value):
                raise StoreKeyError(key, f"Index {index} out of range.")
            items = list(entry.value)
            items[index] = copy.deepcopy(value)
            self._replace_list(key, items, entry.expired_at)

    async def array_slice(self, key: str, skip: int, limit: int) -> List[Any]:
        with self._lock:
            entry = self._list(key)
            if entry is None:
                return []
            start, end = slice_bounds(len(entry.value), skip, limit)
            return copy.deepcopy(entry.value[start:end])

    async def array_all(self, key: str) -> List[Any]:
        with self._lock:
            entry = self._list(key)
            return copy.deepcopy(entry.value) if entry else []

    async def close(self) -> None:
        with self._lock:
            self._cache.purge()
