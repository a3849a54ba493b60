# src/ragcore/storage/base.py
"""
Abstract base class for key-value-plus-list stores.

Every backend implements the same contract:

Scalar operations
    ``get`` returns ``(value, found)`` and never raises for a missing key.
    ``set`` with ``ttl == 0`` stores without expiration and replaces any
    previous scalar or list. ``delete`` is idempotent; a key containing
    ``*`` deletes every key matching that pattern.

List operations
    A key becomes a list on its first list write. List operations on a
    scalar key raise ``StoreTypeError``; popping an empty or missing list
    and indexing out of range raise ``StoreKeyError``. Readers
    (``array_slice``, ``array_page``, ``array_all``) return copies and treat
    a missing key as an empty list.

Patterns use ``*`` as a wildcard matching any run of characters. Keys are
namespaced by a backend prefix which is never visible to callers. Values
must be JSON-serializable; list membership (``pull``, ``add_to_set``)
compares canonical JSON forms.
"""

from __future__ import annotations

import abc
import inspect
import json
import re
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Pattern, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

Loader = Callable[[str], Union[Any, Awaitable[Any]]]


class StoreOptions(BaseModel):
    """Options recognized by the store backends.

    Attributes:
        size: Capacity of the in-memory cache.
        prefix: Key namespace; remote backends derive it from the connector.
        path: Directory of the embedded disk store.
        timeout: Remote operation timeout in seconds.
        db: Remote database number.
    """

    model_config = ConfigDict(extra="allow")

    size: int = Field(default=10240, ge=1, description="LRU capacity")
    prefix: str = Field(default="", description="Key namespace")
    path: str = Field(default="", description="Disk store directory")
    timeout: float = Field(default=5.0, gt=0, description="Remote timeout in seconds")
    db: int = Field(default=0, ge=0, description="Remote database number")


# =============================================================================
# HELPERS
# =============================================================================


def canonical(value: Any) -> str:
    """Canonical JSON form used for list equality."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def compile_pattern(pattern: str) -> Optional[Pattern[str]]:
    """Regex for a ``*`` wildcard pattern; None matches everything."""
    if not pattern or pattern == "*":
        return None
    return re.compile("^" + ".*".join(re.escape(part) for part in pattern.split("*")) + "$")


def expires_at(ttl: float) -> Optional[float]:
    """Absolute expiration for a TTL in seconds; 0 or less means never."""
    if ttl and ttl > 0:
        return time.time() + ttl
    return None


def is_expired(expired_at: Optional[float], now: Optional[float] = None) -> bool:
    if expired_at is None:
        return False
    return expired_at <= (time.time() if now is None else now)


def slice_bounds(length: int, skip: int, limit: int) -> Tuple[int, int]:
    """Clamp ``skip``/``limit`` to ``[0, length]``."""
    start = min(max(skip, 0), length)
    end = min(start + max(limit, 0), length)
    return start, end


def page_bounds(page: int, page_size: int) -> Optional[Tuple[int, int]]:
    """``(skip, limit)`` of a 1-based page, or None for an invalid page."""
    if page < 1 or page_size < 1:
        return None
    return (page - 1) * page_size, page_size


async def call_loader(loader: Loader, key: str) -> Any:
    result = loader(key)
    if inspect.isawaitable(result):
        result = await result
    return result


# =============================================================================
# CONTRACT
# =============================================================================


class BaseStore(abc.ABC):
    """
    Abstract Base Class for stores.

    Batched operations, ``get_set`` and ``decr`` have default
    implementations built on the single-key primitives; backends override
    them where the engine offers something better.
    """

    prefix: str = ""

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def _strip(self, key: str) -> str:
        if self.prefix and key.startswith(self.prefix):
            return key[len(self.prefix):]
        return key

    # -- Scalar ---------------------------------------------------------------

    @abc.abstractmethod
    async def get(self, key: str) -> Tuple[Any, bool]:
        """Return ``(value, True)``, or ``(None, False)`` if missing or expired."""

    @abc.abstractmethod
    async def set(self, key: str, value: Any, ttl: float = 0) -> None:
        """Store ``value``; ``ttl`` in seconds, 0 for no expiration."""

    @abc.abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key``, or every key matching it when it contains ``*``."""

    @abc.abstractmethod
    async def has(self, key: str) -> bool:
        """True if a live entry exists."""

    @abc.abstractmethod
    async def len(self, pattern: str = "") -> int:
        """Number of live entries, optionally matching ``pattern``."""

    @abc.abstractmethod
    async def keys(self, pattern: str = "") -> List[str]:
        """Live keys, optionally matching ``pattern``, without the prefix."""

    @abc.abstractmethod
    async def clear(self) -> None:
        """Remove every entry under this store's prefix."""

    @abc.abstractmethod
    async def get_del(self, key: str) -> Tuple[Any, bool]:
        """Return and remove ``key``."""

    @abc.abstractmethod
    async def incr(self, key: str, delta: int = 1) -> int:
        """Add ``delta`` to an integer value (missing counts as 0) and return it."""

    async def decr(self, key: str, delta: int = 1) -> int:
        return await self.incr(key, -delta)

    async def get_set(self, key: str, ttl: float, loader: Loader) -> Any:
        """Return the value at ``key``, loading and storing it first if missing."""
        value, ok = await self.get(key)
        if ok:
            return value
        value = await call_loader(loader, key)
        await self.set(key, value, ttl)
        return value

    async def get_multi(self, keys: List[str]) -> Dict[str, Any]:
        """Values of the keys that exist."""
        result: Dict[str, Any] = {}
        for key in keys:
            value, ok = await self.get(key)
            if ok:
                result[key] = value
        return result

    async def set_multi(self, values: Dict[str, Any], ttl: float = 0) -> None:
        for key, value in values.items():
            await self.set(key, value, ttl)

    async def del_multi(self, keys: List[str]) -> None:
        for key in keys:
            await self.delete(key)

    async def get_set_multi(self, keys: List[str], ttl: float, loader: Loader) -> Dict[str, Any]:
        """``get_set`` for each key."""
        return {key: await self.get_set(key, ttl, loader) for key in keys}

    # -- Lists ----------------------------------------------------------------

    @abc.abstractmethod
    async def push(self, key: str, *values: Any) -> None:
        """Append values to the tail."""

    @abc.abstractmethod
    async def pop(self, key: str, position: int = 1) -> Any:
        """Remove and return the tail (``position == 1``) or the head (``-1`` or ``0``)."""

    @abc.abstractmethod
    async def pull(self, key: str, value: Any) -> None:
        """Remove every element equal to ``value``."""

    async def pull_all(self, key: str, values: List[Any]) -> None:
        for value in values:
            await self.pull(key, value)

    @abc.abstractmethod
    async def add_to_set(self, key: str, *values: Any) -> None:
        """Append the values not already present."""

    @abc.abstractmethod
    async def array_len(self, key: str) -> int:
        """Length of the list, 0 if missing."""

    @abc.abstractmethod
    async def array_get(self, key: str, index: int) -> Any:
        """Element at ``0 <= index < len``."""

    @abc.abstractmethod
    async def array_set(self, key: str, index: int, value: Any) -> None:
        """Replace the element at ``0 <= index < len``."""

    @abc.abstractmethod
    async def array_slice(self, key: str, skip: int, limit: int) -> List[Any]:
        """Up to ``limit`` elements starting at ``skip``."""

    async def array_page(self, key: str, page: int, page_size: int) -> List[Any]:
        """The 1-based ``page`` of ``page_size`` elements."""
        bounds = page_bounds(page, page_size)
        if bounds is None:
            return []
        return await self.array_slice(key, *bounds)

    @abc.abstractmethod
    async def array_all(self, key: str) -> List[Any]:
        """A copy of the whole list."""

    # -- Lifecycle ------------------------------------------------------------

    async def close(self) -> None:
        """Release backend resources."""
        return None
