# tests/storage/test_store_contract.py
"""
Behaviour shared by every store backend.

Each test runs once per backend through the parametrized ``store`` fixture.
"""

import asyncio

import pytest

from ragcore.exceptions import StoreKeyError, StoreTypeError


# =============================================================================
# SCALAR OPERATIONS
# =============================================================================


class TestScalar:
    """Tests for get/set/delete and friends."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", [1, "text", 2.5, {"a": [1, 2]}, [1, "x"], None, True])
    async def test_set_get_delete(self, store, value):
        """A stored value reads back until it is deleted."""
        await store.set("k", value, 0)
        assert await store.get("k") == (value, True)
        assert await store.has("k")

        await store.delete("k")
        assert await store.get("k") == (None, False)
        assert not await store.has("k")

    @pytest.mark.asyncio
    async def test_values_are_not_shared(self, store):
        """Mutating a value after set, or a value read back, leaves the store unchanged."""
        value = {"a": 1, "tags": ["x"]}
        await store.set("k", value)
        value["a"] = 2
        value["tags"].append("y")

        read, _ = await store.get("k")
        read["tags"].append("z")
        assert await store.get("k") == ({"a": 1, "tags": ["x"]}, True)

    @pytest.mark.asyncio
    async def test_missing_key(self, store):
        """Missing keys are not errors."""
        assert await store.get("absent") == (None, False)
        await store.delete("absent")

    @pytest.mark.asyncio
    async def test_set_overwrites(self, store):
        """set replaces the previous value, lists included."""
        await store.push("k", 1, 2)
        await store.set("k", "scalar")
        assert await store.get("k") == ("scalar", True)

    @pytest.mark.asyncio
    async def test_keys_and_len(self, store):
        """keys strips the prefix and patterns filter with *."""
        for key in ("doc:1", "doc:2", "img:1"):
            await store.set(key, key)

        assert sorted(await store.keys()) == ["doc:1", "doc:2", "img:1"]
        assert sorted(await store.keys("doc:*")) == ["doc:1", "doc:2"]
        assert await store.keys("*:1") != []
        assert await store.len() == 3
        assert await store.len("img:*") == 1

    @pytest.mark.asyncio
    async def test_pattern_delete(self, store):
        """A key with * deletes every match."""
        for key in ("doc:1", "doc:2", "img:1"):
            await store.set(key, 1)
        await store.delete("doc:*")
        assert await store.keys() == ["img:1"]

    @pytest.mark.asyncio
    async def test_clear(self, store):
        """clear empties the store."""
        await store.set("a", 1)
        await store.push("b", 1)
        await store.clear()
        assert await store.len() == 0

    @pytest.mark.asyncio
    async def test_ttl_expiry(self, store):
        """Expired entries vanish from get, has, keys and len."""
        await store.set("a", 1, 0)
        await store.set("b", 2, 0.05)
        assert await store.len() == 2

        await asyncio.sleep(0.15)

        assert await store.get("b") == (None, False)
        assert not await store.has("b")
        assert await store.keys() == ["a"]
        assert await store.len() == 1

    @pytest.mark.asyncio
    async def test_get_del(self, store):
        """get_del returns the value once."""
        await store.set("k", {"x": 1})
        assert await store.get_del("k") == ({"x": 1}, True)
        assert await store.get_del("k") == (None, False)

    @pytest.mark.asyncio
    async def test_get_del_list(self, store):
        """get_del also takes lists."""
        await store.push("l", "a", "b")
        assert await store.get_del("l") == (["a", "b"], True)
        assert not await store.has("l")

    @pytest.mark.asyncio
    async def test_incr_decr(self, store):
        """Missing counters start at zero."""
        assert await store.incr("n") == 1
        assert await store.incr("n", 5) == 6
        assert await store.decr("n", 2) == 4
        assert await store.get("n") == (4, True)

    @pytest.mark.asyncio
    async def test_incr_keeps_ttl(self, store):
        """Incrementing does not make a counter permanent."""
        await store.set("n", 1, 0.05)
        await store.incr("n")
        await asyncio.sleep(0.15)
        assert not await store.has("n")

    @pytest.mark.asyncio
    async def test_incr_wrong_type(self, store):
        """Strings and lists cannot be incremented."""
        await store.set("s", "abc")
        await store.push("l", 1)
        with pytest.raises(StoreTypeError):
            await store.incr("s")
        with pytest.raises(StoreTypeError):
            await store.incr("l")

    @pytest.mark.asyncio
    async def test_get_set(self, store):
        """The loader runs only when the key is missing."""
        calls = []

        def loader(key):
            calls.append(key)
            return f"loaded:{key}"

        assert await store.get_set("k", 0, loader) == "loaded:k"
        assert await store.get_set("k", 0, loader) == "loaded:k"
        assert calls == ["k"]

    @pytest.mark.asyncio
    async def test_get_set_async_loader(self, store):
        """Coroutine loaders are awaited."""

        async def loader(key):
            return [key]

        assert await store.get_set("k", 0, loader) == ["k"]
        assert await store.get("k") == (["k"], True)

    @pytest.mark.asyncio
    async def test_multi(self, store):
        """Batched operations act per key."""
        await store.set_multi({"a": 1, "b": 2, "c": 3})
        assert await store.get_multi(["a", "b", "zz"]) == {"a": 1, "b": 2}

        await store.del_multi(["a", "b"])
        assert await store.keys() == ["c"]

        loaded = await store.get_set_multi(["c", "d"], 0, lambda key: key.upper())
        assert loaded == {"c": 3, "d": "D"}


# =============================================================================
# LIST OPERATIONS
# =============================================================================


class TestLists:
    """Tests for list operations."""

    @pytest.mark.asyncio
    async def test_push_pop(self, store):
        """pop(1) takes the tail, pop(-1) and pop(0) the head."""
        await store.push("l", "a", "b", "c", "d")
        assert await store.array_all("l") == ["a", "b", "c", "d"]

        assert await store.pop("l", 1) == "d"
        assert await store.array_all("l") == ["a", "b", "c"]
        assert await store.pop("l", -1) == "a"
        assert await store.pop("l", 0) == "b"
        assert await store.array_all("l") == ["c"]

    @pytest.mark.asyncio
    async def test_get_returns_list(self, store):
        """A list key reads back through get."""
        await store.push("l", 1, {"a": 2})
        assert await store.get("l") == ([1, {"a": 2}], True)

    @pytest.mark.asyncio
    async def test_emptied_list_is_removed(self, store):
        """Popping the last element removes the key."""
        await store.push("l", 1)
        await store.pop("l")
        assert not await store.has("l")
        with pytest.raises(StoreKeyError):
            await store.pop("l")

    @pytest.mark.asyncio
    async def test_pop_missing(self, store):
        """Popping a missing list is a key error."""
        with pytest.raises(StoreKeyError):
            await store.pop("nope")

    @pytest.mark.asyncio
    async def test_pull(self, store):
        """pull removes every equal element and is idempotent."""
        await store.push("l", 1, {"a": 1, "b": 2}, 1, 3)
        await store.pull("l", 1)
        await store.pull("l", 1)
        assert await store.array_all("l") == [{"a": 1, "b": 2}, 3]

        await store.pull("l", {"b": 2, "a": 1})
        assert await store.array_all("l") == [3]

    @pytest.mark.asyncio
    async def test_pull_all(self, store):
        """pull_all removes each value."""
        await store.push("l", "a", "b", "c", "a")
        await store.pull_all("l", ["a", "c"])
        assert await store.array_all("l") == ["b"]

    @pytest.mark.asyncio
    async def test_pull_missing_is_noop(self, store):
        """Pulling from a missing list does nothing."""
        await store.pull("nope", 1)
        assert not await store.has("nope")

    @pytest.mark.asyncio
    async def test_add_to_set(self, store):
        """Only absent values are appended; equality ignores key order."""
        await store.add_to_set("s", "a", {"x": 1, "y": 2})
        await store.add_to_set("s", "a", "b", {"y": 2, "x": 1}, "b")
        assert await store.array_all("s") == ["a", {"x": 1, "y": 2}, "b"]

    @pytest.mark.asyncio
    async def test_index_access(self, store):
        """array_get and array_set address 0 <= i < len."""
        await store.push("l", "a", "b", "c")
        assert await store.array_len("l") == 3
        assert await store.array_get("l", 1) == "b"

        await store.array_set("l", 1, "B")
        assert await store.array_all("l") == ["a", "B", "c"]

        for index in (-1, 3):
            with pytest.raises(StoreKeyError):
                await store.array_get("l", index)
            with pytest.raises(StoreKeyError):
                await store.array_set("l", index, "x")

    @pytest.mark.asyncio
    async def test_index_on_missing_list(self, store):
        """Index operations on a missing list are key errors."""
        with pytest.raises(StoreKeyError):
            await store.array_get("nope", 0)
        with pytest.raises(StoreKeyError):
            await store.array_set("nope", 0, "x")

    @pytest.mark.asyncio
    async def test_slice_and_page(self, store):
        """Slices clamp to bounds and pages are 1-based."""
        await store.push("l", *range(10))

        assert await store.array_slice("l", 2, 3) == [2, 3, 4]
        assert await store.array_slice("l", 8, 5) == [8, 9]
        assert await store.array_slice("l", 20, 5) == []
        assert await store.array_slice("l", 0, 0) == []
        assert await store.array_page("l", 2, 4) == [4, 5, 6, 7]
        assert await store.array_page("l", 3, 4) == [8, 9]
        assert await store.array_page("l", 0, 4) == []

    @pytest.mark.asyncio
    async def test_readers_on_missing_list(self, store):
        """Readers treat a missing list as empty."""
        assert await store.array_len("nope") == 0
        assert await store.array_all("nope") == []
        assert await store.array_slice("nope", 0, 5) == []

    @pytest.mark.asyncio
    async def test_readers_return_copies(self, store):
        """Mutating a returned list does not change the store."""
        await store.push("l", 1, 2)
        items = await store.array_all("l")
        items.append(3)
        assert await store.array_all("l") == [1, 2]

    @pytest.mark.asyncio
    async def test_list_ops_on_scalar(self, store):
        """List operations on a scalar key are type errors."""
        await store.set("s", "scalar")
        for call in (
            store.push("s", 1),
            store.pop("s"),
            store.pull("s", 1),
            store.array_len("s"),
            store.array_get("s", 0),
            store.array_all("s"),
        ):
            with pytest.raises(StoreTypeError):
                await call
