# tests/storage/conftest.py
"""
Pytest fixtures for store tests.

``store`` is parametrized over the backends that can run in-process: the
in-memory LRU store, the SQLite disk store in a temporary directory and
the Redis store on fakeredis.
"""

import pytest
import pytest_asyncio
from fakeredis import aioredis as fake_aioredis

from ragcore.connectors.redis import RedisConnector
from ragcore.storage.base import StoreOptions
from ragcore.storage.disk import DiskPool, DiskStore
from ragcore.storage.lru import LRUStore
from ragcore.storage.redis_store import RedisStore


@pytest_asyncio.fixture
async def redis_connector():
    client = fake_aioredis.FakeRedis(decode_responses=True)
    await client.flushall()
    connector = RedisConnector("redis.test", name="test", client=client)
    yield connector
    await connector.close()


@pytest_asyncio.fixture
async def disk_pool():
    return DiskPool()


@pytest_asyncio.fixture(params=["lru", "disk", "redis"])
async def store(request, tmp_path, disk_pool, redis_connector):
    if request.param == "lru":
        backend = LRUStore(StoreOptions(size=128, prefix="test:"))
    elif request.param == "disk":
        backend = DiskStore(StoreOptions(path=str(tmp_path / "store"), prefix="test:"), pool=disk_pool)
    else:
        backend = RedisStore(redis_connector)
    yield backend
    await backend.close()
