"""
Unit tests for the expiring key-value stores.

The Redis store is tested against a mocked client, so no Redis server is needed.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from taskflow_api.kv_store import InMemoryExpiringStore, RedisExpiringStore, create_expiring_store


@pytest.mark.asyncio
async def test_in_memory_set_get_exists_delete():
    store = InMemoryExpiringStore()
    assert await store.get("key") is None
    assert not await store.exists("key")

    await store.set("key", "value", ttl_seconds=60)
    assert await store.get("key") == "value"
    assert await store.exists("key")

    await store.delete("key")
    assert await store.get("key") is None
    assert not await store.exists("key")


@pytest.mark.asyncio
async def test_in_memory_delete_multiple_and_missing_keys():
    store = InMemoryExpiringStore()
    await store.set("a", "1", ttl_seconds=60)
    await store.set("b", "2", ttl_seconds=60)

    await store.delete("a", "b", "never-set")
    assert not await store.exists("a")
    assert not await store.exists("b")


@pytest.mark.asyncio
async def test_in_memory_entries_expire():
    store = InMemoryExpiringStore()
    await store.set("short", "value", ttl_seconds=1)
    await store.set("long", "value", ttl_seconds=60)

    await asyncio.sleep(1.1)

    assert await store.get("short") is None
    assert not await store.exists("short")
    assert await store.get("long") == "value"


@pytest.mark.asyncio
async def test_in_memory_increment_counts_from_one():
    store = InMemoryExpiringStore()
    assert await store.increment("counter", ttl_seconds=60) == 1
    assert await store.increment("counter", ttl_seconds=60) == 2
    assert await store.increment("counter", ttl_seconds=60) == 3
    assert await store.get("counter") == "3"


@pytest.mark.asyncio
async def test_in_memory_increment_restarts_after_expiry():
    store = InMemoryExpiringStore()
    await store.increment("counter", ttl_seconds=1)
    await store.increment("counter", ttl_seconds=1)

    await asyncio.sleep(1.1)

    assert await store.increment("counter", ttl_seconds=60) == 1


@pytest.mark.asyncio
async def test_in_memory_concurrent_increments_are_not_lost():
    store = InMemoryExpiringStore()
    await asyncio.gather(*(store.increment("counter", ttl_seconds=60) for _ in range(50)))
    assert await store.get("counter") == "50"


@pytest.mark.asyncio
@pytest.mark.parametrize("ttl_seconds", [0, -5])
async def test_in_memory_rejects_non_positive_ttl(ttl_seconds):
    store = InMemoryExpiringStore()
    with pytest.raises(ValueError):
        await store.set("key", "value", ttl_seconds=ttl_seconds)
    with pytest.raises(ValueError):
        await store.increment("key", ttl_seconds=ttl_seconds)


@pytest.mark.asyncio
async def test_in_memory_expired_entries_are_dropped_on_write():
    """Keys that are never read again (blacklisted tokens, counters for random usernames) must not pile up."""
    store = InMemoryExpiringStore()
    for i in range(500):
        await store.set(f"blacklisted_token:{i}", "1", ttl_seconds=1)
        await store.increment(f"failed_attempts:user-{i}", ttl_seconds=1)
    await store.set("long", "value", ttl_seconds=60)
    assert len(store) == 1001

    await asyncio.sleep(1.1)
    await store.set("another", "value", ttl_seconds=60)

    assert len(store) == 2
    assert await store.get("long") == "value"


@pytest.mark.asyncio
async def test_in_memory_rewritten_key_survives_old_deadline():
    store = InMemoryExpiringStore()
    await store.set("key", "old", ttl_seconds=1)
    await store.set("key", "new", ttl_seconds=60)

    await asyncio.sleep(1.1)
    await store.set("other", "value", ttl_seconds=60)

    assert await store.get("key") == "new"


@pytest.mark.asyncio
async def test_in_memory_set_if_absent():
    store = InMemoryExpiringStore()
    assert await store.set_if_absent("key", "first", ttl_seconds=60)
    assert not await store.set_if_absent("key", "second", ttl_seconds=60)
    assert await store.get("key") == "first"


@pytest.mark.asyncio
async def test_in_memory_set_if_absent_after_expiry():
    store = InMemoryExpiringStore()
    await store.set("key", "old", ttl_seconds=1)
    await asyncio.sleep(1.1)
    assert await store.set_if_absent("key", "new", ttl_seconds=60)
    assert await store.get("key") == "new"


@pytest.mark.asyncio
async def test_in_memory_concurrent_set_if_absent_has_one_winner():
    store = InMemoryExpiringStore()
    results = await asyncio.gather(*(store.set_if_absent("key", str(i), ttl_seconds=60) for i in range(20)))
    assert results.count(True) == 1


@pytest.fixture
def redis_client():
    client = MagicMock()
    client.set = AsyncMock()
    client.get = AsyncMock()
    client.delete = AsyncMock()
    client.exists = AsyncMock()
    client.ping = AsyncMock(return_value=True)
    client.aclose = AsyncMock()
    return client


@pytest.mark.asyncio
async def test_redis_set_passes_ttl(redis_client):
    store = RedisExpiringStore(redis_client)
    await store.set("key", "value", ttl_seconds=30)
    redis_client.set.assert_awaited_once_with("key", "value", ex=30)


@pytest.mark.asyncio
async def test_redis_set_if_absent_uses_nx(redis_client):
    store = RedisExpiringStore(redis_client)

    redis_client.set.return_value = True
    assert await store.set_if_absent("key", "value", ttl_seconds=30) is True
    redis_client.set.assert_awaited_once_with("key", "value", ex=30, nx=True)

    # redis-py returns None when NX prevented the write
    redis_client.set.return_value = None
    assert await store.set_if_absent("key", "value", ttl_seconds=30) is False

@pytest.mark.asyncio
async def test_redis_get_decodes_bytes(redis_client):
    store = RedisExpiringStore(redis_client)

    redis_client.get.return_value = b"value"
    assert await store.get("key") == "value"

    redis_client.get.return_value = None
    assert await store.get("key") is None


@pytest.mark.asyncio
async def test_redis_exists_and_delete(redis_client):
    store = RedisExpiringStore(redis_client)

    redis_client.exists.return_value = 1
    assert await store.exists("key") is True
    redis_client.exists.return_value = 0
    assert await store.exists("key") is False

    await store.delete("a", "b")
    redis_client.delete.assert_awaited_once_with("a", "b")


@pytest.mark.asyncio
async def test_redis_delete_without_keys_skips_call(redis_client):
    store = RedisExpiringStore(redis_client)
    await store.delete()
    redis_client.delete.assert_not_awaited()


@pytest.mark.asyncio
async def test_redis_increment_uses_transaction_pipeline(redis_client):
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[4, True])
    redis_client.pipeline.return_value.__aenter__.return_value = pipe

    store = RedisExpiringStore(redis_client)
    assert await store.increment("counter", ttl_seconds=120) == 4

    redis_client.pipeline.assert_called_once_with(transaction=True)
    pipe.incr.assert_called_once_with("counter")
    pipe.expire.assert_called_once_with("counter", 120)


@pytest.mark.asyncio
async def test_redis_ping_and_close(redis_client):
    store = RedisExpiringStore(redis_client)
    assert await store.ping() is True
    await store.close()
    redis_client.aclose.assert_awaited_once()


def test_create_expiring_store_picks_backend():
    assert isinstance(create_expiring_store(None), InMemoryExpiringStore)
    assert isinstance(create_expiring_store("redis://localhost:6379/0"), RedisExpiringStore)
