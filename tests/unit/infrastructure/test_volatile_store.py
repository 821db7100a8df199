"""
Unit tests for the volatile cache store.

Covers TTL handling, pattern deletion and the degraded behaviour while
Redis is unreachable.
"""

import pytest
from unittest.mock import AsyncMock

from redis.exceptions import ConnectionError as RedisConnectionError

from product_analytics.domain.cache import TTL, CacheEntry, CacheType, CatalogPayload
from product_analytics.infrastructure.stores import VolatileCacheStore


def catalog_entry(identifier: str = "") -> CacheEntry:
    return CacheEntry.create(
        CacheType.CATALOG,
        identifier,
        CatalogPayload(products={"2142": {"product_name": "Night Serum"}}),
        TTL.minutes(30),
    )


class TestVolatileCacheStore:
    """Test VolatileCacheStore against an in-memory Redis."""

    @pytest.mark.asyncio
    async def test_set_and_get(self, volatile):
        entry = catalog_entry()
        assert await volatile.set("catalog", entry, 60)

        cached = await volatile.get("catalog")
        assert cached is not None
        assert cached.payload == entry.payload

    @pytest.mark.asyncio
    async def test_keys_are_prefixed_and_expire(self, volatile, redis_client):
        await volatile.set("catalog", catalog_entry(), 60)

        assert await redis_client.exists("pa:cache:catalog") == 1
        ttl = await redis_client.ttl("pa:cache:catalog")
        assert 0 < ttl <= 60

    @pytest.mark.asyncio
    async def test_get_missing_key(self, volatile):
        assert await volatile.get("catalog") is None

    @pytest.mark.asyncio
    async def test_expired_entry_reads_as_miss(self, volatile):
        entry = catalog_entry()
        entry.expires_at = entry.created_at
        await volatile.set("catalog", entry, 60)

        assert await volatile.get("catalog") is None

    @pytest.mark.asyncio
    async def test_delete(self, volatile):
        await volatile.set("catalog", catalog_entry(), 60)

        assert await volatile.delete("catalog") is True
        assert await volatile.delete("catalog") is False

    @pytest.mark.asyncio
    async def test_delete_matching(self, volatile, redis_client):
        await volatile.set("catalog", catalog_entry(), 60)
        await volatile.set("catalog:2142", catalog_entry("2142"), 60)
        await volatile.set("analytics-summary", catalog_entry(), 60)
        await redis_client.set("pa:jobs:job:abc", "{}")

        deleted = await volatile.delete_matching("catalog*")

        assert deleted == 2
        assert await volatile.get("analytics-summary") is not None
        assert await redis_client.exists("pa:jobs:job:abc") == 1

    @pytest.mark.asyncio
    async def test_writes_missed_while_disconnected_are_purged_on_reconnect(
        self, volatile, redis_client
    ):
        await volatile.set("catalog", catalog_entry(), 60)
        await volatile.set("catalog:2142", catalog_entry("2142"), 60)
        await volatile.set("analytics-summary", catalog_entry(), 60)
        volatile.state.mark_disconnected(RedisConnectionError("blip"))

        assert await volatile.delete_matching("catalog:*") == 0
        assert await volatile.set("analytics-summary", catalog_entry(), 60) is False
        assert volatile.pending_purges == 2
        assert await redis_client.exists("pa:cache:catalog:2142") == 1

        assert await volatile.connect() is True

        assert volatile.pending_purges == 0
        assert await redis_client.exists("pa:cache:catalog:2142") == 0
        assert await redis_client.exists("pa:cache:analytics-summary") == 0
        assert await volatile.get("catalog") is not None

    @pytest.mark.asyncio
    async def test_stats(self, volatile):
        await volatile.set("catalog", catalog_entry(), 60)

        stats = await volatile.stats()
        assert stats["tier"] == "volatile"
        assert stats["connected"] is True
        assert stats["keys"] == 1


class TestVolatileOutage:
    """Redis failures are absorbed and the store reports misses."""

    @pytest.fixture
    def failing_client(self):
        client = AsyncMock()
        error = RedisConnectionError("Connection refused")
        client.ping.side_effect = error
        client.get.side_effect = error
        client.set.side_effect = error
        client.unlink.side_effect = error
        client.scan.side_effect = error
        return client

    @pytest.mark.asyncio
    async def test_connect_failure_marks_disconnected(self, failing_client):
        store = VolatileCacheStore(failing_client, key_prefix="pa:cache:")

        assert await store.connect() is False
        assert store.is_connected is False
        assert "Connection refused" in store.state.last_error

    @pytest.mark.asyncio
    async def test_disconnected_store_is_noop(self, failing_client):
        store = VolatileCacheStore(failing_client, key_prefix="pa:cache:")

        assert await store.get("catalog") is None
        assert await store.set("catalog", catalog_entry(), 60) is False
        assert await store.delete_matching("catalog*") == 0
        assert (await store.stats())["keys"] == 0
        failing_client.get.assert_not_called()
        failing_client.set.assert_not_called()

    @pytest.mark.asyncio
    async def test_operation_failure_flips_state(self, failing_client):
        store = VolatileCacheStore(failing_client, key_prefix="pa:cache:")
        store.state.mark_connected()

        assert await store.get("catalog") is None
        assert store.is_connected is False

        store.state.mark_connected()
        assert await store.set("catalog", catalog_entry(), 60) is False
        assert store.is_connected is False

        store.state.mark_connected()
        assert await store.delete_matching("catalog*") == 0
        assert store.is_connected is False

    @pytest.mark.asyncio
    async def test_failed_purge_stays_pending(self, failing_client):
        store = VolatileCacheStore(failing_client, key_prefix="pa:cache:")
        await store.delete_matching("catalog*")

        store.state.mark_connected()
        assert await store.get("catalog") is None

        assert store.pending_purges == 1
        assert store.is_connected is False
        failing_client.get.assert_not_called()

    @pytest.mark.asyncio
    async def test_reconnect_after_recovery(self, failing_client):
        store = VolatileCacheStore(failing_client, key_prefix="pa:cache:")
        await store.connect()

        failing_client.ping.side_effect = None
        failing_client.ping.return_value = True

        assert await store.connect() is True
        assert store.state.last_error is None
