"""
Volatile Cache Store

Redis-backed cache tier with per-key TTL. Connectivity is tracked through
an explicit ConnectionState; while disconnected every operation is a
no-op that reports a miss.

Writes and deletes that could not reach Redis leave keys behind that may
hold older data. They are remembered and purged before the next
operation that runs against a connected Redis.
"""

import logging
from typing import Any, Dict, Optional, Set

from redis.asyncio import Redis
from redis.exceptions import RedisError

from ...core.exceptions import CacheUnavailable
from ...domain.cache import CacheEntry
from ..redis import ConnectionState

logger = logging.getLogger(__name__)


class VolatileCacheStore:
    """
    Fast ephemeral cache tier.

    Redis failures never propagate out of this class: they are logged as
    CacheUnavailable, the connection state flips to disconnected and the
    operation reports a miss.
    """

    def __init__(self, client: Redis, key_prefix: str = ""):
        self.client = client
        self.key_prefix = key_prefix
        self.state = ConnectionState()
        self._stale_keys: Set[str] = set()
        self._stale_patterns: Set[str] = set()

    def _make_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    def _absorb(self, operation: str, error: RedisError) -> None:
        self.state.mark_disconnected(error)
        unavailable = CacheUnavailable(operation=operation, original_error=error)
        logger.warning(
            f"{unavailable.message} during {operation}: {error}",
            extra={"error_code": unavailable.error_code},
        )

    @property
    def pending_purges(self) -> int:
        return len(self._stale_keys) + len(self._stale_patterns)

    async def _unlink_matching(self, pattern: str) -> int:
        deleted = 0
        cursor = 0
        while True:
            cursor, keys = await self.client.scan(
                cursor=cursor, match=self._make_key(pattern), count=100
            )
            if keys:
                deleted += await self.client.unlink(*keys)
            if cursor == 0:
                return deleted

    async def _ready(self) -> bool:
        """True when connected and every stale key has been purged."""
        if not self.state.connected:
            return False
        if not self.pending_purges:
            return True

        keys = list(self._stale_keys)
        patterns = list(self._stale_patterns)
        try:
            if keys:
                await self.client.unlink(*(self._make_key(key) for key in keys))
            for pattern in patterns:
                await self._unlink_matching(pattern)
        except RedisError as e:
            self._absorb("purge_stale", e)
            return False

        self._stale_keys.difference_update(keys)
        self._stale_patterns.difference_update(patterns)
        logger.info(
            f"Purged {len(keys)} stale volatile keys and {len(patterns)} patterns after reconnect"
        )
        return True

    async def connect(self) -> bool:
        """Ping Redis, update the connection state and purge stale keys."""
        try:
            await self.client.ping()
            self.state.mark_connected()
        except RedisError as e:
            self._absorb("connect", e)
            return False
        return await self._ready()

    @property
    def is_connected(self) -> bool:
        return self.state.connected

    async def get(self, key: str) -> Optional[CacheEntry]:
        if not await self._ready():
            return None
        try:
            raw = await self.client.get(self._make_key(key))
        except RedisError as e:
            self._absorb("get", e)
            return None

        if raw is None:
            return None

        entry = CacheEntry.from_json(raw)
        # Redis TTL and entry expiry are set together; guard against clock skew.
        if entry.is_expired():
            return None
        return entry

    async def set(self, key: str, entry: CacheEntry, ttl_seconds: int) -> bool:
        if not await self._ready():
            self._stale_keys.add(key)
            return False
        try:
            await self.client.set(self._make_key(key), entry.to_json(), ex=ttl_seconds)
            return True
        except RedisError as e:
            self._absorb("set", e)
            self._stale_keys.add(key)
            return False

    async def delete(self, key: str) -> bool:
        if not await self._ready():
            self._stale_keys.add(key)
            return False
        try:
            return bool(await self.client.unlink(self._make_key(key)))
        except RedisError as e:
            self._absorb("delete", e)
            self._stale_keys.add(key)
            return False

    async def delete_matching(self, pattern: str) -> int:
        """Delete every key matching a glob pattern using SCAN + UNLINK."""
        if not await self._ready():
            self._stale_patterns.add(pattern)
            return 0

        try:
            deleted = await self._unlink_matching(pattern)
        except RedisError as e:
            self._absorb("delete_matching", e)
            self._stale_patterns.add(pattern)
            return 0

        logger.debug(f"Deleted {deleted} volatile keys matching {pattern}")
        return deleted

    async def stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = {"tier": "volatile", **self.state.to_dict()}
        if not await self._ready():
            stats.update(self.state.to_dict())
            stats["keys"] = 0
            stats["pending_purges"] = self.pending_purges
            return stats

        try:
            count = 0
            async for _ in self.client.scan_iter(match=self._make_key("*"), count=100):
                count += 1
            stats["keys"] = count
        except RedisError as e:
            self._absorb("stats", e)
            stats.update(self.state.to_dict())
            stats["keys"] = 0
        stats["pending_purges"] = self.pending_purges
        return stats
