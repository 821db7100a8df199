"""
Redis Connection Factory

Creates the shared Redis connection pool used by the volatile cache tier
and the job queue, and tracks volatile-tier connectivity.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

from ...constants import get_current_timestamp
from ...core.config import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass
class ConnectionState:
    """Explicit connectivity flag for the volatile tier.

    Consulted before every volatile operation; a failed operation flips
    it to disconnected until the next successful ping.
    """

    connected: bool = False
    last_error: Optional[str] = None
    changed_at: datetime = field(default_factory=get_current_timestamp)

    def mark_connected(self) -> None:
        if not self.connected:
            logger.info("Volatile cache connection established")
        self.connected = True
        self.last_error = None
        self.changed_at = get_current_timestamp()

    def mark_disconnected(self, error: Optional[Exception] = None) -> None:
        if self.connected:
            logger.warning(f"Volatile cache connection lost: {error}")
        self.connected = False
        self.last_error = str(error) if error else None
        self.changed_at = get_current_timestamp()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "connected": self.connected,
            "last_error": self.last_error,
            "changed_at": self.changed_at.isoformat(),
        }


class RedisConnectionFactory:
    """
    Factory for the shared Redis client.

    The pool is created lazily; ``get_client`` always returns the same
    client so the cache tier and the queue share connections.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[Redis] = None
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Create connection pool and verify it with a ping."""
        if self._client is not None:
            return

        async with self._lock:
            if self._client is not None:
                return

            self._pool = ConnectionPool.from_url(
                self.settings.REDIS_URL,
                max_connections=self.settings.REDIS_MAX_CONNECTIONS,
                decode_responses=True,
                encoding="utf-8",
            )
            self._client = Redis(connection_pool=self._pool)

            try:
                await self._client.ping()
                logger.info(
                    "Redis connection factory initialized",
                    extra={"max_connections": self.settings.REDIS_MAX_CONNECTIONS},
                )
            except RedisError as e:
                # The client stays usable; callers reconnect via ping.
                logger.warning(f"Redis not reachable at startup: {e}")

    async def get_client(self) -> Redis:
        await self.initialize()
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        if self._pool is not None:
            await self._pool.disconnect()
            self._pool = None
        logger.info("Redis connections closed")
