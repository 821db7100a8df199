"""
Persistent Cache Store

SQL-backed cache tier. Rows carry their own expiry and every reader
treats expired rows as absent; expired rows are kept until cleanup
purges them.
"""

import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any, AsyncGenerator, Dict, List, Optional

from opentelemetry import trace
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ...constants import as_utc, get_current_timestamp
from ...core.database import DatabaseManager
from ...core.exceptions import PersistentStoreError
from ...domain.cache import CacheEntry, CacheKey, CacheMetadata, CacheType
from ...domain.cache.entities import payload_from_dict
from ...models import CachedEntryRecord

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def glob_to_like(pattern: str) -> str:
    """Translate a Redis-style glob into a backslash-escaped SQL LIKE pattern."""
    escaped = (
        pattern.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    )
    return escaped.replace("*", "%").replace("?", "_")


class PersistentCacheStore:
    """
    Durable cache tier.

    Database failures are wrapped in PersistentStoreError and always
    propagate to the caller.
    """

    def __init__(self, database: DatabaseManager):
        self.database = database

    @asynccontextmanager
    async def _session(
        self, operation: str, key: Optional[str] = None
    ) -> AsyncGenerator[AsyncSession, None]:
        try:
            async with self.database.session() as session:
                yield session
        except SQLAlchemyError as e:
            logger.exception(f"Persistent cache {operation} failed: {e}")
            raise PersistentStoreError(
                message=f"Persistent cache {operation} failed: {e}",
                operation=operation,
                key=key,
                original_error=e,
            ) from e

    @staticmethod
    def _to_entry(record: CachedEntryRecord) -> CacheEntry:
        cache_type = CacheType.parse(record.cache_type)
        return CacheEntry(
            key=CacheKey(record.cache_key),
            cache_type=cache_type,
            payload=payload_from_dict(cache_type, record.payload),
            created_at=as_utc(record.created_at),
            expires_at=as_utc(record.expires_at),
            metadata=CacheMetadata.from_dict(record.entry_metadata),
        )

    @staticmethod
    def _latest(key: str, cache_type: Optional[CacheType] = None):
        query = select(CachedEntryRecord).where(CachedEntryRecord.cache_key == key)
        if cache_type is not None:
            query = query.where(CachedEntryRecord.cache_type == cache_type.value)
        return query.order_by(
            CachedEntryRecord.created_at.desc(), CachedEntryRecord.id.desc()
        ).limit(1)

    async def get(
        self, key: str, cache_type: Optional[CacheType] = None
    ) -> Optional[CacheEntry]:
        """Return the latest non-expired entry for key, or None."""
        with tracer.start_as_current_span("persistent_cache.get") as span:
            span.set_attribute("cache.key", key)
            now = get_current_timestamp()
            async with self._session("get", key) as session:
                query = self._latest(key, cache_type).where(
                    CachedEntryRecord.expires_at > now
                )
                record = (await session.execute(query)).scalar_one_or_none()
                if record is None:
                    span.set_attribute("cache.hit", False)
                    return None
                entry = self._to_entry(record)

            span.set_attribute("cache.hit", True)
            return entry

    async def set(self, key: str, entry: CacheEntry, ttl_seconds: int) -> bool:
        """Supersede the latest row for key and type, or insert a new one."""
        expires_at = get_current_timestamp() + timedelta(seconds=ttl_seconds)
        async with self._session("set", key) as session:
            record = (
                await session.execute(self._latest(key, entry.cache_type))
            ).scalar_one_or_none()
            if record is None:
                record = CachedEntryRecord(
                    cache_key=key, cache_type=entry.cache_type.value
                )
                session.add(record)

            record.payload = entry.payload.to_dict()
            record.created_at = entry.created_at
            record.expires_at = expires_at
            record.entry_metadata = entry.metadata.to_dict()
        return True

    async def delete(self, key: str) -> bool:
        async with self._session("delete", key) as session:
            result = await session.execute(
                delete(CachedEntryRecord).where(CachedEntryRecord.cache_key == key)
            )
        return result.rowcount > 0

    async def delete_matching(self, pattern: str) -> int:
        async with self._session("delete_matching", pattern) as session:
            result = await session.execute(
                delete(CachedEntryRecord).where(
                    CachedEntryRecord.cache_key.like(glob_to_like(pattern), escape="\\")
                )
            )
        return result.rowcount

    async def mark_expired(self, pattern: str) -> int:
        """Expire matching live rows now, keeping them for audit."""
        now = get_current_timestamp()
        async with self._session("mark_expired", pattern) as session:
            result = await session.execute(
                update(CachedEntryRecord)
                .where(
                    CachedEntryRecord.cache_key.like(glob_to_like(pattern), escape="\\"),
                    CachedEntryRecord.expires_at > now,
                )
                .values(expires_at=now)
            )
        return result.rowcount

    async def purge_expired(self) -> int:
        now = get_current_timestamp()
        async with self._session("purge_expired") as session:
            result = await session.execute(
                delete(CachedEntryRecord).where(CachedEntryRecord.expires_at <= now)
            )
        logger.info(f"Purged {result.rowcount} expired cache rows")
        return result.rowcount

    async def purge_older_than(self, hours: int) -> int:
        cutoff = get_current_timestamp() - timedelta(hours=hours)
        async with self._session("purge_older_than") as session:
            result = await session.execute(
                delete(CachedEntryRecord).where(CachedEntryRecord.created_at < cutoff)
            )
        logger.info(f"Purged {result.rowcount} cache rows older than {hours}h")
        return result.rowcount

    async def remove_duplicates(self) -> int:
        """Keep only the most recently created row per (key, type).

        Ties on created_at keep the row with the highest id.
        """
        async with self._session("remove_duplicates") as session:
            rows = (
                await session.execute(
                    select(
                        CachedEntryRecord.id,
                        CachedEntryRecord.cache_key,
                        CachedEntryRecord.cache_type,
                    ).order_by(
                        CachedEntryRecord.cache_key,
                        CachedEntryRecord.cache_type,
                        CachedEntryRecord.created_at.desc(),
                        CachedEntryRecord.id.desc(),
                    )
                )
            ).all()

            seen = set()
            stale_ids: List[int] = []
            for row_id, cache_key, cache_type in rows:
                group = (cache_key, cache_type)
                if group in seen:
                    stale_ids.append(row_id)
                else:
                    seen.add(group)

            if stale_ids:
                await session.execute(
                    delete(CachedEntryRecord).where(CachedEntryRecord.id.in_(stale_ids))
                )

        logger.info(f"Removed {len(stale_ids)} duplicate cache rows")
        return len(stale_ids)

    async def stats(self) -> Dict[str, Any]:
        now = get_current_timestamp()
        async with self._session("stats") as session:
            total = (
                await session.execute(select(func.count(CachedEntryRecord.id)))
            ).scalar_one()
            active_by_type = (
                await session.execute(
                    select(CachedEntryRecord.cache_type, func.count(CachedEntryRecord.id))
                    .where(CachedEntryRecord.expires_at > now)
                    .group_by(CachedEntryRecord.cache_type)
                )
            ).all()

        by_type = {cache_type: count for cache_type, count in active_by_type}
        active = sum(by_type.values())
        return {
            "tier": "persistent",
            "total": total,
            "active": active,
            "expired": total - active,
            "by_type": by_type,
        }
