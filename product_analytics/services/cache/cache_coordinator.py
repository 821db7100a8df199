"""
Cache Coordinator

Read-through / write-through policy across the volatile tier, the
persistent tier and the upstream API.

Tiers are consulted strictly in order (volatile, persistent, upstream)
and a hit at an earlier tier short-circuits the rest. A volatile outage
degrades to a miss; persistent and upstream failures propagate.
"""

import math
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import structlog
from opentelemetry import trace
from prometheus_client import Counter

from ...constants import get_current_timestamp
from ...core.exceptions import ValidationError
from ...domain.cache import (
    TTL,
    CacheEntry,
    CacheKey,
    CacheMetadata,
    CachePayload,
    CacheType,
    CatalogPayload,
    DateRange,
    RevenuePayload,
    TierTTLs,
)
from ...infrastructure.stores import PersistentCacheStore, VolatileCacheStore
from ...infrastructure.upstream import UpstreamClient

logger = structlog.get_logger()
tracer = trace.get_tracer(__name__)

CACHE_LOOKUPS = Counter(
    "product_analytics_cache_lookups_total",
    "Cache lookups by tier and outcome",
    ["tier", "cache_type", "result"],
)
UPSTREAM_FETCHES = Counter(
    "product_analytics_upstream_fetches_total",
    "Upstream loads triggered by full cache misses",
    ["cache_type"],
)

VOLATILE_RECONNECT_INTERVAL = timedelta(seconds=30)


class CacheCoordinator:
    """
    Two-tier cache coordinator.

    Owns no data itself; every read and write goes through the volatile
    store, the persistent store and, on a full miss, the upstream client.
    """

    def __init__(
        self,
        volatile: VolatileCacheStore,
        persistent: PersistentCacheStore,
        upstream: UpstreamClient,
        ttls: TierTTLs,
        target_products: Sequence[str],
        lookback_days: int = 3,
    ):
        self.volatile = volatile
        self.persistent = persistent
        self.upstream = upstream
        self.ttls = ttls
        self.target_products = [str(product_id) for product_id in target_products]
        self.lookback_days = lookback_days

        for cache_type in ttls.violations():
            logger.warning(
                "Persistent TTL does not exceed volatile TTL",
                cache_type=cache_type.value,
                volatile_seconds=ttls.volatile_for(cache_type).seconds,
                persistent_seconds=ttls.persistent_for(cache_type).seconds,
            )

    async def _volatile_available(self) -> bool:
        """Check the volatile connection state, retrying the ping periodically."""
        if self.volatile.is_connected:
            return True
        if get_current_timestamp() - self.volatile.state.changed_at >= VOLATILE_RECONNECT_INTERVAL:
            return await self.volatile.connect()
        return False

    async def get(
        self, cache_type: Union[CacheType, str], identifier: str = ""
    ) -> Optional[CachePayload]:
        """
        Get a payload, falling through volatile, persistent and upstream.

        Returns:
            The payload, or None when no tier and no upstream source has it

        Raises:
            ValidationError: For an unknown type or a missing identifier
            PersistentStoreError: If the persistent tier fails
            UpstreamError: If the upstream load fails
        """
        cache_type = CacheType.parse(cache_type)
        key = CacheKey.for_entry(cache_type, identifier)

        with tracer.start_as_current_span("cache_coordinator.get") as span:
            span.set_attribute("cache.type", cache_type.value)
            span.set_attribute("cache.key", key.value)

            if await self._volatile_available():
                entry = await self.volatile.get(key.value)
                if entry is not None:
                    CACHE_LOOKUPS.labels("volatile", cache_type.value, "hit").inc()
                    span.set_attribute("cache.tier", "volatile")
                    logger.debug("Volatile cache hit", key=key.value)
                    return entry.payload
            CACHE_LOOKUPS.labels("volatile", cache_type.value, "miss").inc()

            entry = await self.persistent.get(key.value, cache_type)
            if entry is not None:
                CACHE_LOOKUPS.labels("persistent", cache_type.value, "hit").inc()
                span.set_attribute("cache.tier", "persistent")
                logger.debug("Persistent cache hit", key=key.value)
                await self._backfill_volatile(key, entry)
                return entry.payload
            CACHE_LOOKUPS.labels("persistent", cache_type.value, "miss").inc()

            payload, metadata = await self._load_from_upstream(cache_type, identifier)
            if payload is None:
                span.set_attribute("cache.tier", "none")
                logger.info("No upstream source for cache miss", key=key.value)
                return None

            span.set_attribute("cache.tier", "upstream")
            await self._write_through(cache_type, identifier, payload, metadata)
            return payload

    async def _backfill_volatile(self, key: CacheKey, entry: CacheEntry) -> None:
        if not await self._volatile_available():
            return
        remaining = (entry.expires_at - get_current_timestamp()).total_seconds()
        ttl_seconds = min(
            self.ttls.volatile_for(entry.cache_type).seconds, math.ceil(remaining)
        )
        if ttl_seconds <= 0:
            return
        await self.volatile.set(key.value, entry.expiring_in(TTL(ttl_seconds)), ttl_seconds)

    async def _load_from_upstream(
        self, cache_type: CacheType, identifier: str
    ) -> tuple:
        match cache_type:
            case CacheType.CATALOG:
                UPSTREAM_FETCHES.labels(cache_type.value).inc()
                product_ids = [identifier] if identifier else self.target_products
                products = await self.upstream.fetch_catalog(product_ids)
                return CatalogPayload(products=products), CacheMetadata(
                    subject_id=identifier or None
                )
            case CacheType.ORDER_REVENUE:
                UPSTREAM_FETCHES.labels(cache_type.value).inc()
                date_range = DateRange.last_days(self.lookback_days)
                search = await self.upstream.fetch_order_search(identifier, date_range)
                totals = await self.upstream.fetch_order_details(search.order_ids)
                payload = RevenuePayload(
                    product_id=identifier,
                    total_orders=search.total_orders,
                    order_ids=search.order_ids,
                    total_revenue=totals.revenue,
                    total_quantity=totals.quantity,
                    date_range=search.date_range,
                )
                return payload, CacheMetadata(
                    subject_id=identifier, date_range=search.date_range.label()
                )
            case CacheType.ANALYTICS_SUMMARY:
                # Produced by the analytics job only.
                return None, None
        raise ValidationError(f"Unknown cache type: {cache_type}", field="cache_type")

    async def _write_through(
        self,
        cache_type: CacheType,
        identifier: str,
        payload: CachePayload,
        metadata: Optional[CacheMetadata] = None,
    ) -> CacheEntry:
        persistent_ttl = self.ttls.persistent_for(cache_type)
        volatile_ttl = self.ttls.volatile_for(cache_type)
        entry = CacheEntry.create(cache_type, identifier, payload, persistent_ttl, metadata)

        await self.persistent.set(entry.key.value, entry, persistent_ttl.seconds)
        # Unreachable writes are recorded by the store and purged on reconnect.
        await self._volatile_available()
        await self.volatile.set(
            entry.key.value, entry.expiring_in(volatile_ttl), volatile_ttl.seconds
        )

        logger.info(
            "Cached entry in both tiers",
            key=entry.key.value,
            volatile_ttl=volatile_ttl.seconds,
            persistent_ttl=persistent_ttl.seconds,
        )
        return entry

    async def put(
        self,
        cache_type: Union[CacheType, str],
        identifier: str,
        payload: Any,
        metadata: Optional[CacheMetadata] = None,
    ) -> CacheEntry:
        """Write a payload to both tiers without consulting upstream."""
        cache_type = CacheType.parse(cache_type)
        with tracer.start_as_current_span("cache_coordinator.put") as span:
            span.set_attribute("cache.type", cache_type.value)
            return await self._write_through(cache_type, identifier, payload, metadata)

    async def invalidate(
        self, patterns: Optional[Iterable[Union[CacheType, str]]] = None
    ) -> Dict[str, Any]:
        """
        Invalidate matching entries in both tiers.

        Volatile keys are deleted, or purged on reconnect when Redis is
        unreachable; persistent rows are marked expired and kept. With no
        patterns every cache type is invalidated.
        """
        resolved = self._resolve_patterns(patterns)

        with tracer.start_as_current_span("cache_coordinator.invalidate") as span:
            span.set_attribute("cache.patterns", ",".join(resolved))
            volatile_deleted = 0
            persistent_expired = 0
            await self._volatile_available()

            for pattern in resolved:
                volatile_deleted += await self.volatile.delete_matching(pattern)
                persistent_expired += await self.persistent.mark_expired(pattern)

        logger.info(
            "Cache invalidated",
            patterns=resolved,
            volatile_deleted=volatile_deleted,
            persistent_expired=persistent_expired,
        )
        return {
            "patterns": resolved,
            "volatile_deleted": volatile_deleted,
            "persistent_expired": persistent_expired,
        }

    @staticmethod
    def _resolve_patterns(
        patterns: Optional[Iterable[Union[CacheType, str]]]
    ) -> List[str]:
        if patterns is None:
            return [CacheKey.pattern_for(cache_type) for cache_type in CacheType]

        resolved = []
        for pattern in patterns:
            if isinstance(pattern, CacheType):
                resolved.append(CacheKey.pattern_for(pattern))
            elif isinstance(pattern, str) and pattern.strip():
                resolved.append(pattern.strip())
            else:
                raise ValidationError(
                    "Invalidation patterns must be non-empty strings",
                    field="patterns",
                    value=pattern,
                )
        return resolved

    async def stats(self) -> Dict[str, Any]:
        await self._volatile_available()
        return {
            "volatile": await self.volatile.stats(),
            "persistent": await self.persistent.stats(),
            "ttls": {
                cache_type.value: {
                    "volatile": self.ttls.volatile_for(cache_type).seconds,
                    "persistent": self.ttls.persistent_for(cache_type).seconds,
                }
                for cache_type in CacheType
            },
        }
