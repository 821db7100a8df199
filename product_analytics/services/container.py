"""
Service Container

Builds and owns the long-lived components: database, Redis client,
cache tiers, upstream client, coordinator, queue, workers and scheduler.
"""

from dataclasses import dataclass
from typing import Optional

import httpx
import structlog
from redis.asyncio import Redis

from ..core.config import Settings, get_settings
from ..core.database import DatabaseManager
from ..domain.cache import TierTTLs
from ..infrastructure.redis import RedisConnectionFactory
from ..infrastructure.repositories import ProductRepository
from ..infrastructure.stores import PersistentCacheStore, VolatileCacheStore
from ..infrastructure.upstream import UpstreamClient
from .cache import CacheCoordinator
from .metrics import MetricsAggregator
from .queues import JobHandlers, JobQueue, ResyncScheduler, WorkerPool

logger = structlog.get_logger()


@dataclass
class ServiceContainer:
    settings: Settings
    database: DatabaseManager
    redis: Redis
    volatile: VolatileCacheStore
    persistent: PersistentCacheStore
    upstream: UpstreamClient
    coordinator: CacheCoordinator
    products: ProductRepository
    aggregator: MetricsAggregator
    queue: JobQueue
    handlers: JobHandlers
    workers: WorkerPool
    scheduler: ResyncScheduler
    redis_factory: Optional[RedisConnectionFactory] = None

    @classmethod
    async def build(
        cls,
        settings: Optional[Settings] = None,
        redis_client: Optional[Redis] = None,
        upstream_transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "ServiceContainer":
        """
        Wire every component from settings.

        Args:
            settings: Application settings (defaults to get_settings())
            redis_client: Pre-built Redis client; a pooled one is created if omitted
            upstream_transport: Optional httpx transport for the upstream client
        """
        settings = settings or get_settings()

        redis_factory = None
        if redis_client is None:
            redis_factory = RedisConnectionFactory(settings)
            redis_client = await redis_factory.get_client()

        database = DatabaseManager(settings)
        await database.initialize()

        volatile = VolatileCacheStore(redis_client, key_prefix=settings.REDIS_KEY_PREFIX)
        await volatile.connect()
        persistent = PersistentCacheStore(database)
        upstream = UpstreamClient(settings, transport=upstream_transport)

        coordinator = CacheCoordinator(
            volatile=volatile,
            persistent=persistent,
            upstream=upstream,
            ttls=TierTTLs.from_settings(settings),
            target_products=settings.target_products_list,
            lookback_days=settings.ORDER_LOOKBACK_DAYS,
        )
        products = ProductRepository(database)
        aggregator = MetricsAggregator(default_cost_rate=settings.DEFAULT_COST_RATE)

        queue = JobQueue(
            redis_client,
            key_prefix=settings.QUEUE_KEY_PREFIX,
            retention_seconds=settings.JOB_RETENTION_SECONDS,
        )
        handlers = JobHandlers(
            coordinator=coordinator,
            products=products,
            aggregator=aggregator,
            persistent=persistent,
            target_products=settings.target_products_list,
            refund_rate=settings.DEFAULT_REFUND_RATE,
            cleanup_max_age_hours=settings.CLEANUP_MAX_AGE_HOURS,
        )
        workers = WorkerPool(
            queue, handlers, poll_interval=settings.WORKER_POLL_INTERVAL
        )
        scheduler = ResyncScheduler(queue, settings.AUTO_SYNC_INTERVAL_SECONDS)

        logger.info(
            "Services built",
            environment=settings.ENVIRONMENT,
            target_products=settings.target_products_list,
            volatile_connected=volatile.is_connected,
        )
        return cls(
            settings=settings,
            database=database,
            redis=redis_client,
            volatile=volatile,
            persistent=persistent,
            upstream=upstream,
            coordinator=coordinator,
            products=products,
            aggregator=aggregator,
            queue=queue,
            handlers=handlers,
            workers=workers,
            scheduler=scheduler,
            redis_factory=redis_factory,
        )

    async def start_background(self) -> None:
        await self.workers.start()
        self.scheduler.start()

    async def close(self) -> None:
        await self.scheduler.stop()
        await self.workers.stop()
        await self.upstream.close()
        await self.database.close()
        if self.redis_factory is not None:
            await self.redis_factory.close()
        logger.info("Services closed")
