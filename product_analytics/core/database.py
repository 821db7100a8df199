"""
Product Analytics Database Configuration

Async engine and session management for the product store and the
persistent cache tier. The initial connection is retried with
exponential backoff.
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
from prometheus_client import Counter, Histogram
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..models import Base
from .config import Settings, get_settings

logger = structlog.get_logger()

DB_CONNECTION_DURATION = Histogram(
    "product_analytics_db_connection_duration_seconds",
    "Time spent establishing database connections",
)
DB_FAILED_CONNECTIONS = Counter(
    "product_analytics_db_failed_connections_total",
    "Total number of failed database connection attempts",
)


class DatabaseManager:
    """
    Database connection manager.

    Owns the async engine and the session factory. SQLite URLs get a
    single shared connection so in-memory databases survive across
    sessions.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker] = None

    @property
    def is_sqlite(self) -> bool:
        return self.settings.DATABASE_URL.startswith("sqlite")

    def _create_engine(self) -> AsyncEngine:
        if self.is_sqlite:
            return create_async_engine(
                self.settings.DATABASE_URL,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
                echo=self.settings.DEBUG,
            )
        return create_async_engine(
            self.settings.DATABASE_URL,
            pool_size=self.settings.DATABASE_POOL_SIZE,
            max_overflow=self.settings.DATABASE_MAX_OVERFLOW,
            pool_pre_ping=True,
            pool_recycle=3600,
            echo=self.settings.DEBUG,
        )

    async def _verify_connection(self) -> None:
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def initialize(self) -> None:
        """Create engine, verify connectivity and create tables."""
        if self.engine is not None:
            return

        start_time = time.time()
        self.engine = self._create_engine()

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.settings.DATABASE_CONNECT_ATTEMPTS),
                wait=wait_exponential(multiplier=1, min=1, max=10),
                retry=retry_if_exception_type((OperationalError, ConnectionError, OSError)),
                before_sleep=lambda retry_state: logger.warning(
                    "Database connection retry",
                    attempt=retry_state.attempt_number,
                ),
                reraise=True,
            ):
                with attempt:
                    await self._verify_connection()
        except Exception as e:
            DB_FAILED_CONNECTIONS.inc()
            logger.error("Failed to connect to database", error=str(e))
            await self.engine.dispose()
            self.engine = None
            raise

        DB_CONNECTION_DURATION.observe(time.time() - start_time)

        self.session_factory = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        logger.info(
            "Database initialized",
            dialect=self.engine.dialect.name,
            duration_seconds=round(time.time() - start_time, 3),
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Session scope that commits on success and rolls back on error."""
        if self.session_factory is None:
            await self.initialize()

        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def health_check(self) -> dict:
        try:
            await self._verify_connection()
            return {"status": "healthy", "dialect": self.engine.dialect.name}
        except Exception as e:
            return {"status": "unhealthy", "error": str(e)}

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
            self.session_factory = None
            logger.info("Database connections closed")
