"""
Main pytest configuration for all tests.

Redis is provided by fakeredis, the database by in-memory SQLite and the
upstream transaction API by an httpx MockTransport.
"""

import json
import os
from collections import Counter
from typing import Any, Dict, List, Optional, Set, Tuple

import fakeredis
import httpx
import pytest
from fakeredis import aioredis as fake_aioredis

# Set test environment variables before importing app modules
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["RUN_WORKERS"] = "false"

from product_analytics.core.config import Settings
from product_analytics.core.database import DatabaseManager
from product_analytics.domain.cache import TierTTLs
from product_analytics.infrastructure.stores import (
    PersistentCacheStore,
    VolatileCacheStore,
)
from product_analytics.infrastructure.upstream import UpstreamClient
from product_analytics.services.cache import CacheCoordinator

TARGET_PRODUCTS = ["2142", "2181", "834"]

DEFAULT_CATALOG = {
    "2142": {"product_name": "Night Serum", "product_sku": "NS-01", "product_price": "49.99"},
    "2181": {"product_name": "Day Cream", "product_sku": "DC-02", "product_price": "39.00"},
    "834": {"product_name": "Eye Gel", "product_sku": "EG-03", "product_price": "24.50"},
}


class UpstreamStub:
    """
    In-memory stand-in for the upstream transaction API.

    Counts calls per endpoint and answers with the configured catalog,
    order ids per product and totals per order.
    """

    def __init__(
        self,
        catalog: Optional[Dict[str, Dict[str, Any]]] = None,
        orders: Optional[Dict[str, List[str]]] = None,
        order_totals: Optional[Dict[str, Tuple[float, int]]] = None,
    ):
        self.catalog = dict(DEFAULT_CATALOG if catalog is None else catalog)
        self.orders = orders or {}
        self.order_totals = order_totals or {}
        self.calls: Counter = Counter()
        self.requests: List[Tuple[str, Dict[str, Any]]] = []
        self.failing_products: Set[str] = set()
        self.catalog_response_code = "100"
        self.catalog_http_status = 200

    def handler(self, request: httpx.Request) -> httpx.Response:
        endpoint = request.url.path.rsplit("/", 1)[-1]
        body = json.loads(request.content or b"{}")
        self.calls[endpoint] += 1
        self.requests.append((endpoint, body))

        if endpoint == "product_index":
            if self.catalog_http_status != 200:
                return httpx.Response(self.catalog_http_status, json={"error": "boom"})
            products = {
                pid: self.catalog[pid] for pid in body["product_id"] if pid in self.catalog
            }
            return httpx.Response(
                200,
                json={"response_code": self.catalog_response_code, "products": products},
            )

        if endpoint == "order_find":
            product_id = body["product_id"][0]
            if product_id in self.failing_products:
                return httpx.Response(500, json={"error": "upstream failure"})
            order_ids = self.orders.get(product_id, [])
            if not order_ids:
                return httpx.Response(200, json={"response_code": "333"})
            return httpx.Response(
                200,
                json={
                    "response_code": "100",
                    "total_orders": str(len(order_ids)),
                    "order_id": order_ids,
                },
            )

        if endpoint == "order_view":
            order_id = str(body["order_id"][0])
            total, quantity = self.order_totals.get(order_id, (0.0, 0))
            return httpx.Response(
                200,
                json={
                    "response_code": "100",
                    "order_total": f"{total:.2f}",
                    "main_product_quantity": str(quantity),
                },
            )

        return httpx.Response(404, json={"error": "unknown endpoint"})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def settings():
    """Settings isolated from the process environment and .env files."""
    return Settings(
        _env_file=None,
        ENVIRONMENT="test",
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        REDIS_URL="redis://localhost:6379/15",
        UPSTREAM_BASE_URL="https://upstream.test/api/v1",
        UPSTREAM_USERNAME="api-user",
        UPSTREAM_PASSWORD="api-pass",
        TARGET_PRODUCTS=",".join(TARGET_PRODUCTS),
        RUN_WORKERS=False,
        WORKER_POLL_INTERVAL=0.05,
    )


@pytest.fixture
async def redis_client():
    client = fake_aioredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
async def database(settings):
    manager = DatabaseManager(settings)
    await manager.initialize()
    yield manager
    await manager.close()


@pytest.fixture
async def volatile(redis_client, settings):
    store = VolatileCacheStore(redis_client, key_prefix=settings.REDIS_KEY_PREFIX)
    await store.connect()
    return store


@pytest.fixture
def persistent(database):
    return PersistentCacheStore(database)


@pytest.fixture
def upstream_stub():
    return UpstreamStub(
        orders={"2142": ["101", "102"], "2181": ["201"]},
        order_totals={"101": (100.0, 1), "102": (150.5, 2), "201": (80.0, 1)},
    )


@pytest.fixture
async def upstream(settings, upstream_stub):
    client = UpstreamClient(settings, transport=upstream_stub.transport)
    yield client
    await client.close()


@pytest.fixture
def coordinator(volatile, persistent, upstream, settings):
    return CacheCoordinator(
        volatile=volatile,
        persistent=persistent,
        upstream=upstream,
        ttls=TierTTLs.from_settings(settings),
        target_products=settings.target_products_list,
        lookback_days=settings.ORDER_LOOKBACK_DAYS,
    )
