"""
Integration tests for the HTTP API.

Runs the FastAPI app over a fully wired service container backed by
fakeredis, in-memory SQLite and the mocked upstream API.
"""

import httpx
import pytest
from unittest.mock import patch

from product_analytics.domain.jobs import JobCategory
from product_analytics.main import build_app, create_app, run
from product_analytics.services.container import ServiceContainer


@pytest.fixture
async def container(settings, redis_client, upstream_stub):
    services = await ServiceContainer.build(
        settings,
        redis_client=redis_client,
        upstream_transport=upstream_stub.transport,
    )
    yield services
    await services.close()


@pytest.fixture
async def client(container):
    app = create_app(container)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


async def run_job(container, category: JobCategory):
    await container.queue.enqueue(category)
    return await container.workers.process_next(category)


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/api/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["checks"]["database"]["status"] == "healthy"
        assert data["checks"]["volatile_cache"]["connected"] is True

    @pytest.mark.asyncio
    async def test_degraded_without_volatile_cache(self, client, container):
        async def refuse():
            return False

        container.volatile.state.mark_disconnected()
        container.volatile.connect = refuse

        response = await client.get("/api/health")

        assert response.json()["status"] == "degraded"


class TestProducts:
    """Test the product read routes."""

    @pytest.mark.asyncio
    async def test_list_products_after_sync(self, client, container):
        response = await client.get("/api/products")
        assert response.json()["total"] == 0

        await run_job(container, JobCategory.SYNC)

        response = await client.get("/api/products")
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 3
        assert [row["product_id"] for row in data["data"]] == ["2142", "2181", "834"]
        assert data["target_products"] == ["2142", "2181", "834"]
        assert data["lookback_days"] == 3

    @pytest.mark.asyncio
    async def test_find_products(self, client, container):
        await run_job(container, JobCategory.SYNC)

        response = await client.get("/api/products/find", params={"ids": "2142, 999"})

        assert response.status_code == 200
        data = response.json()
        assert data["searched"] == ["2142", "999"]
        assert data["found"] == ["2142"]
        assert data["data"][0]["net_revenue"] == 212.93

    @pytest.mark.asyncio
    async def test_find_requires_ids(self, client):
        response = await client.get("/api/products/find")

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "VALIDATION_ERROR"
        assert body["details"]["field"] == "ids"

    @pytest.mark.asyncio
    async def test_analytics_live_then_cached(self, client, container):
        await run_job(container, JobCategory.SYNC)

        response = await client.get("/api/products/analytics")
        assert response.json()["source"] == "live"
        assert response.json()["summary"]["total_products"] == 3

        await run_job(container, JobCategory.ANALYTICS)

        response = await client.get("/api/products/analytics")
        data = response.json()
        assert data["source"] == "cache"
        assert data["summary"]["total_revenue"] == 330.5


class TestJobs:
    """Test job routes."""

    @pytest.mark.asyncio
    async def test_enqueue_and_fetch(self, client):
        response = await client.post("/api/jobs/sync", json={"product_ids": ["2142"]})

        assert response.status_code == 202
        body = response.json()
        assert body["category"] == "sync"
        assert body["status"] == "waiting"
        assert body["request"] == {"product_ids": ["2142"]}

        response = await client.get(f"/api/jobs/{body['job_id']}")
        assert response.status_code == 200
        assert response.json()["status"] == "waiting"

    @pytest.mark.asyncio
    async def test_enqueue_without_body_uses_defaults(self, client):
        response = await client.post("/api/jobs/cache-warm")

        assert response.status_code == 202
        assert response.json()["request"] == {"keys": ["catalog", "analytics-summary"]}

    @pytest.mark.asyncio
    async def test_job_progress_visible_after_run(self, client, container):
        response = await client.post("/api/jobs/cleanup", json={"scope": "full"})
        job_id = response.json()["job_id"]

        await container.workers.process_next(JobCategory.CLEANUP)

        job = (await client.get(f"/api/jobs/{job_id}")).json()
        assert job["status"] == "completed"
        assert job["progress"] == 100
        assert job["result"]["scope"] == "full"

    @pytest.mark.asyncio
    async def test_invalid_requests(self, client):
        response = await client.post("/api/jobs/reindex")
        assert response.status_code == 400

        response = await client.post("/api/jobs/cleanup", json={"scope": "everything"})
        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_unknown_job(self, client):
        response = await client.get("/api/jobs/does-not-exist")

        assert response.status_code == 404
        assert response.json()["error"] == "JOB_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_job_stats(self, client):
        await client.post("/api/jobs/sync")

        response = await client.get("/api/jobs/stats")

        assert response.status_code == 200
        data = response.json()
        assert data["queues"]["sync"] == {"waiting": 1, "active": 0}
        assert data["workers"]["total_workers"] == 4
        assert data["auto_sync"] == {"enabled": False, "interval_seconds": None}


class TestCacheStats:
    @pytest.mark.asyncio
    async def test_cache_stats(self, client, container):
        await run_job(container, JobCategory.CACHE_WARM)

        response = await client.get("/api/cache/stats")

        assert response.status_code == 200
        data = response.json()
        assert data["volatile"]["keys"] == 1
        assert data["persistent"]["active"] == 1


class TestServerEntryPoint:
    def test_run_serves_app_factory(self):
        with patch("uvicorn.run") as uvicorn_run:
            run()

        uvicorn_run.assert_called_once_with(
            build_app, factory=True, host="0.0.0.0", port=8000
        )
