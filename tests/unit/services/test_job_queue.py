"""
Unit tests for the Redis job queue.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock

from redis.exceptions import ConnectionError as RedisConnectionError

from product_analytics.core.exceptions import (
    InvalidJobTransition,
    JobNotFoundError,
    QueueUnavailable,
    ValidationError,
)
from product_analytics.domain.jobs import (
    CleanupRequest,
    CleanupScope,
    JobCategory,
    JobStatus,
    SyncRequest,
)
from product_analytics.services.queues import JobQueue


@pytest.fixture
def queue(redis_client, settings):
    return JobQueue(
        redis_client,
        key_prefix=settings.QUEUE_KEY_PREFIX,
        retention_seconds=3600,
    )


class TestEnqueue:
    """Test adding jobs to the queue."""

    @pytest.mark.asyncio
    async def test_enqueue_creates_waiting_job(self, queue):
        job_id = await queue.enqueue(JobCategory.SYNC, SyncRequest(product_ids=["2142"]))

        job = await queue.get(job_id)
        assert job.status is JobStatus.WAITING
        assert job.category is JobCategory.SYNC
        assert job.request == {"product_ids": ["2142"]}

    @pytest.mark.asyncio
    async def test_enqueue_with_dict_request(self, queue):
        job_id = await queue.enqueue("cleanup", {"scope": "database"})

        job = await queue.get(job_id)
        assert job.typed_request() == CleanupRequest(scope=CleanupScope.DATABASE)

    @pytest.mark.asyncio
    async def test_enqueue_rejects_bad_input(self, queue):
        with pytest.raises(ValidationError):
            await queue.enqueue("reindex")
        with pytest.raises(ValidationError):
            await queue.enqueue(JobCategory.SYNC, CleanupRequest())

        assert (await queue.stats())["sync"] == {"waiting": 0, "active": 0}

    @pytest.mark.asyncio
    async def test_get_unknown_job(self, queue):
        with pytest.raises(JobNotFoundError):
            await queue.get("missing")


class TestClaim:
    """Test job claiming."""

    @pytest.mark.asyncio
    async def test_claim_is_fifo_per_category(self, queue):
        first = await queue.enqueue(JobCategory.ANALYTICS)
        second = await queue.enqueue(JobCategory.ANALYTICS)
        await queue.enqueue(JobCategory.CLEANUP)

        claimed = await queue.claim(JobCategory.ANALYTICS, "worker-1")
        assert claimed.id == first
        assert claimed.status is JobStatus.ACTIVE
        assert claimed.worker_id == "worker-1"

        claimed = await queue.claim(JobCategory.ANALYTICS, "worker-1")
        assert claimed.id == second
        assert await queue.claim(JobCategory.ANALYTICS, "worker-1") is None

    @pytest.mark.asyncio
    async def test_concurrent_claims_are_exclusive(self, queue):
        job_ids = {await queue.enqueue(JobCategory.SYNC) for _ in range(5)}

        claims = await asyncio.gather(
            *(queue.claim(JobCategory.SYNC, f"worker-{n}") for n in range(8))
        )
        claimed_ids = [job.id for job in claims if job is not None]

        assert len(claimed_ids) == 5
        assert set(claimed_ids) == job_ids

    @pytest.mark.asyncio
    async def test_claim_drops_job_without_record(self, queue, redis_client):
        job_id = await queue.enqueue(JobCategory.SYNC)
        await redis_client.delete(f"pa:jobs:job:{job_id}")

        assert await queue.claim(JobCategory.SYNC, "worker-1") is None
        assert (await queue.stats())["sync"] == {"waiting": 0, "active": 0}

    @pytest.mark.asyncio
    async def test_stats_track_lists(self, queue):
        await queue.enqueue(JobCategory.SYNC)
        await queue.enqueue(JobCategory.SYNC)
        await queue.claim(JobCategory.SYNC, "worker-1")

        stats = await queue.stats()
        assert stats["sync"] == {"waiting": 1, "active": 1}
        assert stats["cache-warm"] == {"waiting": 0, "active": 0}
        assert set(stats) == {"sync", "analytics", "cache-warm", "cleanup"}


class TestJobCompletion:
    @pytest.fixture
    async def active_job(self, queue):
        await queue.enqueue(JobCategory.ANALYTICS)
        return await queue.claim(JobCategory.ANALYTICS, "worker-1")

    @pytest.mark.asyncio
    async def test_progress_is_monotonic(self, queue, active_job):
        await queue.update_progress(active_job.id, 50)
        job = await queue.update_progress(active_job.id, 30)

        assert job.progress == 50
        assert (await queue.get(active_job.id)).progress == 50

    @pytest.mark.asyncio
    async def test_complete(self, queue, active_job, redis_client):
        job = await queue.complete(active_job.id, {"summary": {}})

        assert job.status is JobStatus.COMPLETED
        assert job.progress == 100
        assert (await queue.stats())["analytics"]["active"] == 0
        assert 0 < await redis_client.ttl(f"pa:jobs:job:{job.id}") <= 3600

    @pytest.mark.asyncio
    async def test_fail(self, queue, active_job):
        job = await queue.fail(active_job.id, "boom")

        stored = await queue.get(job.id)
        assert stored.status is JobStatus.FAILED
        assert stored.error == "boom"

    @pytest.mark.asyncio
    async def test_terminal_job_cannot_change(self, queue, active_job):
        await queue.complete(active_job.id, {})

        with pytest.raises(InvalidJobTransition):
            await queue.fail(active_job.id, "late")
        with pytest.raises(InvalidJobTransition):
            await queue.update_progress(active_job.id, 10)


class TestQueueOutage:
    @pytest.mark.asyncio
    async def test_redis_errors_raise_queue_unavailable(self):
        client = AsyncMock()
        client.set.side_effect = RedisConnectionError("Connection refused")
        queue = JobQueue(client, key_prefix="pa:jobs:")

        with pytest.raises(QueueUnavailable) as exc_info:
            await queue.enqueue(JobCategory.SYNC)
        assert exc_info.value.error_code == "QUEUE_UNAVAILABLE"
