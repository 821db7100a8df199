"""
Job Queue

Redis-backed queue with one independent waiting/active list pair per job
category. Claiming moves a job id atomically from the waiting list to
the active list, so exactly one worker owns each job.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional, Union

from opentelemetry import trace
from pydantic import BaseModel
from redis.asyncio import Redis
from redis.exceptions import RedisError

from ...core.exceptions import JobNotFoundError, QueueUnavailable
from ...domain.jobs import Job, JobCategory, parse_request

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class JobQueue:
    """
    Durable job queue.

    Layout per category: ``<prefix><category>:waiting`` and
    ``<prefix><category>:active`` lists of job ids, plus one JSON record
    per job at ``<prefix>job:<id>``. Terminal records expire after the
    retention period.
    """

    def __init__(self, client: Redis, key_prefix: str = "jobs:", retention_seconds: int = 86400):
        self.client = client
        self.key_prefix = key_prefix
        self.retention_seconds = retention_seconds

    def _waiting_key(self, category: JobCategory) -> str:
        return f"{self.key_prefix}{category.value}:waiting"

    def _active_key(self, category: JobCategory) -> str:
        return f"{self.key_prefix}{category.value}:active"

    def _job_key(self, job_id: str) -> str:
        return f"{self.key_prefix}job:{job_id}"

    @asynccontextmanager
    async def _redis(self, operation: str):
        try:
            yield self.client
        except RedisError as e:
            logger.error(f"Job queue {operation} failed: {e}")
            raise QueueUnavailable(
                message=f"Job queue {operation} failed: {e}",
                operation=operation,
                original_error=e,
            ) from e

    async def _save(self, job: Job, expire: bool = False) -> None:
        async with self._redis("save") as redis:
            await redis.set(
                self._job_key(job.id),
                job.model_dump_json(),
                ex=self.retention_seconds if expire else None,
            )

    async def enqueue(
        self,
        category: Union[JobCategory, str],
        request: Union[None, Dict[str, Any], BaseModel] = None,
    ) -> str:
        """
        Add a job to its category queue.

        Returns:
            The new job id

        Raises:
            ValidationError: If the category is unknown or the request does not fit it
        """
        category = JobCategory.parse(category)
        typed = parse_request(category, request)
        job = Job.new(category, typed)

        with tracer.start_as_current_span("job_queue.enqueue") as span:
            span.set_attribute("job.category", category.value)
            span.set_attribute("job.id", job.id)

            await self._save(job)
            async with self._redis("enqueue") as redis:
                await redis.lpush(self._waiting_key(category), job.id)

        logger.info(f"Enqueued {category.value} job {job.id}")
        return job.id

    async def get(self, job_id: str) -> Job:
        async with self._redis("get") as redis:
            raw = await redis.get(self._job_key(job_id))
        if raw is None:
            raise JobNotFoundError(job_id)
        return Job.model_validate_json(raw)

    async def claim(
        self, category: Union[JobCategory, str], worker_id: str
    ) -> Optional[Job]:
        """Claim the oldest waiting job of a category, or return None."""
        category = JobCategory.parse(category)
        async with self._redis("claim") as redis:
            job_id = await redis.lmove(
                self._waiting_key(category), self._active_key(category), "RIGHT", "LEFT"
            )
        if job_id is None:
            return None

        try:
            job = await self.get(job_id)
        except JobNotFoundError:
            # Record expired or was removed while waiting.
            logger.warning(f"Dropping claimed job {job_id} without a record")
            async with self._redis("claim") as redis:
                await redis.lrem(self._active_key(category), 1, job_id)
            return None

        job.start(worker_id)
        await self._save(job)
        logger.debug(f"Worker {worker_id} claimed {category.value} job {job_id}")
        return job

    async def update_progress(self, job_id: str, progress: int) -> Job:
        job = await self.get(job_id)
        job.advance(progress)
        await self._save(job)
        return job

    async def complete(self, job_id: str, result: Dict[str, Any]) -> Job:
        job = await self.get(job_id)
        job.complete(result)
        await self._finish(job)
        logger.info(f"Job {job_id} completed")
        return job

    async def fail(self, job_id: str, error: str) -> Job:
        job = await self.get(job_id)
        job.fail(error)
        await self._finish(job)
        logger.warning(f"Job {job_id} failed: {error}")
        return job

    async def _finish(self, job: Job) -> None:
        await self._save(job, expire=True)
        async with self._redis("finish") as redis:
            await redis.lrem(self._active_key(job.category), 1, job.id)

    async def stats(self) -> Dict[str, Dict[str, int]]:
        """Waiting and active counts per category."""
        stats: Dict[str, Dict[str, int]] = {}
        async with self._redis("stats") as redis:
            for category in JobCategory:
                stats[category.value] = {
                    "waiting": await redis.llen(self._waiting_key(category)),
                    "active": await redis.llen(self._active_key(category)),
                }
        return stats
