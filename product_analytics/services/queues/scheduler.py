"""
Resync Scheduler

Optional periodic trigger that enqueues sync jobs through the normal
queue entry point. Disabled unless an interval is configured.
"""

import asyncio
from typing import Optional

import structlog

from ...domain.jobs import JobCategory, SyncRequest
from .job_queue import JobQueue

logger = structlog.get_logger()


class ResyncScheduler:
    def __init__(self, queue: JobQueue, interval_seconds: Optional[int]):
        self.queue = queue
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def enabled(self) -> bool:
        return bool(self.interval_seconds)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def trigger(self) -> str:
        """Enqueue one sync job now."""
        job_id = await self.queue.enqueue(JobCategory.SYNC, SyncRequest())
        logger.info("Scheduled resync enqueued", job_id=job_id)
        return job_id

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.trigger()
            except Exception as e:
                logger.error("Scheduled resync failed to enqueue", error=str(e))

    def start(self) -> None:
        if not self.enabled:
            logger.info("Auto-sync disabled")
            return
        if not self.running:
            self._task = asyncio.create_task(self._loop())
            logger.info("Auto-sync enabled", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
