"""
Queue Workers

Background workers that claim jobs from the queue, run them through the
job handlers and report completion or failure.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from opentelemetry import trace
from prometheus_client import Counter

from ...constants import get_current_timestamp
from ...core.exceptions import JobExecutionError
from ...domain.jobs import Job, JobCategory
from .handlers import JobHandlers
from .job_queue import JobQueue

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

JOB_OUTCOMES = Counter(
    "product_analytics_jobs_total",
    "Finished jobs by category and outcome",
    ["category", "outcome"],
)


class QueueWorker:
    """
    Worker for a single job category.

    Runs one job at a time; a claimed job runs to completion or failure.
    """

    def __init__(
        self,
        worker_id: str,
        category: JobCategory,
        queue: JobQueue,
        handlers: JobHandlers,
        poll_interval: float = 1.0,
    ):
        self.worker_id = worker_id
        self.category = category
        self.queue = queue
        self.handlers = handlers
        self.poll_interval = poll_interval

        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._current_job: Optional[str] = None
        self._stats: Dict[str, Any] = {
            "jobs_processed": 0,
            "jobs_completed": 0,
            "jobs_failed": 0,
            "start_time": None,
            "last_activity": None,
        }

    def start(self) -> asyncio.Task:
        """Start the polling loop in the background."""
        if self._task is None or self._task.done():
            self._running = True
            self._stats["start_time"] = get_current_timestamp()
            self._task = asyncio.create_task(self._worker_loop())
            logger.info(f"Starting worker {self.worker_id} for {self.category.value} jobs")
        return self._task

    async def stop(self, graceful_timeout: float = 30) -> None:
        """Stop polling; a job in flight is allowed to finish."""
        self._running = False
        if self._task is None:
            return

        try:
            await asyncio.wait_for(self._task, timeout=graceful_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Worker {self.worker_id} shutdown timeout with job {self._current_job} running"
            )
        finally:
            self._task = None
        logger.info(f"Worker {self.worker_id} stopped")

    async def _worker_loop(self) -> None:
        while self._running:
            try:
                job = await self.process_next()
                if job is None:
                    await asyncio.sleep(self.poll_interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Worker {self.worker_id} error in main loop: {e}")
                await asyncio.sleep(self.poll_interval)

    async def process_next(self) -> Optional[Job]:
        """Claim and run one job. Returns the finished job, or None if idle."""
        job = await self.queue.claim(self.category, self.worker_id)
        if job is None:
            return None

        self._current_job = job.id
        self._stats["last_activity"] = get_current_timestamp()

        with tracer.start_as_current_span("worker.process_job") as span:
            span.set_attribute("worker_id", self.worker_id)
            span.set_attribute("job_id", job.id)
            span.set_attribute("job_category", self.category.value)

            try:
                result = await self.handlers.handle(job, self._progress_reporter(job.id))
            except Exception as e:
                error = JobExecutionError(job.id, self.category.value, original_error=e)
                logger.error(error.message)
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                finished = await self.queue.fail(job.id, error.message)
                self._stats["jobs_failed"] += 1
                JOB_OUTCOMES.labels(self.category.value, "failed").inc()
            else:
                finished = await self.queue.complete(job.id, result)
                self._stats["jobs_completed"] += 1
                JOB_OUTCOMES.labels(self.category.value, "completed").inc()
            finally:
                self._current_job = None
                self._stats["jobs_processed"] += 1

        return finished

    def _progress_reporter(self, job_id: str):
        async def report(progress: int) -> None:
            await self.queue.update_progress(job_id, progress)

        return report

    def get_stats(self) -> Dict[str, Any]:
        runtime = None
        start_time: Optional[datetime] = self._stats["start_time"]
        if start_time:
            runtime = (get_current_timestamp() - start_time).total_seconds()

        return {
            "worker_id": self.worker_id,
            "category": self.category.value,
            "running": self._running,
            "current_job": self._current_job,
            "stats": {
                key: value.isoformat() if isinstance(value, datetime) else value
                for key, value in self._stats.items()
            },
            "runtime_seconds": runtime,
        }


class WorkerPool:
    """
    One worker per job category.

    Workers share nothing but the queue and the stores behind the handlers.
    """

    def __init__(
        self,
        queue: JobQueue,
        handlers: JobHandlers,
        pool_name: str = "analytics-workers",
        poll_interval: float = 1.0,
    ):
        self.pool_name = pool_name
        self.queue = queue
        self.handlers = handlers
        self.workers: Dict[JobCategory, QueueWorker] = {
            category: QueueWorker(
                worker_id=f"{pool_name}-{category.value}",
                category=category,
                queue=queue,
                handlers=handlers,
                poll_interval=poll_interval,
            )
            for category in JobCategory
        }
        self._running = False

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        for worker in self.workers.values():
            worker.start()
        logger.info(
            f"Worker pool {self.pool_name} started with {len(self.workers)} workers"
        )

    async def stop(self, graceful_timeout: float = 30) -> None:
        if not self._running:
            return
        self._running = False
        await asyncio.gather(
            *(worker.stop(graceful_timeout) for worker in self.workers.values()),
            return_exceptions=True,
        )
        logger.info(f"Worker pool {self.pool_name} stopped")

    async def process_next(self, category: JobCategory) -> Optional[Job]:
        """Run a single claim-execute cycle for a category."""
        return await self.workers[JobCategory.parse(category)].process_next()

    def get_pool_stats(self) -> Dict[str, Any]:
        workers: List[Dict[str, Any]] = [w.get_stats() for w in self.workers.values()]
        processed = sum(w["stats"]["jobs_processed"] for w in workers)
        completed = sum(w["stats"]["jobs_completed"] for w in workers)
        return {
            "pool_name": self.pool_name,
            "running": self._running,
            "total_workers": len(workers),
            "total_processed": processed,
            "total_completed": completed,
            "total_failed": sum(w["stats"]["jobs_failed"] for w in workers),
            "success_rate": completed / processed if processed > 0 else 0,
            "workers": workers,
        }
