"""
Job endpoints.

Enqueue background jobs and inspect them and the queues.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, status

from ...services.container import ServiceContainer
from ...services.queues import JobQueue
from ..dependencies import get_container, get_queue

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.get("/stats")
async def job_stats(
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    return {
        "queues": await container.queue.stats(),
        "workers": container.workers.get_pool_stats(),
        "auto_sync": {
            "enabled": container.scheduler.enabled,
            "interval_seconds": container.scheduler.interval_seconds,
        },
    }


@router.post("/{category}", status_code=status.HTTP_202_ACCEPTED)
async def enqueue_job(
    category: str,
    request: Optional[Dict[str, Any]] = Body(default=None),
    queue: JobQueue = Depends(get_queue),
) -> Dict[str, Any]:
    """Enqueue a job; the body is the optional category-specific request."""
    job_id = await queue.enqueue(category, request)
    job = await queue.get(job_id)
    return {
        "job_id": job.id,
        "category": job.category.value,
        "status": job.status.value,
        "request": job.request,
    }


@router.get("/{job_id}")
async def get_job(job_id: str, queue: JobQueue = Depends(get_queue)) -> Dict[str, Any]:
    job = await queue.get(job_id)
    return job.to_summary()
