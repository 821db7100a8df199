"""
Queue Management Services

Redis-backed job queue, per-category workers and the job handlers
they run.
"""

from .handlers import JobHandlers
from .job_queue import JobQueue
from .scheduler import ResyncScheduler
from .workers import QueueWorker, WorkerPool

__all__ = [
    "JobHandlers",
    "JobQueue",
    "QueueWorker",
    "ResyncScheduler",
    "WorkerPool",
]
