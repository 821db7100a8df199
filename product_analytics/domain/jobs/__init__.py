"""
Job Domain

Job records, status machine and typed job requests.
"""

from .models import (
    AnalyticsRequest,
    CleanupRequest,
    CleanupScope,
    Job,
    JobCategory,
    JobRequest,
    JobStatus,
    SyncRequest,
    WarmRequest,
    WarmTarget,
    parse_request,
)

__all__ = [
    "AnalyticsRequest",
    "CleanupRequest",
    "CleanupScope",
    "Job",
    "JobCategory",
    "JobRequest",
    "JobStatus",
    "SyncRequest",
    "WarmRequest",
    "WarmTarget",
    "parse_request",
]
