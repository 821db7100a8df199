"""
Job Domain Models

Job records, their state machine and the closed set of typed job
requests accepted by the queue.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from ...constants import get_current_timestamp
from ...core.exceptions import InvalidJobTransition, ValidationError


class JobCategory(str, Enum):
    """Job categories; each has its own queue and worker."""

    SYNC = "sync"
    ANALYTICS = "analytics"
    CACHE_WARM = "cache-warm"
    CLEANUP = "cleanup"

    @classmethod
    def parse(cls, value: Union[str, "JobCategory"]) -> "JobCategory":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(
                f"Unknown job category: {value}", field="category", value=value
            )


class JobStatus(str, Enum):
    """Job lifecycle status."""

    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


ALLOWED_TRANSITIONS = {
    JobStatus.WAITING: {JobStatus.ACTIVE},
    JobStatus.ACTIVE: {JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}


class WarmTarget(str, Enum):
    """Cache entries a warm job can populate."""

    CATALOG = "catalog"
    ANALYTICS_SUMMARY = "analytics-summary"
    ORDER_REVENUE = "order-revenue"


class CleanupScope(str, Enum):
    CACHE = "cache"
    DATABASE = "database"
    FULL = "full"


class SyncRequest(BaseModel):
    """Resync products; all target products when product_ids is None."""

    product_ids: Optional[List[str]] = None

    @field_validator("product_ids")
    @classmethod
    def validate_product_ids(cls, v):
        if v is not None and not v:
            raise ValueError("product_ids cannot be an empty list")
        return v


class AnalyticsRequest(BaseModel):
    pass


class WarmRequest(BaseModel):
    keys: List[WarmTarget] = Field(
        default_factory=lambda: [WarmTarget.CATALOG, WarmTarget.ANALYTICS_SUMMARY]
    )


class CleanupRequest(BaseModel):
    scope: CleanupScope = CleanupScope.CACHE
    max_age_hours: Optional[int] = Field(default=None, ge=1)


JobRequest = Union[SyncRequest, AnalyticsRequest, WarmRequest, CleanupRequest]

REQUEST_TYPES = {
    JobCategory.SYNC: SyncRequest,
    JobCategory.ANALYTICS: AnalyticsRequest,
    JobCategory.CACHE_WARM: WarmRequest,
    JobCategory.CLEANUP: CleanupRequest,
}


def parse_request(
    category: JobCategory, request: Union[None, Dict[str, Any], BaseModel] = None
) -> JobRequest:
    """
    Build the typed request for a category.

    Raises:
        ValidationError: If the request does not fit the category
    """
    request_type = REQUEST_TYPES[category]

    if request is None:
        return request_type()
    if isinstance(request, BaseModel):
        if not isinstance(request, request_type):
            raise ValidationError(
                f"{category.value} jobs require {request_type.__name__}, "
                f"got {type(request).__name__}",
                field="request",
            )
        return request
    if not isinstance(request, dict):
        raise ValidationError("Job request must be an object", field="request")

    try:
        return request_type.model_validate(request)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid {category.value} request: {e.errors()[0]['msg']}",
            field="request",
        ) from e


class Job(BaseModel):
    """Job record as stored by the queue."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    category: JobCategory
    request: Dict[str, Any] = Field(default_factory=dict)
    status: JobStatus = JobStatus.WAITING
    progress: int = Field(default=0, ge=0, le=100)
    enqueued_at: datetime = Field(default_factory=get_current_timestamp)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    worker_id: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @classmethod
    def new(cls, category: JobCategory, request: JobRequest) -> "Job":
        return cls(category=category, request=request.model_dump(mode="json"))

    def typed_request(self) -> JobRequest:
        return parse_request(self.category, self.request)

    def transition(self, status: JobStatus) -> None:
        if status not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidJobTransition(self.id, self.status.value, status.value)
        self.status = status

    def start(self, worker_id: str) -> None:
        self.transition(JobStatus.ACTIVE)
        self.worker_id = worker_id
        self.started_at = get_current_timestamp()

    def advance(self, progress: int) -> None:
        """Raise progress; lower values are ignored so progress never decreases."""
        if self.status is not JobStatus.ACTIVE:
            raise InvalidJobTransition(self.id, self.status.value, "progress")
        if not 0 <= progress <= 100:
            raise ValidationError(
                "Progress must be between 0 and 100", field="progress", value=progress
            )
        self.progress = max(self.progress, int(progress))

    def complete(self, result: Dict[str, Any]) -> None:
        self.transition(JobStatus.COMPLETED)
        self.progress = 100
        self.result = result
        self.finished_at = get_current_timestamp()

    def fail(self, error: str) -> None:
        self.transition(JobStatus.FAILED)
        self.error = error
        self.finished_at = get_current_timestamp()

    def to_summary(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")
