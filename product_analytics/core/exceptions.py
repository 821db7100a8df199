"""
Service Exceptions

Error taxonomy shared by the cache tiers, the upstream client and the job system.
Tier-local failures are absorbed only where the caller decides so; every
exception preserves its original cause.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException


class ServiceException(Exception):
    """Base exception for product analytics errors.

    Carries a stable error code and structured details for the API layer.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code or "SERVICE_ERROR"
        self.details = details or {}
        super().__init__(self.message)


class UpstreamError(ServiceException):
    """Raised when the upstream transaction API fails or rejects a request."""

    def __init__(
        self,
        message: str = "Upstream request failed",
        endpoint: Optional[str] = None,
        status_code: Optional[int] = None,
        response_code: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        details: Dict[str, Any] = {}
        if endpoint:
            details["endpoint"] = endpoint
        if status_code is not None:
            details["status_code"] = status_code
        if response_code is not None:
            details["response_code"] = response_code
        if original_error:
            details["original_error"] = str(original_error)
            details["original_error_type"] = type(original_error).__name__

        super().__init__(message=message, error_code="UPSTREAM_ERROR", details=details)
        if original_error:
            self.__cause__ = original_error


class CacheUnavailable(ServiceException):
    """Raised (and absorbed) when the volatile tier cannot be reached."""

    def __init__(
        self,
        message: str = "Volatile cache unavailable",
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        details: Dict[str, Any] = {}
        if operation:
            details["operation"] = operation
        if original_error:
            details["original_error"] = str(original_error)

        super().__init__(
            message=message, error_code="CACHE_UNAVAILABLE", details=details
        )
        if original_error:
            self.__cause__ = original_error


class PersistentStoreError(ServiceException):
    """Raised when the durable store fails. Never swallowed."""

    def __init__(
        self,
        message: str = "Persistent store operation failed",
        operation: Optional[str] = None,
        key: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        details: Dict[str, Any] = {}
        if operation:
            details["operation"] = operation
        if key:
            details["key"] = key
        if original_error:
            details["original_error"] = str(original_error)
            details["original_error_type"] = type(original_error).__name__

        super().__init__(
            message=message, error_code="PERSISTENT_STORE_ERROR", details=details
        )
        if original_error:
            self.__cause__ = original_error


class QueueUnavailable(ServiceException):
    """Raised when the job queue backend cannot be reached."""

    def __init__(
        self,
        message: str = "Job queue unavailable",
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        details: Dict[str, Any] = {}
        if operation:
            details["operation"] = operation
        if original_error:
            details["original_error"] = str(original_error)

        super().__init__(
            message=message, error_code="QUEUE_UNAVAILABLE", details=details
        )
        if original_error:
            self.__cause__ = original_error


class ValidationError(ServiceException):
    """Raised for malformed caller input before any tier is touched."""

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None):
        details: Dict[str, Any] = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)

        super().__init__(message=message, error_code="VALIDATION_ERROR", details=details)


class JobExecutionError(ServiceException):
    """Raised when a job body fails; the job is marked failed."""

    def __init__(
        self,
        job_id: str,
        category: str,
        original_error: Optional[Exception] = None,
    ):
        reason = str(original_error) if original_error else "unknown error"
        details = {"job_id": job_id, "category": category}
        if original_error:
            details["original_error_type"] = type(original_error).__name__

        super().__init__(
            message=f"Job {job_id} ({category}) failed: {reason}",
            error_code="JOB_EXECUTION_ERROR",
            details=details,
        )
        if original_error:
            self.__cause__ = original_error


class JobNotFoundError(ServiceException):
    """Raised when a job id is unknown to the queue."""

    def __init__(self, job_id: str):
        super().__init__(
            message=f"Job not found: {job_id}",
            error_code="JOB_NOT_FOUND",
            details={"job_id": job_id},
        )


class InvalidJobTransition(ServiceException):
    """Raised when a job status change breaks the job state machine."""

    def __init__(self, job_id: str, current: str, requested: str):
        super().__init__(
            message=f"Job {job_id} cannot move from {current} to {requested}",
            error_code="INVALID_JOB_TRANSITION",
            details={"job_id": job_id, "current": current, "requested": requested},
        )


# HTTP Exceptions for API layer
STATUS_CODES = {
    "VALIDATION_ERROR": 400,
    "JOB_NOT_FOUND": 404,
    "INVALID_JOB_TRANSITION": 409,
    "UPSTREAM_ERROR": 502,
    "PERSISTENT_STORE_ERROR": 503,
    "CACHE_UNAVAILABLE": 503,
    "QUEUE_UNAVAILABLE": 503,
}


class ServiceHTTPException(HTTPException):
    """HTTP exception wrapper for service errors."""

    def __init__(
        self, service_exception: ServiceException, status_code: Optional[int] = None
    ):
        self.service_exception = service_exception
        super().__init__(
            status_code=status_code
            or STATUS_CODES.get(service_exception.error_code, 500),
            detail={
                "error": service_exception.error_code,
                "message": service_exception.message,
                "details": service_exception.details,
            },
        )
