"""
Health check endpoint.

Reports process status together with the state of the volatile cache
and the database.
"""

import logging
import time
from typing import Any, Dict

from fastapi import APIRouter, Depends

from ...constants import APP_NAME, APP_VERSION, get_current_timestamp
from ...services.container import ServiceContainer
from ..dependencies import get_container

# Track process start time for uptime calculation
PROCESS_START_TIME = time.time()

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    """
    Basic health check.

    A lost volatile cache only degrades the service; the status turns
    unhealthy when the database cannot be reached.
    """
    database = await container.database.health_check()
    volatile_connected = container.volatile.is_connected or await container.volatile.connect()

    if database["status"] != "healthy":
        status = "unhealthy"
    elif not volatile_connected:
        status = "degraded"
    else:
        status = "healthy"

    if status != "healthy":
        logger.warning(f"Health check reported {status}")

    return {
        "status": status,
        "service": APP_NAME,
        "version": APP_VERSION,
        "environment": container.settings.ENVIRONMENT,
        "timestamp": get_current_timestamp().isoformat(),
        "uptime_seconds": round(time.time() - PROCESS_START_TIME, 1),
        "checks": {
            "database": database,
            "volatile_cache": container.volatile.state.to_dict(),
        },
    }
