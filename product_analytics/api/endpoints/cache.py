"""Cache statistics endpoint."""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from ...services.cache import CacheCoordinator
from ..dependencies import get_coordinator

router = APIRouter(prefix="/cache", tags=["cache"])


@router.get("/stats")
async def cache_stats(
    coordinator: CacheCoordinator = Depends(get_coordinator),
) -> Dict[str, Any]:
    return await coordinator.stats()
