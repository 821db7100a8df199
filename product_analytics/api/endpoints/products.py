"""
Product endpoints.

Thin read routes over the product store and the cached analytics summary.
"""

from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, Query

from ...constants import get_current_timestamp
from ...core.exceptions import ValidationError
from ...domain.cache import AnalyticsPayload, CacheType
from ...infrastructure.repositories import ProductRepository
from ...services.container import ServiceContainer
from ..dependencies import get_container, get_products

logger = structlog.get_logger()
router = APIRouter(prefix="/products", tags=["products"])


@router.get("")
async def list_products(
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    """Active target products, highest revenue first."""
    targets = container.settings.target_products_list
    records = await container.products.list_active(targets)
    return {
        "data": [record.to_dict() for record in records],
        "total": len(records),
        "target_products": targets,
        "lookback_days": container.settings.ORDER_LOOKBACK_DAYS,
        "timestamp": get_current_timestamp().isoformat(),
    }


@router.get("/find")
async def find_products(
    ids: Optional[str] = Query(default=None, description="Comma-separated product ids"),
    products: ProductRepository = Depends(get_products),
) -> Dict[str, Any]:
    product_ids = [pid.strip() for pid in (ids or "").split(",") if pid.strip()]
    if not product_ids:
        raise ValidationError("Product IDs are required. Use ?ids=1,2,3", field="ids")

    records = await products.list_active(product_ids)
    return {
        "data": [record.to_dict() for record in records],
        "total": len(records),
        "searched": product_ids,
        "found": [record.product_id for record in records],
        "timestamp": get_current_timestamp().isoformat(),
    }


@router.get("/analytics")
async def product_analytics(
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    """Cached portfolio summary; computed live (and not cached) on a miss."""
    cached = await container.coordinator.get(CacheType.ANALYTICS_SUMMARY)
    if isinstance(cached, AnalyticsPayload):
        return {"source": "cache", **cached.to_dict()}

    logger.info("Analytics summary not cached, computing live")
    payload = await container.handlers.build_summary()
    return {"source": "live", **payload.to_dict()}
