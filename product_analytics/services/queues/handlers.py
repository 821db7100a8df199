"""
Job Handlers

Bodies of the four job categories. Each handler receives its typed
request and a progress callback and returns a JSON-serialisable result.
"""

from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog

from ...constants import get_current_timestamp
from ...core.exceptions import UpstreamError
from ...domain.cache import AnalyticsPayload, CacheType, CatalogPayload, RevenuePayload
from ...domain.jobs import (
    AnalyticsRequest,
    CleanupRequest,
    CleanupScope,
    Job,
    JobRequest,
    SyncRequest,
    WarmRequest,
    WarmTarget,
)
from ...infrastructure.repositories import ProductRepository
from ...infrastructure.stores import PersistentCacheStore
from ..cache import CacheCoordinator
from ..metrics import MetricsAggregator, round_money

logger = structlog.get_logger()

ProgressCallback = Callable[[int], Awaitable[Any]]


async def _no_progress(progress: int) -> None:
    return None


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _scaled(done: int, total: int, start: int = 5, span: int = 85) -> int:
    """Progress in [start, start + span] proportional to done/total."""
    if total <= 0:
        return start + span
    return start + int(span * done / total)


class JobHandlers:
    """
    Dispatches jobs to their handler by request type.
    """

    def __init__(
        self,
        coordinator: CacheCoordinator,
        products: ProductRepository,
        aggregator: MetricsAggregator,
        persistent: PersistentCacheStore,
        target_products: List[str],
        refund_rate: float = 0.15,
        cleanup_max_age_hours: int = 24,
    ):
        self.coordinator = coordinator
        self.products = products
        self.aggregator = aggregator
        self.persistent = persistent
        self.target_products = [str(product_id) for product_id in target_products]
        self.refund_rate = refund_rate
        self.cleanup_max_age_hours = cleanup_max_age_hours

    async def handle(
        self, job: Job, report: Optional[ProgressCallback] = None
    ) -> Dict[str, Any]:
        report = report or _no_progress
        request: JobRequest = job.typed_request()

        match request:
            case SyncRequest():
                return await self.sync(request, report)
            case AnalyticsRequest():
                return await self.analytics(request, report)
            case WarmRequest():
                return await self.warm(request, report)
            case CleanupRequest():
                return await self.cleanup(request, report)
        raise TypeError(f"Unsupported job request: {type(request).__name__}")

    async def _lookup_product(self, product_id: str) -> Optional[Dict[str, Any]]:
        """Catalog attributes for a product outside the tracked set."""
        catalog = await self.coordinator.get(CacheType.CATALOG, product_id)
        if not isinstance(catalog, CatalogPayload):
            return None
        return catalog.get(product_id)

    async def sync(self, request: SyncRequest, report: ProgressCallback) -> Dict[str, Any]:
        """
        Refresh catalog and revenue from upstream and replace product records.

        Requested ids outside the tracked products are looked up in the
        catalog one by one. A failure of the tracked catalog fails the job.
        Failures for individual products are collected in ``errors`` and
        the job still completes.
        """
        product_ids = request.product_ids or self.target_products

        await self.coordinator.invalidate()
        await report(5)

        catalog = await self.coordinator.get(CacheType.CATALOG)
        if not isinstance(catalog, CatalogPayload):
            raise RuntimeError("Catalog unavailable after refresh")
        await report(10)

        created = updated = 0
        skipped: List[str] = []
        errors: List[Dict[str, Any]] = []

        for index, product_id in enumerate(product_ids, start=1):
            attributes = catalog.get(product_id)
            if attributes is None and product_id not in self.target_products:
                try:
                    attributes = await self._lookup_product(product_id)
                except UpstreamError as e:
                    logger.error("Catalog lookup failed", product_id=product_id, error=str(e))
                    errors.append(
                        {"product_id": product_id, "product_name": None, "error": str(e)}
                    )
                    await report(_scaled(index, len(product_ids), start=10, span=85))
                    continue
            if attributes is None:
                logger.warning("Product missing from catalog", product_id=product_id)
                skipped.append(product_id)
                await report(_scaled(index, len(product_ids), start=10, span=85))
                continue

            name = attributes.get("product_name") or "Unknown Product"
            try:
                revenue = await self.coordinator.get(CacheType.ORDER_REVENUE, product_id)
                if not isinstance(revenue, RevenuePayload):
                    raise RuntimeError(f"No revenue data for product {product_id}")

                financials = self.aggregator.compute_financials(
                    revenue.total_revenue, self.refund_rate
                )
                was_created = await self.products.replace(
                    product_id,
                    {
                        "name": name,
                        "sku": attributes.get("product_sku") or "NO-SKU",
                        "category_id": _optional_str(attributes.get("category_id")),
                        "price": float(attributes.get("product_price") or 0),
                        "cost": float(attributes.get("cost_of_goods_sold") or 0),
                        "total_revenue": round_money(Decimal(str(revenue.total_revenue))),
                        "total_orders": revenue.total_orders,
                        "total_quantity_sold": revenue.total_quantity,
                        "average_order_value": round_money(
                            Decimal(str(revenue.average_order_value))
                        ),
                        "refund_rate": self.refund_rate,
                        "total_refunds": financials.refunds,
                        "net_revenue": financials.net,
                        "total_costs": financials.costs,
                        "profit_loss": financials.profit,
                        "profit_margin": financials.margin,
                        "is_active": True,
                    },
                )
                if was_created:
                    created += 1
                else:
                    updated += 1
            except Exception as e:
                logger.error("Product sync failed", product_id=product_id, error=str(e))
                errors.append(
                    {"product_id": product_id, "product_name": name, "error": str(e)}
                )

            await report(_scaled(index, len(product_ids), start=10, span=85))

        logger.info(
            "Sync finished",
            created=created,
            updated=updated,
            skipped=len(skipped),
            errors=len(errors),
        )
        return {
            "processed": len(product_ids),
            "created": created,
            "updated": updated,
            "skipped": skipped,
            "errors": errors,
            "synced_at": get_current_timestamp().isoformat(),
        }

    async def build_summary(self) -> AnalyticsPayload:
        """Portfolio summary computed from the active product records."""
        records = await self.products.list_active()
        rows = [record.to_dict() for record in records]
        return AnalyticsPayload(
            summary=self.aggregator.portfolio_totals(rows),
            products=rows,
            generated_at=get_current_timestamp().isoformat(),
        )

    async def analytics(
        self, request: AnalyticsRequest, report: ProgressCallback
    ) -> Dict[str, Any]:
        await report(10)
        payload = await self.build_summary()
        await report(80)
        entry = await self.coordinator.put(CacheType.ANALYTICS_SUMMARY, "", payload)
        logger.info(
            "Analytics summary cached",
            products=payload.summary["total_products"],
            key=entry.key.value,
        )
        return {"summary": payload.summary, "cached_key": entry.key.value}

    async def warm(self, request: WarmRequest, report: ProgressCallback) -> Dict[str, Any]:
        """Populate entries without invalidating; warm entries are left alone."""
        targets: List[tuple] = []
        for target in request.keys:
            match target:
                case WarmTarget.CATALOG:
                    targets.append((CacheType.CATALOG, ""))
                case WarmTarget.ANALYTICS_SUMMARY:
                    targets.append((CacheType.ANALYTICS_SUMMARY, ""))
                case WarmTarget.ORDER_REVENUE:
                    targets.extend(
                        (CacheType.ORDER_REVENUE, product_id)
                        for product_id in self.target_products
                    )

        await report(5)
        warmed: List[str] = []
        no_data: List[str] = []
        failed: List[Dict[str, str]] = []

        for index, (cache_type, identifier) in enumerate(targets, start=1):
            label = f"{cache_type.value}:{identifier}" if identifier else cache_type.value
            try:
                payload = await self.coordinator.get(cache_type, identifier)
                if payload is None:
                    no_data.append(label)
                else:
                    warmed.append(label)
            except Exception as e:
                logger.warning("Cache warm failed", key=label, error=str(e))
                failed.append({"key": label, "error": str(e)})
            await report(_scaled(index, len(targets)))

        await report(95)
        return {
            "warmed": warmed,
            "no_data": no_data,
            "failed": failed,
            "total": len(targets),
        }

    async def cleanup(
        self, request: CleanupRequest, report: ProgressCallback
    ) -> Dict[str, Any]:
        max_age = request.max_age_hours or self.cleanup_max_age_hours
        operations: List[Dict[str, Any]] = []
        duplicates_removed = 0

        await report(10)
        if request.scope in (CleanupScope.CACHE, CleanupScope.FULL):
            expired = await self.persistent.purge_expired()
            operations.append({"operation": "purge_expired", "removed": expired})
            old = await self.persistent.purge_older_than(max_age)
            operations.append(
                {"operation": "purge_older_than", "max_age_hours": max_age, "removed": old}
            )
        await report(50)

        if request.scope in (CleanupScope.DATABASE, CleanupScope.FULL):
            duplicates_removed = await self.persistent.remove_duplicates()
            operations.append(
                {"operation": "remove_duplicates", "removed": duplicates_removed}
            )
        await report(90)

        total_cleaned = sum(op["removed"] for op in operations)
        logger.info(
            "Cleanup finished", scope=request.scope.value, total_cleaned=total_cleaned
        )
        return {
            "scope": request.scope.value,
            "operations": operations,
            "total_cleaned": total_cleaned,
            "duplicates_removed": duplicates_removed,
        }
