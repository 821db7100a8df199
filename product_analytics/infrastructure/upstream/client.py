"""
Upstream Transaction API Client

Plain request/response access to the external order system: product
catalog, order search and per-order detail. No caching happens here.
"""

import asyncio
from typing import Any, Dict, List, Optional, Sequence

import httpx
import structlog
from opentelemetry import trace

from ...constants import UPSTREAM_SUCCESS_CODE
from ...core.config import Settings, get_settings
from ...core.exceptions import UpstreamError
from ...domain.cache import DateRange

logger = structlog.get_logger()
tracer = trace.get_tracer(__name__)


class OrderSearchResult:
    """Order ids found for one product in a date window."""

    def __init__(self, total_orders: int, order_ids: List[str], date_range: DateRange):
        self.total_orders = total_orders
        self.order_ids = order_ids
        self.date_range = date_range

    @classmethod
    def empty(cls, date_range: DateRange) -> "OrderSearchResult":
        return cls(total_orders=0, order_ids=[], date_range=date_range)


class OrderDetailTotals:
    """Revenue and quantity summed over a set of orders."""

    def __init__(self, revenue: float = 0.0, quantity: int = 0):
        self.revenue = revenue
        self.quantity = quantity


class UpstreamClient:
    """
    Client for the upstream transaction API.

    Every call is an authenticated JSON POST. A response is successful
    only when its ``response_code`` equals ``"100"``. Requests time out
    after the configured timeout and are never retried.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self._client = httpx.AsyncClient(
            base_url=self.settings.UPSTREAM_BASE_URL,
            auth=(self.settings.UPSTREAM_USERNAME, self.settings.UPSTREAM_PASSWORD),
            headers={"Content-Type": "application/json"},
            timeout=self.settings.UPSTREAM_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _post(self, endpoint: str, body: Dict[str, Any]) -> Dict[str, Any]:
        with tracer.start_as_current_span("upstream.request") as span:
            span.set_attribute("upstream.endpoint", endpoint)
            try:
                response = await self._client.post(endpoint, json=body)
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPStatusError as e:
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                raise UpstreamError(
                    message=f"Upstream {endpoint} returned HTTP {e.response.status_code}",
                    endpoint=endpoint,
                    status_code=e.response.status_code,
                    original_error=e,
                )
            except httpx.HTTPError as e:
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                raise UpstreamError(
                    message=f"Upstream {endpoint} request failed: {e}",
                    endpoint=endpoint,
                    original_error=e,
                )
            except ValueError as e:
                raise UpstreamError(
                    message=f"Upstream {endpoint} returned invalid JSON",
                    endpoint=endpoint,
                    original_error=e,
                )

            if not isinstance(data, dict):
                raise UpstreamError(
                    message=f"Upstream {endpoint} returned an unexpected body",
                    endpoint=endpoint,
                )
            span.set_attribute("upstream.response_code", str(data.get("response_code")))
            return data

    @staticmethod
    def _number(value: Any, cast, endpoint: str, field: str, default: Any = 0):
        try:
            return cast(default if value in (None, "") else value)
        except (TypeError, ValueError) as e:
            raise UpstreamError(
                message=f"Upstream {endpoint} returned a non-numeric {field}: {value!r}",
                endpoint=endpoint,
                original_error=e,
            )

    @staticmethod
    def _succeeded(data: Dict[str, Any]) -> bool:
        return str(data.get("response_code")) == UPSTREAM_SUCCESS_CODE

    async def fetch_catalog(self, product_ids: Sequence[str]) -> Dict[str, Dict[str, Any]]:
        """Fetch catalog attributes for the given product ids."""
        data = await self._post("/product_index", {"product_id": list(product_ids)})
        if not self._succeeded(data):
            raise UpstreamError(
                message=(
                    f"Upstream catalog error {data.get('response_code')}: "
                    f"{data.get('message') or 'Unknown error'}"
                ),
                endpoint="/product_index",
                response_code=str(data.get("response_code")),
            )

        products = data.get("products") or {}
        logger.info(
            "Fetched upstream catalog",
            requested=len(product_ids),
            returned=len(products),
        )
        return {str(product_id): attrs for product_id, attrs in products.items()}

    async def fetch_order_search(
        self, product_id: str, date_range: DateRange
    ) -> OrderSearchResult:
        """Find orders for one product. A non-success code means no orders."""
        dates = date_range.upstream_format()
        data = await self._post(
            "/order_find",
            {
                "campaign_id": "all",
                "start_date": dates["start"],
                "end_date": dates["end"],
                "product_id": [product_id],
                "criteria": "all",
                "search_type": "all",
            },
        )

        if not self._succeeded(data):
            logger.warning(
                "Order search returned no orders",
                product_id=product_id,
                response_code=data.get("response_code"),
            )
            return OrderSearchResult.empty(date_range)

        order_ids = [str(order_id) for order_id in data.get("order_id") or []]
        return OrderSearchResult(
            total_orders=self._number(
                data.get("total_orders"), int, "/order_find", "total_orders"
            ),
            order_ids=order_ids,
            date_range=date_range,
        )

    async def _fetch_order(self, order_id: str) -> OrderDetailTotals:
        numeric_id = self._number(order_id, int, "/order_find", "order_id", default=None)
        data = await self._post("/order_view", {"order_id": [numeric_id]})
        if not self._succeeded(data):
            raise UpstreamError(
                message=f"Upstream order {order_id} lookup failed",
                endpoint="/order_view",
                response_code=str(data.get("response_code")),
            )
        return OrderDetailTotals(
            revenue=self._number(data.get("order_total"), float, "/order_view", "order_total"),
            quantity=self._number(
                data.get("main_product_quantity"), int, "/order_view", "main_product_quantity"
            ),
        )

    async def fetch_order_details(self, order_ids: Sequence[str]) -> OrderDetailTotals:
        """Sum revenue and quantity over orders, fetched in bounded batches."""
        totals = OrderDetailTotals()
        batch_size = self.settings.UPSTREAM_ORDER_BATCH_SIZE

        for start in range(0, len(order_ids), batch_size):
            batch = order_ids[start : start + batch_size]
            results = await asyncio.gather(*(self._fetch_order(oid) for oid in batch))
            for result in results:
                totals.revenue += result.revenue
                totals.quantity += result.quantity

        logger.info(
            "Fetched order details",
            orders=len(order_ids),
            revenue=round(totals.revenue, 2),
            quantity=totals.quantity,
        )
        return totals
