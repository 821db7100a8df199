"""
Cache Domain Entities

Cache entries and the tagged payload variants they carry.
Each cache type has exactly one payload class; the cache type is the
discriminant used when reading an entry back.
"""

import json
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from ...constants import as_utc, get_current_timestamp
from ...core.exceptions import ValidationError
from .value_objects import TTL, CacheKey, CacheMetadata, CacheType, DateRange


@dataclass(frozen=True)
class CatalogPayload:
    """Upstream product catalog keyed by product id."""

    products: Dict[str, Dict[str, Any]]

    def product_ids(self) -> List[str]:
        return list(self.products.keys())

    def get(self, product_id: str) -> Optional[Dict[str, Any]]:
        return self.products.get(product_id)

    def to_dict(self) -> Dict[str, Any]:
        return {"products": self.products}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CatalogPayload":
        return cls(products=dict(data.get("products") or {}))


@dataclass(frozen=True)
class RevenuePayload:
    """Order search result plus aggregated order detail for one product."""

    product_id: str
    total_orders: int
    order_ids: List[str]
    total_revenue: float
    total_quantity: int
    date_range: Optional[DateRange] = None

    @property
    def average_order_value(self) -> float:
        if self.total_orders <= 0:
            return 0.0
        return self.total_revenue / self.total_orders

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "total_orders": self.total_orders,
            "order_ids": list(self.order_ids),
            "total_revenue": self.total_revenue,
            "total_quantity": self.total_quantity,
            "date_range": self.date_range.to_dict() if self.date_range else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RevenuePayload":
        date_range = data.get("date_range")
        return cls(
            product_id=str(data["product_id"]),
            total_orders=int(data.get("total_orders", 0)),
            order_ids=[str(order_id) for order_id in data.get("order_ids", [])],
            total_revenue=float(data.get("total_revenue", 0.0)),
            total_quantity=int(data.get("total_quantity", 0)),
            date_range=DateRange.from_dict(date_range) if date_range else None,
        )


@dataclass(frozen=True)
class AnalyticsPayload:
    """Portfolio summary produced by the analytics job."""

    summary: Dict[str, Any]
    products: List[Dict[str, Any]] = field(default_factory=list)
    generated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary,
            "products": self.products,
            "generated_at": self.generated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalyticsPayload":
        return cls(
            summary=dict(data.get("summary") or {}),
            products=list(data.get("products") or []),
            generated_at=data.get("generated_at"),
        )


CachePayload = Union[CatalogPayload, RevenuePayload, AnalyticsPayload]

PAYLOAD_TYPES = {
    CacheType.CATALOG: CatalogPayload,
    CacheType.ORDER_REVENUE: RevenuePayload,
    CacheType.ANALYTICS_SUMMARY: AnalyticsPayload,
}


def payload_from_dict(cache_type: CacheType, data: Dict[str, Any]) -> CachePayload:
    """Rebuild the payload variant for a cache type."""
    match cache_type:
        case CacheType.CATALOG:
            return CatalogPayload.from_dict(data)
        case CacheType.ORDER_REVENUE:
            return RevenuePayload.from_dict(data)
        case CacheType.ANALYTICS_SUMMARY:
            return AnalyticsPayload.from_dict(data)
    raise ValidationError(f"Unknown cache type: {cache_type}", field="cache_type")


def ensure_payload_type(cache_type: CacheType, payload: Any) -> None:
    """Reject payloads that do not belong to the cache type."""
    expected = PAYLOAD_TYPES[cache_type]
    if not isinstance(payload, expected):
        raise ValidationError(
            f"{cache_type.value} entries require {expected.__name__}, "
            f"got {type(payload).__name__}",
            field="payload",
        )


@dataclass
class CacheEntry:
    """
    Cache entry entity.

    One stored value in either tier. Entries are superseded wholesale on
    refresh; they are never merged.
    """

    key: CacheKey
    cache_type: CacheType
    payload: CachePayload
    created_at: datetime
    expires_at: datetime
    metadata: CacheMetadata = field(default_factory=CacheMetadata)

    @classmethod
    def create(
        cls,
        cache_type: CacheType,
        identifier: str,
        payload: CachePayload,
        ttl: TTL,
        metadata: Optional[CacheMetadata] = None,
    ) -> "CacheEntry":
        """Create new cache entry expiring after ttl."""
        ensure_payload_type(cache_type, payload)
        now = get_current_timestamp()
        return cls(
            key=CacheKey.for_entry(cache_type, identifier),
            cache_type=cache_type,
            payload=payload,
            created_at=now,
            expires_at=now + ttl.as_timedelta(),
            metadata=metadata or CacheMetadata(subject_id=identifier or None),
        )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Check if cache entry is expired."""
        return (now or get_current_timestamp()) >= self.expires_at

    def expiring_in(self, ttl: TTL) -> "CacheEntry":
        """Copy of the entry restamped to expire ttl from now."""
        return replace(self, expires_at=get_current_timestamp() + ttl.as_timedelta())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key.value,
            "type": self.cache_type.value,
            "payload": self.payload.to_dict(),
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheEntry":
        cache_type = CacheType.parse(data["type"])
        return cls(
            key=CacheKey(data["key"]),
            cache_type=cache_type,
            payload=payload_from_dict(cache_type, data.get("payload") or {}),
            created_at=as_utc(datetime.fromisoformat(data["created_at"])),
            expires_at=as_utc(datetime.fromisoformat(data["expires_at"])),
            metadata=CacheMetadata.from_dict(data.get("metadata")),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    @classmethod
    def from_json(cls, raw: Union[str, bytes]) -> "CacheEntry":
        return cls.from_dict(json.loads(raw))
