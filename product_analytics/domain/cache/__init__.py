"""
Cache Domain

Entries, tagged payloads and value objects for the two-tier cache.
"""

from .entities import (
    AnalyticsPayload,
    CacheEntry,
    CachePayload,
    CatalogPayload,
    RevenuePayload,
    payload_from_dict,
)
from .value_objects import TTL, CacheKey, CacheMetadata, CacheType, DateRange, TierTTLs

__all__ = [
    "AnalyticsPayload",
    "CacheEntry",
    "CacheKey",
    "CacheMetadata",
    "CachePayload",
    "CacheType",
    "CatalogPayload",
    "DateRange",
    "RevenuePayload",
    "TTL",
    "TierTTLs",
    "payload_from_dict",
]
