"""
Cache Value Objects

Immutable value objects for the cache domain.
Provides type safety for cache keys, TTLs and tier configuration.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from ...constants import CACHE_SCHEMA_VERSION
from ...core.exceptions import ValidationError


class CacheType(str, Enum):
    """Cache entry types; the value doubles as the key namespace."""

    CATALOG = "catalog"
    ORDER_REVENUE = "order-revenue"
    ANALYTICS_SUMMARY = "analytics-summary"

    @classmethod
    def parse(cls, value: Union[str, "CacheType"]) -> "CacheType":
        """Parse a cache type, raising ValidationError for unknown values."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(
                f"Unknown cache type: {value}", field="cache_type", value=value
            )


@dataclass(frozen=True)
class CacheKey:
    """
    Immutable cache key value object.

    Keys are composed from the cache type and an identifier; an empty
    identifier yields the bare type name.
    """

    value: str

    MAX_LENGTH = 250

    def __post_init__(self) -> None:
        """Validate cache key format."""
        if not self.value:
            raise ValidationError("Cache key cannot be empty", field="key")

        if len(self.value) > self.MAX_LENGTH:
            raise ValidationError(
                f"Cache key too long (max {self.MAX_LENGTH} characters)", field="key"
            )

        if any(char.isspace() for char in self.value):
            raise ValidationError(
                "Cache key cannot contain whitespace", field="key", value=self.value
            )

    @classmethod
    def for_entry(cls, cache_type: CacheType, identifier: str = "") -> "CacheKey":
        """Create the composite key for a type and identifier."""
        identifier = (identifier or "").strip()
        if cache_type is CacheType.ORDER_REVENUE and not identifier:
            raise ValidationError(
                "order-revenue entries require a product identifier",
                field="identifier",
            )
        if not identifier:
            return cls(cache_type.value)
        return cls(f"{cache_type.value}:{identifier}")

    @staticmethod
    def pattern_for(cache_type: CacheType) -> str:
        """Glob pattern matching every key of a cache type."""
        return f"{cache_type.value}*"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class TTL:
    """
    Time To Live value object for cache expiration.
    """

    seconds: int

    def __post_init__(self) -> None:
        if self.seconds <= 0:
            raise ValidationError("TTL must be positive", field="ttl", value=self.seconds)

    @classmethod
    def minutes(cls, minutes: int) -> "TTL":
        return cls(minutes * 60)

    @classmethod
    def hours(cls, hours: int) -> "TTL":
        return cls(hours * 3600)

    def as_timedelta(self) -> timedelta:
        return timedelta(seconds=self.seconds)


@dataclass(frozen=True)
class TierTTLs:
    """Per-type TTLs for the volatile and persistent tiers."""

    volatile: Dict[CacheType, TTL]
    persistent: Dict[CacheType, TTL]

    @classmethod
    def from_settings(cls, settings: Any) -> "TierTTLs":
        return cls(
            volatile={
                CacheType(name): TTL(seconds)
                for name, seconds in settings.volatile_ttls.items()
            },
            persistent={
                CacheType(name): TTL(seconds)
                for name, seconds in settings.persistent_ttls.items()
            },
        )

    def volatile_for(self, cache_type: CacheType) -> TTL:
        return self.volatile[cache_type]

    def persistent_for(self, cache_type: CacheType) -> TTL:
        return self.persistent[cache_type]

    def violations(self) -> List[CacheType]:
        """Types whose persistent TTL does not exceed the volatile TTL."""
        return [
            cache_type
            for cache_type in CacheType
            if self.persistent[cache_type].seconds <= self.volatile[cache_type].seconds
        ]


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar window used for order searches."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValidationError("Date range start must not be after its end")

    @classmethod
    def last_days(cls, days: int, today: Optional[date] = None) -> "DateRange":
        end = today or datetime.utcnow().date()
        return cls(start=end - timedelta(days=days), end=end)

    def upstream_format(self) -> Dict[str, str]:
        """Dates in the MM/DD/YYYY form the upstream API expects."""
        return {
            "start": self.start.strftime("%m/%d/%Y"),
            "end": self.end.strftime("%m/%d/%Y"),
        }

    def label(self) -> str:
        return f"{self.start.isoformat()}..{self.end.isoformat()}"

    def to_dict(self) -> Dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> "DateRange":
        return cls(
            start=date.fromisoformat(data["start"]), end=date.fromisoformat(data["end"])
        )


@dataclass(frozen=True)
class CacheMetadata:
    """Optional metadata block attached to every cache entry."""

    subject_id: Optional[str] = None
    date_range: Optional[str] = None
    schema_version: str = field(default=CACHE_SCHEMA_VERSION)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subject_id": self.subject_id,
            "date_range": self.date_range,
            "schema_version": self.schema_version,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "CacheMetadata":
        data = data or {}
        return cls(
            subject_id=data.get("subject_id"),
            date_range=data.get("date_range"),
            schema_version=data.get("schema_version") or CACHE_SCHEMA_VERSION,
        )
