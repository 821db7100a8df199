"""
Product Analytics Global Constants

Centralized location for system-wide constants used across the application.
"""

from datetime import datetime, timezone


# Timestamp Functions
def get_current_timestamp() -> datetime:
    """Get current timestamp with UTC timezone.

    Returns:
        datetime: Current UTC timestamp

    Note: Use this function instead of a constant to get real-time timestamps.
    """
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive timestamps read back from the database."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# Application Constants
APP_NAME = "Product Analytics"
APP_VERSION = "0.1.0"

CACHE_SCHEMA_VERSION = "1.0"
UPSTREAM_SUCCESS_CODE = "100"
