"""Two-tier cache coordination."""

from .cache_coordinator import CacheCoordinator

__all__ = ["CacheCoordinator"]
