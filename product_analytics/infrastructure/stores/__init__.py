"""
Cache tier stores.

Both tiers expose the same capability set: get, set, delete,
delete_matching and stats.
"""

from .persistent import PersistentCacheStore
from .volatile import VolatileCacheStore

__all__ = ["PersistentCacheStore", "VolatileCacheStore"]
