"""
Redis Infrastructure Module

Shared connection pool and the connectivity state of the volatile tier.
"""

from .connection_factory import ConnectionState, RedisConnectionFactory

__all__ = [
    "ConnectionState",
    "RedisConnectionFactory",
]
