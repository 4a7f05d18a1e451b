"""
Infrastructure layer - external system integrations.
Keeps business logic clean from implementation details.
"""

from .redis_client import create_store
from .store import KeyValueStore, RedisStore, StoreBatch, UpstashStore

__all__ = ['create_store', 'KeyValueStore', 'RedisStore', 'StoreBatch', 'UpstashStore']
