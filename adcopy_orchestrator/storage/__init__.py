"""
Storage package - shared key-value store port and its adapters.
"""

from adcopy_orchestrator.storage.base import KeyValueStore
from adcopy_orchestrator.storage.memory import InMemoryKeyValueStore
from adcopy_orchestrator.storage.redis_store import RedisKeyValueStore

__all__ = ["KeyValueStore", "InMemoryKeyValueStore", "RedisKeyValueStore"]
