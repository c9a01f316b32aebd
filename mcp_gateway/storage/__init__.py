# mcp_gateway/storage/__init__.py

"""Storage module initialization.

Every gateway component persists through the key-value abstraction exposed
here; the concrete backend is chosen by settings.storage_backend.
"""

from .errors import StorageConfigurationError
from .kv_interfaces import AbstractKeyValueStore
from .memory_kv_store import InMemoryKeyValueStore
from .redis_kv_store import RedisKeyValueStore
from .kv_store import create_kv_store, get_kv_store, set_kv_store, close_kv_store

# Export public API for key-value storage
__all__ = [
    "StorageConfigurationError",
    "AbstractKeyValueStore",
    "InMemoryKeyValueStore",
    "RedisKeyValueStore",
    "create_kv_store",
    "get_kv_store",
    "set_kv_store",
    "close_kv_store",
]
