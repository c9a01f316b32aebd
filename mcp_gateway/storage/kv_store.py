# mcp_gateway/storage/kv_store.py
import logging
from typing import Optional

from ..settings import settings
from .errors import StorageConfigurationError
from .kv_interfaces import AbstractKeyValueStore
from .memory_kv_store import InMemoryKeyValueStore
from .redis_kv_store import RedisKeyValueStore

logger = logging.getLogger(__name__)

_kv_store_instance: Optional[AbstractKeyValueStore] = None


def create_kv_store(backend: str) -> AbstractKeyValueStore:
    """Build an uninitialized store for the configured backend."""
    if backend == "redis":
        return RedisKeyValueStore()
    if backend == "memory":
        return InMemoryKeyValueStore()
    raise StorageConfigurationError(f"Unsupported storage_backend: '{backend}'")


async def get_kv_store() -> AbstractKeyValueStore:
    """
    Return the process-wide key-value store, initializing it on first use.

    Initialization failures propagate so a missing or unreachable store stops
    the gateway instead of degrading into rejected logins.
    """
    global _kv_store_instance
    if _kv_store_instance is None:
        store = create_kv_store(settings.storage_backend)
        await store.initialize()
        _kv_store_instance = store
        logger.info(f"Key-value store initialized (backend: {settings.storage_backend}).")
    return _kv_store_instance


def set_kv_store(store: Optional[AbstractKeyValueStore]) -> None:
    """Bind an already initialized store, or unbind with None."""
    global _kv_store_instance
    _kv_store_instance = store


async def close_kv_store() -> None:
    global _kv_store_instance
    if _kv_store_instance is not None:
        await _kv_store_instance.teardown()
        _kv_store_instance = None
        logger.info("Key-value store torn down.")
