# mcp_gateway/storage/memory_kv_store.py
import logging
import time
from typing import Dict, List, Optional, Tuple

from .kv_interfaces import AbstractKeyValueStore

logger = logging.getLogger(__name__)


class InMemoryKeyValueStore(AbstractKeyValueStore):
    """
    Process-local key-value store for tests and single-node development.

    Entries carry an optional monotonic deadline and are purged lazily on read.
    """

    def __init__(self):
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}

    async def initialize(self) -> None:
        logger.info("InMemoryKeyValueStore initialized. Data will not survive a restart.")

    async def teardown(self) -> None:
        self._data.clear()

    def _is_expired(self, deadline: Optional[float]) -> bool:
        return deadline is not None and deadline <= time.monotonic()

    async def get(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, deadline = entry
        if self._is_expired(deadline):
            self._data.pop(key, None)
            return None
        return value

    async def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        deadline = time.monotonic() + ttl_seconds if ttl_seconds is not None else None
        self._data[key] = (value, deadline)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def list_by_prefix(self, prefix: str) -> List[str]:
        live_keys = []
        for key, (_, deadline) in list(self._data.items()):
            if self._is_expired(deadline):
                self._data.pop(key, None)
                continue
            if key.startswith(prefix):
                live_keys.append(key)
        return live_keys

    async def ping(self) -> bool:
        return True
