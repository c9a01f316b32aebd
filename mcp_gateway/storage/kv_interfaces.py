# mcp_gateway/storage/kv_interfaces.py
from abc import ABC, abstractmethod
from typing import List, Optional


class AbstractKeyValueStore(ABC):
    """
    Abstract base class for the key-value store shared by every gateway component.

    Values are strings (JSON documents in practice). Implementations only need
    eventual consistency; callers must not rely on read-after-write visibility
    across nodes.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the value stored under key, or None when absent or expired."""
        pass

    @abstractmethod
    async def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        """Store value under key, optionally expiring it after ttl_seconds."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove key. Deleting a missing key is not an error."""
        pass

    @abstractmethod
    async def list_by_prefix(self, prefix: str) -> List[str]:
        """Return every live key starting with prefix."""
        pass

    @abstractmethod
    async def ping(self) -> bool:
        """Return True when the backend is reachable."""
        pass

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the storage system and prepare for operations."""
        pass

    @abstractmethod
    async def teardown(self) -> None:
        """Clean up resources and gracefully shutdown the storage system."""
        pass
