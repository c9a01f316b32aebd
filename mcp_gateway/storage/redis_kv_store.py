# mcp_gateway/storage/redis_kv_store.py
import logging
from typing import List, Optional
import redis.asyncio as aioredis

from ..settings import settings as gateway_settings
from .kv_interfaces import AbstractKeyValueStore

logger = logging.getLogger(__name__)


class RedisKeyValueStore(AbstractKeyValueStore):
    """
    Redis-backed key-value store.

    Keys are stored verbatim, values as UTF-8 bytes. Prefix listing uses SCAN so
    it never blocks the server the way KEYS would.
    """

    SCAN_BATCH_SIZE: int = 500

    def __init__(self, client: Optional[aioredis.Redis] = None):
        self._redis_client: Optional[aioredis.Redis] = client
        logger.info("RedisKeyValueStore created.")

    async def initialize(self) -> None:
        """
        Establishes connection to Redis server using global settings.
        Skips initialization if client already exists.
        """
        if self._redis_client:
            logger.warning("Redis client already initialized. Skipping re-initialization.")
            return

        connection_params = {
            "host": gateway_settings.redis_host,
            "port": gateway_settings.redis_port,
            "db": gateway_settings.redis_db,
            "decode_responses": False,
        }
        if gateway_settings.redis_password:
            connection_params["password"] = gateway_settings.redis_password
        if gateway_settings.redis_ssl:
            connection_params["ssl"] = True

        logger.info(
            f"Connecting to Redis at {connection_params['host']}:"
            f"{connection_params['port']}, DB: {connection_params['db']}"
        )

        try:
            self._redis_client = aioredis.Redis(**connection_params)
            await self._redis_client.ping()
            logger.info("Successfully connected to Redis and pinged.")
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}", exc_info=True)
            self._redis_client = None
            raise

    async def teardown(self) -> None:
        if self._redis_client:
            logger.info("Closing Redis connection.")
            await self._redis_client.aclose()
            self._redis_client = None
            logger.info("Redis connection closed.")
        else:
            logger.info("No active Redis connection to close.")

    async def _get_client(self) -> aioredis.Redis:
        """
        Returns the Redis client, ensuring it's properly initialized.

        Raises:
            RuntimeError: If client is not initialized
        """
        if not self._redis_client:
            logger.error("Redis client not initialized. Call initialize() first.")
            raise RuntimeError("RedisKeyValueStore not initialized. Call initialize() first.")
        return self._redis_client

    async def get(self, key: str) -> Optional[str]:
        client = await self._get_client()
        raw = await client.get(key)
        if raw is None:
            return None
        return raw.decode("utf-8") if isinstance(raw, bytes) else str(raw)

    async def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        client = await self._get_client()
        if ttl_seconds is not None:
            await client.set(key, value.encode("utf-8"), ex=ttl_seconds)
        else:
            await client.set(key, value.encode("utf-8"))
        logger.debug(f"Stored key '{key}' (TTL: {ttl_seconds if ttl_seconds is not None else 'none'})")

    async def delete(self, key: str) -> None:
        client = await self._get_client()
        deleted_count = await client.delete(key)
        logger.debug(f"Delete for key '{key}' removed {deleted_count} entries")

    async def list_by_prefix(self, prefix: str) -> List[str]:
        client = await self._get_client()
        keys: List[str] = []
        async for raw_key in client.scan_iter(match=f"{prefix}*", count=self.SCAN_BATCH_SIZE):
            keys.append(raw_key.decode("utf-8") if isinstance(raw_key, bytes) else str(raw_key))
        return keys

    async def ping(self) -> bool:
        client = await self._get_client()
        return bool(await client.ping())
