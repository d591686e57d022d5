"""Key-value storage contract shared by the ledger and the conversation store.

The contract is deliberately small: get, put with TTL, delete. There is no
listing, so nothing built on top of it can enumerate keys.
"""

from abc import ABC, abstractmethod
from typing import Optional

import redis.asyncio as redis_async
from redis.exceptions import RedisError

from kf_relay.logging_config import get_logger
from kf_relay.services.errors import StorageError

logger = get_logger("kv_store")


class KeyValueStore(ABC):
    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the stored value or None if absent or expired."""

    @abstractmethod
    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store value, replacing any previous one and resetting its TTL."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete key; deleting a missing key is not an error."""


class RedisKeyValueStore(KeyValueStore):
    """KeyValueStore backed by Redis string keys with EX expiry."""

    def __init__(self, client: "redis_async.Redis"):
        self.client = client

    @classmethod
    def from_url(cls, redis_url: str, socket_timeout_seconds: float = 5.0) -> "RedisKeyValueStore":
        client = redis_async.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=socket_timeout_seconds,
            socket_timeout=socket_timeout_seconds,
        )
        return cls(client)

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self.client.get(key)
        except RedisError as e:
            raise StorageError(f"Redis GET {key} failed: {e}") from e

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            await self.client.set(key, value, ex=ttl_seconds)
        except RedisError as e:
            raise StorageError(f"Redis SET {key} failed: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            await self.client.delete(key)
        except RedisError as e:
            raise StorageError(f"Redis DEL {key} failed: {e}") from e

    async def close(self) -> None:
        try:
            await self.client.aclose()
        except RedisError as e:
            logger.warning(f"Redis close failed: {e}")
