# unified_inbox/services/storage/repository.py
"""
Key -> JSON storage used for user mappings and channel auth tokens.

Non-transactional, last write wins. Values must be JSON-serialisable
(callers dump pydantic models with ``mode="json"`` before saving).
"""

import json
from typing import Any, Protocol

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from unified_inbox.config import settings
from unified_inbox.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

KEY_PREFIX = "unified_inbox:"


class StorageKeys:
    AUTH_TOKENS = "auth_tokens"
    USER_MAPPINGS = "user_mappings"


class StorageError(Exception):
    """Raised when the backing store cannot be read or written."""


class StorageRepository(Protocol):
    async def get(self, key: str) -> Any | None:
        ...

    async def save(self, key: str, value: Any) -> None:
        ...

    async def remove(self, key: str) -> None:
        ...

    async def exists(self, key: str) -> bool:
        ...


class InMemoryStorageRepository:
    """Process-local store. Values round-trip through JSON like the Redis store."""

    def __init__(self):
        self._store: dict[str, str] = {}

    async def get(self, key: str) -> Any | None:
        raw = self._store.get(key)
        return json.loads(raw) if raw is not None else None

    async def save(self, key: str, value: Any) -> None:
        try:
            self._store[key] = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Value for {key} is not JSON serialisable: {e}") from e

    async def remove(self, key: str) -> None:
        self._store.pop(key, None)

    async def exists(self, key: str) -> bool:
        return key in self._store


class RedisStorageRepository:
    """Redis-backed store with a pooled asyncio client."""

    def __init__(self, redis_url: str | None = None, client: redis.Redis | None = None):
        self._redis_url = redis_url or settings.REDIS_URL
        self._client = client
        self._pool: ConnectionPool | None = None

    async def _get_client(self) -> redis.Redis:
        if self._client is not None:
            return self._client

        if not self._redis_url:
            raise StorageError("REDIS_URL not configured")

        self._pool = ConnectionPool.from_url(
            self._redis_url,
            max_connections=20,
            retry_on_timeout=True,
            socket_connect_timeout=10,
            socket_timeout=10,
            decode_responses=True,
        )
        self._client = redis.Redis(connection_pool=self._pool)
        logger.info("Redis storage client initialized", max_connections=20)
        return self._client

    async def close(self) -> None:
        """Clean shutdown"""
        if self._client:
            await self._client.aclose()
        if self._pool:
            await self._pool.disconnect()
        self._client = None
        self._pool = None

    async def get(self, key: str) -> Any | None:
        try:
            client = await self._get_client()
            raw = await client.get(KEY_PREFIX + key)
        except redis.RedisError as e:
            logger.error("Redis GET failed", key=key, error=str(e))
            raise StorageError(f"Failed to read {key}: {e}") from e

        if raw is None:
            return None

        try:
            return json.loads(raw)
        except ValueError as e:
            logger.error("Stored value is not valid JSON", key=key, error=str(e))
            raise StorageError(f"Corrupted value for {key}") from e

    async def save(self, key: str, value: Any) -> None:
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Value for {key} is not JSON serialisable: {e}") from e

        try:
            client = await self._get_client()
            await client.set(KEY_PREFIX + key, payload)
        except redis.RedisError as e:
            logger.error("Redis SET failed", key=key, error=str(e))
            raise StorageError(f"Failed to write {key}: {e}") from e

    async def remove(self, key: str) -> None:
        try:
            client = await self._get_client()
            await client.delete(KEY_PREFIX + key)
        except redis.RedisError as e:
            logger.error("Redis DELETE failed", key=key, error=str(e))
            raise StorageError(f"Failed to delete {key}: {e}") from e

    async def exists(self, key: str) -> bool:
        try:
            client = await self._get_client()
            return await client.exists(KEY_PREFIX + key) > 0
        except redis.RedisError as e:
            logger.error("Redis EXISTS failed", key=key, error=str(e))
            raise StorageError(f"Failed to check {key}: {e}") from e


def create_storage_repository() -> StorageRepository:
    """Redis when REDIS_URL is configured, otherwise an in-process store."""
    if settings.REDIS_URL:
        return RedisStorageRepository(settings.REDIS_URL)
    logger.warning("REDIS_URL not configured, using in-memory storage")
    return InMemoryStorageRepository()
