from __future__ import annotations

import json
import logging
from typing import Any

from redis.exceptions import RedisError

from src.taskhub.domain.exceptions import DependencyUnavailableError
from src.taskhub.domain.repositories import CacheRepository
from src.taskhub.infrastructure.redis.client import RedisClient

logger = logging.getLogger(__name__)

_DEPENDENCY = "redis cache"


class RedisCacheRepository(CacheRepository):
    """JSON values in Redis with ``SET ... EX``. Backend errors become DependencyUnavailableError."""

    def __init__(self, client: RedisClient, *, key_prefix: str = "") -> None:
        self._client = client
        self._prefix = key_prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def get(self, key: str) -> Any | None:
        try:
            raw = await self._client.redis.get(self._key(key))
        except (RedisError, OSError) as exc:
            raise DependencyUnavailableError(_DEPENDENCY, str(exc)) from exc
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding undecodable cache entry", extra={"key": key})
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        encoded = json.dumps(value, separators=(",", ":"))
        try:
            await self._client.redis.set(self._key(key), encoded, ex=ttl_seconds)
        except (RedisError, OSError) as exc:
            raise DependencyUnavailableError(_DEPENDENCY, str(exc)) from exc

    async def delete(self, key: str) -> None:
        try:
            await self._client.redis.delete(self._key(key))
        except (RedisError, OSError) as exc:
            raise DependencyUnavailableError(_DEPENDENCY, str(exc)) from exc
