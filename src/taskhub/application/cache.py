"""
Cache-aside coordination for task reads.

Writes never update cached values; they delete them after the owning
transaction has committed. Per-task keys and the two unparameterized bucket
keys (``tasks:all`` and ``tasks:stats``) are deleted explicitly on every
committed mutation. Parameterized list queries are keyed by a hash of the
filter and cannot be enumerated cheaply, so they are left to expire through
their TTL: a filtered listing may be stale for at most ``default_ttl_seconds``
after a write. That staleness window is the accepted price of not tracking
every filter shape that was ever cached.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from collections.abc import Iterable, Mapping
from typing import Any, cast

import inject

from src.taskhub.domain.exceptions import DependencyUnavailableError
from src.taskhub.domain.models.task_filter import TaskFilter
from src.taskhub.domain.repositories import CacheRepository

logger = logging.getLogger(__name__)

ALL_TASKS_KEY = "tasks:all"
STATS_KEY = "tasks:stats"
LIST_KEY_PREFIX = "tasks:list"
BUCKET_KEYS = (ALL_TASKS_KEY, STATS_KEY)


def task_key(task_id: str) -> str:
    return f"task:{task_id}"


def canonical_key(prefix: str, fields: Mapping[str, Any]) -> str:
    """Hash ``fields`` with sorted keys so insertion order never changes the key."""
    encoded = json.dumps(fields, sort_keys=True, separators=(",", ":"), default=str)
    digest = hashlib.sha256(encoded.encode("utf-8")).hexdigest()
    return f"{prefix}:{digest}"


def list_key(task_filter: TaskFilter) -> str:
    """Key for a listing. The unfiltered first page maps to the ``tasks:all`` bucket."""
    normalized = task_filter.model_copy(update={"sort_by": task_filter.effective_sort_by})
    if normalized.is_default():
        return ALL_TASKS_KEY
    return canonical_key(LIST_KEY_PREFIX, normalized.model_dump(mode="json"))


class CacheCoordinator:
    """Read-through cache front that degrades to a miss when the backend fails."""

    def __init__(
        self,
        cache: CacheRepository | None = None,
        *,
        default_ttl_seconds: int = 80,
        timeout_seconds: float = 0.5,
    ) -> None:
        self._cache = cache or cast(CacheRepository, inject.instance(CacheRepository))
        self._default_ttl = default_ttl_seconds
        self._timeout = timeout_seconds

    @property
    def default_ttl_seconds(self) -> int:
        return self._default_ttl

    async def get(self, key: str) -> Any | None:
        try:
            value = await asyncio.wait_for(self._cache.get(key), self._timeout)
        except (DependencyUnavailableError, TimeoutError) as exc:
            logger.warning(
                "Cache read failed, treating as miss",
                extra={"key": key, "error": str(exc) or type(exc).__name__},
            )
            return None
        logger.debug("Cache %s", "hit" if value is not None else "miss", extra={"key": key})
        return value

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl
        try:
            await asyncio.wait_for(self._cache.set(key, value, ttl), self._timeout)
        except (DependencyUnavailableError, TimeoutError) as exc:
            logger.warning(
                "Cache write skipped",
                extra={"key": key, "error": str(exc) or type(exc).__name__},
            )

    async def delete(self, key: str) -> bool:
        """Delete ``key``; returns False when the backend could not be reached."""
        try:
            await asyncio.wait_for(self._cache.delete(key), self._timeout)
        except (DependencyUnavailableError, TimeoutError) as exc:
            logger.warning(
                "Cache invalidation failed",
                extra={"key": key, "error": str(exc) or type(exc).__name__},
            )
            return False
        return True

    async def invalidate_tasks(self, task_ids: Iterable[str] = ()) -> None:
        """Delete the per-task keys for ``task_ids`` and the bucket keys.

        Must only be called after the mutating transaction has committed.
        """
        keys = [task_key(task_id) for task_id in task_ids]
        keys.extend(BUCKET_KEYS)
        results = await asyncio.gather(*(self.delete(key) for key in keys))
        logger.debug(
            "Cache invalidated for tasks",
            extra={"keys": keys, "failed": results.count(False)},
        )
