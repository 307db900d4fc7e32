import asyncio
from typing import Any

import pytest

from src.taskhub.application.cache import (
    ALL_TASKS_KEY,
    LIST_KEY_PREFIX,
    STATS_KEY,
    CacheCoordinator,
    canonical_key,
    list_key,
    task_key,
)
from src.taskhub.domain.models.task_filter import TaskFilter
from src.taskhub.domain.models.task_status import TaskStatus


class SlowCache:
    async def get(self, key: str) -> Any | None:
        await asyncio.sleep(1)
        return "late"

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        await asyncio.sleep(1)

    async def delete(self, key: str) -> None:
        await asyncio.sleep(1)


def test_canonical_key_ignores_field_order() -> None:
    first = canonical_key(LIST_KEY_PREFIX, {"status": "PENDING", "page": 2, "q": "report"})
    second = canonical_key(LIST_KEY_PREFIX, {"q": "report", "page": 2, "status": "PENDING"})

    assert first == second
    assert first.startswith(f"{LIST_KEY_PREFIX}:")


def test_canonical_key_changes_with_values() -> None:
    assert canonical_key("p", {"page": 1}) != canonical_key("p", {"page": 2})


def test_list_key_for_default_filter_is_all_bucket() -> None:
    assert list_key(TaskFilter()) == ALL_TASKS_KEY


def test_list_key_normalizes_unknown_sort_field() -> None:
    assert list_key(TaskFilter(sort_by="password")) == ALL_TASKS_KEY
    filtered = TaskFilter(status=TaskStatus.PENDING, sort_by="password")
    assert list_key(filtered) == list_key(TaskFilter(status=TaskStatus.PENDING))


def test_list_key_is_stable_for_equal_filters() -> None:
    a = TaskFilter(status=TaskStatus.COMPLETED, q="x", page=3, limit=5, sort_order="ASC")
    b = TaskFilter(sort_order="ASC", limit=5, page=3, q="x", status=TaskStatus.COMPLETED)

    assert list_key(a) == list_key(b)
    assert list_key(a) != ALL_TASKS_KEY


@pytest.mark.asyncio
async def test_set_uses_default_ttl_unless_overridden(cache_store, cache: CacheCoordinator) -> None:
    await cache.set("a", {"v": 1})
    await cache.set("b", {"v": 2}, ttl_seconds=5)

    assert cache_store.ttls == {"a": 80, "b": 5}
    assert await cache.get("a") == {"v": 1}


@pytest.mark.asyncio
async def test_invalidate_tasks_deletes_entity_and_bucket_keys(
    cache_store, cache: CacheCoordinator
) -> None:
    for key in (task_key("1"), task_key("2"), ALL_TASKS_KEY, STATS_KEY, "tasks:list:abc"):
        await cache.set(key, {"cached": True})

    await cache.invalidate_tasks(["1", "2"])

    assert set(cache_store.deleted) == {task_key("1"), task_key("2"), ALL_TASKS_KEY, STATS_KEY}
    # Parameterized list entries are left to their TTL.
    assert "tasks:list:abc" in cache_store.values


@pytest.mark.asyncio
async def test_unavailable_backend_degrades_to_miss(failing_coordinator: CacheCoordinator) -> None:
    assert await failing_coordinator.get("k") is None
    await failing_coordinator.set("k", 1)
    assert await failing_coordinator.delete("k") is False
    await failing_coordinator.invalidate_tasks(["1"])


@pytest.mark.asyncio
async def test_slow_backend_times_out_as_miss() -> None:
    coordinator = CacheCoordinator(SlowCache(), timeout_seconds=0.01)

    assert await coordinator.get("k") is None
    await coordinator.set("k", 1)
    assert await coordinator.delete("k") is False

