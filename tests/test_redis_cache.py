from types import SimpleNamespace

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from src.taskhub.domain.exceptions import DependencyUnavailableError
from src.taskhub.infrastructure.redis.cache import RedisCacheRepository


class FakeRedis:
    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.expiry: dict[str, int] = {}

    async def get(self, key: str) -> str | None:
        return self.store.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> None:
        self.store[key] = value
        self.expiry[key] = ex

    async def delete(self, key: str) -> int:
        return 1 if self.store.pop(key, None) is not None else 0


class DownRedis:
    async def get(self, key: str) -> str | None:
        raise RedisConnectionError("Connection refused")

    async def set(self, key: str, value: str, ex: int | None = None) -> None:
        raise RedisConnectionError("Connection refused")

    async def delete(self, key: str) -> int:
        raise RedisConnectionError("Connection refused")


@pytest.mark.asyncio
async def test_values_are_stored_as_prefixed_json_with_ttl() -> None:
    fake = FakeRedis()
    repository = RedisCacheRepository(SimpleNamespace(redis=fake), key_prefix="taskhub:")

    await repository.set("task:1", {"id": "1", "tags": ["a"]}, 80)

    assert fake.store == {"taskhub:task:1": '{"id":"1","tags":["a"]}'}
    assert fake.expiry == {"taskhub:task:1": 80}
    assert await repository.get("task:1") == {"id": "1", "tags": ["a"]}

    await repository.delete("task:1")
    assert await repository.get("task:1") is None


@pytest.mark.asyncio
async def test_undecodable_entry_is_a_miss() -> None:
    fake = FakeRedis()
    fake.store["broken"] = "{not json"
    repository = RedisCacheRepository(SimpleNamespace(redis=fake))

    assert await repository.get("broken") is None


@pytest.mark.asyncio
async def test_backend_errors_become_dependency_unavailable() -> None:
    repository = RedisCacheRepository(SimpleNamespace(redis=DownRedis()))

    with pytest.raises(DependencyUnavailableError) as exc_info:
        await repository.get("k")
    assert exc_info.value.dependency == "redis cache"

    with pytest.raises(DependencyUnavailableError):
        await repository.set("k", 1, 10)
    with pytest.raises(DependencyUnavailableError):
        await repository.delete("k")
