from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class CacheSettings(BaseSettings):
    """Configuration for the Redis read-through cache."""
    REDIS_URL: str = "redis://redis:6379/1"
    CACHE_TTL_SECONDS: int = 80
    CACHE_TIMEOUT_SECONDS: float = 0.5
    CACHE_KEY_PREFIX: str = "taskhub:"
    CACHE_MAX_CONNECTIONS: int = 20

    model_config = ConfigDict(env_file=".env", extra="ignore")


def get_cache_settings() -> CacheSettings:
    return CacheSettings()
