from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class RateLimitSettings(BaseSettings):
    RATE_LIMIT: int = 100
    RATE_WINDOW_MS: int = 60_000

    model_config = ConfigDict(env_file=".env", extra="ignore")


def get_rate_limit_settings() -> RateLimitSettings:
    return RateLimitSettings()
