from typing import Literal

from pydantic import ConfigDict
from pydantic_settings import BaseSettings

from src.taskhub.domain.models.jobs import JobKind, RetryPolicy


class JobSettings(BaseSettings):
    """Queue backend selection, enqueue timeout, retry defaults and scan period."""
    JOB_BACKEND: Literal["celery", "memory"] = "celery"
    ENQUEUE_TIMEOUT_SECONDS: float = 2.0
    STATUS_UPDATE_MAX_ATTEMPTS: int = 3
    STATUS_UPDATE_BACKOFF_MS: int = 1000
    OVERDUE_NOTIFICATION_MAX_ATTEMPTS: int = 3
    OVERDUE_NOTIFICATION_BACKOFF_MS: int = 2000
    OVERDUE_SCAN_INTERVAL_SECONDS: float = 3600.0
    RUN_SCANNER: bool = True

    model_config = ConfigDict(env_file=".env", extra="ignore")

    def retry_policies(self) -> dict[JobKind, RetryPolicy]:
        return {
            JobKind.TASK_STATUS_UPDATE: RetryPolicy(
                max_attempts=self.STATUS_UPDATE_MAX_ATTEMPTS,
                backoff_base_delay_ms=self.STATUS_UPDATE_BACKOFF_MS,
            ),
            JobKind.OVERDUE_TASKS_NOTIFICATION: RetryPolicy(
                max_attempts=self.OVERDUE_NOTIFICATION_MAX_ATTEMPTS,
                backoff_base_delay_ms=self.OVERDUE_NOTIFICATION_BACKOFF_MS,
            ),
        }


def get_job_settings() -> JobSettings:
    return JobSettings()
