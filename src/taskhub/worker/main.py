from src.setup.api_config import get_api_settings
from src.setup.celery_config import get_celery_settings
from src.setup.logging_config import configure_logging
from src.taskhub.infrastructure.celery.app import celery_app
from src.taskhub.worker.tasks import process_job  # noqa: F401  registers the task


def main() -> None:
    log_level = get_api_settings().LOG_LEVEL
    celery_settings = get_celery_settings()
    configure_logging(log_level)
    celery_app.worker_main(
        [
            "worker",
            "-l",
            log_level,
            "--concurrency",
            str(celery_settings.WORKER_CONCURRENCY),
            "-Q",
            celery_settings.TASK_QUEUE,
        ]
    )


if __name__ == "__main__":
    main()
