class TaskNotFoundError(Exception):
    """Raised when a task identifier does not exist in the task store."""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task with id '{task_id}' was not found.")
        self.task_id = task_id


class TaskValidationError(Exception):
    """Raised for malformed input, before any store or queue interaction."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class RateLimitedError(Exception):
    """Raised when a caller exceeds its fixed-window request budget."""

    def __init__(self, retry_after: int, limit: int, window_ms: int) -> None:
        super().__init__(
            f"Rate limit of {limit} requests per {window_ms / 1000:g}s exceeded."
        )
        self.retry_after = retry_after
        self.limit = limit
        self.window_ms = window_ms


class DependencyUnavailableError(Exception):
    """Raised by cache and queue adapters when their backend cannot be reached."""

    def __init__(self, dependency: str, reason: str) -> None:
        super().__init__(f"{dependency} unavailable: {reason}")
        self.dependency = dependency
        self.reason = reason


class JobPermanentFailure(Exception):
    """A job that must not be retried (bad payload, unknown kind, missing task)."""

    def __init__(self, job_id: str, kind: str, reason: str) -> None:
        super().__init__(f"Job '{job_id}' ({kind}) failed permanently: {reason}")
        self.job_id = job_id
        self.kind = kind
        self.reason = reason


class JobTransientFailure(Exception):
    """A handler exception; the job is retried until its attempts run out."""

    def __init__(self, job_id: str, kind: str, attempt: int, cause: BaseException) -> None:
        super().__init__(f"Job '{job_id}' ({kind}) failed on attempt {attempt}: {cause}")
        self.job_id = job_id
        self.kind = kind
        self.attempt = attempt
        self.__cause__ = cause
