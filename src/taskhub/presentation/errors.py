from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from src.taskhub.domain.exceptions import (
    RateLimitedError,
    TaskNotFoundError,
    TaskValidationError,
)

logger = logging.getLogger(__name__)

_MAX_REPORTED_ERRORS = 10
_UNPROCESSABLE = 422


def _error_body(request: Request, status_code: int, message: str, **extra: Any) -> dict[str, Any]:
    body: dict[str, Any] = {
        "success": False,
        "statusCode": status_code,
        "message": message,
        "path": request.url.path,
        "timestamp": datetime.now(UTC).isoformat(),
    }
    body.update(extra)
    return body


async def _handle_not_found(request: Request, exc: TaskNotFoundError) -> JSONResponse:
    logger.warning("HTTP 404 %s %s - %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content=_error_body(request, status.HTTP_404_NOT_FOUND, str(exc)),
    )


async def _handle_task_validation(request: Request, exc: TaskValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=_UNPROCESSABLE,
        content=_error_body(request, _UNPROCESSABLE, str(exc)),
    )


async def _handle_schema_validation(
    request: Request, exc: RequestValidationError | ValidationError
) -> JSONResponse:
    errors = [
        {"loc": list(error["loc"]), "msg": error["msg"]}
        for error in exc.errors()[:_MAX_REPORTED_ERRORS]
    ]
    return JSONResponse(
        status_code=_UNPROCESSABLE,
        content=_error_body(
            request, _UNPROCESSABLE, "Validation failed", errors=errors
        ),
    )


async def _handle_rate_limited(request: Request, exc: RateLimitedError) -> JSONResponse:
    logger.warning("HTTP 429 %s %s - %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=_error_body(
            request,
            status.HTTP_429_TOO_MANY_REQUESTS,
            str(exc),
            error="Too Many Requests",
            limit=exc.limit,
            windowMs=exc.window_ms,
            retryAfter=exc.retry_after,
        ),
        headers={"Retry-After": str(exc.retry_after)},
    )


async def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "HTTP 500 %s %s", request.method, request.url.path, exc_info=exc
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body(
            request, status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error"
        ),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TaskNotFoundError, _handle_not_found)
    app.add_exception_handler(TaskValidationError, _handle_task_validation)
    app.add_exception_handler(RequestValidationError, _handle_schema_validation)
    app.add_exception_handler(ValidationError, _handle_schema_validation)
    app.add_exception_handler(RateLimitedError, _handle_rate_limited)
    app.add_exception_handler(Exception, _handle_unexpected)
