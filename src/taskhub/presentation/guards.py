from __future__ import annotations

from fastapi import Request

from src.taskhub.application.rate_limiter import FixedWindowRateLimiter, anonymize_ip


class RateLimitGuard:
    """FastAPI dependency that counts the request against its client's window.

    The limiter is read from ``app.state.rate_limiter``. A guard with its own
    ``scope`` keeps a separate counter per client, so a route can carry a
    tighter ``limit`` on top of the global one.
    """

    def __init__(
        self,
        *,
        limit: int | None = None,
        window_ms: int | None = None,
        scope: str | None = None,
    ) -> None:
        self._limit = limit
        self._window_ms = window_ms
        self._scope = scope

    def key_for(self, request: Request) -> str:
        client = anonymize_ip(request.client.host if request.client else None)
        return f"{self._scope}:{client}" if self._scope else client

    async def __call__(self, request: Request) -> None:
        limiter: FixedWindowRateLimiter = request.app.state.rate_limiter
        limiter.hit(self.key_for(request), limit=self._limit, window_ms=self._window_ms)
