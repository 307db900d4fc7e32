"""
Fixed-window request limiter.

Each caller key gets a counter that resets once its window expires. The
window is fixed, not sliding: a caller can pass ``limit`` requests at the end
of one window and another ``limit`` at the start of the next, so up to twice
the limit may be admitted across a window boundary.
"""

from __future__ import annotations

import itertools
import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from src.taskhub.domain.exceptions import RateLimitedError

_LOCK_STRIPES = 64
_PURGE_EVERY = 1024


@dataclass
class RateLimitRecord:
    count: int
    window_expiry_ms: float


def anonymize_ip(ip: str | None) -> str:
    """Mask the last segment of an IPv4/IPv6 address (``10.1.2.3`` -> ``10.1.2.x``)."""
    if not ip:
        return "unknown"
    head, sep, _ = ip.rpartition("." if "." in ip else ":")
    return f"{head}{sep}x" if sep else ip


class FixedWindowRateLimiter:
    """Owned table of per-key fixed-window counters.

    Access to a key is serialized by one of a fixed set of striped locks, so
    two concurrent hits on the same key can never both take the last slot.
    No lock is held outside ``hit``.
    """

    def __init__(
        self,
        limit: int = 100,
        window_ms: int = 60_000,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if limit < 1 or window_ms < 1:
            raise ValueError("limit and window_ms must be positive")
        self._limit = limit
        self._window_ms = window_ms
        self._clock = clock
        self._records: dict[str, RateLimitRecord] = {}
        self._locks = tuple(threading.Lock() for _ in range(_LOCK_STRIPES))
        self._hit_counter = itertools.count(1)

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def window_ms(self) -> int:
        return self._window_ms

    def _lock_for(self, key: str) -> threading.Lock:
        return self._locks[hash(key) % _LOCK_STRIPES]

    def _now_ms(self) -> float:
        return self._clock() * 1000

    def hit(
        self,
        key: str,
        *,
        limit: int | None = None,
        window_ms: int | None = None,
    ) -> RateLimitRecord:
        """Count one request for ``key``; raise ``RateLimitedError`` when over budget."""
        limit = limit or self._limit
        window_ms = window_ms or self._window_ms
        now = self._now_ms()
        with self._lock_for(key):
            record = self._records.get(key)
            if record is None or record.window_expiry_ms <= now:
                record = RateLimitRecord(count=1, window_expiry_ms=now + window_ms)
                self._records[key] = record
            elif record.count < limit:
                record.count += 1
            else:
                retry_after = math.ceil((record.window_expiry_ms - now) / 1000)
                raise RateLimitedError(retry_after, limit, window_ms)
            snapshot = RateLimitRecord(record.count, record.window_expiry_ms)

        if next(self._hit_counter) % _PURGE_EVERY == 0:
            self.purge_expired()
        return snapshot

    def get(self, key: str) -> RateLimitRecord | None:
        with self._lock_for(key):
            record = self._records.get(key)
            return None if record is None else RateLimitRecord(record.count, record.window_expiry_ms)

    def purge_expired(self) -> int:
        """Drop records whose window has passed; returns how many were removed."""
        now = self._now_ms()
        removed = 0
        for key, record in list(self._records.items()):
            if record.window_expiry_ms > now:
                continue
            with self._lock_for(key):
                current = self._records.get(key)
                if current is not None and current.window_expiry_ms <= now:
                    del self._records[key]
                    removed += 1
        return removed

    def __len__(self) -> int:
        return len(self._records)
