from concurrent.futures import ThreadPoolExecutor

import pytest

from src.taskhub.application.rate_limiter import FixedWindowRateLimiter, anonymize_ip
from src.taskhub.domain.exceptions import RateLimitedError


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def test_third_request_in_window_is_rejected_with_retry_after() -> None:
    clock = FakeClock()
    limiter = FixedWindowRateLimiter(limit=2, window_ms=60_000, clock=clock)

    assert limiter.hit("10.0.0.x").count == 1
    clock.advance(1)
    assert limiter.hit("10.0.0.x").count == 2
    clock.advance(1)

    with pytest.raises(RateLimitedError) as exc_info:
        limiter.hit("10.0.0.x")

    assert exc_info.value.retry_after == 58
    assert exc_info.value.limit == 2
    assert exc_info.value.window_ms == 60_000


def test_window_expiry_resets_count() -> None:
    clock = FakeClock()
    limiter = FixedWindowRateLimiter(limit=2, window_ms=60_000, clock=clock)
    limiter.hit("k")
    limiter.hit("k")

    clock.advance(60)
    record = limiter.hit("k")

    assert record.count == 1
    assert record.window_expiry_ms == pytest.approx((1000 + 60) * 1000 + 60_000)


def test_boundary_admits_up_to_twice_the_limit() -> None:
    clock = FakeClock()
    limiter = FixedWindowRateLimiter(limit=2, window_ms=60_000, clock=clock)
    limiter.hit("k")
    clock.advance(59.5)
    limiter.hit("k")
    clock.advance(0.5)

    limiter.hit("k")
    limiter.hit("k")
    with pytest.raises(RateLimitedError):
        limiter.hit("k")


def test_keys_are_counted_independently() -> None:
    limiter = FixedWindowRateLimiter(limit=1, window_ms=1000, clock=FakeClock())
    limiter.hit("a")

    assert limiter.hit("b").count == 1
    with pytest.raises(RateLimitedError):
        limiter.hit("a")


def test_per_call_limit_override() -> None:
    limiter = FixedWindowRateLimiter(limit=100, window_ms=1000, clock=FakeClock())
    limiter.hit("k", limit=1)

    with pytest.raises(RateLimitedError) as exc_info:
        limiter.hit("k", limit=1)
    assert exc_info.value.limit == 1


def test_concurrent_hits_never_exceed_limit() -> None:
    limiter = FixedWindowRateLimiter(limit=50, window_ms=60_000)

    def attempt(_: int) -> bool:
        try:
            limiter.hit("shared")
        except RateLimitedError:
            return False
        return True

    with ThreadPoolExecutor(max_workers=16) as pool:
        admitted = sum(pool.map(attempt, range(400)))

    assert admitted == 50
    assert limiter.get("shared").count == 50


def test_purge_expired_drops_only_lapsed_records() -> None:
    clock = FakeClock()
    limiter = FixedWindowRateLimiter(limit=5, window_ms=10_000, clock=clock)
    limiter.hit("old")
    clock.advance(5)
    limiter.hit("fresh")
    clock.advance(6)

    assert limiter.purge_expired() == 1
    assert limiter.get("old") is None
    assert limiter.get("fresh") is not None
    assert len(limiter) == 1


@pytest.mark.parametrize(
    ("ip", "expected"),
    [
        ("192.168.1.42", "192.168.1.x"),
        ("2001:db8::1", "2001:db8::x"),
        ("", "unknown"),
        (None, "unknown"),
        ("testclient", "testclient"),
    ],
)
def test_anonymize_ip(ip: str | None, expected: str) -> None:
    assert anonymize_ip(ip) == expected


def test_rejects_non_positive_configuration() -> None:
    with pytest.raises(ValueError):
        FixedWindowRateLimiter(limit=0)
