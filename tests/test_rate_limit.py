import pytest

from core.rate_limit import RateLimiter
from exceptions import RateLimitError
from tests.mocks import FakeClock


def test_burst_window_resets_after_a_second():
    clock = FakeClock(0)
    limiter = RateLimiter(burst=2, clock=clock)
    limiter.acquire()
    limiter.acquire()
    with pytest.raises(RateLimitError, match="per burst"):
        limiter.acquire()

    clock.advance(1.5)
    limiter.acquire()


def test_minute_window():
    clock = FakeClock(0)
    limiter = RateLimiter(per_minute=3, burst=10, clock=clock)
    for _ in range(3):
        limiter.acquire()
        clock.advance(2)
    with pytest.raises(RateLimitError, match="per minute"):
        limiter.acquire()

    clock.advance(60)
    limiter.acquire()


def test_remaining_and_reset():
    clock = FakeClock(0)
    limiter = RateLimiter(per_minute=5, per_hour=10, per_day=20, burst=3, clock=clock)
    limiter.acquire()
    assert limiter.remaining() == {"burst": 2, "minute": 4, "hour": 9, "day": 19}
    limiter.reset()
    assert limiter.remaining()["minute"] == 5
