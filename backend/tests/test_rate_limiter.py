"""
Rate Limiter Tests
"""
import threading
import pytest

from app.services.toll.rate_limiter import RateLimiter


class FakeClock:
    """Manual clock whose sleep advances time."""

    def __init__(self, start=100.0):
        self.now = start
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds):
        self.now += seconds


def make_limiter(requests_per_period, period_ms, clock=None):
    clock = clock or FakeClock()
    return RateLimiter(requests_per_period, period_ms, clock=clock, sleep=clock.sleep), clock


class TestRateLimiter:

    def test_first_request_not_delayed(self):
        limiter, clock = make_limiter(2, 1000)

        limiter.acquire()

        assert clock.sleeps == []

    def test_two_per_second_spaced_half_a_second(self):
        limiter, clock = make_limiter(2, 1000)

        first = limiter.acquire()
        second = limiter.acquire()

        assert clock.sleeps == [pytest.approx(0.5)]
        assert second - first >= 0.5 - 1e-9

    def test_waits_only_the_remainder(self):
        limiter, clock = make_limiter(60, 60000)

        limiter.acquire()
        clock.advance(0.4)
        limiter.acquire()

        assert clock.sleeps == [pytest.approx(0.6)]

    def test_no_wait_after_interval_elapsed(self):
        limiter, clock = make_limiter(100, 60000)

        limiter.acquire()
        clock.advance(5)
        limiter.acquire()

        assert clock.sleeps == []
        assert limiter.last_request_time == clock.now

    def test_min_interval(self):
        limiter, _ = make_limiter(120, 60000)
        assert limiter.min_interval == pytest.approx(0.5)

    @pytest.mark.parametrize('requests_per_period, period_ms', [
        (0, 1000),
        (-1, 1000),
        (10, 0),
        (10, -5),
        (True, 1000),
        (None, 1000),
    ])
    def test_invalid_configuration(self, requests_per_period, period_ms):
        with pytest.raises(ValueError):
            RateLimiter(requests_per_period, period_ms)

    def test_from_config_override(self):
        limiter = RateLimiter.from_config({'requests': 10, 'period_ms': 1000}, (100, 60000))
        assert limiter.requests_per_period == 10
        assert limiter.period_ms == 1000

    def test_from_config_default(self):
        limiter = RateLimiter.from_config(None, (60, 60000))
        assert limiter.requests_per_period == 60

    def test_concurrent_callers_are_spaced(self):
        """Threads sharing a limiter never dispatch closer than the interval."""
        limiter = RateLimiter(20, 1000)  # 50ms spacing, real clock
        stamps = []
        stamps_lock = threading.Lock()

        def worker():
            stamp = limiter.acquire()
            with stamps_lock:
                stamps.append(stamp)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        stamps.sort()
        gaps = [b - a for a, b in zip(stamps, stamps[1:])]
        assert len(stamps) == 4
        assert all(gap >= 0.05 - 0.005 for gap in gaps)
