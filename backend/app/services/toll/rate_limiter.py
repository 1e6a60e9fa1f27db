"""
Rate Limiter - Minimum spacing between outbound provider requests

Each adapter instance owns one limiter. Callers sharing an adapter also
share its limiter, so the check, wait and record steps run under a lock.
"""
import threading
import time
from typing import Callable

from ...utils.logger import get_logger

logger = get_logger('rate_limiter')


class RateLimiter:
    """Spacing throttle: at most ``requests_per_period`` per ``period_ms``.

    Dispatches are spaced by ``period_ms / requests_per_period`` milliseconds.
    This is a spacing rule, not a sliding window.

    Example:
        >>> limiter = RateLimiter(requests_per_period=60, period_ms=60000)
        >>> limiter.acquire()  # returns immediately the first time
        >>> limiter.acquire()  # waits ~1s after the previous dispatch
    """

    def __init__(
        self,
        requests_per_period: int,
        period_ms: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep
    ):
        """Initialize the limiter.

        Args:
            requests_per_period: Allowed requests per period, must be > 0
            period_ms: Period length in milliseconds, must be > 0
            clock: Monotonic clock returning seconds
            sleep: Sleep function taking seconds
        """
        if not isinstance(requests_per_period, int) or isinstance(requests_per_period, bool) \
                or requests_per_period <= 0:
            raise ValueError('requests_per_period must be a positive integer')
        if not isinstance(period_ms, (int, float)) or isinstance(period_ms, bool) or period_ms <= 0:
            raise ValueError('period_ms must be positive')

        self.requests_per_period = requests_per_period
        self.period_ms = period_ms
        self.min_interval = (period_ms / requests_per_period) / 1000.0

        self._clock = clock
        self._sleep = sleep
        self._last_request_time = None
        self._lock = threading.Lock()

    def acquire(self) -> float:
        """Block until the next request may be sent.

        Returns:
            Clock time recorded as the dispatch time
        """
        with self._lock:
            now = self._clock()
            if self._last_request_time is not None:
                elapsed = now - self._last_request_time
                if elapsed < self.min_interval:
                    wait = self.min_interval - elapsed
                    logger.debug(f"[RateLimiter] Waiting {wait:.3f}s before next request")
                    self._sleep(wait)
                    now = self._clock()

            self._last_request_time = now
            return now

    @property
    def last_request_time(self):
        with self._lock:
            return self._last_request_time

    @classmethod
    def from_config(cls, rate_limit, default):
        """Build from a ``{'requests': n, 'period_ms': ms}`` override or a default tuple"""
        if rate_limit:
            return cls(rate_limit.get('requests'), rate_limit.get('period_ms'))
        requests_per_period, period_ms = default
        return cls(requests_per_period, period_ms)

    def __repr__(self):
        return f'<RateLimiter {self.requests_per_period}/{self.period_ms}ms>'
