import threading
import time
from collections.abc import Callable

# Absorbs float rounding when partial refills add up to a whole token.
EPSILON = 1e-9


class RateLimiter:
    """A token bucket with capacity 1 that spaces out sync iterations.

    One token is added every ``interval`` seconds and the bucket starts full,
    so the first iteration runs immediately and later ones are at least
    ``interval`` apart. Failed iterations cost a token like successful ones.

    Attributes:
        interval (float): Seconds between two tokens.
    """

    def __init__(
        self,
        interval: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        if interval <= 0:
            raise ValueError(f"Rate limit interval must be positive, got {interval}")
        self.interval = interval
        self._clock = clock
        self._lock = threading.Lock()
        self._tokens = 1.0
        self._updated = clock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated)
        self._tokens = min(1.0, self._tokens + elapsed / self.interval)
        self._updated = now

    def delay(self) -> float:
        """Returns the seconds until a token is available (0 if one is ready)."""
        with self._lock:
            self._refill()
            return max(0.0, (1.0 - self._tokens) * self.interval)

    def try_acquire(self) -> bool:
        """Takes a token if one is available, without blocking."""
        with self._lock:
            self._refill()
            if self._tokens >= 1.0 - EPSILON:
                self._tokens = max(0.0, self._tokens - 1.0)
                return True
            return False

    def wait(self, stop: threading.Event | None = None) -> bool:
        """Blocks until a token is taken or ``stop`` is set.

        Args:
            stop (threading.Event | None, optional): Cancellation signal.

        Returns:
            bool: True once a token was taken, False if cancelled.
        """
        stop = stop or threading.Event()
        while not stop.is_set():
            if self.try_acquire():
                return True
            stop.wait(self.delay())
        return False
