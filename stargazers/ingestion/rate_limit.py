"""request pacing: the rolling hourly quota and the per-batch cooldown."""

import logging
import time
from typing import Callable

logger = logging.getLogger(__name__)

RATE_LIMIT = 1000
RATE_WINDOW_SECONDS = 3600
RATE_WAIT_BUFFER_SECONDS = 10


class RateGovernor:
    """
    in-process quota of `rate_limit` requests per rolling window.

    when the quota is used up, before_request() sleeps out the remainder of the
    window (plus a small buffer) and starts a fresh window. the governor does
    not coordinate with other processes.
    """

    def __init__(
        self,
        rate_limit: int = RATE_LIMIT,
        window_seconds: int = RATE_WINDOW_SECONDS,
        buffer_seconds: int = RATE_WAIT_BUFFER_SECONDS,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.rate_limit = rate_limit
        self.window_seconds = window_seconds
        self.buffer_seconds = buffer_seconds
        self._clock = clock
        self._sleep = sleep
        self.request_count = 0
        self.hour_window_start = clock()

    def before_request(self) -> float:
        """
        gate one outbound api request.

        returns:
            seconds slept (0 when under quota)
        """
        now = self._clock()
        elapsed = now - self.hour_window_start

        if elapsed >= self.window_seconds:
            self.reset()
            return 0.0

        if self.request_count < self.rate_limit:
            return 0.0

        wait = self.window_seconds - elapsed + self.buffer_seconds
        logger.warning(f"rate limit of {self.rate_limit} requests reached, waiting {wait:.0f}s")
        self._sleep(wait)
        self.reset()
        return wait

    def record_request(self):
        self.request_count += 1

    def reset(self):
        """start a fresh window (after the hour elapsed or the upstream answered 429)."""
        self.request_count = 0
        self.hour_window_start = self._clock()


class BatchPacer:
    """cooldown pause after every `batch_size` chunk requests, on top of the hourly quota."""

    def __init__(self, batch_size: int = 50, pause: float = 5, sleep: Callable[[float], None] = time.sleep):
        self.batch_size = batch_size
        self.pause = pause
        self._sleep = sleep
        self.batch_count = 0

    def after_request(self) -> bool:
        """count one chunk request. returns true when a cooldown pause was taken."""
        self.batch_count += 1
        if self.batch_count < self.batch_size:
            return False

        logger.info(f"batch of {self.batch_size} requests done, pausing {self.pause}s")
        self._sleep(self.pause)
        self.batch_count = 0
        return True

    def reset(self):
        self.batch_count = 0
