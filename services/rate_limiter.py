"""
Uplink Monitor per-provider rate limiting.
"""

import threading
import time
from typing import Callable, Dict


class RateLimiter:
    """Minimum-interval gate keyed by provider name."""

    def __init__(
        self,
        min_interval_seconds: float = 1.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.min_interval_seconds = max(0.0, float(min_interval_seconds))
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._key_locks: Dict[str, threading.Lock] = {}
        self._last_call: Dict[str, float] = {}

    def _key_lock(self, key: str) -> threading.Lock:
        with self._lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = self._key_locks[key] = threading.Lock()
            return lock

    def acquire(self, key: str) -> float:
        """Block until ``key`` may be called again; returns the seconds waited."""
        with self._key_lock(key):
            waited = 0.0
            last = self._last_call.get(key)
            if last is not None:
                remaining = self.min_interval_seconds - (self._clock() - last)
                if remaining > 0:
                    self._sleep(remaining)
                    waited = remaining
            self._last_call[key] = self._clock()
            return waited
