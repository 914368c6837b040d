"""
Uplink Monitor public identity resolution.
Ordered provider fallback behind a short-lived cache; never raises to the caller.
"""

import logging
import threading
import time
from typing import Callable, List, Optional, Sequence

from config import CACHE_DURATION_MS
from errors import ProviderError
from models import CacheEntry, IdentityRecord, sentinel_identity
from toolkit.utils import utc_now_iso

logger = logging.getLogger(__name__)


class IpResolver:
    """Resolve the public identity: fresh cache, then providers in order, then stale cache, then sentinel."""

    def __init__(
        self,
        providers: Sequence,
        *,
        cache_duration_seconds: float = CACHE_DURATION_MS / 1000.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.providers: List = list(providers)
        self.cache_duration_seconds = float(cache_duration_seconds)
        self._clock = clock
        self._lock = threading.Lock()
        self._cache: Optional[CacheEntry] = None
        self.last_source: str = ""

    def cached(self) -> Optional[CacheEntry]:
        return self._cache

    def _fresh(self, now: float) -> bool:
        return self._cache is not None and (now - self._cache.captured_at) < self.cache_duration_seconds

    def resolve(self) -> IdentityRecord:
        with self._lock:
            now = self._clock()
            if self._fresh(now):
                return self._cache.data

            for provider in self.providers:
                name = getattr(provider, "name", repr(provider))
                try:
                    data = provider.fetch()
                except ProviderError as exc:
                    logger.warning("Identity provider %s failed: %s", name, exc.cause)
                    continue
                self._cache = CacheEntry(data=data, captured_at=now)
                self.last_source = data.source
                logger.debug("Identity resolved by %s: %s (%s)", name, data.ip, data.isp)
                return data

            if self._cache is not None:
                logger.warning(
                    "All identity providers failed; serving cached data from %s",
                    self._cache.data.source,
                )
                self.last_source = self._cache.data.source
                return self._cache.data

            logger.error("All identity providers failed and no cached identity is available")
            sentinel = sentinel_identity(resolved_at=utc_now_iso())
            self.last_source = sentinel.source
            return sentinel

    def status(self) -> dict:
        entry = self._cache
        age = None
        if entry is not None:
            age = round(self._clock() - entry.captured_at, 3)
        return {
            "providers": [getattr(p, "name", repr(p)) for p in self.providers],
            "cache_duration_seconds": self.cache_duration_seconds,
            "cached_source": entry.data.source if entry else "",
            "cache_age_seconds": age,
            "last_source": self.last_source,
        }
