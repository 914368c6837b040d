"""
Uplink Monitor ISP change detection.
Compares the resolved identity with the last persisted swap and records transitions.
"""

import logging
import threading
import time
from typing import Callable, Optional

from config import ISP_CHECK_INTERVAL_MS
from errors import PersistenceError
from models import SENTINEL_SOURCE, IdentityRecord, SwapLogEntry

logger = logging.getLogger(__name__)


class ChangeDetector:
    """Write a swap row whenever the observed ISP differs from the latest persisted one."""

    def __init__(
        self,
        datastore,
        *,
        interval_seconds: float = ISP_CHECK_INTERVAL_MS / 1000.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.datastore = datastore
        self.interval_seconds = float(interval_seconds)
        self._clock = clock
        self._lock = threading.Lock()
        self._last_checked: Optional[float] = None

    def on_observed_identity(self, isp: str, ip: str) -> Optional[SwapLogEntry]:
        """Return the inserted row on a transition, None when the ISP is unchanged."""
        with self._lock:
            last = self.datastore.latest_swap()
            if last is not None and last.isp == isp:
                return None
            previous_isp = last.isp if last is not None else None
            entry = self.datastore.record_swap(isp, ip, previous_isp=previous_isp)
        if previous_isp is None:
            logger.info("First ISP observed: %s (%s)", isp, ip)
        else:
            logger.info("ISP change detected: %s -> %s (%s)", previous_isp, isp, ip)
        return entry

    def due(self) -> bool:
        return self._last_checked is None or (self._clock() - self._last_checked) >= self.interval_seconds

    def maybe_check(self, identity: IdentityRecord) -> Optional[SwapLogEntry]:
        """Run the change check at most once per interval."""
        if not identity.isp or not identity.ip or identity.source == SENTINEL_SOURCE:
            return None
        if not self.due():
            return None
        try:
            entry = self.on_observed_identity(identity.isp, identity.ip)
        except PersistenceError as exc:
            logger.error("Error checking/logging ISP change: %s", exc)
            return None
        self._last_checked = self._clock()
        return entry
