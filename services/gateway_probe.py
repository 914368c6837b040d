"""
Uplink Monitor gateway reachability.
Single-echo ping probe plus a background logger that appends one gateway_log row per interval.
"""

import logging
import platform
import subprocess
import threading
from typing import Callable, List, Optional

from config import GATEWAY_IP, GATEWAY_LOG_INTERVAL_MS, GATEWAY_TIMEOUT_S
from errors import PersistenceError

logger = logging.getLogger(__name__)

UP = "up"
DOWN = "down"


def ping_command(target: str, timeout_seconds: int) -> List[str]:
    system = platform.system()
    timeout_seconds = max(1, int(timeout_seconds))
    if system == "Windows":
        return ["ping", "-n", "1", "-w", str(timeout_seconds * 1000), target]
    if system == "Darwin":
        return ["ping", "-c", "1", "-W", str(timeout_seconds * 1000), target]
    return ["ping", "-c", "1", "-W", str(timeout_seconds), target]


def probe(target: str, timeout_seconds: int = GATEWAY_TIMEOUT_S, *, run: Callable = subprocess.run) -> str:
    """Return ``up`` when one echo reply arrives within the timeout, else ``down``."""
    try:
        result = run(
            ping_command(target, timeout_seconds),
            capture_output=True,
            text=True,
            timeout=max(1, int(timeout_seconds)) + 1,
        )
    except (subprocess.TimeoutExpired, OSError) as exc:
        logger.debug("Ping %s failed: %s", target, exc)
        return DOWN
    return UP if result.returncode == 0 else DOWN


class GatewayProbe:
    """Probe a fixed gateway address and keep an append-only log of the results."""

    def __init__(
        self,
        datastore,
        *,
        target: str = GATEWAY_IP,
        timeout_seconds: int = GATEWAY_TIMEOUT_S,
        interval_seconds: float = GATEWAY_LOG_INTERVAL_MS / 1000.0,
        probe_fn: Callable[[str, int], str] = probe,
    ):
        self.datastore = datastore
        self.target = target
        self.timeout_seconds = timeout_seconds
        self.interval_seconds = max(1.0, float(interval_seconds))
        self._probe = probe_fn
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.last_status: Optional[str] = None

    def check(self) -> str:
        status = self._probe(self.target, self.timeout_seconds)
        self.last_status = status
        return status

    def log_once(self) -> Optional[str]:
        """Probe and persist; fall back to a ``down`` row when the first write fails."""
        try:
            status = self.check()
            self.datastore.add_gateway_log(status)
            return status
        except Exception as exc:
            logger.warning("Gateway status write failed (%s); recording down", exc)
        try:
            self.datastore.add_gateway_log(DOWN)
            return DOWN
        except PersistenceError as exc:
            logger.error("Error logging gateway status to DB: %s", exc)
            return None

    def start(self):
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="gateway-probe", daemon=True)
        self._thread.start()

    def stop(self):
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=2)

    def _run(self):
        while not self._stop.wait(self.interval_seconds):
            self.log_once()

    def status(self) -> dict:
        return {
            "target": self.target,
            "interval_seconds": self.interval_seconds,
            "running": bool(self._thread and self._thread.is_alive()),
            "last_status": self.last_status,
        }
