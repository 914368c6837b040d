"""
Uplink Monitor sampling loop and subscriber push.
The loop is the only writer of the current snapshot; each subscriber gets its own push task.
"""

import logging
import threading
from datetime import datetime
from typing import Callable, Dict, Optional

from config import METRICS_INTERVAL_MS
from models import MetricsSnapshot

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = METRICS_INTERVAL_MS / 1000.0


class MetricsContext:
    """Holds the current snapshot; publish swaps the whole reference."""

    def __init__(self):
        self._lock = threading.Lock()
        self._snapshot: Optional[MetricsSnapshot] = None
        self.published_at: str = ""
        self.publish_count: int = 0

    def publish(self, snapshot: MetricsSnapshot) -> None:
        with self._lock:
            self._snapshot = snapshot
            self.published_at = datetime.now().isoformat()
            self.publish_count += 1

    def current(self) -> Optional[MetricsSnapshot]:
        with self._lock:
            return self._snapshot


class MonitoringLoop:
    """Idle -> Sampling -> Idle on a fixed period; a failed cycle never ends the loop."""

    def __init__(self, aggregator, context: MetricsContext, *, interval_seconds: float = DEFAULT_INTERVAL_SECONDS):
        self.aggregator = aggregator
        self.context = context
        self.interval_seconds = max(0.5, float(interval_seconds))
        self.state = "idle"
        self.failed_cycles = 0
        self.empty_cycles = 0
        self.last_tick_at = ""
        self._tick_lock = threading.Lock()
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def tick(self) -> Optional[MetricsSnapshot]:
        """Take one sample and publish it; a tick overlapping a running one is skipped."""
        if not self._tick_lock.acquire(blocking=False):
            logger.debug("Previous sampling cycle still running; skipping tick")
            return None
        try:
            self.state = "sampling"
            snapshot = self.aggregator.sample()
            if snapshot is None:
                self.empty_cycles += 1
                return None
            self.context.publish(snapshot)
            logger.info("Monitoring: %s - %s", snapshot.identity.isp, snapshot.identity.ip)
            return snapshot
        finally:
            self.state = "idle"
            self.last_tick_at = datetime.now().isoformat()
            self._tick_lock.release()

    def start(self) -> None:
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            self._stop.clear()
            self._thread = threading.Thread(target=self._run, name="monitoring-loop", daemon=True)
            self._thread.start()
        logger.info("Continuous monitoring started (every %.1fs)", self.interval_seconds)

    def stop(self) -> None:
        self._stop.set()
        thread = self._thread
        if thread and thread is not threading.current_thread():
            thread.join(timeout=2)

    def restart(self) -> None:
        """Start a fresh loop thread if the current one has died."""
        with self._lock:
            alive = bool(self._thread and self._thread.is_alive())
        if alive:
            return
        logger.warning("Monitoring loop is not running; restarting")
        self.start()

    def running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.tick()
            except Exception:
                self.failed_cycles += 1
                logger.exception("Error in continuous monitoring")
            if self._stop.wait(self.interval_seconds):
                return

    def status(self) -> dict:
        return {
            "running": self.running(),
            "state": self.state,
            "interval_seconds": self.interval_seconds,
            "failed_cycles": self.failed_cycles,
            "empty_cycles": self.empty_cycles,
            "last_tick_at": self.last_tick_at,
        }


class Broadcaster:
    """Push the current snapshot to every subscriber on connect and then on a fixed period."""

    def __init__(
        self,
        context: MetricsContext,
        send: Callable[[dict, str], None],
        *,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
    ):
        self.context = context
        self._send = send
        self.interval_seconds = max(0.1, float(interval_seconds))
        self._lock = threading.Lock()
        self._subscribers: Dict[str, threading.Event] = {}

    def subscribe(self, sid: str) -> None:
        stop = threading.Event()
        with self._lock:
            previous = self._subscribers.get(sid)
            if previous is not None:
                previous.set()
            self._subscribers[sid] = stop
        logger.info("Client connected to dashboard: %s", sid)
        self.push(sid)
        thread = threading.Thread(target=self._push_loop, args=(sid, stop), name=f"push-{sid}", daemon=True)
        thread.start()

    def unsubscribe(self, sid: str) -> None:
        with self._lock:
            stop = self._subscribers.pop(sid, None)
        if stop is not None:
            stop.set()
            logger.info("Client disconnected from dashboard: %s", sid)

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def push(self, sid: str) -> bool:
        """Send the current snapshot to one subscriber; nothing is sent before the first publish."""
        snapshot = self.context.current()
        if snapshot is None:
            return False
        try:
            self._send(snapshot.to_dict(), sid)
        except Exception as exc:
            logger.warning("Push to %s failed: %s", sid, exc)
            return False
        return True

    def _push_loop(self, sid: str, stop: threading.Event) -> None:
        while not stop.wait(self.interval_seconds):
            self.push(sid)

    def close(self) -> None:
        with self._lock:
            stops = list(self._subscribers.values())
            self._subscribers.clear()
        for stop in stops:
            stop.set()
