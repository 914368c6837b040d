"""
Uplink Monitor metrics aggregation.
Runs every metric source concurrently and assembles one snapshot, or nothing.
"""

import concurrent.futures
import logging
import time
from typing import Callable, Dict, Optional

from errors import SubFetchError
from models import MetricsSnapshot, NetworkMetrics, SystemMetrics
from toolkit.utils import utc_now_iso

logger = logging.getLogger(__name__)

RETRY_ATTEMPTS = 3
RETRY_BACKOFF_SECONDS = 1.0


def with_retry(
    name: str,
    fn: Callable[[], object],
    *,
    attempts: int = RETRY_ATTEMPTS,
    backoff_seconds: float = RETRY_BACKOFF_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
):
    """Call ``fn`` up to ``attempts`` times, sleeping backoff x attempt between tries."""
    attempts = max(1, int(attempts))
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except Exception as exc:
            if attempt == attempts:
                raise SubFetchError(name, exc) from exc
            logger.debug("%s attempt %d/%d failed: %s", name, attempt, attempts, exc)
            sleep(backoff_seconds * attempt)


class MetricsAggregator:
    """Combine identity, host and network readings into a MetricsSnapshot."""

    def __init__(
        self,
        resolver,
        system_probe,
        gateway,
        change_detector=None,
        *,
        attempts: int = RETRY_ATTEMPTS,
        backoff_seconds: float = RETRY_BACKOFF_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.resolver = resolver
        self.system_probe = system_probe
        self.gateway = gateway
        self.change_detector = change_detector
        self.attempts = attempts
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep

    def _sources(self) -> Dict[str, Callable[[], object]]:
        return {
            "network_stats": self.system_probe.network_stats,
            "latency": self.system_probe.latency,
            "identity": self.resolver.resolve,
            "cpu_load": self.system_probe.cpu_load,
            "memory": self.system_probe.memory_used,
            "uptime": self.system_probe.uptime_hours,
        }

    def _retrying(self, name: str, fn: Callable[[], object]):
        return with_retry(
            name,
            fn,
            attempts=self.attempts,
            backoff_seconds=self.backoff_seconds,
            sleep=self._sleep,
        )

    def sample(self) -> Optional[MetricsSnapshot]:
        sources = self._sources()
        results: Dict[str, object] = {}
        failures = []
        with concurrent.futures.ThreadPoolExecutor(max_workers=len(sources) + 1) as executor:
            futures = {executor.submit(self._retrying, name, fn): name for name, fn in sources.items()}
            gateway_future = executor.submit(self.gateway.check)
            for future in concurrent.futures.as_completed(futures):
                name = futures[future]
                try:
                    results[name] = future.result()
                except SubFetchError as exc:
                    failures.append(exc)
            try:
                gateway_status = gateway_future.result()
            except Exception as exc:
                logger.warning("Gateway probe raised, reporting down: %s", exc)
                gateway_status = "down"

        if failures:
            for exc in failures:
                logger.error("Error getting network metrics: %s", exc)
            return None

        identity = results["identity"]
        if self.change_detector is not None:
            self.change_detector.maybe_check(identity)

        throughput = results["network_stats"]
        latency = results["latency"]
        return MetricsSnapshot(
            timestamp=utc_now_iso(),
            identity=identity,
            system_metrics=SystemMetrics(
                cpu_load=float(results["cpu_load"]),
                memory_used=float(results["memory"]),
                uptime_hours=int(results["uptime"]),
            ),
            network_metrics=NetworkMetrics(
                download_speed=throughput.download_speed,
                upload_speed=throughput.upload_speed,
                total_download=throughput.total_download,
                total_upload=throughput.total_upload,
                latency_ms=float(latency) if latency is not None else None,
                gateway_status=gateway_status,
            ),
        )
