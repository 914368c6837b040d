"""
Uplink Monitor host readings.
psutil-backed throughput, CPU, memory and uptime readers plus a TCP connect latency probe.
"""

import socket
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

import psutil

from config import LATENCY_HOST, LATENCY_PORT

MB = 1024 * 1024
GB = 1024 * 1024 * 1024


@dataclass(frozen=True)
class Throughput:
    download_speed: float  # MB/s
    upload_speed: float  # MB/s
    total_download: float  # GB
    total_upload: float  # GB


class SystemProbe:
    """Readers for the host-side parts of a metrics snapshot."""

    def __init__(
        self,
        *,
        latency_host: str = LATENCY_HOST,
        latency_port: int = LATENCY_PORT,
        latency_timeout: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.latency_host = latency_host
        self.latency_port = int(latency_port)
        self.latency_timeout = float(latency_timeout)
        self._clock = clock
        self._lock = threading.Lock()
        self._last_io: Optional[Tuple[float, int, int]] = None

    def network_stats(self) -> Throughput:
        """Transfer rate since the previous call, and totals since boot."""
        counters = psutil.net_io_counters()
        now = self._clock()
        rx, tx = int(counters.bytes_recv), int(counters.bytes_sent)
        with self._lock:
            prev = self._last_io
            self._last_io = (now, rx, tx)
        rx_sec = tx_sec = 0.0
        if prev is not None:
            elapsed = now - prev[0]
            if elapsed > 0:
                rx_sec = max(0, rx - prev[1]) / elapsed
                tx_sec = max(0, tx - prev[2]) / elapsed
        return Throughput(
            download_speed=round(rx_sec / MB, 2),
            upload_speed=round(tx_sec / MB, 2),
            total_download=round(rx / GB, 2),
            total_upload=round(tx / GB, 2),
        )

    def latency(self) -> Optional[float]:
        """Milliseconds to open a TCP connection to the latency host; None when unreachable."""
        start = time.perf_counter()
        try:
            with socket.create_connection((self.latency_host, self.latency_port), timeout=self.latency_timeout):
                pass
        except OSError:
            return None
        return round((time.perf_counter() - start) * 1000.0, 2)

    def cpu_load(self) -> float:
        return round(float(psutil.cpu_percent(interval=None)), 2)

    def memory_used(self) -> float:
        mem = psutil.virtual_memory()
        if not mem.total:
            raise ValueError("virtual_memory reported zero total")
        return round(mem.used / mem.total * 100.0, 2)

    def uptime_hours(self) -> int:
        return int(max(0.0, time.time() - psutil.boot_time()) // 3600)
