#!/usr/bin/env python3
"""
Uplink Monitor - public IP / ISP / gateway health dashboard backend
Entry point: wires the monitoring services into the server and runs the Flask app.
"""

import logging
import threading
import time
from pathlib import Path
from typing import Callable, Optional

import config
import server
from errors import FatalInitError
from services.aggregator import MetricsAggregator
from services.broadcaster import Broadcaster, MetricsContext, MonitoringLoop
from services.change_detector import ChangeDetector
from services.gateway_probe import GatewayProbe
from services.ip_resolver import IpResolver
from services.providers import default_providers
from services.rate_limiter import RateLimiter
from services.system_probe import SystemProbe
from store import DataStore

logger = logging.getLogger("uplink")

context = MetricsContext()
limiter = RateLimiter(config.PROVIDER_MIN_INTERVAL_MS / 1000.0)
resolver = IpResolver(default_providers(limiter, timeout=config.PROVIDER_TIMEOUT_S))
broadcaster = Broadcaster(context, server.send_metrics, interval_seconds=config.METRICS_INTERVAL_MS / 1000.0)

server.context = context
server.resolver = resolver
server.broadcaster = broadcaster


def init_services(db_path: Path = config.DB_PATH) -> MonitoringLoop:
    """Open the store, build the pipeline and start the background loops."""
    datastore = DataStore(db_path)
    gateway = GatewayProbe(datastore)
    detector = ChangeDetector(datastore)
    aggregator = MetricsAggregator(resolver, SystemProbe(), gateway, detector)
    loop = MonitoringLoop(aggregator, context, interval_seconds=config.METRICS_INTERVAL_MS / 1000.0)

    server.datastore = datastore
    server.gateway = gateway
    server.monitoring_loop = loop

    logger.info("Database initialization complete: %s", datastore.db_path)
    loop.start()
    gateway.start()
    logger.info("Server initialization complete")
    return loop


def start_with_retry(
    init: Callable[[], MonitoringLoop] = init_services,
    *,
    retry_delay: float = config.STARTUP_RETRY_DELAY_S,
    sleep: Callable[[float], None] = time.sleep,
    max_attempts: Optional[int] = None,
) -> Optional[MonitoringLoop]:
    """Run the startup sequence, retrying after ``retry_delay`` seconds until it succeeds."""
    attempt = 0
    while max_attempts is None or attempt < max_attempts:
        attempt += 1
        try:
            return init()
        except FatalInitError as exc:
            logger.error("Server initialization failed (attempt %d): %s", attempt, exc)
            sleep(retry_delay)
    return None


def install_thread_excepthook() -> None:
    """Log uncaught thread errors and bring the monitoring loop back."""

    def _hook(args):
        logger.error(
            "Uncaught exception in thread %s",
            getattr(args.thread, "name", "?"),
            exc_info=(args.exc_type, args.exc_value, args.exc_traceback),
        )
        loop = server.monitoring_loop
        if loop is not None:
            threading.Thread(target=loop.restart, name="monitoring-restart", daemon=True).start()

    threading.excepthook = _hook


if __name__ == "__main__":
    import argparse
    parser = argparse.ArgumentParser(description="Uplink Monitor - dashboard backend")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--port", type=int, default=config.SERVER_PORT, help="Port to bind to")
    parser.add_argument("--db", default=str(config.DB_PATH), help="SQLite database path")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    install_thread_excepthook()
    threading.Thread(
        target=start_with_retry,
        kwargs={"init": lambda: init_services(Path(args.db))},
        name="startup",
        daemon=True,
    ).start()

    logger.info("Starting Uplink Monitor on %s:%s", args.host, args.port)
    logger.info("Gateway: %s", config.GATEWAY_IP)
    server.socketio.run(
        server.app,
        host=args.host,
        port=args.port,
        debug=config.DEBUG,
        allow_unsafe_werkzeug=config.DEBUG,
    )
