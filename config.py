"""
Uplink Monitor configuration.
Read once from the environment; interval names ending in _MS are milliseconds.
"""

import os
from pathlib import Path


def _env_int(name: str, default: int) -> int:
    raw = str(os.environ.get(name, "")).strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_flag(name: str) -> bool:
    return str(os.environ.get(name, "")).strip().lower() in ("1", "true", "yes", "on")


PROJECT_ROOT = Path(__file__).resolve().parent

CACHE_DURATION_MS = _env_int("CACHE_DURATION", 30000)
METRICS_INTERVAL_MS = _env_int("METRICS_INTERVAL", 5000)
ISP_CHECK_INTERVAL_MS = _env_int("ISP_CHECK_INTERVAL", 30000)

GATEWAY_IP = os.environ.get("GATEWAY_IP", "192.168.1.1").strip() or "192.168.1.1"
GATEWAY_LOG_INTERVAL_MS = _env_int("GATEWAY_LOG_INTERVAL", 60000)
GATEWAY_TIMEOUT_S = _env_int("GATEWAY_TIMEOUT", 2)

PROVIDER_MIN_INTERVAL_MS = _env_int("PROVIDER_MIN_INTERVAL", 1000)
PROVIDER_TIMEOUT_S = _env_int("PROVIDER_TIMEOUT", 5)
USER_AGENT = "UplinkMonitor/1.0"

LATENCY_HOST = os.environ.get("LATENCY_HOST", "8.8.8.8").strip() or "8.8.8.8"
LATENCY_PORT = _env_int("LATENCY_PORT", 53)

STARTUP_RETRY_DELAY_S = _env_int("STARTUP_RETRY_DELAY", 30)

DB_PATH = Path(os.environ.get("UPLINK_DB_PATH", "") or (PROJECT_ROOT / "data" / "uplink.db"))
SERVER_PORT = _env_int("SERVER_PORT", 3001)
DEBUG = _env_flag("UPLINK_DEBUG")
LOG_LEVEL = os.environ.get("UPLINK_LOG_LEVEL", "INFO").strip().upper() or "INFO"
