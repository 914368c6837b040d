"""
Uplink Monitor data models.
Dataclasses for resolved identities, persisted log rows, and metrics snapshots.
"""

from dataclasses import asdict, dataclass
from typing import Optional


@dataclass(frozen=True)
class IdentityRecord:
    """Public IP identity as reported by one lookup provider."""

    ip: str
    country: str
    region: str
    city: str
    isp: str
    organization: str
    latitude: float
    longitude: float
    timezone: str
    source: str
    resolved_at: str = ""
    country_code: str = ""
    asn: str = ""
    is_proxy: bool = False


SENTINEL_SOURCE = "mock"


def sentinel_identity(resolved_at: str = "") -> IdentityRecord:
    """Placeholder identity used when no provider and no cache can answer."""
    return IdentityRecord(
        ip="000.000.000.000",
        country="Unknown",
        region="Unknown",
        city="Unknown",
        isp="Unknown",
        organization="Unknown",
        latitude=0.0,
        longitude=0.0,
        timezone="Unknown",
        source=SENTINEL_SOURCE,
        resolved_at=resolved_at,
    )


@dataclass(frozen=True)
class CacheEntry:
    data: IdentityRecord
    captured_at: float


@dataclass
class SwapLogEntry:
    """Persisted ISP transition."""

    id: int
    isp: str
    ip: str
    timestamp: str
    active: bool


@dataclass
class GatewayLogEntry:
    """Persisted gateway probe result."""

    id: int
    status: str  # up, down
    timestamp: str


@dataclass(frozen=True)
class SystemMetrics:
    cpu_load: float
    memory_used: float
    uptime_hours: int


@dataclass(frozen=True)
class NetworkMetrics:
    download_speed: float
    upload_speed: float
    total_download: float
    total_upload: float
    latency_ms: Optional[float]
    gateway_status: str


@dataclass(frozen=True)
class MetricsSnapshot:
    """One fully assembled sample; replaced wholesale, never edited."""

    timestamp: str
    identity: IdentityRecord
    system_metrics: SystemMetrics
    network_metrics: NetworkMetrics

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "publicIpInfo": asdict(self.identity),
            "systemMetrics": asdict(self.system_metrics),
            "networkMetrics": asdict(self.network_metrics),
        }
