from pathlib import Path

import pytest

import server
from errors import ProviderError
from models import IdentityRecord, MetricsSnapshot, NetworkMetrics, SystemMetrics
from services.broadcaster import MetricsContext
from store import DataStore


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = float(start)

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += float(seconds)


class StubProvider:
    """Provider stub: returns a fixed record, or raises ProviderError when ``fail`` is set."""

    def __init__(self, name: str, record: IdentityRecord = None, fail: bool = False):
        self.name = name
        self.record = record
        self.fail = fail
        self.calls = 0

    def fetch(self) -> IdentityRecord:
        self.calls += 1
        if self.fail or self.record is None:
            raise ProviderError(self.name, "unreachable")
        return self.record


class StubGateway:
    def __init__(self, status: str = "up", target: str = "10.0.0.1"):
        self.status_value = status
        self.target = target
        self.calls = 0

    def check(self) -> str:
        self.calls += 1
        return self.status_value

    def status(self) -> dict:
        return {"target": self.target, "last_status": self.status_value}


def make_identity(ip: str = "1.2.3.4", isp: str = "Acme", source: str = "P1") -> IdentityRecord:
    return IdentityRecord(
        ip=ip,
        country="Thailand",
        region="Bangkok",
        city="Bangkok",
        isp=isp,
        organization=f"{isp} Org",
        latitude=13.75,
        longitude=100.5,
        timezone="Asia/Bangkok",
        source=source,
        resolved_at="2026-01-01T00:00:00+00:00",
    )


def make_snapshot(isp: str = "Acme", ip: str = "1.2.3.4") -> MetricsSnapshot:
    return MetricsSnapshot(
        timestamp="2026-01-01T00:00:05+00:00",
        identity=make_identity(ip=ip, isp=isp),
        system_metrics=SystemMetrics(cpu_load=12.5, memory_used=40.0, uptime_hours=3),
        network_metrics=NetworkMetrics(
            download_speed=1.5,
            upload_speed=0.25,
            total_download=10.0,
            total_upload=2.0,
            latency_ms=18.2,
            gateway_status="up",
        ),
    )


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def isolated_store(tmp_path):
    """Fresh sqlite store per test."""
    return DataStore(Path(tmp_path) / "test_uplink.db")


@pytest.fixture()
def client_ctx(monkeypatch, isolated_store):
    """
    Flask test client with isolated backend globals.
    Prevents network side effects and uses a temp datastore.
    """
    context = MetricsContext()
    gateway_stub = StubGateway()

    monkeypatch.setattr(server, "datastore", isolated_store)
    monkeypatch.setattr(server, "context", context)
    monkeypatch.setattr(server, "gateway", gateway_stub)
    monkeypatch.setattr(server, "resolver", None)
    monkeypatch.setattr(server, "monitoring_loop", None)
    monkeypatch.setattr(server, "broadcaster", None)

    return {
        "client": server.app.test_client(),
        "store": isolated_store,
        "context": context,
        "gateway": gateway_stub,
    }
