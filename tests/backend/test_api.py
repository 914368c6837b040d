from datetime import datetime, timedelta, timezone

import server
from conftest import make_snapshot
from errors import PersistenceError


def test_swap_logs_newest_first(client_ctx):
    client = client_ctx["client"]
    store = client_ctx["store"]
    store.record_swap("Acme", "1.1.1.1")
    store.record_swap("Globex", "2.2.2.2", previous_isp="Acme")

    res = client.get("/api/swap-logs")
    assert res.status_code == 200
    rows = res.get_json()
    assert [r["isp"] for r in rows] == ["Globex", "Acme"]
    assert rows[0]["active"] is True
    assert rows[1]["active"] is False


def test_swap_logs_handles_bad_limit_input(client_ctx):
    res = client_ctx["client"].get("/api/swap-logs?limit=not-a-number")
    assert res.status_code == 200
    assert isinstance(res.get_json(), list)


def test_active_isps_endpoint(client_ctx):
    client = client_ctx["client"]
    store = client_ctx["store"]
    store.record_swap("Acme", "1.1.1.1")
    store.record_swap("Globex", "2.2.2.2", previous_isp="Acme")

    rows = client.get("/api/active-isps").get_json()
    assert rows[0] == {"isp": "Globex", "ip": "2.2.2.2", "timestamp": rows[0]["timestamp"], "is_active": True}
    assert rows[1]["isp"] == "Acme"
    assert rows[1]["is_active"] is False


def test_gateway_status_uses_live_probe(client_ctx):
    client_ctx["gateway"].status_value = "down"

    res = client_ctx["client"].get("/api/gateway-status")
    assert res.status_code == 200
    assert res.get_json()["status"] == "down"
    assert client_ctx["gateway"].calls == 1


def test_isp_downtime_counts_last_seven_days(client_ctx):
    store = client_ctx["store"]
    old = (datetime.now(timezone.utc) - timedelta(days=9)).isoformat()
    store.record_swap("Acme", "1.1.1.1", timestamp=old)
    store.record_swap("Globex", "2.2.2.2", previous_isp="Acme")

    res = client_ctx["client"].get("/api/isp-downtime-7d")
    assert res.get_json() == {"downtimeCount": 1}


def test_internet_uptime_aggregates_gateway_log(client_ctx):
    store = client_ctx["store"]
    for status in ["up", "up", "up", "down"]:
        store.add_gateway_log(status)

    payload = client_ctx["client"].get("/api/internet-uptime-7d").get_json()
    assert payload == {"upCount": 3, "totalCount": 4, "uptimePercent": 75.0}


def test_internet_uptime_with_no_rows(client_ctx):
    payload = client_ctx["client"].get("/api/internet-uptime-7d").get_json()
    assert payload["totalCount"] == 0
    assert payload["uptimePercent"] is None


def test_metrics_503_before_first_sample(client_ctx):
    res = client_ctx["client"].get("/api/metrics")
    assert res.status_code == 503


def test_metrics_returns_current_snapshot(client_ctx):
    snapshot = make_snapshot(isp="Globex")
    client_ctx["context"].publish(snapshot)

    res = client_ctx["client"].get("/api/metrics")
    assert res.status_code == 200
    assert res.get_json() == snapshot.to_dict()


def test_storage_error_returns_500(client_ctx, monkeypatch):
    def broken(*args, **kwargs):
        raise PersistenceError("database is locked")

    monkeypatch.setattr(client_ctx["store"], "list_swap_logs", broken)

    res = client_ctx["client"].get("/api/swap-logs")
    assert res.status_code == 500
    assert res.get_json()["error"] == "Failed to fetch swap logs"


def test_store_routes_503_until_initialized(client_ctx, monkeypatch):
    monkeypatch.setattr(server, "datastore", None)
    client = client_ctx["client"]

    assert client.get("/api/swap-logs").status_code == 503
    assert client.get("/api/status").status_code == 200


def test_status_endpoint_returns_expected_shape(client_ctx):
    payload = client_ctx["client"].get("/api/status").get_json()

    assert payload["db_path"].endswith("test_uplink.db")
    assert payload["gateway"]["target"] == "10.0.0.1"
    assert payload["subscribers"] == 0
    assert "monitoring" in payload
