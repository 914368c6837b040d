#!/usr/bin/env python3
"""
Uplink Monitor - network uplink dashboard backend
Query API over the swap/gateway history and the SocketIO metrics push.
"""

import logging
from dataclasses import asdict

from flask import Flask, jsonify, request
from flask_cors import CORS
from flask_socketio import SocketIO

from errors import PersistenceError
from store import window_start_iso

logger = logging.getLogger(__name__)

app = Flask(__name__)
CORS(app)
socketio = SocketIO(app, cors_allowed_origins="*", async_mode="threading")

# Set by app.py after creating instances
datastore = None
context = None
resolver = None
gateway = None
monitoring_loop = None
broadcaster = None

DOWNTIME_WINDOW_DAYS = 7


@app.before_request
def require_initialized_store():
    """Storage-backed routes answer 503 until the startup sequence has opened the store."""
    if datastore is not None:
        return None
    if request.path in ("/api/status", "/api/metrics", "/api/gateway-status"):
        return None
    if request.path.startswith("/api/"):
        return jsonify({"error": "Database connection not initialized"}), 503
    return None


def send_metrics(payload: dict, sid: str) -> None:
    socketio.emit("metrics", payload, to=sid)


def _storage_error(what: str, exc: Exception):
    logger.error("Error fetching %s: %s", what, exc)
    return jsonify({"error": f"Failed to fetch {what}"}), 500


@app.route("/api/swap-logs", methods=["GET"])
def swap_logs():
    try:
        limit = int(request.args.get("limit", 1000))
    except (TypeError, ValueError):
        limit = 1000
    try:
        rows = datastore.list_swap_logs(limit=limit)
    except PersistenceError as exc:
        return _storage_error("swap logs", exc)
    return jsonify([asdict(r) for r in rows])


@app.route("/api/active-isps", methods=["GET"])
def active_isps():
    try:
        rows = datastore.list_active_isps()
    except PersistenceError as exc:
        return _storage_error("active ISPs", exc)
    return jsonify(
        [
            {"isp": r.isp, "ip": r.ip, "timestamp": r.timestamp, "is_active": r.active}
            for r in rows
        ]
    )


@app.route("/api/gateway-status", methods=["GET"])
def gateway_status():
    if gateway is None:
        return jsonify({"status": "down", "error": "Gateway probe not initialized"}), 503
    return jsonify({"status": gateway.check(), "target": gateway.target})


@app.route("/api/isp-downtime-7d", methods=["GET"])
def isp_downtime_7d():
    try:
        count = datastore.count_swaps_since(window_start_iso(DOWNTIME_WINDOW_DAYS))
    except PersistenceError as exc:
        return _storage_error("7-day ISP downtime", exc)
    return jsonify({"downtimeCount": count})


@app.route("/api/internet-uptime-7d", methods=["GET"])
def internet_uptime_7d():
    try:
        up, total = datastore.gateway_counts_since(window_start_iso(DOWNTIME_WINDOW_DAYS))
    except PersistenceError as exc:
        return _storage_error("7-day internet uptime", exc)
    percent = round(up / total * 100.0, 2) if total else None
    return jsonify({"upCount": up, "totalCount": total, "uptimePercent": percent})


@app.route("/api/metrics", methods=["GET"])
def current_metrics():
    snapshot = context.current() if context is not None else None
    if snapshot is None:
        return jsonify({"error": "No metrics sampled yet"}), 503
    return jsonify(snapshot.to_dict())


@app.route("/api/status", methods=["GET"])
def status():
    return jsonify(
        {
            "db_path": str(getattr(datastore, "db_path", "")),
            "monitoring": monitoring_loop.status() if monitoring_loop is not None else None,
            "resolver": resolver.status() if resolver is not None else None,
            "gateway": gateway.status() if gateway is not None else None,
            "subscribers": broadcaster.subscriber_count() if broadcaster is not None else 0,
            "published_at": getattr(context, "published_at", ""),
        }
    )


# WebSocket events for real-time updates
@socketio.on("connect")
def handle_connect():
    broadcaster.subscribe(request.sid)


@socketio.on("disconnect")
def handle_disconnect(*_args):
    broadcaster.unsubscribe(request.sid)
