"""
Uplink Monitor persistence layer.
SQLite-backed DataStore for ISP swap history and gateway probe results.
"""

import sqlite3
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional, Tuple

from errors import FatalInitError, PersistenceError
from models import GatewayLogEntry, SwapLogEntry
from toolkit.utils import utc_now_iso

GATEWAY_STATUSES = ("up", "down")


def window_start_iso(days: int = 7, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return (now - timedelta(days=days)).isoformat()


class DataStore:
    """Append-mostly persistence for swap and gateway_log rows."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.lock = threading.Lock()
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._init_db()
        except (OSError, sqlite3.Error) as exc:
            raise FatalInitError(f"Cannot initialize store at {self.db_path}: {exc}") from exc

    def _connect(self):
        conn = sqlite3.connect(self.db_path, timeout=30, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        return conn

    def _init_db(self):
        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS swap (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    isp TEXT,
                    ip TEXT,
                    timestamp TEXT NOT NULL,
                    active INTEGER NOT NULL DEFAULT 1
                );
                CREATE INDEX IF NOT EXISTS idx_swap_timestamp ON swap(timestamp);
                CREATE INDEX IF NOT EXISTS idx_swap_isp ON swap(isp);

                CREATE TABLE IF NOT EXISTS gateway_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    status TEXT NOT NULL,
                    timestamp TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_gateway_log_timestamp ON gateway_log(timestamp);
                """
            )

    @staticmethod
    def _swap_from_row(row) -> SwapLogEntry:
        return SwapLogEntry(
            id=int(row["id"]),
            isp=row["isp"] or "",
            ip=row["ip"] or "",
            timestamp=row["timestamp"],
            active=bool(row["active"]),
        )

    # ---------------------- swap ----------------------
    def latest_swap(self) -> Optional[SwapLogEntry]:
        try:
            with self._connect() as conn:
                row = conn.execute("SELECT * FROM swap ORDER BY id DESC LIMIT 1").fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"latest_swap failed: {exc}") from exc
        return self._swap_from_row(row) if row else None

    def record_swap(
        self,
        isp: str,
        ip: str,
        previous_isp: Optional[str] = None,
        timestamp: Optional[str] = None,
    ) -> SwapLogEntry:
        """Deactivate the superseded rows and insert the new active row in one transaction."""
        ts = timestamp or utc_now_iso()
        stale = [isp] if previous_isp is None else [previous_isp, isp]
        placeholders = ",".join("?" for _ in stale)
        try:
            with self.lock, self._connect() as conn:
                conn.execute(
                    f"UPDATE swap SET active = 0 WHERE active = 1 AND isp IN ({placeholders})",
                    stale,
                )
                cur = conn.execute(
                    "INSERT INTO swap (isp, ip, timestamp, active) VALUES (?, ?, ?, 1)",
                    (isp, ip, ts),
                )
                new_id = int(cur.lastrowid)
        except sqlite3.Error as exc:
            raise PersistenceError(f"record_swap failed: {exc}") from exc
        return SwapLogEntry(id=new_id, isp=isp, ip=ip, timestamp=ts, active=True)

    def list_swap_logs(self, limit: int = 1000) -> List[SwapLogEntry]:
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT * FROM swap ORDER BY id DESC LIMIT ?",
                    (max(1, int(limit)),),
                ).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"list_swap_logs failed: {exc}") from exc
        return [self._swap_from_row(r) for r in rows]

    def list_active_isps(self) -> List[SwapLogEntry]:
        """Latest row per ISP, newest first."""
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    """
                    SELECT s.* FROM swap s
                    JOIN (
                        SELECT isp, MAX(id) AS max_id
                        FROM swap
                        WHERE isp IS NOT NULL
                        GROUP BY isp
                    ) latest ON s.id = latest.max_id
                    ORDER BY s.id DESC
                    """
                ).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"list_active_isps failed: {exc}") from exc
        return [self._swap_from_row(r) for r in rows]

    def count_swaps_since(self, since: str) -> int:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT COUNT(*) AS n FROM swap WHERE timestamp >= ?",
                    (since,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"count_swaps_since failed: {exc}") from exc
        return int(row["n"] or 0)

    # ---------------------- gateway_log ----------------------
    def add_gateway_log(self, status: str, timestamp: Optional[str] = None) -> GatewayLogEntry:
        if status not in GATEWAY_STATUSES:
            raise ValueError(f"Invalid gateway status: {status}")
        ts = timestamp or utc_now_iso()
        try:
            with self.lock, self._connect() as conn:
                cur = conn.execute(
                    "INSERT INTO gateway_log (status, timestamp) VALUES (?, ?)",
                    (status, ts),
                )
                new_id = int(cur.lastrowid)
        except sqlite3.Error as exc:
            raise PersistenceError(f"add_gateway_log failed: {exc}") from exc
        return GatewayLogEntry(id=new_id, status=status, timestamp=ts)

    def latest_gateway_log(self) -> Optional[GatewayLogEntry]:
        try:
            with self._connect() as conn:
                row = conn.execute("SELECT * FROM gateway_log ORDER BY id DESC LIMIT 1").fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"latest_gateway_log failed: {exc}") from exc
        if not row:
            return None
        return GatewayLogEntry(id=int(row["id"]), status=row["status"], timestamp=row["timestamp"])

    def gateway_counts_since(self, since: str) -> Tuple[int, int]:
        """Return (up_count, total_count) for probe rows newer than ``since``."""
        try:
            with self._connect() as conn:
                row = conn.execute(
                    """
                    SELECT
                        COALESCE(SUM(CASE WHEN status = 'up' THEN 1 ELSE 0 END), 0) AS up_count,
                        COUNT(*) AS total_count
                    FROM gateway_log
                    WHERE timestamp >= ?
                    """,
                    (since,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"gateway_counts_since failed: {exc}") from exc
        return int(row["up_count"] or 0), int(row["total_count"] or 0)
