from __future__ import annotations

import logging
import os
import sqlite3
from datetime import datetime, timezone
from typing import Any

from .settings import settings

logger = logging.getLogger("epr")

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}

_db_path: str = settings.db_path


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def configure(db_path: str) -> None:
    """Point the journal at ``db_path`` (empty string disables it)."""
    global _db_path
    _db_path = db_path
    if _db_path:
        init_db()


def journal_path() -> str:
    """Absolute journal file; a directory (e.g. a mounted volume) gets ``epr.db`` inside."""
    p = os.path.abspath(_db_path)
    if os.path.isdir(p):
        return os.path.join(p, "epr.db")
    os.makedirs(os.path.dirname(p), exist_ok=True)
    return p


def connect() -> sqlite3.Connection:
    # Short busy timeout: a locked journal must not stall reconciliation.
    conn = sqlite3.connect(journal_path(), timeout=1.0, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def init_db() -> None:
    """Create tables if they do not exist."""
    with connect() as conn:
        conn.executescript(
            """
            PRAGMA journal_mode=WAL;

            CREATE TABLE IF NOT EXISTS events (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              ts TEXT NOT NULL,
              level TEXT NOT NULL,
              namespace TEXT,
              service_name TEXT,
              message TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_events_ts ON events(ts);
            """
        )


def log_event(level: str, message: str, service_name: str | None = None, namespace: str | None = None) -> None:
    level = level.upper()
    if service_name:
        logger.log(_LEVELS.get(level, logging.INFO), "[%s/%s] %s", namespace or "-", service_name, message)
    else:
        logger.log(_LEVELS.get(level, logging.INFO), message)

    if not _db_path:
        return
    try:
        with connect() as conn:
            conn.execute(
                "INSERT INTO events (ts, level, namespace, service_name, message) VALUES (?, ?, ?, ?, ?)",
                (utc_now(), level, namespace, service_name, message),
            )
    except sqlite3.Error as e:
        # The journal is secondary to the log; never let it break reconciliation.
        logger.warning("Failed to journal event: %s", e)


def latest_events(limit: int = 100) -> list[dict[str, Any]]:
    if not _db_path:
        return []
    with connect() as conn:
        rows = conn.execute("SELECT * FROM events ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
        return [dict(r) for r in rows]
