"""
db.py
SQLite helpers: one JSON document per namespace (the whole store) plus a
small app_settings table for operator flags.
"""

from __future__ import annotations

import logging
import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

DB_FILE = Path(os.getenv("CENTER_DB_FILE", Path(__file__).with_name("center.db")))
NAMESPACE = "center-storage"


@contextmanager
def get_conn():
    conn = sqlite3.connect(DB_FILE, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()


def execute(sql: str, params: tuple = ()) -> int:
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        return cur.lastrowid


def fetch_one(sql: str, params: tuple = ()):
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        return cur.fetchone()


def _create_tables() -> None:
    execute(
        """
        CREATE TABLE IF NOT EXISTS kv_store (
            namespace TEXT PRIMARY KEY,
            document TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )

    # Operator flags (used to force password change on first login)
    execute(
        """
        CREATE TABLE IF NOT EXISTS app_settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )
        """
    )


def init_db() -> None:
    _create_tables()
    logger.debug("Database ready at %s", DB_FILE)


def load_document(namespace: str = NAMESPACE) -> str | None:
    row = fetch_one("SELECT document FROM kv_store WHERE namespace = ?", (namespace,))
    if row:
        return str(row["document"])
    return None


def save_document(document: str, namespace: str = NAMESPACE) -> None:
    now = datetime.now(timezone.utc).isoformat(timespec="seconds")
    execute(
        """
        INSERT INTO kv_store(namespace, document, updated_at) VALUES(?, ?, ?)
        ON CONFLICT(namespace) DO UPDATE SET document=excluded.document, updated_at=excluded.updated_at
        """,
        (namespace, document, now),
    )


def _get_setting(key: str, default: str | None = None) -> str | None:
    row = fetch_one("SELECT value FROM app_settings WHERE key = ?", (key,))
    if row:
        return str(row["value"])
    return default


def _set_setting(key: str, value: str) -> None:
    execute(
        """
        INSERT INTO app_settings(key, value) VALUES(?, ?)
        ON CONFLICT(key) DO UPDATE SET value=excluded.value
        """,
        (key, value),
    )


def is_force_password_change() -> bool:
    return _get_setting("force_password_change") == "1"


def set_force_password_change() -> None:
    _set_setting("force_password_change", "1")


def clear_force_password_change() -> None:
    _set_setting("force_password_change", "0")
