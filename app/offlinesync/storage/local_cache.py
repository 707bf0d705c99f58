"""Durable string key-value cache backed by a single SQLite table.

``get``/``set`` raise on storage errors; ``read_json``/``write_json`` are the
forgiving variants the reconcilers use, so a broken cache file degrades to
"no local data" instead of failing the caller.
"""

from __future__ import annotations

import json
import sqlite3
from typing import Any

from offlinesync.core.logging_setup import LogFunc, log_to_logging

from .db import get_conn, init_db

CLIENT_ID_KEY = "client_id"
PROFILE_KEY = "profile"
HISTORY_KEY = "history"
MANUAL_REMOTE_CONFIG_KEY = "remote_config_manual"


class LocalCacheStore:
    def __init__(self, db_path: str, log_func: LogFunc | None = None):
        self.db_path = db_path
        self.log_func = log_func or log_to_logging
        init_db(db_path)

    def _db(self):
        return get_conn(self.db_path)

    def get(self, key: str) -> str | None:
        conn = self._db()
        try:
            row = conn.execute("SELECT value FROM cache_entries WHERE key=?", (key,)).fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        return row["value"]

    def set(self, key: str, value: str) -> None:
        conn = self._db()
        try:
            conn.execute(
                """
                INSERT INTO cache_entries(key,value,updated_at) VALUES (?,?,CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=CURRENT_TIMESTAMP
                """,
                (key, value),
            )
            conn.commit()
        finally:
            conn.close()

    def delete(self, key: str) -> None:
        conn = self._db()
        try:
            conn.execute("DELETE FROM cache_entries WHERE key=?", (key,))
            conn.commit()
        finally:
            conn.close()

    def keys(self) -> list[str]:
        conn = self._db()
        try:
            rows = conn.execute("SELECT key FROM cache_entries ORDER BY key").fetchall()
        finally:
            conn.close()
        return [r["key"] for r in rows]

    def read_json(self, key: str) -> Any | None:
        try:
            raw = self.get(key)
        except sqlite3.Error as e:
            self.log_func("WARN", "cache", "cache_read_failed", json.dumps({"key": key, "error": str(e)}))
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            self.log_func("WARN", "cache", "cache_decode_failed", json.dumps({"key": key, "error": str(e)}))
            return None

    def write_json(self, key: str, value: Any) -> bool:
        try:
            self.set(key, json.dumps(value, ensure_ascii=False))
        except (sqlite3.Error, TypeError, ValueError) as e:
            self.log_func("ERROR", "cache", "cache_write_failed", json.dumps({"key": key, "error": str(e)}))
            return False
        return True
