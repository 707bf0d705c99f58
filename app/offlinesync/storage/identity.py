from __future__ import annotations

import json
import secrets
import sqlite3

from offlinesync.core.logging_setup import LogFunc, log_to_logging

from .local_cache import CLIENT_ID_KEY, LocalCacheStore

CLIENT_ID_PREFIX = "user_"


def generate_client_id() -> str:
    return CLIENT_ID_PREFIX + secrets.token_hex(8)


class IdentityProvider:
    """Stable per-installation client id, created once and kept in the cache."""

    def __init__(self, cache: LocalCacheStore, log_func: LogFunc | None = None):
        self.cache = cache
        self.log_func = log_func or log_to_logging
        self._client_id: str | None = None

    def get_client_id(self) -> str:
        if self._client_id:
            return self._client_id

        stored = None
        try:
            stored = self.cache.get(CLIENT_ID_KEY)
        except sqlite3.Error as e:
            self.log_func("WARN", "identity", "client_id_read_failed", str(e))

        if stored:
            self._client_id = stored
            return stored

        client_id = generate_client_id()
        try:
            self.cache.set(CLIENT_ID_KEY, client_id)
            self.log_func("INFO", "identity", "client_id_created", json.dumps({"client_id": client_id}))
        except sqlite3.Error as e:
            # Keep the id for this session even if it could not be persisted.
            self.log_func("ERROR", "identity", "client_id_persist_failed", str(e))
        self._client_id = client_id
        return client_id
