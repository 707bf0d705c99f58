from __future__ import annotations

import json
import sqlite3
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Mapping

from offlinesync.core.config import AppConfig
from offlinesync.core.credentials import RemoteCredentials, resolve_credentials, save_manual_config
from offlinesync.core.logging_setup import LogFunc, log_to_logging
from offlinesync.providers.base import Configured, RemoteHandle, Unconfigured
from offlinesync.providers.firestore import FirestoreClient
from offlinesync.storage.identity import IdentityProvider
from offlinesync.storage.local_cache import MANUAL_REMOTE_CONFIG_KEY, PROFILE_KEY, LocalCacheStore
from offlinesync.sync.history import HistoryReconciler
from offlinesync.sync.models import EntryId, HistoryEntry, ProfileRecord
from offlinesync.sync.policy import BestEffort
from offlinesync.sync.profile import ProfileReconciler


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def build_remote_handle(
    cfg: AppConfig,
    cache: LocalCacheStore,
    environ: Mapping[str, str] | None = None,
) -> RemoteHandle:
    if not cfg.remote.enabled:
        return Unconfigured("remote_disabled")

    creds, source = resolve_credentials(cache, cfg.remote, environ)
    if creds is None:
        return Unconfigured("remote_credentials_missing")
    return Configured(firestore_client_from(cfg, creds), source=source)


def firestore_client_from(cfg: AppConfig, creds: RemoteCredentials) -> FirestoreClient:
    return FirestoreClient(
        api_key=creds.api_key,
        project_id=creds.project_id,
        database_id=cfg.remote.database_id,
        base_url=cfg.remote.base_url,
        timeout=int(cfg.remote.timeout_sec),
        users_collection=cfg.sync.users_collection,
        history_collection=cfg.sync.history_collection,
    )


class SyncService:
    """Profile and history reconcilers sharing one cache, identity and remote handle."""

    def __init__(
        self,
        cfg: AppConfig,
        cache: LocalCacheStore,
        remote: RemoteHandle,
        log_func: LogFunc | None = None,
        environ: Mapping[str, str] | None = None,
    ):
        self.cfg = cfg
        self.cache = cache
        self.log_func = log_func or log_to_logging
        self.environ = environ
        self.identity = IdentityProvider(cache, self.log_func)
        self.policy = BestEffort(self.log_func, module="sync")
        self.profile = ProfileReconciler(cache, remote, self.identity, self.policy, self.log_func)
        self.history = HistoryReconciler(
            cache,
            remote,
            self.identity,
            self.policy,
            self.log_func,
            limit=int(cfg.sync.history_limit),
            max_workers=int(cfg.remote.upload_workers),
        )
        self.remote = remote

    def _set_remote(self, remote: RemoteHandle) -> None:
        self.remote = remote
        self.profile.remote = remote
        self.history.remote = remote

    @property
    def client_id(self) -> str:
        return self.identity.get_client_id()

    def save_profile(self, fields: dict[str, Any], last_updated: int | None = None) -> ProfileRecord:
        record = ProfileRecord.from_cache(fields)
        if last_updated is not None:
            record.last_updated = last_updated
        self.profile.save_profile(record)
        return record

    def load_profile(self) -> ProfileRecord | None:
        return self.profile.load_profile()

    def append_history(self, payload: dict[str, Any]) -> EntryId:
        return self.history.append(payload)

    def fetch_history(self) -> list[HistoryEntry]:
        return self.history.fetch()

    def local_history(self) -> list[HistoryEntry]:
        return self.history.window()

    def sync_history(self, run_type: str) -> tuple[list[HistoryEntry], dict[str, Any]]:
        """Run one history fetch and describe it as a sync-run summary."""
        before = self.history.window()
        started_at = _now_iso()
        mark = self.policy.last_seq
        entries = self.history.fetch()
        failures = self.policy.failures(since=mark)
        summary = {
            "run_type": run_type,
            "started_at": started_at,
            "finished_at": _now_iso(),
            "client_id": self.client_id,
            "remote_configured": isinstance(self.remote, Configured),
            "pending_before": sum(1 for e in before if e.pending),
            "pending_after": sum(1 for e in entries if e.pending),
            "count": len(entries),
            "errors": len(failures),
            "failures": [{"op": o.op, "error": o.error} for o in failures],
        }
        return entries, summary

    def configure_remote(self, text: str) -> RemoteCredentials:
        """Store a pasted credential blob; raises InvalidRemoteConfigError when unusable."""
        creds = save_manual_config(self.cache, text)
        self.log_func("INFO", "sync", "remote_config_saved", json.dumps({"project_id": creds.project_id}))
        if self.cfg.remote.enabled:
            self._set_remote(Configured(firestore_client_from(self.cfg, creds), source="manual"))
        return creds

    def clear_remote_config(self) -> None:
        self.cache.delete(MANUAL_REMOTE_CONFIG_KEY)
        self._set_remote(build_remote_handle(self.cfg, self.cache, self.environ))

    def status(self) -> dict[str, Any]:
        if isinstance(self.remote, Configured):
            remote_info: dict[str, Any] = {"configured": True, "source": self.remote.source}
            store = self.remote.store
            if isinstance(store, FirestoreClient):
                remote_info["project_id"] = store.project_id
        else:
            remote_info = {"configured": False, "reason": self.remote.reason}

        window = self.history.window()
        try:
            profile_cached = self.cache.get(PROFILE_KEY) is not None
        except sqlite3.Error:
            profile_cached = False
        return {
            "client_id": self.client_id,
            "remote": remote_info,
            "cache_path": self.cache.db_path,
            "profile_cached": profile_cached,
            "history_cached": len(window),
            "history_pending": sum(1 for e in window if e.pending),
            "recent_failures": [asdict(o) for o in self.policy.failures()[-10:]],
        }


def build_sync_service(
    cfg: AppConfig,
    environ: Mapping[str, str] | None = None,
    log_func: LogFunc | None = None,
) -> SyncService:
    cache = LocalCacheStore(cfg.database.path, log_func)
    remote = build_remote_handle(cfg, cache, environ)
    return SyncService(cfg, cache, remote, log_func=log_func, environ=environ)
