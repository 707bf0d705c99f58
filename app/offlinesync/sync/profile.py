from __future__ import annotations

import json
from typing import Callable

from offlinesync.core.logging_setup import LogFunc, log_to_logging
from offlinesync.providers.base import Configured, RemoteHandle, Unconfigured
from offlinesync.storage.identity import IdentityProvider
from offlinesync.storage.local_cache import PROFILE_KEY, LocalCacheStore

from .models import ProfileRecord, ms_to_datetime, now_ms
from .policy import BestEffort


class ProfileReconciler:
    """Singleton profile: local cache first, remote copy wins whenever one exists."""

    def __init__(
        self,
        cache: LocalCacheStore,
        remote: RemoteHandle,
        identity: IdentityProvider,
        policy: BestEffort | None = None,
        log_func: LogFunc | None = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.cache = cache
        self.remote = remote
        self.identity = identity
        self.log_func = log_func or log_to_logging
        self.policy = policy or BestEffort(self.log_func, module="profile")
        self.clock = clock

    def _log(self, level: str, message: str, detail: str | None = None):
        self.log_func(level, "profile", message, detail)

    def _read_local(self) -> ProfileRecord | None:
        data = self.cache.read_json(PROFILE_KEY)
        if not isinstance(data, dict):
            return None
        return ProfileRecord.from_cache(data)

    def _push(self, op: str, remote: Configured, record: ProfileRecord):
        return self.policy.attempt(
            op,
            remote.store.put_profile,
            self.identity.get_client_id(),
            record.to_cache(),
            ms_to_datetime(self.clock()),
        )

    def save_profile(self, record: ProfileRecord) -> None:
        if record.last_updated is None:
            record.last_updated = self.clock()

        # Local write is never skipped, whatever the remote state.
        self.cache.write_json(PROFILE_KEY, record.to_cache())

        if isinstance(self.remote, Unconfigured):
            return
        self._push("profile_push", self.remote, record)

    def load_profile(self) -> ProfileRecord | None:
        local = self._read_local()

        if isinstance(self.remote, Unconfigured):
            return local

        pulled = self.policy.attempt("profile_pull", self.remote.store.get_profile, self.identity.get_client_id())
        if not pulled.ok:
            return local

        if isinstance(pulled.value, dict):
            remote = ProfileRecord.from_remote(pulled.value)
            self.cache.write_json(PROFILE_KEY, remote.to_cache())
            self._log("INFO", "profile_synced_from_remote")
            return remote

        if local is not None:
            self._log("INFO", "profile_bootstrap_started", json.dumps({"last_updated": local.last_updated}))
            self._push("profile_bootstrap", self.remote, local)
            return local

        return None
