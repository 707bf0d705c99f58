from __future__ import annotations

import json
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable

from offlinesync.core.logging_setup import LogFunc, log_to_logging
from offlinesync.providers.base import Configured, RemoteHandle, Unconfigured
from offlinesync.storage.identity import IdentityProvider
from offlinesync.storage.local_cache import HISTORY_KEY, LocalCacheStore

from .models import (
    HISTORY_LIMIT,
    EntryId,
    HistoryEntry,
    RemoteId,
    clean_payload,
    datetime_to_ms,
    ms_to_datetime,
    new_local_id,
    now_ms,
    order_window,
)
from .policy import BestEffort, Outcome


class HistoryReconciler:
    """Bounded history window with upload-then-download reconciliation.

    Entries created while offline carry a ``LocalId``. As soon as the remote
    store accepts one, its id is retired to the returned ``RemoteId`` in the
    cached window, so an accepted entry is never uploaded or listed twice.
    """

    def __init__(
        self,
        cache: LocalCacheStore,
        remote: RemoteHandle,
        identity: IdentityProvider,
        policy: BestEffort | None = None,
        log_func: LogFunc | None = None,
        limit: int = HISTORY_LIMIT,
        max_workers: int = 8,
        clock: Callable[[], int] = now_ms,
    ):
        self.cache = cache
        self.remote = remote
        self.identity = identity
        self.log_func = log_func or log_to_logging
        self.policy = policy or BestEffort(self.log_func, module="history")
        self.limit = limit
        self.max_workers = max(1, int(max_workers))
        self.clock = clock

    def _log(self, level: str, message: str, detail: str | None = None):
        self.log_func(level, "history", message, detail)

    def window(self) -> list[HistoryEntry]:
        """Cached window as stored; unreadable rows are skipped."""
        data = self.cache.read_json(HISTORY_KEY)
        if not isinstance(data, list):
            return []
        entries: list[HistoryEntry] = []
        for row in data:
            if not isinstance(row, dict):
                continue
            try:
                entries.append(HistoryEntry.from_cache(row))
            except (TypeError, ValueError) as e:
                self._log("WARN", "history_cache_row_skipped", str(e))
        return entries

    def _save_window(self, entries: list[HistoryEntry]) -> bool:
        return self.cache.write_json(HISTORY_KEY, [e.to_cache() for e in entries])

    def _retire(self, entries: list[HistoryEntry], retired: dict[str, str]) -> list[HistoryEntry]:
        return [e.retire(retired[e.id.value]) if e.pending and e.id.value in retired else e for e in entries]

    def append(self, payload: dict[str, Any]) -> EntryId:
        at = self.clock()
        window = self.window()
        data = clean_payload(payload)
        entry = HistoryEntry(id=new_local_id(window, at), timestamp=at, payload=data)
        updated = [entry, *window][: self.limit]
        self._save_window(updated)

        if isinstance(self.remote, Unconfigured):
            return entry.id

        sent = self.policy.attempt(
            "history_append",
            self.remote.store.append_history,
            self.identity.get_client_id(),
            data,
            ms_to_datetime(at),
        )
        if not sent.ok or not sent.value:
            return entry.id

        self._save_window(self._retire(updated, {entry.id.value: str(sent.value)}))
        return RemoteId(str(sent.value))

    def _upload_pending(self, remote: Configured, pending: list[HistoryEntry]) -> dict[str, str]:
        client_id = self.identity.get_client_id()
        self._log("INFO", "history_upload_started", json.dumps({"pending": len(pending)}))

        workers = min(self.max_workers, len(pending))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="history-upload") as pool:
            futures = [
                (
                    entry,
                    pool.submit(
                        self.policy.attempt,
                        "history_upload",
                        remote.store.append_history,
                        client_id,
                        entry.payload,
                        ms_to_datetime(entry.timestamp),
                    ),
                )
                for entry in pending
            ]

        retired: dict[str, str] = {}
        for entry, future in futures:
            outcome: Outcome = future.result()
            if outcome.ok and outcome.value:
                retired[entry.id.value] = str(outcome.value)

        self._log(
            "INFO",
            "history_upload_finished",
            json.dumps({"uploaded": len(retired), "failed": len(pending) - len(retired)}),
        )
        return retired

    def _download(self, remote: Configured) -> list[HistoryEntry]:
        pulled = self.policy.attempt(
            "history_pull",
            remote.store.list_recent_history,
            self.identity.get_client_id(),
            self.limit,
        )
        if not pulled.ok or not pulled.value:
            return []

        fallback_ms = self.clock()
        entries: list[HistoryEntry] = []
        for item in pulled.value:
            if not item.id:
                continue
            ts = datetime_to_ms(item.timestamp) if item.timestamp is not None else fallback_ms
            entries.append(HistoryEntry(id=RemoteId(item.id), timestamp=ts, payload=clean_payload(item.payload)))
        return entries

    def fetch(self) -> list[HistoryEntry]:
        local = self.window()

        if isinstance(self.remote, Unconfigured):
            return local

        pending = [e for e in local if e.pending]
        if pending:
            retired = self._upload_pending(self.remote, pending)
            if retired:
                local = self._retire(local, retired)
                self._save_window(local)

        cloud = self._download(self.remote)
        if not cloud:
            return local

        # Entries whose upload failed stay visible and are retried next time.
        still_pending = [e for e in local if e.pending]
        merged = order_window([*cloud, *still_pending], self.limit)
        self._save_window(merged)
        return merged
