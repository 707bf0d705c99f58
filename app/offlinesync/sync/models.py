from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Union

HISTORY_LIMIT = 50
LOCAL_ID_PREFIX = "item_"
RESERVED_PAYLOAD_KEYS = ("id", "timestamp")
PROFILE_UPDATED_KEY = "lastUpdated"
REMOTE_UPDATED_AT_KEY = "updatedAt"


def now_ms() -> int:
    return int(time.time() * 1000)


def ms_to_datetime(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000.0, tz=timezone.utc)


def datetime_to_ms(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(round(dt.timestamp() * 1000))


def json_safe(value: Any) -> Any:
    """Datetimes (as decoded from remote timestamps) become RFC 3339 UTC strings."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
    if isinstance(value, dict):
        return {str(k): json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_safe(v) for v in value]
    return value


def clean_payload(payload: dict[str, Any]) -> dict[str, Any]:
    return {k: json_safe(v) for k, v in (payload or {}).items() if k not in RESERVED_PAYLOAD_KEYS}


@dataclass(frozen=True)
class LocalId:
    """Temporary id assigned before the remote store has accepted the entry."""

    value: str

    @property
    def kind(self) -> str:
        return "local"

    def created_ms(self) -> int:
        try:
            return int(self.value[len(LOCAL_ID_PREFIX):])
        except ValueError:
            return 0


@dataclass(frozen=True)
class RemoteId:
    value: str

    @property
    def kind(self) -> str:
        return "remote"


EntryId = Union[LocalId, RemoteId]


def new_local_id(window: Iterable["HistoryEntry"], at_ms: int) -> LocalId:
    """``item_<ms>``, bumped past every local id already in the window."""
    latest = max((e.id.created_ms() for e in window if isinstance(e.id, LocalId)), default=0)
    return LocalId(f"{LOCAL_ID_PREFIX}{max(at_ms, latest + 1)}")


@dataclass
class HistoryEntry:
    id: EntryId
    timestamp: int
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def pending(self) -> bool:
        return isinstance(self.id, LocalId)

    def retire(self, remote_id: str) -> "HistoryEntry":
        return HistoryEntry(id=RemoteId(remote_id), timestamp=self.timestamp, payload=dict(self.payload))

    def to_cache(self) -> dict[str, Any]:
        return {
            "id": self.id.value,
            "idKind": self.id.kind,
            "timestamp": self.timestamp,
            "payload": self.payload,
        }

    @classmethod
    def from_cache(cls, data: dict[str, Any]) -> "HistoryEntry":
        raw_id = data.get("id")
        if not isinstance(raw_id, str) or not raw_id:
            raise ValueError("history_entry_id_missing")
        kind = data.get("idKind")
        if kind == "local":
            entry_id: EntryId = LocalId(raw_id)
        elif kind == "remote":
            entry_id = RemoteId(raw_id)
        else:
            raise ValueError(f"history_entry_id_kind_invalid: {kind!r}")
        payload = data.get("payload") or {}
        if not isinstance(payload, dict):
            raise ValueError("history_entry_payload_invalid")
        return cls(id=entry_id, timestamp=int(data.get("timestamp") or 0), payload=payload)

    def to_public(self) -> dict[str, Any]:
        return {
            **self.payload,
            "id": self.id.value,
            "idKind": self.id.kind,
            "timestamp": self.timestamp,
        }


def order_window(entries: Iterable[HistoryEntry], limit: int = HISTORY_LIMIT) -> list[HistoryEntry]:
    # sorted() is stable, so equal timestamps keep their incoming order
    return sorted(entries, key=lambda e: e.timestamp, reverse=True)[:limit]


@dataclass
class ProfileRecord:
    fields: dict[str, Any] = field(default_factory=dict)
    last_updated: int | None = None

    def to_cache(self) -> dict[str, Any]:
        data = dict(self.fields)
        data[PROFILE_UPDATED_KEY] = self.last_updated
        return data

    @classmethod
    def from_cache(cls, data: dict[str, Any]) -> "ProfileRecord":
        """Also used for caller payloads: a ``lastUpdated`` key becomes ``last_updated``."""
        fields = dict(data)
        last_updated = fields.pop(PROFILE_UPDATED_KEY, None)
        if isinstance(last_updated, bool) or not isinstance(last_updated, (int, float)):
            last_updated = None
        return cls(fields=fields, last_updated=int(last_updated) if last_updated is not None else None)

    @classmethod
    def from_remote(cls, data: dict[str, Any]) -> "ProfileRecord":
        # updatedAt is written by the remote store on every push and is not a user field.
        fields = dict(data)
        updated_at = fields.pop(REMOTE_UPDATED_AT_KEY, None)
        record = cls.from_cache(json_safe(fields))
        if record.last_updated is None and isinstance(updated_at, datetime):
            record.last_updated = datetime_to_ms(updated_at)
        return record

    def to_public(self) -> dict[str, Any]:
        return self.to_cache()
