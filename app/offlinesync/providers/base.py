"""Remote store contract and the configured/unconfigured handle around it."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, Union


class RemoteStoreError(RuntimeError):
    pass


@dataclass
class RemoteHistoryItem:
    id: str
    timestamp: datetime | None
    payload: dict[str, Any] = field(default_factory=dict)


class RemoteStore(Protocol):
    def get_profile(self, client_id: str) -> dict[str, Any] | None: ...

    def put_profile(self, client_id: str, data: dict[str, Any], updated_at: datetime) -> None: ...

    def append_history(self, client_id: str, payload: dict[str, Any], timestamp: datetime) -> str: ...

    def list_recent_history(self, client_id: str, limit: int = 50) -> list[RemoteHistoryItem]: ...


@dataclass(frozen=True)
class Configured:
    store: RemoteStore
    source: str = ""


@dataclass(frozen=True)
class Unconfigured:
    reason: str = "remote_not_configured"


RemoteHandle = Union[Configured, Unconfigured]
