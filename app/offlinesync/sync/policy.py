from __future__ import annotations

import json
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from offlinesync.core.logging_setup import LogFunc, log_to_logging


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Outcome:
    op: str
    ok: bool
    value: Any = None
    error: str | None = None
    at: str = field(default_factory=_now_iso)
    seq: int = 0


class BestEffort:
    """Run remote calls so that failures are logged and recorded, never raised.

    Every attempt yields an ``Outcome``; the most recent ones are kept so that
    callers (and tests) can see what was tried and what failed.
    """

    def __init__(self, log_func: LogFunc | None = None, module: str = "sync", keep: int = 200):
        self.log_func = log_func or log_to_logging
        self.module = module
        self._outcomes: deque[Outcome] = deque(maxlen=keep)
        self._lock = threading.Lock()
        self._seq = 0

    def attempt(self, op: str, fn: Callable[..., Any], *args, **kwargs) -> Outcome:
        try:
            value = fn(*args, **kwargs)
        except Exception as e:
            outcome = Outcome(op=op, ok=False, error=f"{type(e).__name__}: {e}")
            self.log_func("WARN", self.module, f"{op}_failed", json.dumps({"error": outcome.error}, ensure_ascii=False))
        else:
            outcome = Outcome(op=op, ok=True, value=value)
            self.log_func("DEBUG", self.module, f"{op}_ok", None)
        with self._lock:
            self._seq += 1
            outcome.seq = self._seq
            self._outcomes.append(outcome)
        return outcome

    @property
    def outcomes(self) -> list[Outcome]:
        with self._lock:
            return list(self._outcomes)

    @property
    def last_seq(self) -> int:
        with self._lock:
            return self._seq

    def failures(self, op: str | None = None, since: int = 0) -> list[Outcome]:
        return [o for o in self.outcomes if not o.ok and o.seq > since and (op is None or o.op == op)]

    def clear(self) -> None:
        with self._lock:
            self._outcomes.clear()
