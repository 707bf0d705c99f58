"""Read back the service log written by ``setup_logging``.

Lines look like ``<date> <time> [LEVEL] [logger] <event_code> <detail>``; the
component loggers emit a snake_case event code followed by optional JSON detail.
"""

from __future__ import annotations

import re
from collections import deque
from pathlib import Path
from typing import Iterator

SERVICE_LINE_RE = re.compile(
    r"^(?P<ts>\S+ \S+) \[(?P<level>[A-Z]+)\] \[(?P<module>[^\]]+)\] ?(?P<event>\S*) ?(?P<detail>.*)$"
)

LEVEL_ALIASES = {"WARN": "WARNING"}


def normalize_level(level: str | None) -> str | None:
    value = (level or "").strip().upper()
    if not value:
        return None
    return LEVEL_ALIASES.get(value, value)


def read_last_lines(path: str, n: int = 200) -> list[str]:
    if not Path(path).exists():
        return []
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        return [line.rstrip("\n") for line in deque(f, maxlen=n)]


def parse_service_line(line: str) -> dict[str, str]:
    match = SERVICE_LINE_RE.match(line)
    if match is None:
        # Tracebacks and third-party output keep their raw text.
        return {"raw": line, "ts": "", "level": "", "module": "", "event": "", "detail": "", "message": line}
    item = {"raw": line, **match.groupdict()}
    item["message"] = f"{item['event']} {item['detail']}".strip()
    return item


def _filtered(lines: list[str], level: str | None, module: str | None) -> Iterator[dict[str, str]]:
    for line in lines:
        item = parse_service_line(line)
        if level and item["level"] != level:
            continue
        if module and item["module"].lower() != module:
            continue
        yield item


def build_log_tail_payload(path: str, n: int = 200, level: str | None = None, module: str | None = None) -> dict:
    """Last ``n`` log lines, optionally filtered by level and logger name."""
    level_wanted = normalize_level(level)
    module_wanted = (module or "").strip().lower() or None
    items = list(_filtered(read_last_lines(path, n=n), level_wanted, module_wanted))
    return {
        "path": path,
        "n": n,
        "level": level_wanted,
        "module": module_wanted,
        "count": len(items),
        "tail": "\n".join(item["raw"] for item in items),
        "items": items,
    }
