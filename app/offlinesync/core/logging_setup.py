from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

LogFunc = Callable[[str, str, str, Optional[str]], None]

_LEVEL_ALIASES = {"WARN": "WARNING"}


def setup_logging(level: str, logfile: str):
    Path(logfile).parent.mkdir(parents=True, exist_ok=True)

    log_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(log_level)

    # Clear existing handlers to avoid duplicates across restarts/reloads.
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter("%(asctime)s [%(levelname)s] [%(name)s] %(message)s")

    fh = logging.FileHandler(logfile, encoding="utf-8")
    fh.setLevel(log_level)
    fh.setFormatter(fmt)
    root.addHandler(fh)

    ch = logging.StreamHandler()
    ch.setLevel(log_level)
    ch.setFormatter(fmt)
    root.addHandler(ch)

    # Route uvicorn logs into the same root handlers/file.
    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logger = logging.getLogger(logger_name)
        logger.handlers.clear()
        logger.setLevel(log_level)
        logger.propagate = True

    root.info("logging initialized")


def log_to_logging(level: str, module: str, message: str, detail: str | None = None):
    """Default ``log_func``: forward a component event to ``logging.getLogger(module)``."""
    name = _LEVEL_ALIASES.get(level.upper(), level.upper())
    logging.getLogger(module).log(
        getattr(logging, name, logging.INFO),
        f"{message} {detail or ''}".strip(),
    )
