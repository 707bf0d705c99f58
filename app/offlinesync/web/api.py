from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from fastapi import APIRouter, Body, HTTPException
from fastapi.responses import JSONResponse

from offlinesync.core.config import LAST_SYNC_PATH, RUN_HISTORY_PATH, load_config
from offlinesync.core.credentials import InvalidRemoteConfigError
from offlinesync.core.log_tail import build_log_tail_payload
from offlinesync.service import SyncService, build_sync_service

router = APIRouter(prefix="/api")

logger = logging.getLogger("api")

SYNC_RUN_LOCK = threading.Lock()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _build_service() -> SyncService:
    return build_sync_service(load_config())


def _append_run_history(summary: dict) -> None:
    RUN_HISTORY_PATH.parent.mkdir(parents=True, exist_ok=True)
    with RUN_HISTORY_PATH.open("a", encoding="utf-8") as f:
        f.write(json.dumps(summary, ensure_ascii=False))
        f.write("\n")


def _read_run_history(limit: int = 50) -> list[dict]:
    if limit <= 0:
        return []
    if not RUN_HISTORY_PATH.exists():
        return []

    lines = RUN_HISTORY_PATH.read_text(encoding="utf-8", errors="replace").splitlines()
    out: list[dict] = []
    for line in reversed(lines):
        if len(out) >= limit:
            break
        raw = line.strip()
        if not raw:
            continue
        try:
            payload = json.loads(raw)
        except ValueError:
            payload = {"raw": raw, "parse_error": True}
        if isinstance(payload, dict):
            out.append(payload)
    return out


def _run_sync_and_record(service: SyncService, run_type: str) -> tuple[list, dict]:
    entries, summary = service.sync_history(run_type)
    LAST_SYNC_PATH.parent.mkdir(parents=True, exist_ok=True)
    LAST_SYNC_PATH.write_text(json.dumps(summary, ensure_ascii=False, indent=2), encoding="utf-8")
    _append_run_history(summary)
    return entries, summary


def _build_readiness_payload() -> dict:
    checks: dict[str, bool] = {
        "config_load": False,
        "database_parent_ready": False,
        "log_parent_ready": False,
        "remote_enabled": False,
    }
    warnings: list[str] = []
    errors: list[str] = []

    cfg = None
    try:
        cfg = load_config()
        checks["config_load"] = True
    except Exception as e:
        errors.append(f"config_load_failed: {e}")

    if cfg is not None:
        checks["remote_enabled"] = bool(cfg.remote.enabled)
        if not checks["remote_enabled"]:
            warnings.append("remote_disabled")

        try:
            Path(cfg.database.path).parent.mkdir(parents=True, exist_ok=True)
            checks["database_parent_ready"] = True
        except Exception as e:
            errors.append(f"database_parent_unavailable: {e}")

        try:
            Path(cfg.logging.file).parent.mkdir(parents=True, exist_ok=True)
            checks["log_parent_ready"] = True
        except Exception as e:
            errors.append(f"log_parent_unavailable: {e}")

    ok = checks["config_load"] and checks["database_parent_ready"] and checks["log_parent_ready"]
    return {
        "ok": ok,
        "checked_at": _now_iso(),
        "checks": checks,
        "warnings": warnings,
        "errors": errors,
    }


@router.get("/healthz")
def healthz():
    return {
        "ok": True,
        "status": "alive",
        "checked_at": _now_iso(),
    }


@router.get("/readyz")
def readyz():
    payload = _build_readiness_payload()
    return JSONResponse(status_code=200 if payload["ok"] else 503, content=payload)


@router.get("/config")
def get_config():
    cfg = load_config()
    data = cfg.model_dump()
    if data["remote"].get("api_key"):
        data["remote"]["api_key"] = "***"
    return data


@router.get("/status")
def get_status():
    return _build_service().status()


@router.get("/profile")
def get_profile():
    record = _build_service().load_profile()
    return {"ok": True, "profile": record.to_public() if record else None}


@router.put("/profile")
def put_profile(payload: dict = Body(...)):
    """Replace the profile; the local copy is written even when the remote is unreachable."""
    service = _build_service()
    record = service.save_profile(payload)
    return {"ok": True, "profile": record.to_public(), "remote": service.status()["remote"]}


@router.get("/history")
def get_history(refresh: bool = True):
    service = _build_service()
    if not refresh:
        entries = service.local_history()
        return {"ok": True, "count": len(entries), "items": [e.to_public() for e in entries]}

    if not SYNC_RUN_LOCK.acquire(blocking=False):
        raise HTTPException(status_code=409, detail="sync_busy")
    try:
        entries, summary = _run_sync_and_record(service, "manual_web")
    finally:
        SYNC_RUN_LOCK.release()
    return {"ok": True, "count": len(entries), "items": [e.to_public() for e in entries], "summary": summary}


@router.post("/history")
def post_history(payload: dict = Body(...)):
    entry_id = _build_service().append_history(payload)
    return {"ok": True, "id": entry_id.value, "idKind": entry_id.kind}


@router.post("/remote-config")
def post_remote_config(payload: Any = Body(...)):
    """Accept a pasted Firebase web config, as raw text or as a JSON object."""
    text = payload.get("text") if isinstance(payload, dict) and "text" in payload else payload
    if not isinstance(text, str):
        text = json.dumps(text)

    service = _build_service()
    try:
        creds = service.configure_remote(text)
    except InvalidRemoteConfigError as e:
        raise HTTPException(status_code=400, detail=str(e))
    logger.info("remote_config_updated project_id=%s", creds.project_id)
    return {"ok": True, "project_id": creds.project_id, "remote": service.status()["remote"]}


@router.delete("/remote-config")
def delete_remote_config():
    service = _build_service()
    service.clear_remote_config()
    return {"ok": True, "remote": service.status()["remote"]}


@router.get("/logs")
def get_logs(n: int = 200, level: str | None = None, module: str | None = None):
    cfg = load_config()
    payload = build_log_tail_payload(
        cfg.logging.file,
        n=n,
        level=level,
        module=module,
    )
    return payload


@router.get("/sync-runs")
def get_sync_runs(limit: int = 50):
    limit_sanitized = min(max(int(limit), 1), 500)
    items = _read_run_history(limit=limit_sanitized)
    return {
        "path": str(RUN_HISTORY_PATH),
        "limit": limit_sanitized,
        "count": len(items),
        "items": items,
    }
