from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from offlinesync.core.config import (
    DEFAULT_CONFIG_PATH,
    LAST_SYNC_PATH,
    RUN_HISTORY_PATH,
    load_config,
)
from offlinesync.core.credentials import InvalidRemoteConfigError
from offlinesync.core.log_tail import build_log_tail_payload
from offlinesync.core.logging_setup import setup_logging
from offlinesync.service import SyncService, build_sync_service

app = typer.Typer(add_completion=False)
console = Console()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _fail(error: str) -> None:
    _print_json({"ok": False, "error": error})
    raise typer.Exit(2)


def _append_run_history(summary: dict) -> None:
    RUN_HISTORY_PATH.parent.mkdir(parents=True, exist_ok=True)
    with RUN_HISTORY_PATH.open("a", encoding="utf-8") as f:
        f.write(json.dumps(summary, ensure_ascii=False))
        f.write("\n")


def _build_service() -> SyncService:
    cfg = load_config()
    logging.getLogger().setLevel(getattr(logging, cfg.logging.level.upper(), logging.INFO))
    return build_sync_service(cfg)


def _read_json_arg(raw: str | None, file: Path | None) -> Any:
    if file is not None:
        text = sys.stdin.read() if str(file) == "-" else file.read_text(encoding="utf-8")
    elif raw is not None:
        text = raw
    else:
        raise ValueError("json_input_missing: pass --json or --file")
    return json.loads(text)


@app.command("config-show")
def config_show(path: Path = DEFAULT_CONFIG_PATH):
    """Show current config.yaml."""
    cfg = load_config(path)
    data = cfg.model_dump()
    if data["remote"].get("api_key"):
        data["remote"]["api_key"] = "***"
    _print_json(data)


@app.command("config-validate")
def config_validate(
    path: Path = DEFAULT_CONFIG_PATH,
    strict: bool = typer.Option(False, "--strict", help="Return non-zero when validation fails."),
):
    """Validate config and runtime prerequisites."""
    out: dict[str, Any] = {
        "ok": True,
        "checked_at": _now_iso(),
        "config_path": str(path),
        "checks": {
            "config_exists": path.exists(),
            "remote_enabled": False,
            "remote_credentials_in_config": False,
            "web_port_valid": False,
            "database_parent_ready": False,
            "log_parent_ready": False,
        },
        "warnings": [],
        "errors": [],
    }

    try:
        cfg = load_config(path)
    except Exception as e:
        out["ok"] = False
        out["errors"].append(f"load_config_failed: {e}")
        _print_json(out)
        if strict:
            raise typer.Exit(2)
        return

    out["checks"]["remote_enabled"] = bool(cfg.remote.enabled)
    out["checks"]["remote_credentials_in_config"] = bool(cfg.remote.api_key and cfg.remote.project_id)
    if cfg.remote.enabled and not out["checks"]["remote_credentials_in_config"]:
        out["warnings"].append("remote_credentials_not_in_config: manual blob or environment will be used if present")

    port = int(cfg.web_port)
    out["checks"]["web_port_valid"] = 1 <= port <= 65535
    if not out["checks"]["web_port_valid"]:
        out["errors"].append(f"web_port_out_of_range: {port}")

    try:
        Path(cfg.database.path).parent.mkdir(parents=True, exist_ok=True)
        out["checks"]["database_parent_ready"] = True
    except Exception as e:
        out["errors"].append(f"database_parent_unavailable: {e}")

    try:
        Path(cfg.logging.file).parent.mkdir(parents=True, exist_ok=True)
        out["checks"]["log_parent_ready"] = True
    except Exception as e:
        out["errors"].append(f"log_parent_unavailable: {e}")

    out["ok"] = len(out["errors"]) == 0
    _print_json(out)
    if strict and not out["ok"]:
        raise typer.Exit(2)


@app.command()
def status():
    """Show cache, identity and remote readiness summary."""
    cfg = load_config()
    service = build_sync_service(cfg)
    info = service.status()
    remote = info["remote"]

    table = Table(title="offlinesync status")
    table.add_column("Key")
    table.add_column("Value")
    table.add_row("config", str(DEFAULT_CONFIG_PATH))
    table.add_row("client_id", info["client_id"])
    table.add_row("cache", info["cache_path"])
    table.add_row("remote", "configured" if remote["configured"] else f"offline ({remote.get('reason')})")
    if remote["configured"]:
        table.add_row("remote_source", str(remote.get("source") or ""))
        table.add_row("project_id", str(remote.get("project_id") or ""))
    table.add_row("profile_cached", "yes" if info["profile_cached"] else "no")
    table.add_row("history_cached", str(info["history_cached"]))
    table.add_row("history_pending", str(info["history_pending"]))
    table.add_row("log", cfg.logging.file)
    table.add_row("web", f"http://{cfg.web_bind_host}:{cfg.web_port}")
    console.print(table)


@app.command("client-id")
def client_id():
    """Print the stable client id (created on first use)."""
    print(_build_service().client_id)


@app.command("remote-set")
def remote_set(
    file: Path | None = typer.Option(None, "--file", help="File holding the pasted config ('-' for stdin)."),
    text: str | None = typer.Option(None, "--text", help="Config text, JSON or a JS object literal."),
):
    """Save a pasted Firebase web config as the remote credentials."""
    if file is not None:
        raw = sys.stdin.read() if str(file) == "-" else file.read_text(encoding="utf-8")
    elif text is not None:
        raw = text
    else:
        _fail("remote_config_missing: pass --file or --text")
        return

    service = _build_service()
    try:
        creds = service.configure_remote(raw)
    except InvalidRemoteConfigError as e:
        _fail(str(e))
        return
    _print_json({"ok": True, "project_id": creds.project_id, "remote": service.status()["remote"]})


@app.command("remote-clear")
def remote_clear():
    """Forget the manually saved remote credentials."""
    service = _build_service()
    service.clear_remote_config()
    _print_json({"ok": True, "remote": service.status()["remote"]})


@app.command("profile-show")
def profile_show():
    """Load the profile (remote copy wins when reachable) and print it."""
    record = _build_service().load_profile()
    _print_json({"ok": True, "profile": record.to_public() if record else None})


@app.command("profile-save")
def profile_save(
    json_text: str | None = typer.Option(None, "--json", help="Profile fields as a JSON object."),
    file: Path | None = typer.Option(None, "--file", help="JSON file with profile fields ('-' for stdin)."),
):
    """Save the profile locally and mirror it to the remote when possible."""
    try:
        fields = _read_json_arg(json_text, file)
    except (OSError, ValueError) as e:
        _fail(str(e))
        return
    if not isinstance(fields, dict):
        _fail("profile_must_be_object")
        return
    record = _build_service().save_profile(fields)
    _print_json({"ok": True, "profile": record.to_public()})


@app.command("history-add")
def history_add(
    json_text: str = typer.Option(..., "--json", help="Entry payload as a JSON object."),
):
    """Append a history entry; prints the id currently valid for it."""
    try:
        payload = json.loads(json_text)
    except ValueError as e:
        _fail(f"invalid_json: {e}")
        return
    if not isinstance(payload, dict):
        _fail("payload_must_be_object")
        return
    entry_id = _build_service().append_history(payload)
    _print_json({"ok": True, "id": entry_id.value, "idKind": entry_id.kind})


@app.command("history-show")
def history_show():
    """Print the cached history window without contacting the remote."""
    entries = _build_service().local_history()
    _print_json({"ok": True, "count": len(entries), "items": [e.to_public() for e in entries]})


@app.command("history-sync")
def history_sync():
    """Upload pending entries, download the recent window and print a summary."""
    entries, summary = _build_service().sync_history("manual_cli")
    LAST_SYNC_PATH.parent.mkdir(parents=True, exist_ok=True)
    LAST_SYNC_PATH.write_text(json.dumps(summary, ensure_ascii=False, indent=2), encoding="utf-8")
    _append_run_history(summary)
    _print_json({**summary, "items": [e.to_public() for e in entries]})


@app.command("logs-tail")
def logs_tail(
    n: int = typer.Option(200, "--n", min=1),
    level: str | None = typer.Option(None, "--level", help="Filter by log level (e.g. INFO)."),
    module: str | None = typer.Option(None, "--module", help="Filter by logger/module name."),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON."),
):
    """Tail service log file."""
    cfg = load_config()
    payload = build_log_tail_payload(
        cfg.logging.file,
        n=n,
        level=level,
        module=module,
    )
    if json_output:
        _print_json(payload)
        return
    print(payload.get("tail", ""))


def main():
    cfg = load_config()
    setup_logging(cfg.logging.level, cfg.logging.file)
    app()


if __name__ == "__main__":
    main()
