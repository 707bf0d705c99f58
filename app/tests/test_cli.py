import json
from pathlib import Path

from typer.testing import CliRunner

from offlinesync.cli import main as cli_module
from offlinesync.core.config import AppConfig

runner = CliRunner()


def _offline_config(monkeypatch, tmp_path: Path) -> AppConfig:
    cfg = AppConfig()
    cfg.remote.enabled = False
    cfg.database.path = str(tmp_path / "runtime" / "cache.db")
    cfg.logging.file = str(tmp_path / "runtime" / "service.log")
    monkeypatch.setattr(cli_module, "load_config", lambda *_args: cfg)
    monkeypatch.setattr(cli_module, "LAST_SYNC_PATH", tmp_path / "runtime" / "last_sync.json")
    monkeypatch.setattr(cli_module, "RUN_HISTORY_PATH", tmp_path / "runtime" / "run_history.jsonl")
    return cfg


def test_client_id_is_stable_across_invocations(monkeypatch, tmp_path: Path):
    _offline_config(monkeypatch, tmp_path)

    first = runner.invoke(cli_module.app, ["client-id"])
    second = runner.invoke(cli_module.app, ["client-id"])

    assert first.exit_code == 0
    assert first.output.strip().startswith("user_")
    assert first.output == second.output


def test_history_add_then_sync_writes_run_summary(monkeypatch, tmp_path: Path):
    _offline_config(monkeypatch, tmp_path)

    added = runner.invoke(cli_module.app, ["history-add", "--json", '{"note": "hi"}'])
    assert added.exit_code == 0
    assert json.loads(added.output)["idKind"] == "local"

    synced = runner.invoke(cli_module.app, ["history-sync"])
    assert synced.exit_code == 0
    out = json.loads(synced.output)
    assert out["count"] == 1
    assert out["remote_configured"] is False
    assert json.loads((tmp_path / "runtime" / "last_sync.json").read_text(encoding="utf-8"))["run_type"] == "manual_cli"
    assert len((tmp_path / "runtime" / "run_history.jsonl").read_text(encoding="utf-8").splitlines()) == 1


def test_history_add_rejects_non_object_payload(monkeypatch, tmp_path: Path):
    _offline_config(monkeypatch, tmp_path)

    result = runner.invoke(cli_module.app, ["history-add", "--json", "[1, 2]"])

    assert result.exit_code == 2
    assert json.loads(result.output) == {"ok": False, "error": "payload_must_be_object"}


def test_profile_save_and_show(monkeypatch, tmp_path: Path):
    _offline_config(monkeypatch, tmp_path)

    saved = runner.invoke(cli_module.app, ["profile-save", "--json", '{"name": "Ana"}'])
    shown = runner.invoke(cli_module.app, ["profile-show"])

    assert saved.exit_code == 0
    assert json.loads(shown.output)["profile"]["name"] == "Ana"


def test_remote_set_reports_invalid_config(monkeypatch, tmp_path: Path):
    _offline_config(monkeypatch, tmp_path)

    result = runner.invoke(cli_module.app, ["remote-set", "--text", "{}"])

    assert result.exit_code == 2
    assert "invalid_remote_config" in json.loads(result.output)["error"]
