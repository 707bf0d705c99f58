import sqlite3
from pathlib import Path

from offlinesync.storage.local_cache import HISTORY_KEY, PROFILE_KEY, LocalCacheStore


def _cache(tmp_path: Path, events: list | None = None) -> LocalCacheStore:
    log_func = (lambda *args: events.append(args)) if events is not None else (lambda *_: None)
    return LocalCacheStore(str(tmp_path / "runtime" / "cache.db"), log_func=log_func)


def test_get_returns_none_for_missing_key(tmp_path: Path):
    cache = _cache(tmp_path)
    assert cache.get("nothing") is None


def test_set_overwrites_and_survives_reopen(tmp_path: Path):
    cache = _cache(tmp_path)
    cache.set("k", "one")
    cache.set("k", "two")

    reopened = _cache(tmp_path)
    assert reopened.get("k") == "two"
    assert reopened.keys() == ["k"]


def test_delete_removes_key(tmp_path: Path):
    cache = _cache(tmp_path)
    cache.set("k", "v")
    cache.delete("k")
    cache.delete("never-set")
    assert cache.get("k") is None


def test_read_json_logs_and_returns_none_on_corrupt_value(tmp_path: Path):
    events: list = []
    cache = _cache(tmp_path, events)
    cache.set(HISTORY_KEY, "{not json")

    assert cache.read_json(HISTORY_KEY) is None
    assert events[0][0] == "WARN"
    assert events[0][2] == "cache_decode_failed"


def test_write_json_roundtrip_preserves_unicode(tmp_path: Path):
    cache = _cache(tmp_path)
    assert cache.write_json(PROFILE_KEY, {"name": "Zoë", "age": 30}) is True
    assert cache.read_json(PROFILE_KEY) == {"name": "Zoë", "age": 30}


def test_write_json_reports_unserializable_value(tmp_path: Path):
    events: list = []
    cache = _cache(tmp_path, events)

    assert cache.write_json(PROFILE_KEY, {"bad": object()}) is False
    assert events[-1][0] == "ERROR"
    assert events[-1][2] == "cache_write_failed"
    assert cache.get(PROFILE_KEY) is None


def test_read_json_swallows_storage_errors(monkeypatch, tmp_path: Path):
    events: list = []
    cache = _cache(tmp_path, events)

    def _broken(_key):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(cache, "get", _broken)

    assert cache.read_json(PROFILE_KEY) is None
    assert events[-1][2] == "cache_read_failed"
