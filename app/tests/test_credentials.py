from pathlib import Path

import pytest

from offlinesync.core.config import RemoteConfig
from offlinesync.core.credentials import (
    InvalidRemoteConfigError,
    credentials_from_env,
    parse_remote_config,
    resolve_credentials,
    save_manual_config,
    validate_manual_config,
)
from offlinesync.storage.local_cache import MANUAL_REMOTE_CONFIG_KEY, LocalCacheStore

JS_SNIPPET = """
// Import the functions you need from the SDKs you need
const firebaseConfig = {
  apiKey: 'AIzaSyExample',
  authDomain: "demo-app.firebaseapp.com",
  projectId: "demo-app", // project
  storageBucket: "demo-app.appspot.com",
  /* sender */
  messagingSenderId: "1234567890",
  appId: "1:1234567890:web:abcdef",
};
"""


def _cache(tmp_path: Path) -> LocalCacheStore:
    return LocalCacheStore(str(tmp_path / "cache.db"), log_func=lambda *_: None)


def test_parse_remote_config_accepts_plain_json():
    data = parse_remote_config('{"apiKey": "k", "projectId": "p"}')
    assert data == {"apiKey": "k", "projectId": "p"}


def test_parse_remote_config_accepts_console_js_snippet():
    data = parse_remote_config(JS_SNIPPET)

    assert data is not None
    assert data["apiKey"] == "AIzaSyExample"
    assert data["projectId"] == "demo-app"
    assert data["authDomain"] == "demo-app.firebaseapp.com"
    assert data["appId"] == "1:1234567890:web:abcdef"


def test_parse_remote_config_rejects_garbage():
    assert parse_remote_config("") is None
    assert parse_remote_config("no braces here") is None
    assert parse_remote_config("{ apiKey: ") is None


def test_validate_manual_config_requires_api_key_and_project_id():
    with pytest.raises(InvalidRemoteConfigError):
        validate_manual_config('{"apiKey": "k"}')

    creds = validate_manual_config(JS_SNIPPET)
    assert creds.api_key == "AIzaSyExample"
    assert creds.project_id == "demo-app"


def test_save_manual_config_stores_only_valid_text(tmp_path: Path):
    cache = _cache(tmp_path)

    with pytest.raises(InvalidRemoteConfigError):
        save_manual_config(cache, "const firebaseConfig = {};")
    assert cache.get(MANUAL_REMOTE_CONFIG_KEY) is None

    save_manual_config(cache, JS_SNIPPET)
    assert cache.get(MANUAL_REMOTE_CONFIG_KEY) == JS_SNIPPET


def test_credentials_from_env_honours_framework_prefixes():
    environ = {"VITE_FIREBASE_API_KEY": "env-key", "NEXT_PUBLIC_FIREBASE_PROJECT_ID": "env-project"}

    creds = credentials_from_env(environ)

    assert creds is not None
    assert creds.api_key == "env-key"
    assert creds.project_id == "env-project"
    assert credentials_from_env({"FIREBASE_API_KEY": "only-key"}) is None


def test_resolve_credentials_prefers_manual_then_config_then_env(tmp_path: Path):
    cache = _cache(tmp_path)
    environ = {"FIREBASE_API_KEY": "env-key", "FIREBASE_PROJECT_ID": "env-project"}
    remote_cfg = RemoteConfig(api_key="cfg-key", project_id="cfg-project")

    creds, source = resolve_credentials(cache, RemoteConfig(), environ)
    assert (creds.project_id, source) == ("env-project", "env")

    creds, source = resolve_credentials(cache, remote_cfg, environ)
    assert (creds.project_id, source) == ("cfg-project", "config")

    save_manual_config(cache, JS_SNIPPET)
    creds, source = resolve_credentials(cache, remote_cfg, environ)
    assert (creds.project_id, source) == ("demo-app", "manual")


def test_resolve_credentials_reports_none(tmp_path: Path):
    creds, source = resolve_credentials(_cache(tmp_path), RemoteConfig(), {})
    assert creds is None
    assert source == "none"
