"""Remote credential parsing and discovery.

Users paste whatever the Firebase console shows them, which is usually a JS
snippet (``const firebaseConfig = { apiKey: '...', ... };``) rather than JSON.
``parse_remote_config`` accepts both.
"""

from __future__ import annotations

import json
import logging
import os
import re
import sqlite3
from typing import TYPE_CHECKING, Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from offlinesync.storage.local_cache import MANUAL_REMOTE_CONFIG_KEY, LocalCacheStore

if TYPE_CHECKING:
    from offlinesync.core.config import RemoteConfig

logger = logging.getLogger("credentials")

FIREBASE_KEYS = (
    "apiKey",
    "authDomain",
    "projectId",
    "storageBucket",
    "messagingSenderId",
    "appId",
    "measurementId",
)
ENV_PREFIXES = ("", "VITE_", "REACT_APP_", "NEXT_PUBLIC_")
ENV_KEYS = {
    "api_key": "FIREBASE_API_KEY",
    "project_id": "FIREBASE_PROJECT_ID",
    "auth_domain": "FIREBASE_AUTH_DOMAIN",
    "storage_bucket": "FIREBASE_STORAGE_BUCKET",
    "messaging_sender_id": "FIREBASE_MESSAGING_SENDER_ID",
    "app_id": "FIREBASE_APP_ID",
}


class InvalidRemoteConfigError(ValueError):
    pass


class RemoteCredentials(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    api_key: str = Field(default="", alias="apiKey")
    project_id: str = Field(default="", alias="projectId")
    auth_domain: str = Field(default="", alias="authDomain")
    storage_bucket: str = Field(default="", alias="storageBucket")
    messaging_sender_id: str = Field(default="", alias="messagingSenderId")
    app_id: str = Field(default="", alias="appId")
    measurement_id: str = Field(default="", alias="measurementId")

    def is_complete(self) -> bool:
        return bool(self.api_key.strip()) and bool(self.project_id.strip())


def parse_remote_config(text: str) -> dict[str, Any] | None:
    if not text or not text.strip():
        return None

    try:
        data = json.loads(text)
        return data if isinstance(data, dict) else None
    except ValueError:
        pass

    first = text.find("{")
    last = text.rfind("}")
    if first == -1 or last == -1 or last < first:
        return None
    snippet = text[first : last + 1]

    snippet = re.sub(r"/\*.*?\*/", "", snippet, flags=re.S)
    # Line comments, but not the "//" inside "https://..."
    snippet = re.sub(r"(?<![:\"'])//.*$", "", snippet, flags=re.M)

    # Only the known keys are quoted so URLs and other values stay untouched.
    for key in FIREBASE_KEYS:
        snippet = re.sub(rf"[\"']?\b{key}\b[\"']?\s*:", f'"{key}":', snippet)

    snippet = re.sub(r":\s*'([^']*)'", r': "\1"', snippet)
    snippet = re.sub(r",(\s*})", r"\1", snippet)

    try:
        data = json.loads(snippet)
    except ValueError as e:
        logger.error("remote_config_parse_failed %s", e)
        return None
    return data if isinstance(data, dict) else None


def credentials_from_text(text: str) -> RemoteCredentials | None:
    data = parse_remote_config(text)
    if data is None:
        return None
    try:
        creds = RemoteCredentials.model_validate({k: v for k, v in data.items() if isinstance(v, str)})
    except ValidationError:
        return None
    return creds if creds.is_complete() else None


def validate_manual_config(text: str) -> RemoteCredentials:
    creds = credentials_from_text(text)
    if creds is None:
        raise InvalidRemoteConfigError(
            "invalid_remote_config: paste the full 'const firebaseConfig = { ... }' block "
            "(apiKey and projectId are required)"
        )
    return creds


def env_var(key: str, environ: Mapping[str, str] | None = None) -> str:
    env = os.environ if environ is None else environ
    for prefix in ENV_PREFIXES:
        value = env.get(prefix + key)
        if value:
            return value
    return ""


def credentials_from_env(environ: Mapping[str, str] | None = None) -> RemoteCredentials | None:
    creds = RemoteCredentials(**{field: env_var(name, environ) for field, name in ENV_KEYS.items()})
    return creds if creds.is_complete() else None


def credentials_from_config(remote_cfg: "RemoteConfig") -> RemoteCredentials | None:
    creds = RemoteCredentials(
        api_key=remote_cfg.api_key,
        project_id=remote_cfg.project_id,
        auth_domain=remote_cfg.auth_domain,
        storage_bucket=remote_cfg.storage_bucket,
        messaging_sender_id=remote_cfg.messaging_sender_id,
        app_id=remote_cfg.app_id,
        measurement_id=remote_cfg.measurement_id,
    )
    return creds if creds.is_complete() else None


def load_manual_config(cache: LocalCacheStore) -> RemoteCredentials | None:
    try:
        raw = cache.get(MANUAL_REMOTE_CONFIG_KEY)
    except sqlite3.Error as e:
        logger.warning("manual_remote_config_read_failed %s", e)
        return None
    if not raw:
        return None
    return credentials_from_text(raw)


def save_manual_config(cache: LocalCacheStore, text: str) -> RemoteCredentials:
    """Validate a pasted credential blob and keep it; invalid text is never stored."""
    creds = validate_manual_config(text)
    cache.set(MANUAL_REMOTE_CONFIG_KEY, text)
    return creds


def resolve_credentials(
    cache: LocalCacheStore,
    remote_cfg: "RemoteConfig",
    environ: Mapping[str, str] | None = None,
) -> tuple[RemoteCredentials | None, str]:
    """Return credentials and where they came from: manual, config, env or none."""
    creds = load_manual_config(cache)
    if creds:
        return creds, "manual"
    creds = credentials_from_config(remote_cfg)
    if creds:
        return creds, "config"
    creds = credentials_from_env(environ)
    if creds:
        return creds, "env"
    return None, "none"
