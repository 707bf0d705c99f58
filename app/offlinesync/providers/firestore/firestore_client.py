from __future__ import annotations

import logging
from datetime import datetime
from typing import Any
from urllib.parse import quote

import requests

from offlinesync.providers.base import RemoteHistoryItem, RemoteStoreError

from .values import decode_value, document_id, encode_fields

logger = logging.getLogger("firestore")

BASE = "https://firestore.googleapis.com/v1"
PROFILE_TIMESTAMP_FIELD = "updatedAt"
HISTORY_TIMESTAMP_FIELD = "timestamp"


class FirestoreClient:
    """Remote store over the Firestore v1 REST API, authenticated by web API key.

    Layout: ``{users}/{client_id}`` holds the profile document and
    ``{users}/{client_id}/{history}`` the append-only history collection.
    """

    def __init__(
        self,
        api_key: str,
        project_id: str,
        database_id: str = "(default)",
        base_url: str = BASE,
        timeout: int = 30,
        users_collection: str = "users",
        history_collection: str = "history",
    ):
        self.api_key = api_key or ""
        self.project_id = project_id or ""
        self.database_id = database_id or "(default)"
        self.base_url = (base_url or BASE).rstrip("/")
        self.timeout = timeout
        self.users_collection = users_collection
        self.history_collection = history_collection

    @property
    def documents_url(self) -> str:
        return f"{self.base_url}/projects/{quote(self.project_id, safe='')}/databases/{quote(self.database_id, safe='()')}/documents"

    def _user_doc_url(self, client_id: str) -> str:
        return f"{self.documents_url}/{quote(self.users_collection, safe='')}/{quote(client_id, safe='')}"

    def _params(self) -> dict[str, str]:
        if not self.api_key:
            raise RemoteStoreError("api_key_missing")
        return {"key": self.api_key}

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        try:
            return requests.request(method, url, params=self._params(), timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise RemoteStoreError(f"firestore_request_failed: {e}") from e

    def _check(self, res: requests.Response) -> Any:
        if res.status_code >= 400:
            msg = (res.text or "").strip()[:200]
            try:
                body = res.json()
                if isinstance(body, dict) and isinstance(body.get("error"), dict):
                    msg = body["error"].get("message") or msg
                elif isinstance(body, list) and body and isinstance(body[0], dict) and isinstance(body[0].get("error"), dict):
                    msg = body[0]["error"].get("message") or msg
            except ValueError:
                pass
            raise RemoteStoreError(f"firestore_error: status={res.status_code} msg={msg}")
        try:
            return res.json()
        except ValueError as e:
            raise RemoteStoreError("invalid_response") from e

    def get_profile(self, client_id: str) -> dict[str, Any] | None:
        res = self._request("GET", self._user_doc_url(client_id))
        if res.status_code == 404:
            return None
        doc = self._check(res)
        if not isinstance(doc, dict):
            raise RemoteStoreError("invalid_response_document")
        return _decode_fields_lenient(doc.get("fields") or {}, doc.get("name", ""))

    def put_profile(self, client_id: str, data: dict[str, Any], updated_at: datetime) -> None:
        # PATCH without an update mask replaces the whole document.
        fields = dict(data)
        fields[PROFILE_TIMESTAMP_FIELD] = updated_at
        res = self._request("PATCH", self._user_doc_url(client_id), json={"fields": encode_fields(fields)})
        self._check(res)

    def append_history(self, client_id: str, payload: dict[str, Any], timestamp: datetime) -> str:
        fields = {k: v for k, v in payload.items() if k not in ("id", HISTORY_TIMESTAMP_FIELD)}
        fields[HISTORY_TIMESTAMP_FIELD] = timestamp
        url = f"{self._user_doc_url(client_id)}/{quote(self.history_collection, safe='')}"
        doc = self._check(self._request("POST", url, json={"fields": encode_fields(fields)}))
        remote_id = document_id(doc.get("name", "")) if isinstance(doc, dict) else ""
        if not remote_id:
            raise RemoteStoreError("append_history_no_document_name")
        return remote_id

    def list_recent_history(self, client_id: str, limit: int = 50) -> list[RemoteHistoryItem]:
        query = {
            "structuredQuery": {
                "from": [{"collectionId": self.history_collection}],
                "orderBy": [{"field": {"fieldPath": HISTORY_TIMESTAMP_FIELD}, "direction": "DESCENDING"}],
                "limit": int(limit),
            }
        }
        body = self._check(self._request("POST", f"{self._user_doc_url(client_id)}:runQuery", json=query))
        if not isinstance(body, list):
            raise RemoteStoreError("invalid_response_query")

        items: list[RemoteHistoryItem] = []
        for row in body:
            doc = row.get("document") if isinstance(row, dict) else None
            if not isinstance(doc, dict):
                # Rows without a document only carry readTime/skippedResults.
                continue
            name = doc.get("name", "")
            fields = _decode_fields_lenient(doc.get("fields") or {}, name)
            ts = fields.pop(HISTORY_TIMESTAMP_FIELD, None)
            items.append(
                RemoteHistoryItem(
                    id=document_id(name),
                    timestamp=ts if isinstance(ts, datetime) else None,
                    payload=fields,
                )
            )
        return items


def _decode_fields_lenient(fields: dict[str, Any], doc_name: str) -> dict[str, Any]:
    """Like ``decode_fields`` but a malformed value decodes to ``None`` instead of failing the document."""
    out: dict[str, Any] = {}
    for key, raw in fields.items():
        try:
            out[key] = decode_value(raw)
        except (TypeError, ValueError) as e:
            logger.warning("firestore_field_decode_failed doc=%s field=%s error=%s", doc_name, key, e)
            out[key] = None
    return out
