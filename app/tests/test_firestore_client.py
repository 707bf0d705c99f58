from datetime import datetime, timezone

import pytest
import requests

from offlinesync.providers.base import RemoteStoreError
from offlinesync.providers.firestore import firestore_client as fc_module
from offlinesync.providers.firestore.firestore_client import FirestoreClient

DOCS = "https://firestore.googleapis.com/v1/projects/demo/databases/(default)/documents"


class _FakeResponse:
    def __init__(self, status_code: int = 200, payload=None, text: str = ""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class _FakeRequests:
    def __init__(self, responses: list):
        self.responses = list(responses)
        self.calls: list[dict] = []

    def __call__(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def _client() -> FirestoreClient:
    return FirestoreClient(api_key="key-1", project_id="demo")


def _install(monkeypatch, responses: list) -> _FakeRequests:
    fake = _FakeRequests(responses)
    monkeypatch.setattr(fc_module.requests, "request", fake)
    return fake


def test_get_profile_decodes_document(monkeypatch):
    fake = _install(
        monkeypatch,
        [_FakeResponse(200, {"name": f"{DOCS}/users/u1", "fields": {"name": {"stringValue": "Ana"}}})],
    )

    assert _client().get_profile("u1") == {"name": "Ana"}
    assert fake.calls[0]["method"] == "GET"
    assert fake.calls[0]["url"] == f"{DOCS}/users/u1"
    assert fake.calls[0]["params"] == {"key": "key-1"}


def test_get_profile_returns_none_when_document_missing(monkeypatch):
    _install(monkeypatch, [_FakeResponse(404, {"error": {"message": "not found"}})])
    assert _client().get_profile("u1") is None


def test_put_profile_patches_fields_with_server_timestamp(monkeypatch):
    fake = _install(monkeypatch, [_FakeResponse(200, {"name": f"{DOCS}/users/u1"})])
    ts = datetime(2024, 1, 1, tzinfo=timezone.utc)

    _client().put_profile("u1", {"name": "Ana", "lastUpdated": 1}, ts)

    call = fake.calls[0]
    assert call["method"] == "PATCH"
    assert call["json"]["fields"]["name"] == {"stringValue": "Ana"}
    assert call["json"]["fields"]["updatedAt"] == {"timestampValue": "2024-01-01T00:00:00.000000Z"}


def test_append_history_returns_generated_document_id(monkeypatch):
    fake = _install(monkeypatch, [_FakeResponse(200, {"name": f"{DOCS}/users/u1/history/gen42"})])
    ts = datetime(2024, 1, 1, tzinfo=timezone.utc)

    remote_id = _client().append_history("u1", {"id": "item_1", "note": "hi"}, ts)

    assert remote_id == "gen42"
    fields = fake.calls[0]["json"]["fields"]
    assert fake.calls[0]["url"] == f"{DOCS}/users/u1/history"
    assert "id" not in fields
    assert fields["note"] == {"stringValue": "hi"}
    assert "timestampValue" in fields["timestamp"]


def test_list_recent_history_runs_ordered_query(monkeypatch):
    rows = [
        {"readTime": "2024-01-01T00:00:00Z"},
        {
            "document": {
                "name": f"{DOCS}/users/u1/history/b",
                "fields": {"note": {"stringValue": "new"}, "timestamp": {"timestampValue": "2024-01-02T00:00:00Z"}},
            }
        },
        {"document": {"name": f"{DOCS}/users/u1/history/a", "fields": {"note": {"stringValue": "old"}}}},
    ]
    fake = _install(monkeypatch, [_FakeResponse(200, rows)])

    items = _client().list_recent_history("u1", limit=5)

    query = fake.calls[0]["json"]["structuredQuery"]
    assert fake.calls[0]["url"] == f"{DOCS}/users/u1:runQuery"
    assert query["limit"] == 5
    assert query["orderBy"][0]["direction"] == "DESCENDING"
    assert [i.id for i in items] == ["b", "a"]
    assert items[0].timestamp == datetime(2024, 1, 2, tzinfo=timezone.utc)
    assert items[0].payload == {"note": "new"}
    assert items[1].timestamp is None


def test_http_errors_raise_remote_store_error_with_message(monkeypatch):
    _install(monkeypatch, [_FakeResponse(403, {"error": {"message": "PERMISSION_DENIED"}})])

    with pytest.raises(RemoteStoreError) as exc:
        _client().put_profile("u1", {}, datetime.now(timezone.utc))
    assert "status=403" in str(exc.value)
    assert "PERMISSION_DENIED" in str(exc.value)


def test_transport_errors_are_wrapped(monkeypatch):
    _install(monkeypatch, [requests.ConnectionError("offline")])

    with pytest.raises(RemoteStoreError) as exc:
        _client().get_profile("u1")
    assert "firestore_request_failed" in str(exc.value)


def test_missing_api_key_fails_before_any_request(monkeypatch):
    fake = _install(monkeypatch, [])

    with pytest.raises(RemoteStoreError):
        FirestoreClient(api_key="", project_id="demo").get_profile("u1")
    assert fake.calls == []


def test_malformed_timestamp_does_not_fail_the_download(monkeypatch):
    rows = [
        {
            "document": {
                "name": f"{DOCS}/users/u1/history/bad",
                "fields": {"note": {"stringValue": "x"}, "timestamp": {"timestampValue": "not-a-time"}},
            }
        },
        {
            "document": {
                "name": f"{DOCS}/users/u1/history/good",
                "fields": {"timestamp": {"timestampValue": "2024-01-02T00:00:00Z"}},
            }
        },
    ]
    _install(monkeypatch, [_FakeResponse(200, rows)])

    items = _client().list_recent_history("u1")

    assert [i.id for i in items] == ["bad", "good"]
    assert items[0].timestamp is None
    assert items[0].payload == {"note": "x"}
    assert items[1].timestamp == datetime(2024, 1, 2, tzinfo=timezone.utc)


def test_malformed_profile_field_decodes_to_none(monkeypatch):
    doc = {
        "name": f"{DOCS}/users/u1",
        "fields": {"name": {"stringValue": "Ana"}, "createdAt": {"timestampValue": "garbage"}},
    }
    _install(monkeypatch, [_FakeResponse(200, doc)])

    assert _client().get_profile("u1") == {"name": "Ana", "createdAt": None}
