import json

import requests

from shopsync.config import RemoteSettings
from shopsync.remote.client import PostgrestClient

SETTINGS = RemoteSettings(url="https://shop.example.test", api_key="anon-key", timeout=3.0)


def _response(status: int, body=None) -> requests.Response:
    r = requests.Response()
    r.status_code = status
    r._content = json.dumps(body).encode("utf-8") if body is not None else b""
    r.headers["Content-Type"] = "application/json"
    return r


class StubSession:
    def __init__(self, *responses):
        self.headers: dict = {}
        self.responses = list(responses)
        self.requests: list[tuple[str, str, dict]] = []

    def _next(self):
        r = self.responses.pop(0)
        if isinstance(r, Exception):
            raise r
        return r

    def request(self, method, url, **kwargs):
        self.requests.append((method, url, kwargs))
        return self._next()

    def head(self, url, **kwargs):
        self.requests.append(("HEAD", url, kwargs))
        return self._next()


def test_client_sends_credentials_and_collection_url():
    session = StubSession(_response(200, []))
    client = PostgrestClient(SETTINGS, session=session)

    result = client.select_all("items")

    assert result.ok and result.data == []
    assert session.headers["apikey"] == "anon-key"
    assert session.headers["Authorization"] == "Bearer anon-key"
    method, url, kwargs = session.requests[0]
    assert (method, url) == ("GET", "https://shop.example.test/rest/v1/items")
    assert kwargs["timeout"] == 3.0


def test_insert_with_client_ref_is_an_idempotent_upsert():
    session = StubSession(_response(201, [{"id": 41, "client_ref": "c-1"}]))
    client = PostgrestClient(SETTINGS, session=session)

    result = client.insert("items", {"client_ref": "c-1", "name": "Widget"})

    assert result.ok
    assert result.data["id"] == 41
    _method, _url, kwargs = session.requests[0]
    assert kwargs["params"] == {"on_conflict": "client_ref"}
    assert "resolution=merge-duplicates" in kwargs["headers"]["Prefer"]
    assert kwargs["json"] == {"client_ref": "c-1", "name": "Widget"}


def test_insert_without_returned_id_is_a_failure():
    client = PostgrestClient(SETTINGS, session=StubSession(_response(201, [])))
    result = client.insert("sales", {"client_ref": "s-1"})
    assert not result.ok


def test_http_error_becomes_failed_result():
    session = StubSession(_response(400, {"message": "duplicate key value violates unique constraint"}))
    client = PostgrestClient(SETTINGS, session=session)

    result = client.update("items", "r1", {"name": "x"})

    assert not result.ok
    assert result.error.startswith("HTTP 400")
    assert "duplicate key" in result.error


def test_transport_error_becomes_failed_result():
    client = PostgrestClient(SETTINGS, session=StubSession(requests.ConnectionError("connection refused")))
    result = client.insert("items", {"client_ref": "c-1"})
    assert not result.ok
    assert "connection refused" in result.error


def test_update_of_missing_record_fails():
    session = StubSession(_response(200, []))
    client = PostgrestClient(SETTINGS, session=session)

    result = client.update("items", "r404", {"name": "x"})

    assert not result.ok
    _method, _url, kwargs = session.requests[0]
    assert kwargs["params"] == {"id": "eq.r404"}


def test_upsert_passes_conflict_columns():
    session = StubSession(_response(201, [{"id": 8, "sale_id": "s1", "item_id": "r1"}]))
    client = PostgrestClient(SETTINGS, session=session)

    result = client.upsert("sale_items", {"sale_id": "s1", "item_id": "r1"}, "sale_id,item_id")

    assert result.ok and result.data["id"] == 8
    assert session.requests[0][2]["params"] == {"on_conflict": "sale_id,item_id"}


def test_select_with_non_list_body_fails():
    client = PostgrestClient(SETTINGS, session=StubSession(_response(200, {"id": 1})))
    assert not client.select_all("items").ok


def test_ping_reports_reachability():
    client = PostgrestClient(SETTINGS, session=StubSession(_response(404), requests.Timeout("slow")))
    assert client.ping() is True
    assert client.ping() is False
