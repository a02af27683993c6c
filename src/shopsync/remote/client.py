"""Remote Store Client.

The sync engine only depends on the :class:`RemoteStore` capability. The
bundled backend speaks PostgREST (the REST layer of hosted Postgres services)
over ``requests``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import requests

from shopsync.config import RemoteSettings

log = logging.getLogger("shopsync.remote")


@dataclass(frozen=True)
class RemoteResult:
    data: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, data: Any = None) -> "RemoteResult":
        return cls(data=data, error=None)

    @classmethod
    def failure(cls, message: str) -> "RemoteResult":
        return cls(data=None, error=str(message) or "unknown remote error")


class RemoteStore(Protocol):
    def insert(self, collection: str, fields: dict) -> RemoteResult: ...
    def update(self, collection: str, record_id: str, fields: dict) -> RemoteResult: ...
    def upsert(self, collection: str, fields: dict, on_conflict: str) -> RemoteResult: ...
    def select_all(self, collection: str) -> RemoteResult: ...


class PostgrestClient:
    """``RemoteStore`` over a PostgREST endpoint (``<url>/rest/v1/<collection>``).

    Inserts are idempotent: a body carrying ``client_ref`` is sent as an upsert
    keyed on that column, so retrying an insert whose response was lost returns
    the existing row instead of creating a second one.
    """

    def __init__(self, settings: RemoteSettings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "apikey": settings.api_key,
                "Authorization": f"Bearer {settings.api_key}",
                "Content-Type": "application/json",
                "X-Client-Info": "shopsync",
            }
        )

    def _url(self, collection: str) -> str:
        return f"{self.settings.url}/rest/v1/{collection}"

    def _send(self, method: str, collection: str, **kwargs) -> RemoteResult:
        try:
            r = self.session.request(method, self._url(collection), timeout=self.settings.timeout, **kwargs)
        except requests.RequestException as e:
            log.warning("remote_request_failed method=%s collection=%s error=%s", method, collection, e)
            return RemoteResult.failure(str(e))
        if r.status_code >= 400:
            message = self._error_message(r)
            log.warning(
                "remote_error method=%s collection=%s status=%s error=%s", method, collection, r.status_code, message
            )
            return RemoteResult.failure(f"HTTP {r.status_code}: {message}")
        if not r.content:
            return RemoteResult.success(None)
        try:
            return RemoteResult.success(r.json())
        except ValueError as e:
            return RemoteResult.failure(f"invalid JSON response: {e}")

    @staticmethod
    def _error_message(r: requests.Response) -> str:
        try:
            body = r.json()
        except ValueError:
            return r.text[:200]
        if isinstance(body, dict):
            return str(body.get("message") or body.get("error") or body)
        return str(body)

    @staticmethod
    def _single(data: Any) -> Optional[dict]:
        if isinstance(data, list):
            return data[0] if data else None
        return data if isinstance(data, dict) else None

    def insert(self, collection: str, fields: dict) -> RemoteResult:
        headers = {"Prefer": "return=representation"}
        params = {}
        if fields.get("client_ref"):
            headers["Prefer"] = "return=representation,resolution=merge-duplicates"
            params["on_conflict"] = "client_ref"
        result = self._send("POST", collection, json=fields, headers=headers, params=params)
        if not result.ok:
            return result
        row = self._single(result.data)
        if not row or row.get("id") in (None, ""):
            return RemoteResult.failure("insert returned no record id")
        return RemoteResult.success(row)

    def update(self, collection: str, record_id: str, fields: dict) -> RemoteResult:
        result = self._send(
            "PATCH",
            collection,
            json=fields,
            params={"id": f"eq.{record_id}"},
            headers={"Prefer": "return=representation"},
        )
        if not result.ok:
            return result
        if isinstance(result.data, list) and not result.data:
            return RemoteResult.failure(f"no remote record with id {record_id}")
        return RemoteResult.success(self._single(result.data))

    def upsert(self, collection: str, fields: dict, on_conflict: str) -> RemoteResult:
        result = self._send(
            "POST",
            collection,
            json=fields,
            params={"on_conflict": on_conflict},
            headers={"Prefer": "return=representation,resolution=merge-duplicates"},
        )
        if not result.ok:
            return result
        return RemoteResult.success(self._single(result.data))

    def select_all(self, collection: str) -> RemoteResult:
        result = self._send("GET", collection, params={"select": "*"})
        if not result.ok:
            return result
        if not isinstance(result.data, list):
            return RemoteResult.failure("select returned a non-list body")
        return result

    def ping(self) -> bool:
        """Cheap reachability check used by the connectivity probe."""
        try:
            r = self.session.head(f"{self.settings.url}/rest/v1/", timeout=self.settings.timeout)
        except requests.RequestException:
            return False
        return r.status_code < 500
