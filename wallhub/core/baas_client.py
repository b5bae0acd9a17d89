"""Client for the hosted REST, auth and storage APIs.

Every edge function talks to the same backend through this module. Rows are
plain dicts; filters use the PostgREST ``column=op.value`` query syntax, so
callers build params with the small helpers below and pass them as a list
of ``(key, value)`` pairs (repeated keys are ANDed by the server).
"""

from __future__ import annotations

import re
import time

import requests
from requests.exceptions import RequestException


_CONTENT_RANGE_TOTAL_RE = re.compile(r"/(\d+)$")


class BaasError(Exception):
    """Non-2xx answer or transport failure from the hosted backend."""

    def __init__(self, status, body, operation):
        self.status = int(status or 0)
        self.body = str(body or "")
        self.operation = operation
        super().__init__(f"{operation} failed ({self.status}): {self.body[:300]}")

    @property
    def is_conflict(self):
        return self.status == 409 or "duplicate key" in self.body


def eq(value):
    return f"eq.{_literal(value)}"


def neq(value):
    return f"neq.{_literal(value)}"


def gte(value):
    return f"gte.{value}"


def lte(value):
    return f"lte.{value}"


def in_list(values):
    """Build an ``in.(...)`` filter; an empty list matches nothing."""
    items = [str(_literal(v)) for v in values if v is not None]
    if not items:
        return "in.(0)"
    return f"in.({','.join(items)})"


def _literal(value):
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


def parse_content_range_total(header):
    """Return N from a ``Content-Range: a-b/N`` header, else None."""
    if not header:
        return None
    match = _CONTENT_RANGE_TOTAL_RE.search(str(header).strip())
    if not match:
        return None
    return int(match.group(1))


def _as_param_list(params):
    if params is None:
        return []
    if isinstance(params, dict):
        return list(params.items())
    return list(params)


class BaasClient:
    """Thin ``requests`` wrapper around the hosted backend."""

    def __init__(self, settings, session=None):
        self.settings = settings
        self.base_url = settings.supabase_url.rstrip("/")
        self.timeout = settings.request_timeout_seconds
        self.http = session or requests.Session()

    # Low-level plumbing

    def service_headers(self, extra=None):
        key = self.settings.service_role_key
        headers = {
            "Authorization": f"Bearer {key}",
            "apikey": key,
            "Content-Type": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers

    def _request(self, method, path, *, operation, params=None, json_body=None, headers=None, stream=False):
        url = path if path.startswith("http") else f"{self.base_url}{path}"
        try:
            response = self.http.request(
                method,
                url,
                params=_as_param_list(params) or None,
                json=json_body,
                headers=headers if headers is not None else self.service_headers(),
                timeout=self.timeout,
                stream=stream,
            )
        except RequestException as exc:
            raise BaasError(0, str(exc), operation) from exc
        if response.status_code >= 300:
            body = response.text if not stream else ""
            response.close()
            raise BaasError(response.status_code, body, operation)
        return response

    @staticmethod
    def _json(response, default):
        if not response.content:
            return default
        try:
            return response.json()
        except ValueError:
            return default

    # REST rows

    def select(self, table, params=None, *, count=False):
        """Return matching rows, or ``(rows, total)`` when ``count`` is set."""
        headers = self.service_headers({"Prefer": "count=exact"} if count else None)
        response = self._request("GET", f"/rest/v1/{table}", operation=f"select {table}", params=params, headers=headers)
        rows = self._json(response, [])
        if not isinstance(rows, list):
            rows = [rows] if rows else []
        if not count:
            return rows
        total = parse_content_range_total(response.headers.get("Content-Range"))
        return rows, (len(rows) if total is None else total)

    def first(self, table, params=None):
        """Return the first matching row or None."""
        rows = self.select(table, params)
        return rows[0] if rows else None

    def count(self, table, params=None):
        """Return the exact number of rows matching ``params``."""
        filtered = [(k, v) for k, v in _as_param_list(params) if k not in {"select", "limit", "offset", "order"}]
        filtered.extend([("select", "id"), ("limit", "1")])
        _, total = self.select(table, filtered, count=True)
        return total

    def insert(self, table, payload, *, returning=True, upsert=False):
        prefer = ["return=representation" if returning else "return=minimal"]
        if upsert:
            prefer.insert(0, "resolution=merge-duplicates")
        headers = self.service_headers({"Prefer": ",".join(prefer)})
        response = self._request("POST", f"/rest/v1/{table}", operation=f"insert {table}", json_body=payload, headers=headers)
        return self._json(response, []) if returning else []

    def update(self, table, filters, payload, *, returning=True):
        headers = self.service_headers({"Prefer": "return=representation" if returning else "return=minimal"})
        response = self._request(
            "PATCH",
            f"/rest/v1/{table}",
            operation=f"update {table}",
            params=filters,
            json_body=payload,
            headers=headers,
        )
        return self._json(response, []) if returning else []

    def delete(self, table, filters, *, returning=False):
        headers = self.service_headers({"Prefer": "return=representation"} if returning else None)
        response = self._request("DELETE", f"/rest/v1/{table}", operation=f"delete {table}", params=filters, headers=headers)
        return self._json(response, []) if returning else []

    def rpc(self, name, payload=None):
        response = self._request("POST", f"/rest/v1/rpc/{name}", operation=f"rpc {name}", json_body=payload or {})
        return self._json(response, None)

    # Auth

    def get_user(self, access_token):
        """Return the auth user behind ``access_token`` or None when rejected."""
        if not access_token:
            return None
        apikey = self.settings.anon_key or self.settings.service_role_key
        headers = {"Authorization": f"Bearer {access_token}", "apikey": apikey}
        try:
            response = self._request("GET", "/auth/v1/user", operation="auth user", headers=headers)
        except BaasError as exc:
            if 400 <= exc.status < 500:
                return None
            raise
        user = self._json(response, None)
        if not isinstance(user, dict) or not user.get("id"):
            return None
        return user

    def list_auth_users(self, page, per_page):
        response = self._request(
            "GET",
            "/auth/v1/admin/users",
            operation="auth admin users",
            params=[("page", page), ("per_page", per_page)],
        )
        payload = self._json(response, {})
        if isinstance(payload, dict):
            return payload.get("users") or []
        return payload or []

    # Storage

    def sign_storage_url(self, bucket, object_path, expires_in):
        """Return an absolute signed URL for a storage object."""
        response = self._request(
            "POST",
            f"/storage/v1/object/sign/{bucket}/{object_path}",
            operation="storage sign",
            json_body={"expiresIn": int(expires_in)},
        )
        payload = self._json(response, {})
        signed = payload.get("signedURL") or payload.get("signedUrl") if isinstance(payload, dict) else None
        if not signed:
            return None
        if signed.startswith("http"):
            return signed
        if not signed.startswith("/storage/v1"):
            signed = f"/storage/v1{signed if signed.startswith('/') else '/' + signed}"
        return f"{self.base_url}{signed}"

    def open_stream(self, url, headers=None):
        """Open a streaming GET to ``url``; the caller must close the response."""
        return self._request("GET", url, operation="file fetch", headers=headers or {}, stream=True)

    def probe(self, path, headers=None):
        """Return ``(status_code, elapsed_ms)``; status 0 on transport errors."""
        started = time.monotonic()
        try:
            response = self.http.get(
                f"{self.base_url}{path}",
                headers=headers if headers is not None else self.service_headers(),
                timeout=self.timeout,
            )
            status = response.status_code
            response.close()
        except RequestException:
            status = 0
        elapsed_ms = int((time.monotonic() - started) * 1000)
        return status, elapsed_ms
