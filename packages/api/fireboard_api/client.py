"""Fireboard cloud REST client over urllib."""

from __future__ import annotations

import http.client
import json
import logging
import os
import ssl
import urllib.error
import urllib.request
from typing import Any, Callable

from .auth import TokenCache
from .errors import AuthError, DecodeError, FireboardError, RateLimited, RemoteError
from .models import (
    ChannelSeries,
    Device,
    SessionDetail,
    SessionSummary,
    chart_from_payload,
    devices_from_payload,
    sessions_from_payload,
)

try:
    import certifi
except Exception:  # pragma: no cover - fallback when optional dependency unavailable
    certifi = None


DEFAULT_BASE_URL = "https://fireboard.io"
DEFAULT_TIMEOUT_S = 10.0
CONTENT_TYPE = "application/json"

AUTH_LOGIN_PATH = "/api/rest-auth/login/"
DEVICES_LIST_PATH = "/api/v1/devices.json"
DEVICE_GET_PATH = "/api/v1/devices/{uuid}.json"
DEVICE_TEMPS_PATH = "/api/v1/devices/{uuid}/temps.json"
DEVICE_DRIVE_PATH = "/api/v1/devices/{uuid}/drivelog.json"
SESSIONS_LIST_PATH = "/api/v1/sessions.json"
SESSION_GET_PATH = "/api/v1/sessions/{id}.json?drive=1"
SESSION_CHART_PATH = "/api/v1/sessions/{id}/chart.json?drive=1"

_ERROR_BODY_LIMIT = 512

_log = logging.getLogger("fireboard.api")


def _build_ssl_context() -> ssl.SSLContext:
    """Create TLS context for API calls with explicit CA handling."""
    if os.environ.get("FIREBOARD_ALLOW_INSECURE_TLS", "").strip() == "1":
        return ssl._create_unverified_context()

    ca_bundle = os.environ.get("FIREBOARD_CA_BUNDLE", "").strip()
    if ca_bundle:
        return ssl.create_default_context(cafile=ca_bundle)

    if certifi is not None:
        return ssl.create_default_context(cafile=certifi.where())

    return ssl.create_default_context()


class FireboardClient:
    """Concrete ``RemoteDataSource`` for the Fireboard REST API.

    Every call takes its own ``timeout``; when omitted the client default is
    used. Authenticated calls read the token from ``token_cache`` right before
    the request is built.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        token_cache: TokenCache | None = None,
        user_agent: str = "fireboard-exporter/0.1",
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.token_cache = token_cache or TokenCache()
        self.user_agent = user_agent

    def _url(self, path: str) -> str:
        return self.base_url + path

    def _headers(self, authenticated: bool) -> dict[str, str]:
        headers = {
            "Content-Type": CONTENT_TYPE,
            "Accept": CONTENT_TYPE,
            "User-Agent": self.user_agent,
        }
        if authenticated:
            headers["Authorization"] = self.token_cache.authorization_header()
        return headers

    def _request(
        self,
        func: str,
        path: str,
        timeout: float | None,
        method: str = "GET",
        body: dict[str, Any] | None = None,
        authenticated: bool = True,
        resource: str | None = None,
    ) -> Any:
        try:
            headers = self._headers(authenticated)
        except FireboardError as exc:
            raise exc.with_context(func=func, resource=resource)

        data = json.dumps(body).encode("utf-8") if body is not None else None
        req = urllib.request.Request(self._url(path), data=data, headers=headers, method=method)
        timeout_s = self.timeout_s if timeout is None else timeout

        try:
            with urllib.request.urlopen(req, timeout=timeout_s, context=_build_ssl_context()) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as exc:
            text = exc.read().decode("utf-8", errors="replace")[:_ERROR_BODY_LIMIT] if exc.fp else ""
            if exc.code == 429:
                raise RateLimited(func=func, resource=resource) from exc
            if exc.code in (401, 403) or not authenticated:
                raise AuthError(f"HTTP {exc.code}: {text}", func=func, resource=resource) from exc
            raise RemoteError(f"HTTP {exc.code}: {text}", status=exc.code, func=func, resource=resource) from exc
        except (urllib.error.URLError, http.client.HTTPException, OSError) as exc:
            raise RemoteError(f"transport failure: {exc}", func=func, resource=resource) from exc

        _log.debug("api call ok", extra={"event": "api_call", "func": func, "bytes": len(raw)})
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise DecodeError(f"malformed response body: {exc}", func=func, resource=resource) from exc

    @staticmethod
    def _decode(func: str, resource: str | None, decoder: Callable[[Any], Any], payload: Any) -> Any:
        try:
            return decoder(payload)
        except DecodeError as exc:
            raise exc.with_context(func=func, resource=resource)

    def authenticate(self, username: str, password: str, timeout: float | None = None) -> str:
        payload = self._request(
            "authLogin",
            AUTH_LOGIN_PATH,
            timeout,
            method="POST",
            body={"username": username, "password": password},
            authenticated=False,
        )
        if not isinstance(payload, dict):
            raise DecodeError("expected object for auth response", func="authLogin")
        return str(payload.get("key") or "")

    def list_devices(self, timeout: float | None = None) -> list[Device]:
        payload = self._request("devicesList", DEVICES_LIST_PATH, timeout)
        return self._decode("devicesList", None, devices_from_payload, payload)

    def _device(self, func: str, path: str, device_uuid: str, timeout: float | None) -> Device:
        resource = f"uuid:{device_uuid}"
        payload = self._request(func, path.format(uuid=device_uuid), timeout, resource=resource)
        return self._decode(func, resource, Device.from_payload, payload)

    def get_device(self, device_uuid: str, timeout: float | None = None) -> Device:
        return self._device("devicesGet", DEVICE_GET_PATH, device_uuid, timeout)

    def get_device_realtime_temperature(self, device_uuid: str, timeout: float | None = None) -> Device:
        return self._device("devicesGetRealtimeTemperatureData", DEVICE_TEMPS_PATH, device_uuid, timeout)

    def get_device_realtime_drive(self, device_uuid: str, timeout: float | None = None) -> Device:
        return self._device("devicesGetRealtimeDeviceDriveData", DEVICE_DRIVE_PATH, device_uuid, timeout)

    def list_sessions(self, timeout: float | None = None) -> list[SessionSummary]:
        payload = self._request("sessionsList", SESSIONS_LIST_PATH, timeout)
        return self._decode("sessionsList", None, sessions_from_payload, payload)

    def get_session(self, session_id: int, timeout: float | None = None) -> SessionDetail:
        resource = f"sessionID:{session_id}"
        payload = self._request("sessionsGet", SESSION_GET_PATH.format(id=session_id), timeout, resource=resource)
        return self._decode("sessionsGet", resource, SessionDetail.from_payload, payload)

    def get_session_chart(self, session_id: int, timeout: float | None = None) -> list[ChannelSeries]:
        resource = f"sessionID:{session_id}"
        payload = self._request(
            "sessionsGetChartData", SESSION_CHART_PATH.format(id=session_id), timeout, resource=resource
        )
        return self._decode("sessionsGetChartData", resource, chart_from_payload, payload)
