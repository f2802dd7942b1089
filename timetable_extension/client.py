"""HTTP client for the device pairing endpoints."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Optional
from urllib.parse import urlencode

import httpx

logger = logging.getLogger(__name__)

USER_AGENT = "GammaTimetableExtension/0.1 Chrome/120.0"


class DeviceAuthError(RuntimeError):
    """Raised when a pairing endpoint returns an error response."""

    def __init__(self, message: str, *, status_code: int | None = None, error_code: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code


class TransientError(DeviceAuthError):
    """Network failure, rate limit or server error; retrying may help."""


class PendingError(DeviceAuthError):
    """The pairing code has not been linked yet (HTTP 425)."""


class TerminalPairingError(DeviceAuthError):
    """The pairing attempt is dead; the user has to start over."""


class InvalidTokenError(DeviceAuthError):
    """The device token was rejected (HTTP 401)."""


def parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class DeviceInfo:
    device_id: str
    code: str
    expires_at: str  # ISO-8601

    @property
    def expires(self) -> datetime:
        return parse_timestamp(self.expires_at)

    def to_dict(self) -> dict:
        return {"deviceId": self.device_id, "code": self.code, "expiresAt": self.expires_at}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DeviceInfo":
        return cls(device_id=data["deviceId"], code=data["code"], expires_at=data["expiresAt"])


@dataclass(frozen=True)
class StoredToken:
    token: str
    expires_at: str  # ISO-8601

    @property
    def expires(self) -> datetime:
        return parse_timestamp(self.expires_at)

    def to_dict(self) -> dict:
        return {"token": self.token, "expiresAt": self.expires_at}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StoredToken":
        return cls(token=data["token"], expires_at=data["expiresAt"])


def build_sign_in_url(web_base_url: str, code: str) -> str:
    """Sign-in page URL carrying the pairing code. The device id stays out of it."""
    query = urlencode({"source": "extension", "code": code})
    return f"{web_base_url.rstrip('/')}/sign-in?{query}"


def _error_code(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    detail = body.get("detail", body)
    if isinstance(detail, dict):
        return detail.get("error")
    return body.get("error")


def _raise_for_status(response: httpx.Response, action: str) -> None:
    code = response.status_code
    if code < 400:
        return
    error_code = _error_code(response)
    message = f"{action} failed: {code} {error_code or ''}".strip()
    if code == 425:
        raise PendingError(message, status_code=code, error_code=error_code)
    if code == 401:
        raise InvalidTokenError(message, status_code=code, error_code=error_code)
    if code == 429 or code >= 500:
        raise TransientError(message, status_code=code, error_code=error_code)
    raise TerminalPairingError(message, status_code=code, error_code=error_code)


class DeviceAuthClient:
    """Talks to ``/api/devices/*`` on the web app's API."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"User-Agent": USER_AGENT},
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "DeviceAuthClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: Mapping[str, Any] | None = None,
        token: str | None = None,
    ) -> httpx.Response:
        headers = {"Authorization": f"Bearer {token}"} if token else None
        try:
            return self._client.request(method, path, json=json, headers=headers)
        except httpx.RequestError as exc:
            raise TransientError(f"{method} {path} failed: {exc}") from exc

    def register(self, device_fingerprint: str | None = None) -> DeviceInfo:
        body = {"deviceFingerprint": device_fingerprint} if device_fingerprint else {}
        response = self._request("POST", "/api/devices/register", json=body)
        _raise_for_status(response, "register")
        return DeviceInfo.from_dict(response.json())

    def exchange(self, device_id: str, code: str) -> StoredToken:
        response = self._request("POST", "/api/devices/exchange", json={"deviceId": device_id, "code": code})
        _raise_for_status(response, "exchange")
        return StoredToken.from_dict(response.json())

    def rotate(self, token: str) -> StoredToken:
        response = self._request("POST", "/api/devices/refresh", json={}, token=token)
        _raise_for_status(response, "refresh")
        return StoredToken.from_dict(response.json())

    def ping(self, token: str) -> dict:
        response = self._request("GET", "/api/protected/ping", token=token)
        _raise_for_status(response, "ping")
        return response.json()
