"""Signed HTTP client for the platform business API.

Every request carries ``X-Agent-Id``, ``X-Timestamp`` and ``X-Agent-Signature``
headers. Responses follow ``{"code": "200", "message": "...", "data": ...}``;
a code other than ``"200"`` raises :class:`PlatformError`.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any

import requests

from a2hmarket.signer import compute_http_signature

DEFAULT_TIMEOUT = 30.0
_ERROR_BODY_LIMIT = 512


@dataclass(frozen=True)
class ApiCredentials:
    """Credentials for the platform API; ``base_url`` has no trailing slash."""

    agent_id: str
    agent_key: str
    base_url: str


class PlatformError(Exception):
    """A business error (code other than 200) or a non-2xx HTTP response."""

    def __init__(self, platform_code: str, message: str, http_status: int = 0):
        super().__init__(platform_code, message, http_status)
        self.platform_code = platform_code
        self.message = message
        self.http_status = http_status

    def __str__(self) -> str:
        if self.http_status:
            return (
                f"platform error: HTTP {self.http_status}, "
                f"code={self.platform_code}, message={self.message}"
            )
        return f"platform error: code={self.platform_code}, message={self.message}"


def _code_string(obj: dict[str, Any]) -> str:
    """Normalise the ``code`` field, accepting both 200 and "200"."""
    if "code" not in obj:
        return ""
    raw = json.dumps(obj["code"], ensure_ascii=False, separators=(",", ":"))
    return raw.strip('"')


def _error_fields(raw: bytes) -> tuple[str, str]:
    try:
        parsed = json.loads(raw)
    except ValueError:
        return "", ""
    if not isinstance(parsed, dict):
        return "", ""
    message = parsed.get("message")
    return _code_string(parsed), message if isinstance(message, str) else ""


class ApiClient:
    """HTTP client holding credentials and a shared session."""

    def __init__(self, creds: ApiCredentials, timeout: float | None = None):
        self.creds = creds
        self.timeout = float(timeout) if timeout and timeout > 0 else DEFAULT_TIMEOUT
        self._session = requests.Session()

    def __enter__(self) -> ApiClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._session.close()

    def get_json(self, api_path: str, sign_path: str = "") -> Any:
        """Signed GET; returns the ``data`` field.

        ``api_path`` may hold a query string; ``sign_path`` defaults to the part before ``?``.
        """
        return self._request("GET", self.creds.base_url, api_path, sign_path, None)

    def post_json(self, api_path: str, body: Any = None) -> Any:
        """Signed POST of ``body`` as JSON (``{}`` when None); returns ``data``."""
        return self._request("POST", self.creds.base_url, api_path, "", body)

    def post_json_to_host(
        self, base_url: str, api_path: str, sign_path: str, body: Any = None
    ) -> Any:
        """Signed POST to a different host, signing ``sign_path`` instead of ``api_path``."""
        return self._request("POST", base_url.rstrip("/"), api_path, sign_path, body)

    def delete_json(self, api_path: str) -> Any:
        """Signed DELETE; returns ``data``."""
        return self._request("DELETE", self.creds.base_url, api_path, "", None)

    def put_binary(
        self, upload_url: str, signed_headers: dict[str, str] | None, data: bytes
    ) -> None:
        """Upload raw bytes to a pre-signed URL with the server-provided headers."""
        headers = dict(signed_headers or {})
        try:
            resp = self._session.put(upload_url, data=data, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            raise ConnectionError(f"api: PUT binary: {exc}") from exc
        if not 200 <= resp.status_code < 300:
            text = resp.content[:_ERROR_BODY_LIMIT].decode("utf-8", "replace").strip()
            suffix = f": {text}" if text else ""
            raise requests.HTTPError(
                f"api: PUT binary HTTP {resp.status_code}{suffix}", response=resp
            )

    def _request(
        self, method: str, base_url: str, api_path: str, sign_path: str, body: Any
    ) -> Any:
        effective_sign_path = sign_path or api_path.split("?", 1)[0]
        timestamp_sec = str(int(time.time()))
        signature = compute_http_signature(
            self.creds.agent_key, method, effective_sign_path, self.creds.agent_id, timestamp_sec
        )

        payload = None
        if method not in ("GET", "HEAD"):
            payload = json.dumps({} if body is None else body, ensure_ascii=False).encode()

        url = base_url + api_path
        headers = {
            "Content-Type": "application/json",
            "X-Agent-Id": self.creds.agent_id,
            "X-Timestamp": timestamp_sec,
            "X-Agent-Signature": signature,
        }
        try:
            resp = self._session.request(
                method, url, data=payload, headers=headers, timeout=self.timeout
            )
        except requests.RequestException as exc:
            raise ConnectionError(f"api: {method} {url}: {exc}") from exc

        raw = resp.content
        if not 200 <= resp.status_code < 300:
            code, message = _error_fields(raw)
            raise PlatformError(
                code or str(resp.status_code),
                message or raw.decode("utf-8", "replace"),
                resp.status_code,
            )

        if not raw.strip():
            return None
        try:
            parsed = json.loads(raw)
        except ValueError as exc:
            raise ValueError(f"api: parse response: {exc}") from exc

        message = parsed.get("message") if isinstance(parsed, dict) else None
        if not isinstance(parsed, dict) or not isinstance(message, (str, type(None))):
            # Not the platform envelope: hand back the body as it is.
            return parsed

        code = _code_string(parsed)
        if code and code != "200":
            raise PlatformError(code, message or "", 0)
        return parsed.get("data")